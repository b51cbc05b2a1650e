"""Engine and session handling for the relational store."""
import logging
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url, echo=False):
    """
    Builds an Engine for `database_url`.

    An in-memory SQLite url gets a single shared connection so that every
    session (and every thread) sees the same database.
    """
    kwargs = {"echo": echo, "future": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **kwargs)

    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)

    return engine


def create_session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine, logger=logging.getLogger(__name__)):
    logger.info("Creating tables on {}".format(engine.url))
    Base.metadata.create_all(engine)


@contextmanager
def unit_of_work(session):
    """
    Commits `session` when the block exits cleanly and rolls it back otherwise.
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
