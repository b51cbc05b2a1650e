"""
Defines pytest fixtures: an in-memory database per test and a small factory
for building conferences, members, papers, bids and assignments.
"""

import datetime

import pytest

import confreview.service
from confreview.db import create_db_engine, create_session_factory, init_db
from confreview.models import (
    Conference,
    ConferenceMember,
    Decision,
    MemberRole,
    Paper,
    PaperAuthor,
    ReviewAssignment,
    ReviewerBid,
    ReviewerConflict,
    ReviewStatus,
    User,
)

pytest_plugins = ["celery.contrib.pytest"]

BASE_TIME = datetime.datetime(2024, 1, 1, 12, 0, 0)


class ConferenceFactory:
    """Writes rows straight to the session, bypassing the services under test."""

    def __init__(self, session):
        self.session = session
        self.paper_count = 0

    def _save(self, *rows):
        self.session.add_all(rows)
        self.session.commit()
        return rows[0]

    def user(self, user_id, first_name=None, last_name="Tester", is_admin=False):
        return self._save(
            User(
                id=user_id,
                email="{}@example.com".format(user_id),
                first_name=first_name or user_id.capitalize(),
                last_name=last_name,
                is_admin=is_admin,
            )
        )

    def conference(self, conference_id="conf", name="Test Conference"):
        return self._save(Conference(id=conference_id, name=name))

    def member(self, conference, user, *roles):
        members = [
            ConferenceMember(conference_id=conference.id, user_id=user.id, role=role)
            for role in roles
        ]
        self._save(*members)
        return members

    def paper(self, conference, paper_id, title=None, authors=()):
        # creation order is the order the auto-assigner visits papers in
        created_at = BASE_TIME + datetime.timedelta(minutes=self.paper_count)
        self.paper_count += 1
        paper = Paper(
            id=paper_id,
            conference_id=conference.id,
            title=title or "Paper {}".format(paper_id),
            created_at=created_at,
        )
        paper.authors = [
            PaperAuthor(user_id=author.id, order=order) for order, author in enumerate(authors)
        ]
        return self._save(paper)

    def bid(self, paper, user, value):
        return self._save(ReviewerBid(paper_id=paper.id, reviewer_id=user.id, bid=value))

    def conflict(self, paper, user):
        return self._save(ReviewerConflict(paper_id=paper.id, user_id=user.id))

    def assignment(self, paper, reviewer, status=ReviewStatus.NOT_STARTED, due_date=None):
        return self._save(
            ReviewAssignment(
                paper_id=paper.id,
                reviewer_id=reviewer.id,
                status=status,
                due_date=due_date,
            )
        )

    def decision(self, paper, decision="accepted"):
        return self._save(Decision(paper_id=paper.id, decision=decision))


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    session = create_session_factory(engine)()
    yield session
    session.close()


@pytest.fixture
def factory(session):
    return ConferenceFactory(session)


@pytest.fixture
def conference_context(factory):
    """
    One conference with a chair, four reviewers, an author, an admin and an
    outsider. Reviewer ids sort in the order r1 < r2 < r3 < r4.
    """
    conference = factory.conference()
    chair = factory.user("chair")
    reviewers = [factory.user("r{}".format(i)) for i in range(1, 5)]
    author = factory.user("author")
    admin = factory.user("admin", is_admin=True)
    outsider = factory.user("outsider")

    factory.member(conference, chair, MemberRole.CHAIR)
    for reviewer in reviewers:
        factory.member(conference, reviewer, MemberRole.REVIEWER)
    factory.member(conference, author, MemberRole.AUTHOR)

    return {
        "conference": conference,
        "chair": chair,
        "reviewers": reviewers,
        "author": author,
        "admin": admin,
        "outsider": outsider,
    }


@pytest.fixture
def app(tmp_path):
    app = confreview.service.create_app(
        config={
            "LOG_FILE": str(tmp_path / "pytest.log"),
            "DATABASE_URL": "sqlite://",
            "NOTIFICATIONS_ENABLED": False,
            "AUTO_ASSIGN_LOCK_TIMEOUT": 1,
        }
    )
    app.testing = True
    yield app
    app.extensions["confreview"]["engine"].dispose()


@pytest.fixture
def app_session(app):
    session = app.extensions["confreview"]["session_factory"]()
    yield session
    session.close()


@pytest.fixture
def app_factory(app_session):
    return ConferenceFactory(app_session)


@pytest.fixture
def test_client(app):
    return app.test_client()
