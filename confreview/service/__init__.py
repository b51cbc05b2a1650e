import os
import flask
import logging, logging.handlers

import redis
from celery import Celery

from ..db import create_db_engine, create_session_factory, init_db
from ..locks import ConferenceLocks, RedisConferenceLocks
from ..notifications import Notifier

celery = Celery("confreview")
celery.config_from_object("confreview.service.config.celery_default")


def configure_logger(app):
    '''
    Configures the app's logger object.
    '''
    app.logger.removeHandler(flask.logging.default_handler)
    formatter = logging.Formatter(
        '%(asctime)s %(levelname)s: [in %(pathname)s:%(lineno)d] %(threadName)s %(message)s')

    file_handler = logging.handlers.RotatingFileHandler(
        filename=app.config['LOG_FILE'],
        mode='a',
        maxBytes=1*1000*1000,
        backupCount=20)

    file_handler.setFormatter(formatter)
    file_handler.setLevel(logging.DEBUG)
    app.logger.addHandler(file_handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    stream_handler.setLevel(logging.DEBUG)

    if app.config['ENV'] == 'development':
        app.logger.addHandler(stream_handler)

    app.logger.setLevel(logging.DEBUG)
    app.logger.debug('Starting app')

    return app.logger


def create_redis(app):
    '''Connection pool for REDIS_URL, or None when Redis is not configured.'''
    if not app.config.get('REDIS_URL'):
        return None
    return redis.ConnectionPool.from_url(app.config['REDIS_URL'])


def create_locks(app, redis_pool=None):
    if redis_pool is not None:
        app.logger.debug('Using redis locks for auto-assign')
        return RedisConferenceLocks(
            redis.Redis(connection_pool=redis_pool),
            timeout=app.config['AUTO_ASSIGN_LOCK_EXPIRE'],
            blocking_timeout=app.config['AUTO_ASSIGN_LOCK_TIMEOUT'],
            logger=app.logger)
    return ConferenceLocks(timeout=app.config['AUTO_ASSIGN_LOCK_TIMEOUT'], logger=app.logger)


def create_celery(app):
    '''Applies the app's CELERY mapping on top of the default Celery config.'''
    celery.conf.update(app.config.get('CELERY') or {})
    return celery


def create_app(config=None, config_file=None):
    '''
    Builds the main app object.

    Implements the "app factory" pattern, recommended by Flask documentation.
    '''

    app = flask.Flask(__name__, instance_relative_config=True)
    app.config.from_object('confreview.service.config.app_default')

    if config:
        print('configuration from mapping')
        app.config.from_mapping(config)
    elif config_file:
        print('configuration from file', config_file)
        app.config.from_pyfile(config_file)
    else:
        print('configuration from config.cfg')
        app.config.from_pyfile('config.cfg', silent=True)

    try:
        os.makedirs(app.instance_path)
    except OSError:
        pass

    configure_logger(app)

    engine = create_db_engine(app.config['DATABASE_URL'], echo=app.config['SQL_ECHO'])
    if app.config.get('CREATE_TABLES', True):
        init_db(engine, logger=app.logger)

    app.extensions['confreview'] = {
        'engine': engine,
        'session_factory': create_session_factory(engine),
        'locks': create_locks(app, create_redis(app)),
        'notifier': Notifier(
            enabled=app.config['NOTIFICATIONS_ENABLED'],
            webhook_url=app.config['NOTIFICATION_WEBHOOK_URL'],
            logger=app.logger),
    }
    create_celery(app)

    @app.teardown_appcontext
    def close_session(exception=None):
        session = flask.g.pop('confreview_session', None)
        if session is not None:
            session.close()

    # The placement of this import statement is important!
    # It must come after the app is initialized, and imported in the same scope.
    from . import routes
    app.register_blueprint(routes.BLUEPRINT)

    return app
