"""
Per-conference locks for the auto-assigner.

An auto-assign run reads the conference, computes a plan and writes it back, so
two runs on the same conference must not overlap. Runs on different conferences
never wait for each other.
"""
import logging
import threading
import weakref
from contextlib import contextmanager

from redis.exceptions import LockError

from .exceptions import ConflictError

LOCK_PREFIX = "confreview:auto-assign:"


class ConferenceLocks:
    """
    In-process arena of locks keyed by conference id.

    An entry lives only while some run holds or waits on its lock.
    """

    def __init__(self, timeout=30, logger=logging.getLogger(__name__)):
        self.timeout = timeout
        self.logger = logger
        self._guard = threading.Lock()
        self._locks = weakref.WeakValueDictionary()

    def _lock_for(self, conference_id):
        with self._guard:
            lock = self._locks.get(conference_id)
            if lock is None:
                lock = self._locks[conference_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, conference_id):
        lock = self._lock_for(conference_id)
        if not lock.acquire(timeout=self.timeout):
            raise ConflictError("Auto-assignment already running for this conference")
        self.logger.debug("Acquired auto-assign lock for {}".format(conference_id))
        try:
            yield
        finally:
            lock.release()
            self.logger.debug("Released auto-assign lock for {}".format(conference_id))


class RedisConferenceLocks:
    """
    Redis-backed locks, for deployments running several service processes.

    `timeout` bounds how long a lock may be held before Redis expires it and
    `blocking_timeout` how long a second run waits before giving up.
    """

    def __init__(self, redis_client, timeout=300, blocking_timeout=30, logger=logging.getLogger(__name__)):
        self.redis = redis_client
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout
        self.logger = logger

    @contextmanager
    def hold(self, conference_id):
        lock = self.redis.lock(
            LOCK_PREFIX + conference_id,
            timeout=self.timeout,
            blocking_timeout=self.blocking_timeout,
        )
        if not lock.acquire():
            raise ConflictError("Auto-assignment already running for this conference")
        self.logger.debug("Acquired redis auto-assign lock for {}".format(conference_id))
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError as error_handle:
                self.logger.warning(
                    "Auto-assign lock for {} expired before release: {}".format(
                        conference_id, error_handle
                    )
                )
