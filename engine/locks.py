import threading
from contextlib import contextmanager

from flask import current_app

from engine.errors import Busy


class BookingLocks:
    """
    One mutex per booking id. Work on different bookings never shares a lock;
    work on the same booking is serialized for the life of the ``hold`` block.

    Entries are reference counted and dropped once nobody holds or waits on
    them, so the registry only ever contains bookings being worked on.
    """

    def __init__(self):
        self._guard = threading.Lock()
        # booking_id -> [lock, holders + waiters]
        self._locks = {}

    def __len__(self):
        with self._guard:
            return len(self._locks)

    def _checkout(self, booking_id):
        with self._guard:
            entry = self._locks.get(booking_id)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[booking_id] = entry
            entry[1] += 1
            return entry[0]

    def _checkin(self, booking_id):
        with self._guard:
            entry = self._locks[booking_id]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[booking_id]

    @contextmanager
    def hold(self, booking_id, timeout: float):
        lock = self._checkout(booking_id)
        try:
            if not lock.acquire(timeout=max(timeout, 0)):
                current_app.logger.warning("booking %s lock not acquired within %ss", booking_id, timeout)
                raise Busy(retry_after_seconds=1)
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(booking_id)


def init_app(app):
    app.extensions["booking_locks"] = BookingLocks()


def booking_guard(booking_id):
    locks = current_app.extensions["booking_locks"]
    timeout = current_app.config.get("ACCEPT_LOCK_TIMEOUT_SECONDS", 5)
    return locks.hold(booking_id, timeout)
