"""
GalleryLockRegistry -- per-gallery mutual exclusion within one process.

Responsibility:
    Serializes lifecycle commands that target the same gallery.  Every
    transition reads the account's status and partner of record before
    deciding the split, so two commands on one gallery must never
    interleave.  Commands on different galleries never wait on each other.

Architecture position:
    Kernel > Services.  Works together with the row lock
    (``SELECT ... FOR UPDATE``) taken by AccountService; the row lock covers
    multiple processes on PostgreSQL, this registry covers threads within a
    process on every backend.

Memory:
    A gallery's lock exists only while some thread holds or waits for it.
    The last thread out removes it, so a long-running sweep over many
    galleries leaves the registry empty.
"""

import threading
from contextlib import contextmanager
from typing import Generator

from commission_kernel.logging_config import get_logger

logger = get_logger("services.gallery_locks")


class _GalleryLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.RLock()
        # Threads holding or waiting for the lock (re-entrant holds count again).
        self.users = 0


class GalleryLockRegistry:
    """
    One re-entrant lock per gallery id, alive while in use.

    Guarantees:
        - ``hold(g)`` blocks while another thread holds ``g``.
        - Locks for different gallery ids are independent.
        - ``len()`` counts galleries currently held or waited on.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, _GalleryLock] = {}

    def _checkout(self, gallery_id: str) -> _GalleryLock:
        with self._guard:
            entry = self._locks.get(gallery_id)
            if entry is None:
                entry = _GalleryLock()
                self._locks[gallery_id] = entry
            entry.users += 1
            return entry

    def _checkin(self, gallery_id: str, entry: _GalleryLock) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[gallery_id]

    @contextmanager
    def hold(self, gallery_id: str) -> Generator[None, None, None]:
        """Hold the gallery's lock for the duration of the block."""
        entry = self._checkout(gallery_id)
        try:
            if not entry.lock.acquire(blocking=False):
                logger.debug("gallery_lock_contended", extra={"gallery_id": gallery_id})
                entry.lock.acquire()
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            self._checkin(gallery_id, entry)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
