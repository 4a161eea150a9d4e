from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator

from venue_booking.core.errors import ConcurrencyConflictError

logger = logging.getLogger(__name__)


class VenueLockRegistry:
    """One mutex per venue, created on first use.

    Serialises admission inside a single process. Cross-process safety comes
    from the venue row lock taken by the storage transaction.
    """

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def get(self, venue_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(venue_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[venue_id] = lock
            return lock

    @contextmanager
    def hold(self, venue_id: str, timeout: float) -> Iterator[None]:
        lock = self.get(venue_id)
        if not lock.acquire(timeout=timeout):
            logger.warning("venue_admission_lock_timeout", extra={"venue_id": venue_id, "timeout": timeout})
            raise ConcurrencyConflictError(
                "Another booking for this venue is being processed, please retry",
                details={"venue_id": venue_id},
            )
        try:
            yield
        finally:
            lock.release()


venue_locks = VenueLockRegistry()
