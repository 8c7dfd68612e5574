"""Per-room serialization point for booking writes."""
from __future__ import annotations

import threading
import weakref
from contextlib import contextmanager
from typing import Iterator

from .errors import TransientStoreFailure


class RoomLockRegistry:
    """Hands out one mutex per room; waits are always bounded.

    A room's mutex lives only while some caller holds or waits on it, so the
    registry does not grow with the number of room ids ever requested.
    """

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary[int, threading.Lock] = weakref.WeakValueDictionary()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _lock_for(self, room_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(room_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[room_id] = lock
            return lock

    @contextmanager
    def hold(self, room_id: int, timeout: float | None = None) -> Iterator[None]:
        lock = self._lock_for(room_id)
        wait = self.timeout if timeout is None else timeout
        if not lock.acquire(timeout=wait):
            raise TransientStoreFailure(
                "Timed out waiting for other bookings on this room",
                room_id=room_id,
            )
        try:
            yield
        finally:
            lock.release()
