"""Per-user serialization of entitlement read-modify-write sequences."""
from __future__ import annotations

from contextlib import contextmanager
from threading import Lock
from typing import Dict, Iterator, List


class UserLockRegistry:
    """Hands out one exclusive lock per user id within this process.

    A user's lock lives only while someone holds or waits for it.
    """

    def __init__(self, *, enabled: bool = True) -> None:
        self.enabled = enabled
        self._guard = Lock()
        # user id -> [lock, holders and waiters]
        self._locks: Dict[str, List] = {}

    def _checkout(self, user_id: str) -> Lock:
        with self._guard:
            entry = self._locks.get(user_id)
            if entry is None:
                entry = [Lock(), 0]
                self._locks[user_id] = entry
            entry[1] += 1
            return entry[0]

    def _checkin(self, user_id: str) -> None:
        with self._guard:
            entry = self._locks[user_id]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[user_id]

    @contextmanager
    def hold(self, user_id: str) -> Iterator[None]:
        if not self.enabled:
            yield
            return
        lock = self._checkout(user_id)
        try:
            with lock:
                yield
        finally:
            self._checkin(user_id)

    def __len__(self) -> int:
        return len(self._locks)


__all__ = ["UserLockRegistry"]
