from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class KeyedLocks:
    """One lock per key, so work on the same booking is serialized while
    different bookings proceed in parallel. A key's lock is dropped once no
    thread holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}
        self._lock_lock = threading.Lock()  # Lock for managing locks dict

    def _get_lock(self, key: str) -> threading.Lock:
        with self._lock_lock:
            if key not in self._locks:
                self._locks[key] = threading.Lock()
            self._users[key] = self._users.get(key, 0) + 1
            return self._locks[key]

    def _release(self, key: str) -> None:
        with self._lock_lock:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        with self._lock_lock:
            return len(self._locks)

    @contextmanager
    def hold(self, *parts: str) -> Iterator[None]:
        key = ":".join(parts)
        lock = self._get_lock(key)
        try:
            with lock:
                yield
        finally:
            self._release(key)
