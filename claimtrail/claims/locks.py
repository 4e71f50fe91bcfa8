"""Per-claim mutual exclusion shared by every writer of claim state."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class ClaimLockRegistry:
    """Keyed in-process locks; one lock per claim (or document) id.

    Locks are reference counted and dropped once nobody holds or waits on
    them, so the registry does not grow with the number of claims seen.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._refs: dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._refs[key] = self._refs.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._refs[key] -= 1
                if self._refs[key] == 0:
                    del self._refs[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
