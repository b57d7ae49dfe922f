"""
Per-key lock registry.

Responsibility:
    Serializes mutations of the same approval request inside one process.
    Two threads deciding on request ``A`` queue behind each other; a thread
    working on request ``B`` is never blocked by them.

Guarantees:
    - ``hold(key)`` is re-entrant for the owning thread.
    - Lock objects are released from the registry once no thread holds or
      waits on them, so the registry does not grow with the request set.

Cross-process serialization is the store's job (optimistic ``version``
check); this registry only covers threads sharing one engine instance.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class KeyedLock:
    """Registry of re-entrant locks keyed by string id."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}
        self._refcounts: dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            self._refcounts[key] = self._refcounts.get(key, 0) + 1

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                remaining = self._refcounts[key] - 1
                if remaining:
                    self._refcounts[key] = remaining
                else:
                    del self._refcounts[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
