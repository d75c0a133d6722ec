from __future__ import annotations

from contextlib import contextmanager
from threading import Lock
from typing import Dict, Hashable, Iterator, List, Tuple


class KeyedLock:
    """Per-key mutual exclusion for a single process.

    Entries are reference counted and dropped once no thread holds or waits
    on them. Several keys are always taken in sorted order.
    """

    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: Dict[Hashable, Tuple[Lock, int]] = {}

    def _acquire_entry(self, key: Hashable) -> Lock:
        with self._guard:
            lock, refs = self._locks.get(key, (None, 0))
            if lock is None:
                lock = Lock()
            self._locks[key] = (lock, refs + 1)
        return lock

    def _release_entry(self, key: Hashable) -> None:
        with self._guard:
            lock, refs = self._locks[key]
            if refs <= 1:
                self._locks.pop(key, None)
            else:
                self._locks[key] = (lock, refs - 1)

    @contextmanager
    def hold(self, *keys: Hashable) -> Iterator[None]:
        ordered = sorted(set(keys), key=repr)
        held: List[Tuple[Hashable, Lock]] = []
        try:
            for key in ordered:
                lock = self._acquire_entry(key)
                try:
                    lock.acquire()
                except BaseException:
                    self._release_entry(key)
                    raise
                held.append((key, lock))
            yield
        finally:
            for key, lock in reversed(held):
                lock.release()
                self._release_entry(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# Process-wide registries shared by every service instance
match_locks = KeyedLock()
report_locks = KeyedLock()
