"""
Per-owner mutual exclusion within one process.

Cross-process safety comes from the transaction isolation level and the
unique (owner_id, sprint_index) constraint; these locks only stop two threads
of the same process from racing through read-compute-write for one owner.

A lock lives only while some thread holds or waits on it, so the table stays
as small as the number of owners being worked on right now.
"""
import threading
from contextlib import contextmanager
from typing import Dict


class OwnerLocks:
    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._waiters: Dict[str, int] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def __contains__(self, owner_id: str) -> bool:
        with self._guard:
            return owner_id in self._locks

    @contextmanager
    def hold(self, owner_id: str):
        with self._guard:
            lock = self._locks.get(owner_id)
            if lock is None:
                lock = self._locks[owner_id] = threading.Lock()
            self._waiters[owner_id] = self._waiters.get(owner_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._waiters[owner_id] -= 1
                if not self._waiters[owner_id]:
                    del self._waiters[owner_id]
                    del self._locks[owner_id]
