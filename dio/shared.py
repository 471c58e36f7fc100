from __future__ import annotations

import threading


class RunTotals:
    """Byte counters shared by all workers of a run."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._original = 0
        self._output = 0

    def add(self, original: int, output: int) -> None:
        with self._lock:
            self._original += original
            self._output += output

    def snapshot(self) -> tuple[int, int]:
        with self._lock:
            return self._original, self._output


class DigestLocks:
    """
    One lock per content digest.

    Holding a digest's lock across check-exists -> encode -> write means a
    second file with the same bytes waits, then finds the finished output.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def lock_for(self, digest: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(digest)
            if lock is None:
                lock = threading.Lock()
                self._locks[digest] = lock
            return lock

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
