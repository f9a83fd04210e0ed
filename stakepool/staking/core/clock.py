# MIT License
# Copyright (c) 2025 Hashborn

import threading
import time

class Clock:
    """Source of the current Unix time in seconds."""

    def now(self) -> int:
        raise NotImplementedError

class SystemClock(Clock):
    """Wall clock that never goes backwards within a process."""

    def __init__(self):
        self._last = 0
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            self._last = max(self._last, int(time.time()))
            return self._last

class ManualClock(Clock):
    """Clock driven explicitly (tests, simulations)."""

    def __init__(self, start: int = 0):
        self._now = start

    def now(self) -> int:
        return self._now

    def set(self, timestamp: int):
        if timestamp < self._now:
            raise ValueError(f"Clock cannot move backwards ({timestamp} < {self._now})")
        self._now = timestamp

    def advance(self, seconds: int):
        self.set(self._now + seconds)
