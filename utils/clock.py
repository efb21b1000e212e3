"""Time sources.

Components read time through a clock object so tests and the offline
simulation can drive it explicitly.
"""
from __future__ import annotations

import time


class SystemClock:
    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """Clock advanced by hand; the simulation and tests use it."""

    def __init__(self, start: int = 1_700_000_000):
        self._now = int(start)

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("clock cannot move backwards")
        self._now += int(seconds)
        return self._now


__all__ = ["SystemClock", "ManualClock"]
