"""
Clock Sources for Calibration Sessions

Sessions only need "what time is it" and "wait this long". The live demo
uses the wall clock; replayed frame batches and tests use a virtual clock
whose time only moves when the session sleeps.
"""

import time


class MonotonicClock:
    """Wall-clock time in seconds (time.monotonic) with real sleeping."""

    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class ReplayClock:
    """
    Virtual clock advanced only by sleep().

    Makes a session's deadline a fixed number of polls, independent of
    how long frame processing actually takes.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self.sleep_calls = 0

    def now(self) -> float:
        return self._now

    def sleep(self, seconds: float) -> None:
        self._now += max(seconds, 0.0)
        self.sleep_calls += 1
