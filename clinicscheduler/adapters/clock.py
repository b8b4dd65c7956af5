"""
Clock implementations.
"""

import pendulum
from pendulum import DateTime


class SystemClock:
    """Wall-clock time in the configured timezone."""

    def __init__(self, timezone: str = "UTC"):
        self.timezone = timezone

    def now(self) -> DateTime:
        return pendulum.now(self.timezone)


class FixedClock:
    """A clock frozen at a given instant; advance it explicitly in tests."""

    def __init__(self, now: DateTime):
        self._now = now

    def now(self) -> DateTime:
        return self._now

    def advance(self, **kwargs) -> DateTime:
        """Move the clock forward, e.g. ``advance(hours=2)``."""
        self._now = self._now.add(**kwargs)
        return self._now
