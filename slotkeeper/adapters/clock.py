"""
Clock adapters.
"""

import pendulum
from pendulum import DateTime


class SystemClock:
    """Wall clock in a configured timezone."""

    def __init__(self, timezone: str = "UTC"):
        self.timezone = timezone

    def now(self) -> DateTime:
        return pendulum.now(self.timezone)


class FixedClock:
    """
    Clock that only moves when told to.

    Useful in tests where "now" must be deterministic.
    """

    def __init__(self, instant: DateTime):
        if instant.tzinfo is None:
            raise ValueError("FixedClock needs a timezone-aware instant")
        self._instant = instant

    def now(self) -> DateTime:
        return self._instant

    def advance(self, **kwargs) -> DateTime:
        """Move forward by a pendulum duration, e.g. ``advance(hours=2)``."""
        self._instant = self._instant.add(**kwargs)
        return self._instant
