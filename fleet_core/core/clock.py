# fleet_core/core/clock.py
from datetime import datetime, timedelta

import pytz


class Clock:
    """Wall clock producing timezone-aware datetimes"""

    def __init__(self, timezone: str = "Asia/Kolkata"):
        self.tz = pytz.timezone(timezone)

    def now(self) -> datetime:
        return datetime.now(self.tz)


class ManualClock(Clock):
    """Clock that only moves when told to. Used to drive schedulers deterministically."""

    def __init__(self, start: datetime = None, timezone: str = "Asia/Kolkata"):
        super().__init__(timezone)
        if start is None:
            start = self.tz.localize(datetime(2024, 1, 1, 8, 0, 0))
        elif start.tzinfo is None:
            start = self.tz.localize(start)
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float = 0.0, **kwargs) -> datetime:
        self._now = self._now + timedelta(seconds=seconds, **kwargs)
        return self._now
