# worksmart/clock.py
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from .config import get_settings


class Clock:
    """Wall clock. Every temporal rule receives one of these instead of reading time itself."""

    def __init__(self, tz_name: str = "UTC"):
        self.tz = ZoneInfo(tz_name)

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return datetime.now(self.tz).date()


class FixedClock(Clock):
    """Pinned clock for tests and back-dated reports."""

    def __init__(self, now: datetime, today: date = None):
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        self._now = now
        self._today = today or now.date()

    def now(self) -> datetime:
        return self._now

    def today(self) -> date:
        return self._today


def get_clock() -> Clock:
    return Clock(get_settings().local_timezone)
