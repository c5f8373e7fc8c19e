"""Injectable time source so "now", "today" and rolling windows can be pinned in tests."""
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple


class Clock:
    """Time provider. Always returns timezone-aware UTC datetimes."""

    def now(self) -> datetime:
        raise NotImplementedError

    def today(self) -> date:
        return self.now().date()

    def day_bounds(self, day: Optional[date] = None) -> Tuple[datetime, datetime]:
        """Return [start, end) of a UTC calendar day (today by default)."""
        day = day or self.today()
        start = datetime.combine(day, time.min, tzinfo=timezone.utc)
        return start, start + timedelta(days=1)


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock pinned to a given instant; advance it explicitly."""

    def __init__(self, current: datetime):
        self.set(current)

    def set(self, current: datetime) -> None:
        self._current = as_utc(current)

    def advance(self, **delta) -> datetime:
        self._current = self._current + timedelta(**delta)
        return self._current

    def now(self) -> datetime:
        return self._current


def as_utc(value: datetime) -> datetime:
    """Read naive datetimes (e.g. from query strings) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


system_clock = SystemClock()
