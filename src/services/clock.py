"""Clock abstraction so time-based behavior can be driven from tests."""

from datetime import datetime, timedelta, timezone


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        if start is None:
            start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        if start.tzinfo is None:
            raise ValueError("start must be timezone-aware")
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, milliseconds: int = 0, **kwargs) -> datetime:
        """Move forward by the given milliseconds and/or timedelta kwargs."""
        delta = timedelta(milliseconds=milliseconds, **kwargs)
        if delta < timedelta(0):
            raise ValueError("clock cannot move backwards")
        self._now = self._now + delta
        return self._now

    def set(self, moment: datetime) -> None:
        if moment.tzinfo is None:
            raise ValueError("moment must be timezone-aware")
        self._now = moment


def to_epoch_ms(moment: datetime) -> int:
    """Sorted-set score for a timestamp."""
    return int(moment.timestamp() * 1000)


def add_ms(moment: datetime, milliseconds: int) -> datetime:
    return moment + timedelta(milliseconds=milliseconds)
