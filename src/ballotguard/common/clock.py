"""Clock sources shared by the lockout logic and the phase scheduler."""

from datetime import datetime, timedelta, timezone


def ensure_utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo on round-trip; treat naive values as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock:
    """A manually advanced clock for tests and replays."""

    def __init__(self, start: datetime):
        self._now = ensure_utc(start)

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now

    def set(self, value: datetime) -> None:
        self._now = ensure_utc(value)
