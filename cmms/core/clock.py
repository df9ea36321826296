from datetime import datetime, timedelta, timezone
from typing import Optional


class Clock:
    """Source of "now" for every time-dependent rule in the engine.

    All timestamps are naive UTC, matching the DateTime columns.
    """

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FrozenClock(Clock):
    """Manually advanced clock used by tests and replay tooling."""

    def __init__(self, start: datetime):
        self._now = start.replace(tzinfo=None) if start.tzinfo else start

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value


system_clock = SystemClock()


def resolve_clock(clock: Optional[Clock]) -> Clock:
    return clock if clock is not None else system_clock
