"""Concrete TimeSource implementations."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


class SystemClock:
    """Wall-clock time in the machine's local timezone (timezone-aware)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).astimezone()


class ManualClock:
    """A clock that only moves when told to.

    Usage::

        clock = ManualClock(datetime(2026, 1, 1, 7, 0, tzinfo=timezone.utc))
        clock.advance(minutes=30)
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2026, 1, 1, 7, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def set(self, when: datetime) -> None:
        self._now = when

    def advance(self, *, minutes: float = 0.0, seconds: float = 0.0) -> datetime:
        self._now = self._now + timedelta(minutes=minutes, seconds=seconds)
        return self._now
