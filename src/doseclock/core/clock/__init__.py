"""Time sources — abstraction over "now" for the scheduling engine."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable


@runtime_checkable
class TimeSource(Protocol):
    """Supplies the current time.

    The engine never calls ``datetime.now()`` directly so tests can drive
    the clock deterministically.
    """

    def now(self) -> datetime:
        """Current time as a timezone-aware datetime."""
        ...
