"""Periodic ticker — the owned timer resource that drives alarm checks.

One ticker wraps one asyncio task. Whoever creates it owns it and must
``stop()`` it (or use it as an async context manager); there is no
module-level timer handle.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)


class PeriodicTicker:
    """Calls ``callback`` every ``interval_seconds`` on the running event loop.

    Usage::

        async with PeriodicTicker(1.0, session.tick):
            ...  # ticks while the block runs

    Raises:
        ValueError: If the interval is not positive.
    """

    def __init__(self, interval_seconds: float, callback: Callable[[], Any]) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"Tick interval must be positive, got {interval_seconds!r}")
        self._interval = interval_seconds
        self._callback = callback
        self._task: asyncio.Task | None = None

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start ticking, replacing any task already running.

        Must be called from inside a running event loop.
        """
        self.stop()
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._loop())
        logger.debug("Ticker started (every %.2fs)", self._interval)

    def stop(self) -> None:
        """Cancel the tick task. Safe to call repeatedly."""
        if self._task is None:
            return
        if not self._task.done():
            self._task.cancel()
        self._task = None
        logger.debug("Ticker stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self._callback()
            except Exception:
                logger.exception("Tick callback failed")

    async def __aenter__(self) -> PeriodicTicker:
        self.start()
        return self

    async def __aexit__(self, *args) -> None:
        self.stop()
