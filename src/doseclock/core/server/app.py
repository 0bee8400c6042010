"""DoseClock MCP Server — application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastmcp import FastMCP

from doseclock.core.clock import TimeSource
from doseclock.core.config.settings import get_settings
from doseclock.domains.medication.connectors.regimen_loader import (
    load_builtin_regimen,
    load_regimen_file,
)
from doseclock.domains.medication.domain_logic.dose_models import AlarmSignal, Regimen
from doseclock.domains.medication.domain_logic.session import MedicationSession
from doseclock.domains.medication.prompts.medication_prompts import register_medication_prompts
from doseclock.domains.medication.resources.regimens import register_regimen_resources
from doseclock.domains.medication.tools.fiber_tools import register_fiber_tools
from doseclock.domains.medication.tools.sequence_tools import register_sequence_tools

logger = logging.getLogger(__name__)


def _log_signal(signal: AlarmSignal) -> None:
    """Default "alert the user" effect: the alarm goes to the server log."""
    if signal.repeat:
        logger.debug("ALARM (repeat): %s", signal.message)
    else:
        logger.warning("ALARM: %s", signal.message)


def create_app(
    *,
    regimen_override: Regimen | None = None,
    session_override: MedicationSession | None = None,
    clock_override: TimeSource | None = None,
) -> FastMCP:
    """Create and configure the DoseClock MCP server.

    This is the main application factory. It:
    1. Loads the regimen (built-in name or a YAML path from settings)
    2. Creates the medication session and its ticker
    3. Creates the FastMCP server, whose lifespan releases the ticker
    4. Registers all tools, resources, and prompts
    """
    settings = get_settings()

    # --- Regimen ---
    if regimen_override is not None:
        regimen = regimen_override
    elif settings.regimen_path:
        regimen = load_regimen_file(settings.regimen_path)
    else:
        regimen = load_builtin_regimen(settings.regimen)
    logger.info("Using regimen %s (v%s)", regimen.id, regimen.version)

    # --- Session ---
    if session_override is not None:
        session = session_override
    else:
        session = MedicationSession.from_regimen(
            regimen,
            clock=clock_override,
            alarm_threshold_percent=settings.alarm_threshold_percent,
            repeat_signal=settings.repeat_signal,
            tick_interval_seconds=settings.tick_interval_seconds,
        )
    session.on_signal(_log_signal)

    @asynccontextmanager
    async def lifespan(server: FastMCP):
        try:
            yield {}
        finally:
            session.stop()
            logger.info("Alarm ticker released")

    # --- Server instance ---
    server = FastMCP(
        "DoseClock",
        instructions=(
            "Medication timing alarm. Tracks a chain of dependent doses, "
            "fires an alarm when the active dose reaches the configured "
            "efficacy, and projects the schedule (including the earliest "
            "first meal) for a target efficiency."
        ),
        lifespan=lifespan,
    )

    # --- Register tools ---
    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        ticker = session.ticker
        return {
            "status": "ok",
            "server": "DoseClock",
            "version": "0.1.0",
            "regimen": regimen.id,
            "dose_count": len(regimen.doses),
            "phase": session.get_state().phase,
            "alarm_threshold_percent": session.monitor.threshold_percent,
            "repeat_signal": session.repeat_signal,
            "ticker_running": bool(ticker and ticker.running),
        }

    register_sequence_tools(server, session)
    logger.info("Medication sequence tools registered")

    register_fiber_tools(server, session.fiber)
    logger.info("Fiber tracker tools registered")

    # --- Register resources ---
    register_regimen_resources(server, regimen)

    # --- Register prompts ---
    register_medication_prompts(server)

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
