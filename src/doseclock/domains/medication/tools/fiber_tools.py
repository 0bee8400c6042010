"""MCP tools for the daily fiber tracker."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from doseclock.domains.medication.domain_logic.fiber import FIBER_WEIGHTS, fiber_tiers

if TYPE_CHECKING:
    from doseclock.domains.medication.domain_logic.fiber import FiberTracker

logger = logging.getLogger(__name__)


def register_fiber_tools(mcp: FastMCP, tracker: FiberTracker) -> None:
    """Register fiber tracking tools on the MCP server."""

    @mcp.tool
    async def log_fiber(ctx: Context, source: str, servings: int = 1) -> str:
        """Add (or with a negative number, remove) fiber servings.

        Args:
            source: One of 'protein_shake' (5g), 'phgg' (5g), 'chia_seeds' (2.5g).
            servings: Servings to add; counts never drop below zero.
        """
        if source not in FIBER_WEIGHTS:
            return json.dumps({
                "status": "error",
                "message": f"Unknown fiber source {source!r}; use one of {sorted(FIBER_WEIGHTS)}",
            })
        count = tracker.add(source, servings)
        logger.info("Fiber logged: %s -> %d servings", source, count)
        return json.dumps({"status": "ok", **tracker.summary()})

    @mcp.tool
    async def fiber_summary(ctx: Context) -> str:
        """Show today's fiber total, its effectiveness level, and every level's range."""
        return json.dumps({
            "status": "ok",
            **tracker.summary(),
            "tiers": fiber_tiers(),
        }, indent=2)
