"""MCP Resources for regimen discovery."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from fastmcp import FastMCP

if TYPE_CHECKING:
    from doseclock.domains.medication.domain_logic.dose_models import Regimen


def register_regimen_resources(mcp: FastMCP, regimen: Regimen) -> None:
    """Register the active regimen resource on the MCP server."""

    @mcp.resource("regimen://medication/active")
    def active_regimen_resource() -> str:
        """The dose definitions the alarm is running on."""
        return json.dumps(
            {
                "id": regimen.id,
                "version": regimen.version,
                "display_name": regimen.display_name,
                "description": regimen.description,
                "dose_count": len(regimen.doses),
                "doses": [
                    {
                        "id": d.id,
                        "name": d.name,
                        "description": d.description,
                        "after": d.predecessor_id,
                        "window_minutes": [d.min_offset_minutes, d.optimal_offset_minutes],
                        "milestone": d.milestone,
                        "efficacy": (
                            {f"{t:g}": v for t, v in d.efficacy_points.items()}
                            if d.efficacy_points is not None
                            else None
                        ),
                    }
                    for d in regimen.doses
                ],
            },
            indent=2,
        )
