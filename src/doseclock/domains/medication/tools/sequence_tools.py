"""MCP tools for running a medication sequence.

These tools are the host surface of the scheduling engine: start a run,
mark doses as taken (optionally backdated), tune the alarm threshold, and
read the current state and projected schedule.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from doseclock.domains.medication.domain_logic.dose_models import SequenceValidationError
from doseclock.domains.medication.domain_logic.threshold_monitor import validate_threshold

if TYPE_CHECKING:
    from doseclock.domains.medication.domain_logic.session import MedicationSession

logger = logging.getLogger(__name__)


def _error(message: str) -> str:
    return json.dumps({"status": "error", "message": message})


def _parse_start_time(session: MedicationSession, start_time: str) -> datetime:
    """Start from "" (now), "HH:MM" (today or yesterday), or an ISO 8601 timestamp."""
    value = start_time.strip()
    if not value:
        return session.start_sequence()
    if ":" in value and len(value) <= 5:
        return session.start_sequence_at(value)
    try:
        # fromisoformat() only accepts a trailing "Z" from Python 3.11.
        if value[-1] in "zZ":
            value = value[:-1] + "+00:00"
        anchor = datetime.fromisoformat(value)
    except ValueError as exc:
        raise SequenceValidationError(
            f"start_time must be empty, HH:MM, or ISO 8601; got {start_time!r}"
        ) from exc
    if anchor.tzinfo is None:
        anchor = anchor.replace(tzinfo=session.now().tzinfo)
    return session.start_sequence(anchor)


def register_sequence_tools(mcp: FastMCP, session: MedicationSession) -> None:
    """Register medication sequence tools on the MCP server."""

    @mcp.tool
    async def start_sequence(ctx: Context, start_time: str = "") -> str:
        """Start a new medication sequence, discarding any run in progress.

        Args:
            start_time: When the first dose's clock started. Empty for now,
                'HH:MM' for a time today (yesterday if that is still ahead),
                or an ISO 8601 timestamp.
        """
        try:
            anchor = _parse_start_time(session, start_time)
        except SequenceValidationError as exc:
            return _error(str(exc))

        state = session.get_state()
        logger.info("Sequence started at %s", anchor.isoformat())
        return json.dumps({
            "status": "started",
            "anchor_time": anchor.isoformat(),
            "active_dose_id": state.active_dose_id,
            "projected_schedule": state.as_dict()["projected_schedule"],
        })

    @mcp.tool
    async def administer_dose(ctx: Context, dose_id: str, minutes_ago: float = 0) -> str:
        """Mark a dose as taken and move on to the next one.

        Args:
            dose_id: The dose to mark (e.g. 'batch1', 'chlorella').
            minutes_ago: Backdate the administration by this many minutes.
        """
        try:
            record = session.administer_dose(
                dose_id, minutes_ago=minutes_ago if minutes_ago else None
            )
        except SequenceValidationError as exc:
            return _error(str(exc))

        state = session.get_state()
        return json.dumps({
            "status": "recorded",
            "dose_id": record.dose_id,
            "administered_at": record.administered_at.isoformat(),
            "warnings": record.warnings,
            "phase": state.phase,
            "next_dose_id": state.active_dose_id,
        })

    @mcp.tool
    async def set_alarm_threshold(ctx: Context, percent: int) -> str:
        """Set the efficacy percentage at which the alarm fires.

        Changing the threshold re-arms every dose and stops a sounding alarm.

        Args:
            percent: Alarm threshold, 0-100.
        """
        try:
            session.set_alarm_threshold(percent)
        except SequenceValidationError as exc:
            return _error(str(exc))

        projector = session.projector
        milestone = projector.milestone_time(percent)
        return json.dumps({
            "status": "ok",
            "alarm_threshold_percent": session.monitor.threshold_percent,
            "projected_milestone_time": milestone.isoformat() if milestone else None,
        })

    @mcp.tool
    async def sequence_state(ctx: Context) -> str:
        """Show the current sequence: active dose, efficacy, and every dose's status."""
        return json.dumps(session.get_state().as_dict(), indent=2)

    @mcp.tool
    async def project_schedule(ctx: Context, target_efficiency: int | None = None) -> str:
        """Predict when each dose would be taken if you always wait for a target efficacy.

        The projection starts at the sequence start time and ignores the
        doses already taken.

        Args:
            target_efficiency: Efficacy percent to wait for (default: the alarm threshold).
        """
        if target_efficiency is None:
            target = session.monitor.threshold_percent
        else:
            try:
                target = validate_threshold(target_efficiency)
            except SequenceValidationError as exc:
                return _error(str(exc))

        projector = session.projector
        timeline = projector.project_timeline(target)
        if not timeline:
            return json.dumps({
                "status": "not_started",
                "message": "Start the sequence to project a schedule.",
            })

        milestone = projector.milestone_time(target)
        return json.dumps({
            "status": "ok",
            "target_efficiency": target,
            "milestone_dose_id": projector.milestone_id,
            "milestone_time": milestone.isoformat() if milestone else None,
            "timeline": [
                {
                    "dose_id": row.dose_id,
                    "activates_at": row.activates_at.isoformat(),
                    "take_at": row.take_at.isoformat(),
                    "wait_minutes": row.wait_minutes,
                }
                for row in timeline
            ],
        }, indent=2)

    @mcp.tool
    async def silence_alarm(ctx: Context) -> str:
        """Stop the sounding alarm without marking the dose as taken."""
        silenced = session.silence_signal()
        return json.dumps({
            "status": "silenced" if silenced else "no_active_alarm",
            "dose_id": silenced.dose_id if silenced else None,
        })

    @mcp.tool
    async def test_alarm(ctx: Context) -> str:
        """Fire a test alarm so you can check sound and notifications."""
        signal = session.test_signal()
        return json.dumps({"status": "ok", "signal": signal.as_dict()})

    @mcp.tool
    async def abandon_sequence(ctx: Context) -> str:
        """Abandon the current sequence and stop the alarm timer."""
        session.abandon()
        return json.dumps({"status": "abandoned"})
