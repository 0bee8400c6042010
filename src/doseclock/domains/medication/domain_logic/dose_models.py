"""Dose definitions, sequence result types, and domain errors."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class ChainConfigurationError(ValueError):
    """Raised when dose definitions cannot form a valid chain."""


class SequenceValidationError(ValueError):
    """Raised when a user action is rejected. Session state is unchanged."""


# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

SequencePhase = Literal["not_started", "active", "completed"]
ArmState = Literal["not_armed", "armed", "triggered"]
DoseProgress = Literal["taken", "active", "pending"]
SignalKind = Literal["threshold_reached", "optimal_time_reached", "test"]

MIN_PERCENT = 0
MAX_PERCENT = 100


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Dose:
    """One step in an administration sequence.

    ``efficacy_points`` maps elapsed minutes since the dose's anchor to an
    efficacy percentage. ``None`` means fully effective as soon as reached.
    ``milestone`` marks the downstream activity (first meal) that schedule
    projection is aimed at; it is placed at a fixed offset.
    """

    id: str
    name: str
    description: str = ""
    min_offset_minutes: float = 0
    optimal_offset_minutes: float = 0
    predecessor_id: str | None = None
    efficacy_points: dict[float, float] | None = None
    milestone: bool = False

    @property
    def has_efficacy_data(self) -> bool:
        return self.efficacy_points is not None


@dataclass
class Regimen:
    """A named, versioned list of dose definitions."""

    id: str
    version: str
    display_name: str
    description: str
    doses: list[Dose]


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class AdministrationRecord:
    """Outcome of recording an administration. Warnings never block it."""

    dose_id: str
    administered_at: datetime
    anchor_time: datetime | None
    previous: datetime | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def elapsed_minutes(self) -> float | None:
        if self.anchor_time is None:
            return None
        return (self.administered_at - self.anchor_time).total_seconds() / 60


@dataclass
class AlarmSignal:
    """An abstract "alert the user" effect handed to signal listeners."""

    dose_id: str
    dose_name: str
    kind: SignalKind
    message: str
    emitted_at: datetime
    efficacy_percent: int | None = None
    threshold_percent: int | None = None
    repeat: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "dose_id": self.dose_id,
            "dose_name": self.dose_name,
            "kind": self.kind,
            "message": self.message,
            "emitted_at": self.emitted_at.isoformat(),
            "efficacy_percent": self.efficacy_percent,
            "threshold_percent": self.threshold_percent,
            "repeat": self.repeat,
        }


@dataclass
class DoseStatus:
    """Per-dose row of a sequence snapshot."""

    dose_id: str
    name: str
    status: DoseProgress
    arm_state: ArmState
    anchor_time: datetime | None
    administered_at: datetime | None
    earliest_time: datetime | None
    elapsed_minutes: float | None
    efficacy_percent: int | None

    def as_dict(self) -> dict[str, Any]:
        return {
            "dose_id": self.dose_id,
            "name": self.name,
            "status": self.status,
            "arm_state": self.arm_state,
            "anchor_time": _iso(self.anchor_time),
            "administered_at": _iso(self.administered_at),
            "earliest_time": _iso(self.earliest_time),
            "elapsed_minutes": _round_or_none(self.elapsed_minutes),
            "efficacy_percent": self.efficacy_percent,
        }


@dataclass
class SequenceState:
    """Read-only snapshot of a session, ready for rendering."""

    phase: SequencePhase
    as_of: datetime
    alarm_threshold_percent: int
    active_dose_id: str | None = None
    elapsed_minutes: float | None = None
    efficacy_percent: int | None = None
    anchor_time: datetime | None = None
    doses: list[DoseStatus] = field(default_factory=list)
    projected_schedule: dict[str, datetime] = field(default_factory=dict)
    projected_milestone_time: datetime | None = None
    earliest_milestone_time: datetime | None = None
    active_signal: AlarmSignal | None = None
    warnings: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase,
            "as_of": self.as_of.isoformat(),
            "alarm_threshold_percent": self.alarm_threshold_percent,
            "active_dose_id": self.active_dose_id,
            "elapsed_minutes": _round_or_none(self.elapsed_minutes),
            "efficacy_percent": self.efficacy_percent,
            "anchor_time": _iso(self.anchor_time),
            "doses": [d.as_dict() for d in self.doses],
            "projected_schedule": {k: v.isoformat() for k, v in self.projected_schedule.items()},
            "projected_milestone_time": _iso(self.projected_milestone_time),
            "earliest_milestone_time": _iso(self.earliest_milestone_time),
            "active_signal": self.active_signal.as_dict() if self.active_signal else None,
            "warnings": list(self.warnings),
        }


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _round_or_none(value: float | None) -> float | None:
    return round(value, 2) if value is not None else None
