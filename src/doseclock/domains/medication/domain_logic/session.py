"""Medication session — the host-facing facade over the scheduling engine.

One session owns one DoseChain, one ThresholdMonitor and (optionally) one
PeriodicTicker. Hosts call the mutation methods synchronously; the ticker
calls ``tick()`` on the event loop. Signals go to registered listeners and
the session never waits on them.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Callable

from doseclock.core.clock import TimeSource
from doseclock.core.clock.sources import SystemClock
from doseclock.core.clock.ticker import PeriodicTicker
from doseclock.domains.medication.domain_logic.dose_chain import DoseChain
from doseclock.domains.medication.domain_logic.dose_models import (
    AdministrationRecord,
    AlarmSignal,
    Dose,
    DoseStatus,
    Regimen,
    SequenceState,
    SequenceValidationError,
)
from doseclock.domains.medication.domain_logic.fiber import FiberTracker
from doseclock.domains.medication.domain_logic.schedule_projector import ScheduleProjector
from doseclock.domains.medication.domain_logic.threshold_monitor import ThresholdMonitor

logger = logging.getLogger(__name__)

SignalListener = Callable[[AlarmSignal], Any]

_CLOCK_TIME = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


class MedicationSession:
    """A single-user medication sequence run.

    Usage::

        session = MedicationSession.from_regimen(regimen, tick_interval_seconds=1.0)
        session.on_signal(lambda s: print(s.message))
        session.start_sequence()              # inside a running event loop
        session.administer_dose("batch1", minutes_ago=5)
        state = session.get_state()

    Pass ``tick_interval_seconds=None`` to drive ``tick()`` by hand.
    """

    def __init__(
        self,
        doses: list[Dose],
        *,
        clock: TimeSource | None = None,
        alarm_threshold_percent: float = 100,
        repeat_signal: bool = True,
        tick_interval_seconds: float | None = None,
    ) -> None:
        self._chain = DoseChain(doses)
        self._monitor = ThresholdMonitor(self._chain, alarm_threshold_percent)
        self._projector = ScheduleProjector(self._chain)
        self._clock: TimeSource = clock or SystemClock()
        self._repeat_signal = repeat_signal
        self._ticker = (
            PeriodicTicker(tick_interval_seconds, self.tick)
            if tick_interval_seconds is not None
            else None
        )
        self._listeners: list[SignalListener] = []
        self._warnings: list[str] = []
        self.fiber = FiberTracker()

    @classmethod
    def from_regimen(cls, regimen: Regimen, **kwargs: Any) -> MedicationSession:
        return cls(regimen.doses, **kwargs)

    @property
    def chain(self) -> DoseChain:
        return self._chain

    @property
    def monitor(self) -> ThresholdMonitor:
        return self._monitor

    @property
    def projector(self) -> ScheduleProjector:
        return self._projector

    @property
    def ticker(self) -> PeriodicTicker | None:
        return self._ticker

    @property
    def repeat_signal(self) -> bool:
        return self._repeat_signal

    def now(self) -> datetime:
        return self._clock.now()

    # ------------------------------------------------------------------
    # Host actions
    # ------------------------------------------------------------------

    def start_sequence(self, anchor_time: datetime | None = None) -> datetime:
        """Begin a new run anchored at ``anchor_time`` (default: now).

        Restarts the ticker when the session owns one, so this must then be
        called from inside a running event loop.

        Raises:
            SequenceValidationError: If ``anchor_time`` is naive.
        """
        if anchor_time is not None and anchor_time.tzinfo is None:
            raise SequenceValidationError("Start time must be timezone-aware")
        anchor = anchor_time or self.now()

        if self._ticker is not None:
            self._ticker.start()

        self._chain.start(anchor)
        self._monitor.reset()
        self._warnings = []
        first = self._chain.active_dose()
        if first is not None:
            self._monitor.dose_activated(first.id)
        return anchor

    def start_sequence_at(self, clock_time: str) -> datetime:
        """Start from a wall-clock "HH:MM" today, or yesterday if that is in the future."""
        match = _CLOCK_TIME.match(clock_time or "")
        if not match:
            raise SequenceValidationError(f"Start time must look like HH:MM, got {clock_time!r}")
        hours, minutes = int(match.group(1)), int(match.group(2))
        if hours > 23 or minutes > 59:
            raise SequenceValidationError(f"Not a valid time of day: {clock_time!r}")

        now = self.now()
        anchor = now.replace(hour=hours, minute=minutes, second=0, microsecond=0)
        if anchor > now:
            anchor -= timedelta(days=1)
        return self.start_sequence(anchor)

    def administer_dose(
        self,
        dose_id: str,
        at: datetime | None = None,
        *,
        minutes_ago: float | None = None,
    ) -> AdministrationRecord:
        """Mark a dose as taken now, at ``at``, or ``minutes_ago`` minutes back.

        Stops the dose's alarm and arms the next dose in the chain.

        Raises:
            SequenceValidationError: If the sequence is not running, the dose
                is unknown, or the time arguments are invalid.
        """
        if not self._chain.started:
            raise SequenceValidationError("Start the sequence before marking doses as taken")
        if dose_id not in self._chain:
            raise SequenceValidationError(f"Unknown dose: {dose_id!r}")
        if at is not None and minutes_ago is not None:
            raise SequenceValidationError("Give either an administration time or minutes_ago, not both")
        if at is not None and at.tzinfo is None:
            raise SequenceValidationError("Administration time must be timezone-aware")
        if minutes_ago is not None:
            if isinstance(minutes_ago, bool) or not isinstance(minutes_ago, (int, float)):
                raise SequenceValidationError(f"minutes_ago must be a number, got {minutes_ago!r}")
            if minutes_ago < 0:
                raise SequenceValidationError(f"minutes_ago cannot be negative, got {minutes_ago}")
            at = self.now() - timedelta(minutes=minutes_ago)

        previous_active = self._chain.active_dose()
        record = self._chain.administer(dose_id, at or self.now())
        self._monitor.acknowledge(dose_id)
        self._warnings = list(record.warnings)

        active = self._chain.active_dose()
        if active is None:
            logger.info("Sequence completed")
        elif previous_active is None or active.id != previous_active.id:
            self._monitor.dose_activated(active.id)
        return record

    def set_alarm_threshold(self, percent: float) -> None:
        """Reconfigure the alarm threshold; re-arms every dose and stops the signal."""
        self._monitor.set_threshold(percent)

    def silence_signal(self) -> AlarmSignal | None:
        """Stop the sounding alarm without marking the dose as taken."""
        return self._monitor.silence()

    def abandon(self) -> None:
        """Throw the current run away and stop ticking."""
        if self._ticker is not None:
            self._ticker.stop()
        self._chain.reset()
        self._monitor.reset()
        self._warnings = []
        logger.info("Sequence abandoned")

    def stop(self) -> None:
        """Tear down: release the ticker and silence any alarm. Keeps the run's facts."""
        if self._ticker is not None:
            self._ticker.stop()
        self._monitor.silence()

    async def __aenter__(self) -> MedicationSession:
        return self

    async def __aexit__(self, *args) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def on_signal(self, callback: SignalListener) -> SignalListener:
        """Register an "alert the user" listener. Usable as a decorator."""
        self._listeners.append(callback)
        return callback

    def remove_signal_listener(self, callback: SignalListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def tick(self) -> list[AlarmSignal]:
        """Run one alarm check and dispatch the resulting signals."""
        now = self.now()
        signals = self._monitor.tick(now)
        active = self._monitor.active_signal
        if self._repeat_signal and active is not None and active not in signals:
            signals.append(replace(active, emitted_at=now, repeat=True))
        for signal in signals:
            self._emit(signal)
        return signals

    def test_signal(self) -> AlarmSignal:
        """Fire a one-off test alarm through the listeners."""
        threshold = self._monitor.threshold_percent
        signal = AlarmSignal(
            dose_id="",
            dose_name="Test Alarm",
            kind="test",
            message=f"Test alarm at {threshold}% efficiency",
            emitted_at=self.now(),
            threshold_percent=threshold,
        )
        self._emit(signal)
        return signal

    def _emit(self, signal: AlarmSignal) -> None:
        for listener in list(self._listeners):
            try:
                listener(signal)
            except Exception:
                logger.exception("Signal listener failed for %s", signal.kind)

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def get_state(self) -> SequenceState:
        """Read-only snapshot of the run for rendering."""
        now = self.now()
        chain = self._chain
        threshold = self._monitor.threshold_percent
        index = chain.active_dose_index()
        active = chain.active_dose()

        if index == "not_started":
            phase = "not_started"
        elif index == "completed":
            phase = "completed"
        else:
            phase = "active"

        doses: list[DoseStatus] = []
        for dose in chain.doses:
            administered = chain.administered_at.get(dose.id)
            if administered is not None:
                status = "taken"
            elif active is not None and dose.id == active.id:
                status = "active"
            else:
                status = "pending"
            # Taken doses report elapsed/efficacy as of their administration.
            as_of = administered or now
            doses.append(
                DoseStatus(
                    dose_id=dose.id,
                    name=dose.name,
                    status=status,
                    arm_state=self._monitor.state(dose.id),
                    anchor_time=chain.resolve_anchor(dose.id),
                    administered_at=administered,
                    earliest_time=chain.earliest_time(dose.id),
                    elapsed_minutes=chain.elapsed_minutes(dose.id, as_of),
                    efficacy_percent=chain.efficacy(dose.id, as_of),
                )
            )

        milestone_id = self._projector.milestone_id
        return SequenceState(
            phase=phase,
            as_of=now,
            alarm_threshold_percent=threshold,
            active_dose_id=active.id if active else None,
            elapsed_minutes=chain.elapsed_minutes(active.id, now) if active else None,
            efficacy_percent=chain.efficacy(active.id, now) if active else None,
            anchor_time=chain.anchor_time,
            doses=doses,
            projected_schedule=self._projector.project(threshold),
            projected_milestone_time=self._projector.milestone_time(threshold),
            earliest_milestone_time=chain.earliest_time(milestone_id),
            active_signal=self._monitor.active_signal,
            warnings=list(self._warnings),
        )
