"""Threshold monitor — fires the alarm once per active-dose activation.

Per-dose state machine::

    not_armed --dose_activated--> armed --efficacy >= threshold--> triggered
    triggered --set_threshold / dose_activated--> armed

Only the active, not-yet-administered dose is evaluated on a tick.
"""

from __future__ import annotations

import logging
from datetime import datetime

from doseclock.domains.medication.domain_logic.dose_chain import DoseChain
from doseclock.domains.medication.domain_logic.dose_models import (
    MAX_PERCENT,
    MIN_PERCENT,
    AlarmSignal,
    ArmState,
    SequenceValidationError,
)

logger = logging.getLogger(__name__)


def validate_threshold(percent: float) -> int:
    """Return ``percent`` as an int, or raise if it is fractional or outside [0, 100]."""
    if isinstance(percent, bool) or not isinstance(percent, (int, float)):
        raise SequenceValidationError(f"Alarm threshold must be a number, got {percent!r}")
    if not MIN_PERCENT <= percent <= MAX_PERCENT:
        raise SequenceValidationError(
            f"Alarm threshold must be between {MIN_PERCENT} and {MAX_PERCENT}, got {percent}"
        )
    if percent != int(percent):
        raise SequenceValidationError(
            f"Alarm threshold must be a whole percentage, got {percent}"
        )
    return int(percent)


class ThresholdMonitor:
    """Tracks arm/trigger state for every dose of a chain.

    Usage::

        monitor = ThresholdMonitor(chain, threshold_percent=100)
        monitor.dose_activated("batch1")
        for signal in monitor.tick(now):
            notify(signal)
    """

    def __init__(self, chain: DoseChain, threshold_percent: float = MAX_PERCENT) -> None:
        self._chain = chain
        self._threshold = validate_threshold(threshold_percent)
        self._states: dict[str, ArmState] = {}
        self._due_notified: set[str] = set()
        self.active_signal: AlarmSignal | None = None
        self.reset()

    @property
    def threshold_percent(self) -> int:
        return self._threshold

    def state(self, dose_id: str) -> ArmState:
        return self._states[dose_id]

    def reset(self) -> None:
        """Disarm everything and drop any active signal."""
        self._states = {d.id: "not_armed" for d in self._chain.doses}
        self._due_notified.clear()
        self.active_signal = None

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def dose_activated(self, dose_id: str) -> None:
        """Arm a dose that just became active, clearing any earlier trigger."""
        self._states[dose_id] = "armed"
        self._due_notified.discard(dose_id)
        logger.debug("Dose armed: %s", dose_id)

    def set_threshold(self, percent: float) -> None:
        """Change the threshold and re-arm every triggered dose.

        Raises:
            SequenceValidationError: If ``percent`` is outside [0, 100].
        """
        self._threshold = validate_threshold(percent)
        for dose_id, state in self._states.items():
            if state == "triggered":
                self._states[dose_id] = "armed"
        self.active_signal = None
        logger.info("Alarm threshold set to %d%%; triggered doses re-armed", self._threshold)

    def acknowledge(self, dose_id: str) -> None:
        """The dose was taken: stop its signal if it is the one sounding."""
        if self.active_signal is not None and self.active_signal.dose_id == dose_id:
            self.active_signal = None

    def silence(self) -> AlarmSignal | None:
        """Stop the active signal without administering. Returns what was silenced."""
        silenced, self.active_signal = self.active_signal, None
        return silenced

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self, now: datetime) -> list[AlarmSignal]:
        """Evaluate the active dose and return the signals newly raised."""
        dose = self._chain.active_dose()
        if dose is None or self._chain.is_administered(dose.id):
            return []
        elapsed = self._chain.elapsed_minutes(dose.id, now)
        if elapsed is None:
            return []

        efficacy = self._chain.curve(dose.id).efficacy_at(elapsed)
        signals: list[AlarmSignal] = []

        if self._states[dose.id] == "armed" and efficacy >= self._threshold:
            self._states[dose.id] = "triggered"
            signal = AlarmSignal(
                dose_id=dose.id,
                dose_name=dose.name,
                kind="threshold_reached",
                message=f"Time to take {dose.name}! Reached {self._threshold}% efficiency.",
                emitted_at=now,
                efficacy_percent=efficacy,
                threshold_percent=self._threshold,
            )
            self.active_signal = signal
            signals.append(signal)
            logger.info(
                "Alarm triggered: %s eff=%d%% threshold=%d%%", dose.id, efficacy, self._threshold
            )

        # Reminder for doses whose threshold has not fired by their optimal time.
        optimal = dose.optimal_offset_minutes or 0
        if (
            optimal > 0
            and elapsed >= optimal
            and self._states[dose.id] == "armed"
            and dose.id not in self._due_notified
        ):
            self._due_notified.add(dose.id)
            signals.append(
                AlarmSignal(
                    dose_id=dose.id,
                    dose_name=dose.name,
                    kind="optimal_time_reached",
                    message=f"Time to take {dose.name}! Optimal time reached ({optimal:g} minutes).",
                    emitted_at=now,
                    efficacy_percent=efficacy,
                    threshold_percent=self._threshold,
                )
            )
        return signals
