"""Piecewise-linear efficacy curves.

A curve answers two questions for one dose:
    efficacy_at(elapsed)      -> integer percent in [0, 100]
    time_for_efficacy(target) -> whole minutes after the anchor

Rounding is half-up (67.5 -> 68), not Python's banker's rounding.
"""

from __future__ import annotations

import math

from doseclock.domains.medication.domain_logic.dose_models import (
    MAX_PERCENT,
    MIN_PERCENT,
    ChainConfigurationError,
    Dose,
)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, ties away from negative infinity."""
    return int(math.floor(value + 0.5))


class EfficacyCurve:
    """Efficacy-over-time profile of a single dose.

    Usage::

        curve = EfficacyCurve.for_dose(dose)
        curve.efficacy_at(15)          # 82
        curve.time_for_efficacy(75)    # 10

    Raises:
        ChainConfigurationError: If efficacy data is declared but empty, or
            holds negative times or percentages outside [0, 100].
    """

    def __init__(
        self,
        points: dict[float, float] | None = None,
        *,
        min_offset_minutes: float = 0,
        optimal_offset_minutes: float = 0,
    ) -> None:
        self._min_offset = min_offset_minutes or 0
        self._optimal_offset = optimal_offset_minutes or 0
        self._times: list[float] = []
        self._values: list[float] = []

        if points is None:
            return
        if not points:
            raise ChainConfigurationError("Efficacy data must have at least one point")
        for t in sorted(points):
            value = points[t]
            if t < 0:
                raise ChainConfigurationError(f"Efficacy time must be >= 0, got {t!r}")
            if not MIN_PERCENT <= value <= MAX_PERCENT:
                raise ChainConfigurationError(
                    f"Efficacy at {t} min must be within [0, 100], got {value!r}"
                )
            self._times.append(t)
            self._values.append(value)

    @classmethod
    def for_dose(cls, dose: Dose) -> EfficacyCurve:
        """Build the curve declared by a dose definition."""
        try:
            return cls(
                dose.efficacy_points,
                min_offset_minutes=dose.min_offset_minutes,
                optimal_offset_minutes=dose.optimal_offset_minutes,
            )
        except ChainConfigurationError as exc:
            raise ChainConfigurationError(f"Dose {dose.id!r}: {exc}") from exc

    @property
    def has_data(self) -> bool:
        return bool(self._times)

    @property
    def points(self) -> list[tuple[float, float]]:
        return list(zip(self._times, self._values))

    def efficacy_at(self, elapsed_minutes: float) -> int:
        """Efficacy percent after ``elapsed_minutes`` (negative means not yet active)."""
        if not self.has_data:
            return MAX_PERCENT

        times, values = self._times, self._values
        if elapsed_minutes < times[0]:
            return 0
        if elapsed_minutes >= times[-1]:
            return round_half_up(values[-1])

        for i in range(len(times) - 1):
            t1, t2 = times[i], times[i + 1]
            if t1 <= elapsed_minutes < t2:
                y1, y2 = values[i], values[i + 1]
                y = y1 + (elapsed_minutes - t1) * (y2 - y1) / (t2 - t1)
                return round_half_up(y)
        return 0  # pragma: no cover

    def time_for_efficacy(self, target_percent: float) -> int:
        """Minutes after the anchor at which ``target_percent`` is reached.

        Never earlier than the dose's minimum offset.
        """
        floor = self._min_offset
        if not self.has_data:
            # Linear from 0 % at 0 min to 100 % at the optimal offset.
            span = self._optimal_offset or self._min_offset or 0
            minutes = round_half_up(target_percent / 100 * span)
            return _at_least(minutes, floor)

        times, values = self._times, self._values
        if target_percent <= values[0]:
            return _at_least(times[0], floor)
        if target_percent >= values[-1]:
            return _at_least(times[-1], floor)

        for i in range(len(times) - 1):
            t1, t2 = times[i], times[i + 1]
            e1, e2 = values[i], values[i + 1]
            if e1 <= target_percent <= e2:
                if e2 == e1:
                    return _at_least(t1, floor)
                t = t1 + (target_percent - e1) * (t2 - t1) / (e2 - e1)
                return _at_least(round_half_up(t), floor)

        # No bracketing segment: the curve dips below the target somewhere.
        return _at_least(times[-1], floor)


def _at_least(minutes: float, floor: float) -> int:
    return round_half_up(max(minutes, floor))
