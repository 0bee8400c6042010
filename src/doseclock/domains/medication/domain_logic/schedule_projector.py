"""What-if schedule projection for a target efficiency.

The projection assumes every dose is taken exactly when it reaches the
target efficiency. It ignores administration facts entirely: it is a
simulation from the anchor, not a forecast conditioned on history.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from doseclock.domains.medication.domain_logic.dose_chain import DoseChain
from doseclock.domains.medication.domain_logic.efficacy_curve import round_half_up


@dataclass
class ProjectedDose:
    """One row of a projected timeline."""

    dose_id: str
    activates_at: datetime   # projected anchor (previous dose's take time)
    take_at: datetime
    wait_minutes: int


class ScheduleProjector:
    """Projects hypothetical administration times over a DoseChain.

    Usage::

        projector = ScheduleProjector(chain)
        schedule = projector.project(90)     # {"batch1": datetime, ...}
        projector.milestone_time(90)         # predicted first meal
    """

    def __init__(self, chain: DoseChain) -> None:
        self._chain = chain

    def wait_minutes(self, dose_id: str, target_efficiency_percent: float) -> int:
        """Minutes a dose waits after its projected anchor.

        Milestones and doses without efficacy data sit at their fixed minimum
        offset; the efficiency target does not move them.
        """
        dose = self._chain.get(dose_id)
        if dose.milestone or not dose.has_efficacy_data:
            return round_half_up(dose.min_offset_minutes or 0)
        return self._chain.curve(dose_id).time_for_efficacy(target_efficiency_percent)

    def project_timeline(self, target_efficiency_percent: float) -> list[ProjectedDose]:
        """Projected activation and take time for every dose, in chain order.

        Empty when the chain has no anchor time.
        """
        anchor = self._chain.anchor_time
        if anchor is None:
            return []

        timeline: list[ProjectedDose] = []
        previous = anchor
        for dose in self._chain.doses:
            wait = self.wait_minutes(dose.id, target_efficiency_percent)
            take_at = previous + timedelta(minutes=wait)
            timeline.append(
                ProjectedDose(
                    dose_id=dose.id,
                    activates_at=previous,
                    take_at=take_at,
                    wait_minutes=wait,
                )
            )
            previous = take_at
        return timeline

    def project(self, target_efficiency_percent: float) -> dict[str, datetime]:
        """Ordered mapping of dose id -> projected take time."""
        return {
            row.dose_id: row.take_at
            for row in self.project_timeline(target_efficiency_percent)
        }

    @property
    def milestone_id(self) -> str:
        """The flagged milestone dose, or the last dose when none is flagged."""
        for dose in self._chain.doses:
            if dose.milestone:
                return dose.id
        return self._chain.doses[-1].id

    def milestone_time(self, target_efficiency_percent: float) -> datetime | None:
        """Projected time of the milestone dose."""
        return self.project(target_efficiency_percent).get(self.milestone_id)


def meal_time_offset(
    efficiency_percent: float,
    remaining_efficiency_fraction: float,
    base_wait_minutes: float = 30,
) -> int:
    """Minutes to wait before eating, shortened by how effective the binders were.

    ``remaining_efficiency_fraction`` is the share of the wait that efficacy
    can remove (0-1). At 0 % efficiency the full base wait applies.
    """
    fraction = efficiency_percent / 100
    remaining = base_wait_minutes * (1 - fraction * remaining_efficiency_fraction)
    return max(0, round_half_up(remaining))
