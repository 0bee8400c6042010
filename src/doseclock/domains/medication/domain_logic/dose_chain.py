"""Dose chain — ordered, acyclic dependency graph of doses for one sequence run.

A dose's clock (its anchor) starts either at the chain's anchor time (root
dose) or at the moment its predecessor was administered. Everything the
engine knows about time flows through ``resolve_anchor``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Literal

from doseclock.domains.medication.domain_logic.dose_models import (
    AdministrationRecord,
    ChainConfigurationError,
    Dose,
)
from doseclock.domains.medication.domain_logic.efficacy_curve import EfficacyCurve

logger = logging.getLogger(__name__)

NOT_STARTED: Literal["not_started"] = "not_started"
COMPLETED: Literal["completed"] = "completed"


class DoseChain:
    """Dose definitions plus the observed facts of one run.

    Usage::

        chain = DoseChain(doses)
        chain.start(anchor_time)
        chain.elapsed_minutes("batch2", now)   # None until batch1 is taken
        chain.administer("batch1", now)

    Raises:
        ChainConfigurationError: On duplicate ids, unknown predecessors,
            predecessor cycles, a dose listed before its predecessor, or a
            root count other than one (when ``single_root`` is set).
    """

    def __init__(self, doses: list[Dose], *, single_root: bool = True) -> None:
        if not doses:
            raise ChainConfigurationError("A chain needs at least one dose")

        self._doses: list[Dose] = list(doses)
        self._by_id: dict[str, Dose] = {}
        for dose in self._doses:
            if dose.id in self._by_id:
                raise ChainConfigurationError(f"Duplicate dose id: {dose.id!r}")
            self._by_id[dose.id] = dose

        for dose in self._doses:
            if dose.predecessor_id is not None and dose.predecessor_id not in self._by_id:
                raise ChainConfigurationError(
                    f"Dose {dose.id!r} depends on unknown dose {dose.predecessor_id!r}"
                )
        self._check_acyclic()

        position = {d.id: i for i, d in enumerate(self._doses)}
        for dose in self._doses:
            if dose.predecessor_id is not None and position[dose.predecessor_id] > position[dose.id]:
                raise ChainConfigurationError(
                    f"Dose {dose.id!r} is listed before its predecessor {dose.predecessor_id!r}"
                )

        roots = [d.id for d in self._doses if d.predecessor_id is None]
        if not roots:
            raise ChainConfigurationError("Chain has no root dose (every dose has a predecessor)")
        if single_root and len(roots) > 1:
            raise ChainConfigurationError(f"Chain must have exactly one root dose, found {roots}")

        self._curves: dict[str, EfficacyCurve] = {
            d.id: EfficacyCurve.for_dose(d) for d in self._doses
        }
        self._index: dict[str, int] = position

        self.anchor_time: datetime | None = None
        self.administered_at: dict[str, datetime] = {}

    def _check_acyclic(self) -> None:
        for dose in self._doses:
            seen = {dose.id}
            current = dose.predecessor_id
            while current is not None:
                if current in seen:
                    raise ChainConfigurationError(
                        f"Predecessor cycle detected involving dose {dose.id!r}"
                    )
                seen.add(current)
                current = self._by_id[current].predecessor_id

    # ------------------------------------------------------------------
    # Definitions
    # ------------------------------------------------------------------

    @property
    def doses(self) -> list[Dose]:
        return list(self._doses)

    def get(self, dose_id: str) -> Dose:
        """Look up a dose by id. Raises KeyError for unknown ids."""
        return self._by_id[dose_id]

    def __contains__(self, dose_id: object) -> bool:
        return dose_id in self._by_id

    def __len__(self) -> int:
        return len(self._doses)

    def curve(self, dose_id: str) -> EfficacyCurve:
        return self._curves[dose_id]

    def index_of(self, dose_id: str) -> int:
        return self._index[dose_id]

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    @property
    def started(self) -> bool:
        return self.anchor_time is not None

    def start(self, anchor_time: datetime) -> None:
        """Begin a new run anchored at ``anchor_time``; forgets all administrations."""
        self.anchor_time = anchor_time
        self.administered_at = {}
        logger.info("Sequence anchored at %s", anchor_time.isoformat())

    def reset(self) -> None:
        """Discard the current run."""
        self.anchor_time = None
        self.administered_at = {}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def resolve_anchor(self, dose_id: str) -> datetime | None:
        """When this dose's clock starts, or None if not yet known."""
        dose = self._by_id[dose_id]
        if dose.predecessor_id is None:
            return self.anchor_time
        return self.administered_at.get(dose.predecessor_id)

    def elapsed_minutes(self, dose_id: str, as_of: datetime) -> float | None:
        """Minutes since the dose's anchor, or None while the anchor is unresolved."""
        anchor = self.resolve_anchor(dose_id)
        if anchor is None:
            return None
        return (as_of - anchor).total_seconds() / 60

    def efficacy(self, dose_id: str, as_of: datetime) -> int | None:
        """Current efficacy percent, or None while the anchor is unresolved."""
        elapsed = self.elapsed_minutes(dose_id, as_of)
        if elapsed is None:
            return None
        return self._curves[dose_id].efficacy_at(elapsed)

    def is_administered(self, dose_id: str) -> bool:
        return dose_id in self.administered_at

    def active_dose_index(self) -> int | Literal["not_started", "completed"]:
        """Index of the first dose without an administration entry."""
        if not self.started:
            return NOT_STARTED
        for i, dose in enumerate(self._doses):
            if dose.id not in self.administered_at:
                return i
        return COMPLETED

    def active_dose(self) -> Dose | None:
        index = self.active_dose_index()
        if isinstance(index, int):
            return self._doses[index]
        return None

    def earliest_time(self, dose_id: str) -> datetime | None:
        """Earliest permissible time for a dose.

        Uses the predecessor's real administration time when known, otherwise
        the predecessor's own earliest time, plus this dose's minimum offset.
        """
        memo: dict[str, datetime | None] = {}

        def _earliest(did: str) -> datetime | None:
            if did in memo:
                return memo[did]
            dose = self._by_id[did]
            if dose.predecessor_id is None:
                base = self.anchor_time
            else:
                base = self.administered_at.get(dose.predecessor_id) or _earliest(
                    dose.predecessor_id
                )
            result = None if base is None else base + timedelta(minutes=dose.min_offset_minutes or 0)
            memo[did] = result
            return result

        return _earliest(dose_id)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def administer(self, dose_id: str, at: datetime) -> AdministrationRecord:
        """Record that ``dose_id`` was taken at ``at``.

        Inconsistent facts (overwriting, taking a dose before its anchor, or
        while its anchor is unknown) are recorded anyway and reported as
        warnings on the returned record.

        Raises:
            KeyError: If the dose id is unknown.
        """
        dose = self._by_id[dose_id]
        anchor = self.resolve_anchor(dose_id)
        previous = self.administered_at.get(dose_id)
        record = AdministrationRecord(
            dose_id=dose_id, administered_at=at, anchor_time=anchor, previous=previous
        )

        if previous is not None:
            record.warnings.append(
                f"{dose.name} was already recorded at {previous.isoformat()}; overwritten"
            )
        if anchor is None:
            record.warnings.append(
                f"{dose.name} recorded before its anchor was known"
                + (f" ({dose.predecessor_id!r} not yet taken)" if dose.predecessor_id else "")
            )
        elif at < anchor:
            record.warnings.append(
                f"{dose.name} recorded at {at.isoformat()}, before its anchor {anchor.isoformat()}"
            )

        self.administered_at[dose_id] = at
        for warning in record.warnings:
            logger.warning("Administration inconsistency: %s", warning)
        logger.info("Dose administered: %s at %s", dose_id, at.isoformat())
        return record
