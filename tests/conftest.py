"""Shared test fixtures for DoseClock tests."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REGIMEN", "standard")
    monkeypatch.setenv("REGIMEN_PATH", "")
    monkeypatch.setenv("ALARM_THRESHOLD_PERCENT", "100")
    monkeypatch.setenv("REPEAT_SIGNAL", "true")
    monkeypatch.setenv("TICK_INTERVAL_SECONDS", "1.0")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from doseclock.core.clock.sources import ManualClock  # noqa: E402
from doseclock.domains.medication.domain_logic.dose_chain import DoseChain  # noqa: E402
from doseclock.domains.medication.domain_logic.dose_models import Dose  # noqa: E402
from doseclock.domains.medication.domain_logic.session import MedicationSession  # noqa: E402

START = datetime(2026, 1, 1, 7, 0, tzinfo=timezone.utc)

# 60% at 0 min rising to 100% at 30 min.
SAMPLE_CURVE = {0.0: 60.0, 10.0: 75.0, 20.0: 88.0, 30.0: 100.0}


def make_test_doses(
    efficacy: dict[float, float] | None = None,
    optimal: float = 30,
) -> list[Dose]:
    """Three-dose chain A -> B -> C sharing one efficacy curve."""
    curve = SAMPLE_CURVE if efficacy is None else efficacy
    return [
        Dose(id="A", name="Dose A", optimal_offset_minutes=optimal, efficacy_points=curve),
        Dose(
            id="B", name="Dose B", optimal_offset_minutes=optimal,
            predecessor_id="A", efficacy_points=curve,
        ),
        Dose(
            id="C", name="Dose C", optimal_offset_minutes=optimal,
            predecessor_id="B", efficacy_points=curve,
        ),
    ]


@pytest.fixture
def manual_clock() -> ManualClock:
    """A clock frozen at 07:00 UTC on 2026-01-01."""
    return ManualClock(START)


@pytest.fixture
def doses() -> list[Dose]:
    return make_test_doses()


@pytest.fixture
def chain(doses: list[Dose]) -> DoseChain:
    return DoseChain(doses)


@pytest.fixture
def session(doses: list[Dose], manual_clock: ManualClock) -> MedicationSession:
    """A session without a ticker; tests call ``tick()`` by hand."""
    return MedicationSession(doses, clock=manual_clock, alarm_threshold_percent=100)


@pytest.fixture
def signals(session: MedicationSession) -> list:
    """Every signal the session emits, in order."""
    received: list = []
    session.on_signal(received.append)
    return received
