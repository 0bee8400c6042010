"""Tests for the MedicationSession host facade."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from doseclock.core.clock.sources import ManualClock
from doseclock.domains.medication.connectors.regimen_loader import load_builtin_regimen
from doseclock.domains.medication.domain_logic.dose_models import SequenceValidationError
from doseclock.domains.medication.domain_logic.session import MedicationSession

START = datetime(2026, 1, 1, 7, 0, tzinfo=timezone.utc)


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class TestStartSequence:
    def test_starts_now_by_default(self, session):
        anchor = session.start_sequence()
        assert anchor == START
        state = session.get_state()
        assert state.phase == "active"
        assert state.active_dose_id == "A"
        assert session.monitor.state("A") == "armed"

    def test_explicit_anchor(self, session):
        anchor = START - timedelta(minutes=20)
        session.start_sequence(anchor)
        assert session.get_state().elapsed_minutes == 20

    def test_naive_anchor_rejected(self, session):
        with pytest.raises(SequenceValidationError):
            session.start_sequence(datetime(2026, 1, 1, 6, 0))
        assert session.get_state().phase == "not_started"

    def test_clock_time_today(self, session, manual_clock):
        manual_clock.advance(minutes=90)  # 08:30
        anchor = session.start_sequence_at("07:45")
        assert anchor == datetime(2026, 1, 1, 7, 45, tzinfo=timezone.utc)

    def test_clock_time_in_future_means_yesterday(self, session):
        anchor = session.start_sequence_at("23:15")
        assert anchor == datetime(2025, 12, 31, 23, 15, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", ["7", "25:00", "07:61", "seven", ""])
    def test_bad_clock_time(self, session, value):
        with pytest.raises(SequenceValidationError):
            session.start_sequence_at(value)

    def test_restart_discards_run(self, session, manual_clock):
        session.start_sequence()
        manual_clock.advance(minutes=30)
        session.administer_dose("A")
        session.start_sequence()
        state = session.get_state()
        assert state.active_dose_id == "A"
        assert all(d.status != "taken" for d in state.doses)


class TestAdministerDose:
    def test_requires_started_sequence(self, session):
        with pytest.raises(SequenceValidationError, match="Start the sequence"):
            session.administer_dose("A")

    def test_unknown_dose(self, session):
        session.start_sequence()
        with pytest.raises(SequenceValidationError, match="Unknown dose"):
            session.administer_dose("Z")

    def test_advances_and_arms_next(self, session, manual_clock):
        session.start_sequence()
        manual_clock.advance(minutes=40)
        record = session.administer_dose("A")
        assert record.administered_at == START + timedelta(minutes=40)
        assert session.get_state().active_dose_id == "B"
        assert session.monitor.state("B") == "armed"

        manual_clock.advance(minutes=10)
        assert session.chain.elapsed_minutes("B", session.now()) == 10

    def test_minutes_ago_backdates(self, session, manual_clock):
        session.start_sequence()
        manual_clock.advance(minutes=40)
        record = session.administer_dose("A", minutes_ago=15)
        assert record.administered_at == START + timedelta(minutes=25)

    def test_rejects_both_time_arguments(self, session):
        session.start_sequence()
        with pytest.raises(SequenceValidationError):
            session.administer_dose("A", START, minutes_ago=5)

    @pytest.mark.parametrize("minutes_ago", [-5, "5", True])
    def test_rejects_bad_minutes_ago(self, session, minutes_ago):
        session.start_sequence()
        with pytest.raises(SequenceValidationError):
            session.administer_dose("A", minutes_ago=minutes_ago)
        assert not session.chain.is_administered("A")

    def test_naive_time_rejected(self, session):
        session.start_sequence()
        with pytest.raises(SequenceValidationError):
            session.administer_dose("A", datetime(2026, 1, 1, 7, 30))

    def test_warnings_surface_in_state(self, session):
        session.start_sequence()
        record = session.administer_dose("A", START - timedelta(minutes=5))
        assert record.warnings
        assert session.get_state().warnings == record.warnings

    def test_completes_sequence(self, session, manual_clock):
        session.start_sequence()
        for dose_id in ("A", "B", "C"):
            manual_clock.advance(minutes=30)
            session.administer_dose(dose_id)
        state = session.get_state()
        assert state.phase == "completed"
        assert state.active_dose_id is None
        assert state.efficacy_percent is None


class TestSignals:
    def test_alarm_reaches_listener(self, session, manual_clock, signals):
        session.start_sequence()
        manual_clock.advance(minutes=29)
        session.tick()
        assert signals == []
        manual_clock.advance(minutes=1)
        session.tick()
        assert len(signals) == 1
        assert signals[0].kind == "threshold_reached"
        assert not signals[0].repeat

    def test_repeats_until_taken(self, session, manual_clock, signals):
        session.start_sequence()
        manual_clock.advance(minutes=30)
        session.tick()
        manual_clock.advance(seconds=1)
        session.tick()
        assert [s.repeat for s in signals] == [False, True]
        assert signals[1].emitted_at == START + timedelta(minutes=30, seconds=1)

        session.administer_dose("A")
        session.tick()
        assert len(signals) == 2

    def test_single_shot_mode(self, doses, manual_clock):
        session = MedicationSession(doses, clock=manual_clock, repeat_signal=False)
        received = []
        session.on_signal(received.append)
        session.start_sequence()
        manual_clock.advance(minutes=30)
        session.tick()
        session.tick()
        assert len(received) == 1

    def test_silence_stops_repeats(self, session, manual_clock, signals):
        session.start_sequence()
        manual_clock.advance(minutes=30)
        session.tick()
        silenced = session.silence_signal()
        assert silenced is signals[0]
        session.tick()
        assert len(signals) == 1

    def test_threshold_change_refires(self, session, manual_clock, signals):
        session.start_sequence()
        manual_clock.advance(minutes=5)
        session.tick()
        assert signals == []
        session.set_alarm_threshold(50)
        session.tick()
        assert len(signals) == 1
        assert signals[0].efficacy_percent == 68

    def test_invalid_threshold(self, session):
        with pytest.raises(SequenceValidationError):
            session.set_alarm_threshold(150)
        assert session.monitor.threshold_percent == 100

    def test_failing_listener_does_not_block_others(self, session, manual_clock, signals):
        def broken(signal):
            raise RuntimeError("speaker unplugged")

        session.on_signal(broken)
        later = []
        session.on_signal(later.append)
        session.start_sequence()
        manual_clock.advance(minutes=30)
        session.tick()
        assert len(signals) == 1
        assert len(later) == 1

    def test_remove_listener(self, session, manual_clock, signals):
        session.remove_signal_listener(signals.append)
        session.start_sequence()
        manual_clock.advance(minutes=30)
        session.tick()
        assert session.monitor.active_signal is not None
        assert signals == []

    def test_test_signal(self, session, signals):
        signal = session.test_signal()
        assert signal.kind == "test"
        assert signal.message == "Test alarm at 100% efficiency"
        assert signals == [signal]


class TestGetState:
    def test_not_started(self, session):
        state = session.get_state()
        assert state.phase == "not_started"
        assert state.active_dose_id is None
        assert state.projected_schedule == {}
        assert [d.status for d in state.doses] == ["pending"] * 3

    def test_active_snapshot(self, session, manual_clock):
        session.start_sequence()
        manual_clock.advance(minutes=15)
        state = session.get_state()
        assert state.efficacy_percent == 82
        assert state.elapsed_minutes == 15
        assert [d.status for d in state.doses] == ["active", "pending", "pending"]
        assert state.doses[1].elapsed_minutes is None
        assert state.projected_milestone_time == START + timedelta(minutes=90)

    def test_taken_dose_frozen_at_administration(self, session, manual_clock):
        session.start_sequence()
        manual_clock.advance(minutes=10)
        session.administer_dose("A")
        manual_clock.advance(minutes=50)
        row = session.get_state().doses[0]
        assert row.status == "taken"
        assert row.elapsed_minutes == 10
        assert row.efficacy_percent == 75

    def test_projection_follows_threshold(self, session):
        session.start_sequence()
        session.set_alarm_threshold(75)
        state = session.get_state()
        assert state.projected_schedule["C"] == START + timedelta(minutes=30)

    def test_as_dict_is_serializable(self, session, manual_clock):
        session.start_sequence()
        manual_clock.advance(minutes=30)
        session.tick()
        data = session.get_state().as_dict()
        assert data["phase"] == "active"
        assert data["active_signal"]["kind"] == "threshold_reached"
        assert data["anchor_time"] == START.isoformat()


class TestLifecycle:
    def test_from_regimen(self, manual_clock):
        session = MedicationSession.from_regimen(load_builtin_regimen("standard"), clock=manual_clock)
        assert len(session.chain) == 5
        assert session.ticker is None

    def test_ticker_drives_alarm(self):
        async def _check():
            clock = ManualClock(START)
            session = MedicationSession(
                load_builtin_regimen("demo").doses,
                clock=clock,
                tick_interval_seconds=0.01,
            )
            received = []
            session.on_signal(received.append)
            async with session:
                session.start_sequence()
                assert session.ticker.running
                clock.advance(minutes=1)
                await asyncio.sleep(0.05)
            assert not session.ticker.running
            return received

        received = _run(_check())
        assert received
        assert received[0].dose_id == "batch1"

    def test_start_without_loop_leaves_state(self, doses, manual_clock):
        session = MedicationSession(doses, clock=manual_clock, tick_interval_seconds=1.0)
        with pytest.raises(RuntimeError):
            session.start_sequence()
        assert session.get_state().phase == "not_started"

    def test_abandon(self, session):
        session.start_sequence()
        session.abandon()
        assert session.get_state().phase == "not_started"
        with pytest.raises(SequenceValidationError):
            session.administer_dose("A")
