"""
Tests for the Tilt Interlock.
"""

import asyncio
import json
from datetime import datetime
from unittest.mock import Mock

import pytest

from conftest import FakeTimer, make_record
from trademind.config import TiltSettings
from trademind.models.audit import AuditEventType
from trademind.models.records import ProfileDocument, RecordOutcome
from trademind.tilt import TiltInterlock, TiltLockedError


LOSS = RecordOutcome.LOSS
WIN = RecordOutcome.WIN


def losses(*exit_times, record_date="2024-03-04"):
    return [
        make_record(f"loss-{i}", exit_time=t, outcome=LOSS, record_date=record_date)
        for i, t in enumerate(exit_times)
    ]


class TestEvaluation:
    """Tests for the lock condition."""

    def test_two_quick_losses_lock(self, interlock, audit_logger):
        """Test losses 20 minutes apart arm a 60 second cooldown."""
        assert interlock.evaluate(losses("09:00", "09:20")) is True

        assert interlock.is_locked
        assert interlock.seconds_remaining == 60
        assert interlock.state().day_key == "2024-03-04"
        event = audit_logger.log.call_args.args[0]
        assert event.event_type == AuditEventType.TILT_LOCKED

    def test_losses_far_apart_do_not_lock(self, interlock):
        """Test losses 45 minutes apart leave the gate open."""
        assert interlock.evaluate(losses("09:00", "09:45")) is False
        assert interlock.is_locked is False

    def test_gap_equal_to_window_does_not_lock(self, interlock):
        """Test the window is exclusive."""
        assert interlock.evaluate(losses("09:00", "09:30")) is False

    def test_only_the_two_most_recent_count(self, interlock):
        """Test a win after two losses keeps the gate open."""
        records = losses("09:00", "09:10") + [make_record("win", exit_time="09:20", outcome=WIN)]
        assert interlock.evaluate(records) is False

    def test_open_records_are_ignored(self, interlock):
        """Test open positions do not break up a losing streak."""
        records = losses("09:00", "09:20") + [
            make_record("open", exit_time=None, outcome=RecordOutcome.OPEN)
        ]
        assert interlock.evaluate(records) is True

    def test_missing_exit_time_never_locks(self, interlock):
        """Test a most recent loss without an exit time does not lock."""
        records = losses("09:00") + [
            make_record("late", exit_time=None, outcome=LOSS, record_date="2024-03-05")
        ]
        assert interlock.evaluate(records) is False

    def test_losses_across_midnight_are_compared_by_timestamp(self, interlock):
        """Test exit timestamps combine the date and the exit time."""
        records = losses("23:50", record_date="2024-03-03") + [
            make_record("after", exit_time="00:05", outcome=LOSS, record_date="2024-03-04")
        ]
        assert interlock.evaluate(records) is True

    def test_single_record_never_locks(self, interlock):
        """Test one loss is not a streak."""
        assert interlock.evaluate(losses("09:00")) is False


class TestOncePerDay:
    """Tests for the calendar-day idempotency."""

    def test_same_day_does_not_relock(self, interlock):
        """Test the same losing pair cannot lock twice on one day."""
        records = losses("09:00", "09:20")
        interlock.evaluate(records)
        interlock.tick(60)

        assert interlock.is_locked is False
        assert interlock.has_locked_today()
        assert interlock.evaluate(records) is False

    def test_evaluate_while_locked_is_noop(self, interlock):
        """Test a running cooldown is not restarted."""
        interlock.evaluate(losses("09:00", "09:20"))
        interlock.tick(10)
        assert interlock.evaluate(losses("09:30", "09:35")) is False
        assert interlock.seconds_remaining == 50

    def test_new_day_may_lock_again(self, interlock, clock):
        """Test midnight rollover re-arms the interlock."""
        interlock.evaluate(losses("09:00", "09:20"))
        interlock.tick(60)

        clock.now["value"] = datetime(2024, 3, 5, 9, 30)

        assert interlock.evaluate(losses("09:00", "09:20", record_date="2024-03-05")) is True
        assert interlock.state().day_key == "2024-03-05"

    def test_clock_moved_back_keeps_day_spent(self, interlock, clock):
        """Test returning to a day that already locked does not re-lock."""
        interlock.evaluate(losses("09:00", "09:20"))
        interlock.tick(60)
        clock.now["value"] = datetime(2024, 3, 5, 9, 30)
        interlock.evaluate(losses("09:00", "09:20", record_date="2024-03-05"))
        interlock.tick(60)
        clock.now["value"] = datetime(2024, 3, 4, 23, 0)

        assert interlock.evaluate(losses("22:00", "22:10")) is False


class TestCountdown:
    """Tests for the countdown and the gate."""

    def test_tick_unlocks_at_zero(self, interlock, audit_logger):
        """Test the lock releases when the countdown reaches zero."""
        interlock.evaluate(losses("09:00", "09:20"))

        assert interlock.tick(59) == 1
        assert interlock.is_locked
        assert interlock.tick() == 0
        assert interlock.is_locked is False
        event = audit_logger.log.call_args.args[0]
        assert event.event_type == AuditEventType.TILT_UNLOCKED

    def test_tick_when_unlocked_is_noop(self, interlock):
        """Test ticking an open gate does nothing."""
        assert interlock.tick() == 0

    def test_ensure_unlocked_raises_while_locked(self, interlock):
        """Test gated actions are refused during the cooldown."""
        interlock.ensure_unlocked()
        interlock.evaluate(losses("09:00", "09:20"))

        with pytest.raises(TiltLockedError) as exc_info:
            interlock.ensure_unlocked()
        assert exc_info.value.seconds_remaining == 60

    def test_listeners_see_every_change(self, interlock):
        """Test lock, each tick and unlock are all notified."""
        listener = Mock()
        interlock.subscribe(listener)

        interlock.evaluate(losses("09:00", "09:20"))
        interlock.tick(30)
        interlock.tick(30)

        states = [c.args[0] for c in listener.call_args_list]
        assert [s.seconds_remaining for s in states] == [60, 30, 0]
        assert [s.locked for s in states] == [True, True, False]

    @pytest.mark.asyncio
    async def test_timer_drives_the_countdown(self, clock, audit_logger):
        """Test each timer tick decrements and reschedules."""
        timer = FakeTimer()
        interlock = TiltInterlock(TiltSettings(), clock=clock, timer=timer, audit_logger=audit_logger)
        interlock.evaluate(losses("09:00", "09:20"))
        assert timer.pending
        assert timer.delay == 1.0

        await timer.fire()

        assert interlock.seconds_remaining == 59
        assert timer.pending

    @pytest.mark.asyncio
    async def test_countdown_on_running_loop(self, clock, audit_logger):
        """Test the interlock unlocks by itself when a loop is running."""
        interlock = TiltInterlock(
            TiltSettings(cooldown_seconds=3, tick_seconds=0.01),
            clock=clock,
            audit_logger=audit_logger,
        )
        interlock.evaluate(losses("09:00", "09:20"))
        assert interlock.is_locked

        await asyncio.sleep(0.2)

        assert interlock.is_locked is False
        interlock.close()

    def test_close_cancels_ticker(self, clock, audit_logger):
        """Test close stops the countdown timer."""
        timer = FakeTimer()
        interlock = TiltInterlock(TiltSettings(), clock=clock, timer=timer, audit_logger=audit_logger)
        interlock.evaluate(losses("09:00", "09:20"))
        interlock.close()
        assert timer.pending is False


class TestLedgerWiring:
    """Tests for evaluation on ledger changes."""

    def test_store_changes_trigger_evaluation(self, store, interlock):
        """Test upserting the second quick loss locks the gate."""
        store.subscribe(interlock.on_ledger_change)

        store.upsert_record(make_record("1", exit_time="09:00", outcome=LOSS))
        assert interlock.is_locked is False

        store.upsert_record(make_record("2", exit_time="09:20", outcome=LOSS))
        assert interlock.is_locked

    def test_stored_record_with_impossible_time_does_not_disable_lock(
        self, store, storage, interlock
    ):
        """Test a corrupt stored record cannot keep a quick losing pair from locking."""
        storage.set("tradeMind_trades", json.dumps([
            {"id": "bad", "date": "2024-03-04", "exitTime": "24:00", "outcome": "WIN"},
            {"id": "old", "date": "2024-03-01", "exitTime": "10:00", "outcome": "WIN"},
        ]))
        store.load()
        store.subscribe(interlock.on_ledger_change)

        store.upsert_record(make_record("1", exit_time="09:00", outcome=LOSS))
        store.upsert_record(make_record("2", exit_time="09:20", outcome=LOSS))

        assert [r.id for r in store.records] == ["2", "1", "old"]
        assert interlock.is_locked

    def test_profile_changes_are_ignored(self, store, interlock):
        """Test changes that do not touch records skip evaluation."""
        for record in losses("09:00", "09:20"):
            store.upsert_record(record)
        store.subscribe(interlock.on_ledger_change)

        store.replace_profile(ProfileDocument(name="ORB"))

        assert interlock.is_locked is False
