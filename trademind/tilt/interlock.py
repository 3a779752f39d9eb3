"""
Tilt Interlock

A cooldown lock that blocks logging new trades after two quick losses.

    UNLOCKED --two recent losses < window apart--> LOCKED(cooldown)
    LOCKED --tick x cooldown--> UNLOCKED

Evaluation (synchronous, on every ledger change touching records):
1. Keep closed records (outcome != OPEN)
2. Sort by (date, exit time), most recent first
3. If the top two are both LOSS, both have an exit time, and their exit
   timestamps are less than `loss_window_minutes` apart, lock for
   `cooldown_seconds`

DESIGN DECISION: One lock per calendar day. The day key (local clock,
YYYY-MM-DD) is recorded when the lock arms and is never cleared, so the
same losing pair cannot re-lock again and again after the cooldown.
Day keys live in memory for the life of the engine.

- Midnight rollover: a new day key means a lock may arm again; a
  countdown already running simply continues
- Clock moved back to a recorded day: that day stays spent

The interlock does no I/O. Its only outputs are the boolean gate, the
remaining seconds and notifications to lock-state listeners.
"""

import asyncio
from datetime import datetime
from typing import Callable, Iterable, Optional

from trademind.audit import AuditLogger, get_audit_logger
from trademind.config import TiltSettings
from trademind.ledger import LedgerChange
from trademind.models.audit import AuditEventBuilder
from trademind.models.records import RecordOutcome, TradeRecord, today_key
from trademind.models.sync import TiltLock
from trademind.sync.timer import SingleSlotTimer


TiltListener = Callable[[TiltLock], None]


class TiltLockedError(Exception):
    """Raised when a gated action is attempted while the interlock is locked."""

    def __init__(self, seconds_remaining: int):
        self.seconds_remaining = seconds_remaining
        super().__init__(
            f"Tilt cooldown active: take a break, new trades unlock in {seconds_remaining}s"
        )


def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


def _recency_key(record: TradeRecord) -> datetime:
    return record.exit_timestamp() or datetime.fromisoformat(record.date)


class TiltInterlock:
    """
    Loss-streak cooldown gate.

    The countdown runs on a single-slot timer when an event loop is
    running; without one the host calls tick() itself.
    """

    def __init__(
        self,
        settings: Optional[TiltSettings] = None,
        clock: Callable[[], datetime] = datetime.now,
        timer: Optional[SingleSlotTimer] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._settings = settings or TiltSettings()
        self._clock = clock
        self._timer = timer
        self._audit = audit_logger or get_audit_logger()

        self._locked = False
        self._seconds_remaining = 0
        self._day_key: Optional[str] = None
        self._locked_days: set[str] = set()
        self._listeners: list[TiltListener] = []

    # =========================================================================
    # State
    # =========================================================================

    @property
    def is_locked(self) -> bool:
        return self._locked

    @property
    def seconds_remaining(self) -> int:
        return self._seconds_remaining

    def state(self) -> TiltLock:
        return TiltLock(
            locked=self._locked,
            seconds_remaining=self._seconds_remaining,
            day_key=self._day_key,
        )

    def has_locked_today(self) -> bool:
        return self._today() in self._locked_days

    def subscribe(self, listener: TiltListener) -> Callable[[], None]:
        """Register a lock-state listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def ensure_unlocked(self) -> None:
        """
        Gate for actions that create new records.

        Raises:
            TiltLockedError: While the cooldown is running
        """
        if self._locked:
            raise TiltLockedError(self._seconds_remaining)

    # =========================================================================
    # Evaluation
    # =========================================================================

    def on_ledger_change(self, change: LedgerChange) -> None:
        if change.records_changed:
            self.evaluate(change.snapshot.records)

    def evaluate(self, records: Iterable[TradeRecord]) -> bool:
        """
        Check the two most recent closed records and lock if they qualify.

        Returns:
            True if this evaluation armed the lock
        """
        if self._locked:
            return False

        closed = [r for r in records if r.outcome != RecordOutcome.OPEN]
        if len(closed) < 2:
            return False

        closed.sort(key=_recency_key, reverse=True)
        latest, previous = closed[0], closed[1]
        if latest.outcome != RecordOutcome.LOSS or previous.outcome != RecordOutcome.LOSS:
            return False

        latest_exit = latest.exit_timestamp()
        previous_exit = previous.exit_timestamp()
        if latest_exit is None or previous_exit is None:
            return False

        gap_minutes = abs((latest_exit - previous_exit).total_seconds()) / 60
        if gap_minutes >= self._settings.loss_window_minutes:
            return False

        day_key = self._today()
        if day_key in self._locked_days:
            return False

        self._lock(day_key, [latest.id, previous.id], gap_minutes)
        return True

    def _lock(self, day_key: str, record_ids: list[str], gap_minutes: float) -> None:
        self._locked_days.add(day_key)
        self._day_key = day_key
        self._locked = True
        self._seconds_remaining = self._settings.cooldown_seconds
        self._audit.log(AuditEventBuilder.tilt_locked(
            day_key, self._seconds_remaining, record_ids, gap_minutes
        ))
        self._notify()
        self._start_ticker()

    # =========================================================================
    # Countdown
    # =========================================================================

    def tick(self, seconds: int = 1) -> int:
        """Advance the countdown; returns the seconds remaining."""
        if not self._locked:
            return 0

        self._seconds_remaining = max(0, self._seconds_remaining - seconds)
        if self._seconds_remaining == 0:
            self._locked = False
            if self._timer is not None:
                self._timer.cancel()
            self._audit.log(AuditEventBuilder.tilt_unlocked(self._day_key))
        self._notify()
        return self._seconds_remaining

    def _start_ticker(self) -> None:
        if self._timer is None:
            if not _loop_running():
                return
            self._timer = SingleSlotTimer()
        self._timer.schedule(self._settings.tick_seconds, self._on_tick)

    def _on_tick(self) -> None:
        step = max(1, round(self._settings.tick_seconds))
        if self.tick(step) > 0:
            self._timer.schedule(self._settings.tick_seconds, self._on_tick)

    def close(self) -> None:
        if self._timer is not None:
            self._timer.cancel()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _today(self) -> str:
        return today_key(self._clock().date())

    def _notify(self) -> None:
        state = self.state()
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                name = getattr(listener, "__qualname__", repr(listener))
                self._audit.log(AuditEventBuilder.listener_failed(name, str(e)))
