"""
Ledger Change Events

Every ledger mutation emits exactly ONE LedgerChange, fanned out to every
subscriber by the ChangeDispatcher. The Sync Scheduler and the Tilt
Interlock both consume the same event stream; neither polls the store.
"""

from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from trademind.audit import AuditLogger, get_audit_logger
from trademind.models.audit import AuditEventBuilder
from trademind.models.records import BackupDocument


class ChangeKind(str, Enum):
    """Which aggregate a mutation touched."""
    RECORDS = "records"
    PROFILE = "profile"
    ARTIFACT = "artifact"
    ALL = "all"  # Full replacement or reset


class ChangeOrigin(str, Enum):
    """
    Where a mutation came from.

    REMOTE changes are applied from the backup (pull, reconciliation) and
    must not be pushed straight back.
    """
    LOCAL = "local"
    REMOTE = "remote"


class LedgerChange(BaseModel):
    """A single ledger mutation plus the aggregate snapshot after it."""
    model_config = ConfigDict(frozen=True)

    kind: ChangeKind
    origin: ChangeOrigin = ChangeOrigin.LOCAL
    snapshot: BackupDocument
    record_ids: list[str] = Field(
        default_factory=list,
        description="Records affected by the mutation, if any"
    )

    @property
    def records_changed(self) -> bool:
        return self.kind in (ChangeKind.RECORDS, ChangeKind.ALL)


ChangeListener = Callable[[LedgerChange], None]


class ChangeDispatcher:
    """
    Synchronous fan-out of ledger changes.

    A failing listener is logged and skipped; it never fails the
    mutation or starves the other listeners.
    """

    def __init__(self, audit_logger: Optional[AuditLogger] = None):
        self._listeners: list[ChangeListener] = []
        self._audit = audit_logger or get_audit_logger()

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, change: LedgerChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception as e:
                name = getattr(listener, "__qualname__", repr(listener))
                self._audit.log(AuditEventBuilder.listener_failed(name, str(e)))

    def __len__(self) -> int:
        return len(self._listeners)
