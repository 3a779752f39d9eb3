"""
Sync Scheduler

Keeps the remote backup eventually consistent with the ledger.

State machine (exactly four states, initial OFFLINE):

    OFFLINE --connect ok--> SYNCING --reconciled--> SYNCED
    SYNCED/ERROR --local change--> SYNCING --push ok--> SYNCED
    SYNCING --push/pull failed--> ERROR
    any --sign_out--> OFFLINE

DESIGN DECISION: Debounced full pushes.
- Every local change flips the status to SYNCING immediately and restarts
  a single-slot timer (default 5 s)
- Only when the timer fires is the full snapshot pushed, so a burst of
  N mutations costs ONE remote write carrying the final state
- At most one push is in flight; a timer that fires while a push is
  running waits for it first
- No automatic retry after ERROR: the next mutation or a manual action
  re-attempts

Changes applied FROM the remote (pull, reconciliation) carry origin
REMOTE and are ignored here, so a pull never echoes back as a push.

Every async operation captures the sign-out epoch; a result arriving
after sign_out() is dropped instead of being applied.
"""

import asyncio
from typing import Callable, Optional

from trademind.audit import AuditLogger, get_audit_logger
from trademind.config import SyncSettings
from trademind.ledger import ChangeOrigin, LedgerChange, LedgerStore
from trademind.models.audit import AuditEventBuilder
from trademind.models.sync import (
    AuthErrorKind,
    SyncSession,
    SyncStatus,
    SyncStatusEvent,
    UserIdentity,
)
from trademind.services.storage.interface import (
    RemoteEmptyError,
    RemoteError,
    RemoteTransientError,
)
from trademind.sync.adapter import RemoteBackupAdapter, merge_backups
from trademind.sync.auth import (
    AuthFlowError,
    AuthSessionManager,
    LoginCancelledError,
    classify_remote_failure,
    user_message,
)
from trademind.sync.timer import SingleSlotTimer


EMPTY_BACKUP_MESSAGE = "The cloud backup is empty. Local data was left unchanged."
SYNC_FAILED_MESSAGE = "Cloud sync failed. Your changes are saved on this device."
NOT_CONNECTED_MESSAGE = "Not connected to the cloud backup."

StatusListener = Callable[[SyncStatusEvent], None]


class SyncScheduler:
    """Drives the Remote Backup Adapter from ledger change events."""

    def __init__(
        self,
        store: LedgerStore,
        auth: AuthSessionManager,
        adapter: RemoteBackupAdapter,
        settings: Optional[SyncSettings] = None,
        timer: Optional[SingleSlotTimer] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._auth = auth
        self._adapter = adapter
        self._settings = settings or SyncSettings()
        self._timer = timer or SingleSlotTimer()
        self._audit = audit_logger or get_audit_logger()

        self._status = SyncStatus.OFFLINE
        self._message: Optional[str] = None
        self._handle: Optional[str] = None
        self._in_flight: Optional[asyncio.Future] = None
        self._epoch = 0
        self._local_changes = 0
        self._listeners: list[StatusListener] = []

    # =========================================================================
    # State
    # =========================================================================

    @property
    def status(self) -> SyncStatus:
        return self._status

    @property
    def message(self) -> Optional[str]:
        return self._message

    @property
    def handle(self) -> Optional[str]:
        return self._handle

    @property
    def session(self) -> SyncSession:
        return SyncSession(status=self._status, remote_document_id=self._handle)

    @property
    def push_pending(self) -> bool:
        return self._timer.pending

    def subscribe_status(self, listener: StatusListener) -> Callable[[], None]:
        """Register a status listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # =========================================================================
    # Connect
    # =========================================================================

    async def connect(self, silent: bool = False) -> Optional[UserIdentity]:
        """
        Sign in, locate or create the backup and reconcile.

        Args:
            silent: Startup auto-connect. Failures fall back to OFFLINE
                instead of ERROR.

        Returns:
            The signed-in identity, or None if the session was not
            established
        """
        epoch = self._epoch

        try:
            identity = await self._auth.connect()
        except LoginCancelledError:
            return None
        except AuthFlowError as e:
            if e.kind == AuthErrorKind.POPUP_CLOSED or silent:
                # An abandoned re-sign-in leaves an established session as it was
                if self._handle is None:
                    self._set_status(SyncStatus.OFFLINE)
            else:
                self._set_status(SyncStatus.ERROR, str(e), e.kind)
            return None

        if epoch != self._epoch:
            return None

        self._set_status(SyncStatus.SYNCING)
        changes_before = self._local_changes
        try:
            result = await self._adapter.locate_or_create(self._store.snapshot())
        except RemoteError as e:
            if epoch != self._epoch:
                return None
            self._fail("reconcile", e, silent=silent)
            return None

        if epoch != self._epoch:
            return None

        self._handle = result.handle

        if self._local_changes != changes_before:
            # The ledger moved while we were reconciling; fold those edits in
            # and push them with the next debounce cycle
            merged = merge_backups(self._store.snapshot(), result.data)
            self._store.replace_all(merged, origin=ChangeOrigin.REMOTE)
            self._schedule_push()
            return identity

        if not result.created and result.push_allowed:
            self._store.replace_all(result.data, origin=ChangeOrigin.REMOTE)

        self._set_status(SyncStatus.SYNCED)
        return identity

    # =========================================================================
    # Ledger changes and pushes
    # =========================================================================

    def on_ledger_change(self, change: LedgerChange) -> None:
        """Ledger listener: debounce a push for locally originated changes."""
        if change.origin == ChangeOrigin.REMOTE:
            return
        self._local_changes += 1
        if self._status == SyncStatus.OFFLINE or self._handle is None:
            return
        self._schedule_push()

    def _schedule_push(self) -> None:
        self._set_status(SyncStatus.SYNCING)
        self._timer.schedule(self._settings.debounce_seconds, self._flush)

    async def _flush(self) -> None:
        epoch = self._epoch
        try:
            await self._push(manual=False)
        except Exception as e:
            # Timer-driven pushes have no caller to raise to
            if epoch == self._epoch:
                error = RemoteError(f"unexpected push failure: {e}")
                self._fail("push", error, handle=self._handle)

    async def force_push(self) -> bool:
        """Push the current snapshot now, bypassing the debounce."""
        if self._handle is None:
            self._audit.log(AuditEventBuilder.remote_failed(
                "push", NOT_CONNECTED_MESSAGE, "NOT_CONNECTED"
            ))
            return False
        self._timer.cancel()
        self._set_status(SyncStatus.SYNCING)
        return await self._push(manual=True)

    async def _push(self, manual: bool) -> bool:
        epoch = self._epoch
        await self._wait_in_flight()
        if epoch != self._epoch or self._handle is None:
            return False

        handle = self._handle
        snapshot = self._store.snapshot()
        task = asyncio.ensure_future(self._adapter.overwrite(handle, snapshot))
        self._in_flight = task
        try:
            await task
        except RemoteError as e:
            if epoch == self._epoch:
                self._fail("push", e, handle=handle)
            return False
        finally:
            if self._in_flight is task:
                self._in_flight = None

        if epoch != self._epoch:
            return False

        self._audit.log(AuditEventBuilder.backup_pushed(handle, len(snapshot.records), manual))
        if not self._timer.pending:
            self._set_status(SyncStatus.SYNCED)
        return True

    async def _wait_in_flight(self) -> None:
        while self._in_flight is not None and not self._in_flight.done():
            await asyncio.wait({self._in_flight})

    # =========================================================================
    # Pull
    # =========================================================================

    async def force_pull(self) -> bool:
        """
        Replace the whole local ledger with the remote backup.

        An empty backup leaves local data untouched and ends in ERROR.
        """
        if self._handle is None:
            self._audit.log(AuditEventBuilder.remote_failed(
                "pull", NOT_CONNECTED_MESSAGE, "NOT_CONNECTED"
            ))
            return False

        epoch = self._epoch
        self._timer.cancel()
        self._set_status(SyncStatus.SYNCING)
        await self._wait_in_flight()
        if epoch != self._epoch or self._handle is None:
            return False

        handle = self._handle
        try:
            backup = await self._adapter.read(handle)
        except RemoteError as e:
            if epoch == self._epoch:
                self._fail("pull", e, handle=handle)
            return False

        if epoch != self._epoch:
            return False

        self._store.replace_all(backup, origin=ChangeOrigin.REMOTE)
        self._audit.log(AuditEventBuilder.backup_pulled(handle, len(backup.records)))
        self._set_status(SyncStatus.SYNCED)
        return True

    # =========================================================================
    # Sign-out and lifecycle
    # =========================================================================

    def sign_out(self) -> None:
        """Go OFFLINE, drop the handle and any pending or in-flight work."""
        self._epoch += 1
        self._timer.cancel()
        self._handle = None
        self._auth.sign_out()
        self._set_status(SyncStatus.OFFLINE)

    async def wait_idle(self) -> None:
        """Wait for a fired debounce push and any in-flight call to finish."""
        await self._timer.wait()
        await self._wait_in_flight()

    def close(self) -> None:
        self._timer.cancel()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _fail(
        self,
        operation: str,
        error: RemoteError,
        handle: Optional[str] = None,
        silent: bool = False,
    ) -> None:
        kind = classify_remote_failure(error)
        if kind == AuthErrorKind.SESSION_EXPIRED:
            code = "SESSION_EXPIRED"
            message = user_message(kind)
            self._auth.invalidate()
        elif isinstance(error, RemoteEmptyError):
            code = "REMOTE_EMPTY"
            message = EMPTY_BACKUP_MESSAGE
        elif isinstance(error, RemoteTransientError):
            code = "REMOTE_TRANSIENT_FAILURE"
            message = SYNC_FAILED_MESSAGE
        else:
            code = "REMOTE_FAILURE"
            message = SYNC_FAILED_MESSAGE

        self._audit.log(AuditEventBuilder.remote_failed(operation, str(error), code, handle))
        if silent:
            self._set_status(SyncStatus.OFFLINE, message, kind)
        else:
            self._set_status(SyncStatus.ERROR, message, kind)

    def _set_status(
        self,
        status: SyncStatus,
        message: Optional[str] = None,
        error_kind: Optional[AuthErrorKind] = None,
    ) -> None:
        if status == self._status and message == self._message:
            return

        previous = self._status
        self._status = status
        self._message = message
        self._audit.log(AuditEventBuilder.sync_status_changed(
            previous.value, status.value, message
        ))

        event = SyncStatusEvent(status=status, message=message, error_kind=error_kind)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                name = getattr(listener, "__qualname__", repr(listener))
                self._audit.log(AuditEventBuilder.listener_failed(name, str(e)))
