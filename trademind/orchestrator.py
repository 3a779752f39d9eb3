"""
Main Orchestrator for TradeMind

This module ties together all the components and defines the
user-facing actions of the journal engine:
1. Record actions (create → gate → persist → fan out)
2. Profile and session artifact saves
3. Cloud backup actions (connect, push, pull, sign out)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Every mutation goes through the Ledger Store (local first, always)
- New records are gated by the Tilt Interlock
- Remote failures never fail a local action; they surface as sync status

Wiring: the store emits ONE change event per mutation, consumed by both
the Sync Scheduler (async, debounced) and the Tilt Interlock (sync).
"""

import json
import math
from typing import Any, Iterable, Optional

import structlog
from pydantic import ValidationError

from trademind.audit import configure_logging, get_audit_logger
from trademind.config import Settings, get_settings
from trademind.ledger import LedgerStore
from trademind.models.records import (
    ArtifactKind,
    ProfileDocument,
    SessionArtifact,
    TradeRecord,
)
from trademind.models.sync import SyncSession, SyncStatus, TiltLock, UserIdentity
from trademind.services.google import (
    GoogleClient,
    GoogleDriveDocumentProvider,
    GoogleIdentityProvider,
)
from trademind.services.storage import KeyValueStorage, SQLiteKeyValueStorage
from trademind.sync import AuthSessionManager, RemoteBackupAdapter, SyncScheduler
from trademind.tilt import TiltInterlock


logger = structlog.get_logger(__name__)

MAX_DISCIPLINE_RATING = 5


def rating_from_feedback(feedback: Any) -> Optional[int]:
    """
    Discipline rating derived from AI feedback, if it carries a grade.

    Feedback is JSON (or an already decoded dict) with a numeric 0-100
    `grade`; the rating is ceil(grade / 20), clamped to 0-5.
    """
    data = feedback
    if isinstance(feedback, (str, bytes)):
        try:
            data = json.loads(feedback)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None
    if not isinstance(data, dict):
        return None

    grade = data.get("grade")
    if isinstance(grade, bool) or not isinstance(grade, (int, float)):
        return None
    rating = math.ceil(grade / 20)
    return min(max(rating, 0), MAX_DISCIPLINE_RATING)


class TradeMindEngine:
    """
    The journal engine.

    Holds the components and exposes the actions the UI layer calls.
    The sync components are optional: without them the engine runs
    fully offline.
    """

    def __init__(
        self,
        store: LedgerStore,
        interlock: TiltInterlock,
        auth: Optional[AuthSessionManager] = None,
        scheduler: Optional[SyncScheduler] = None,
        storage: Optional[KeyValueStorage] = None,
    ):
        self._store = store
        self._interlock = interlock
        self._auth = auth
        self._scheduler = scheduler
        self._storage = storage

        self._unsubscribe = [store.subscribe(interlock.on_ledger_change)]
        if scheduler is not None:
            self._unsubscribe.append(store.subscribe(scheduler.on_ledger_change))

    # =========================================================================
    # Components and state
    # =========================================================================

    @property
    def store(self) -> LedgerStore:
        return self._store

    @property
    def interlock(self) -> TiltInterlock:
        return self._interlock

    @property
    def scheduler(self) -> Optional[SyncScheduler]:
        return self._scheduler

    @property
    def cloud_enabled(self) -> bool:
        return self._scheduler is not None

    @property
    def sync_session(self) -> SyncSession:
        if self._scheduler is None:
            return SyncSession()
        return self._scheduler.session

    @property
    def tilt(self) -> TiltLock:
        return self._interlock.state()

    @property
    def identity(self) -> Optional[UserIdentity]:
        if self._auth is None or self._auth.session is None:
            return None
        return self._auth.session.identity

    def start(self) -> None:
        """Load the ledger from local storage."""
        self._store.load()

    # =========================================================================
    # Record actions
    # =========================================================================

    def create_record(self, **fields: Any) -> TradeRecord:
        """
        Log a new trade.

        Raises:
            TiltLockedError: While the tilt cooldown is running
            pydantic.ValidationError: If the fields do not form a valid record
        """
        self._interlock.ensure_unlocked()
        record = TradeRecord.model_validate(fields)
        self._store.upsert_record(record)
        return record

    def save_record(self, record: TradeRecord) -> TradeRecord:
        """
        Save an edited record (or a new one built by the caller).

        Only records not in the ledger yet are gated by the interlock.
        """
        if self._store.get_record(record.id) is None:
            self._interlock.ensure_unlocked()
        self._store.upsert_record(record)
        return record

    def delete_record(self, record_id: str) -> bool:
        return self._store.delete_record(record_id)

    def attach_analysis(self, record_id: str, feedback: Any) -> Optional[TradeRecord]:
        """
        Attach AI feedback to a record.

        The payload is stored untouched. When it carries a numeric grade,
        the discipline rating is derived from it.

        Returns:
            The updated record, or None if no record has this id
        """
        record = self._store.get_record(record_id)
        if record is None:
            return None

        changes: dict[str, Any] = {"ai_feedback": feedback}
        rating = rating_from_feedback(feedback)
        if rating is not None:
            changes["discipline_rating"] = rating

        updated = record.with_updates(**changes)
        self._store.upsert_record(updated)
        return updated

    def import_records(self, records: Iterable[Any]) -> int:
        """
        Import records (TradeRecord instances or raw dicts).

        Invalid entries are skipped. Records whose id is already present
        are left untouched.
        """
        valid: list[TradeRecord] = []
        for item in records:
            if isinstance(item, TradeRecord):
                valid.append(item)
                continue
            try:
                valid.append(TradeRecord.model_validate(item))
            except ValidationError as e:
                logger.warning("record_import_skipped", error=str(e))
        return self._store.import_records(valid)

    # =========================================================================
    # Profile and artifacts
    # =========================================================================

    def save_profile(self, profile: ProfileDocument) -> None:
        self._store.replace_profile(profile)

    def save_artifact(
        self,
        kind: ArtifactKind,
        value: Any,
        date_key: Optional[str] = None,
    ) -> Optional[SessionArtifact]:
        return self._store.write_artifact(kind, value, date_key=date_key)

    def reset(self) -> None:
        """
        Delete everything stored on this device.

        Signs out first, so the emptied ledger is never pushed over the
        cloud backup.
        """
        if self._scheduler is not None:
            self._scheduler.sign_out()
        self._store.reset()

    # =========================================================================
    # Cloud actions
    # =========================================================================

    async def connect(self) -> Optional[UserIdentity]:
        if self._scheduler is None:
            logger.warning("cloud_not_configured", action="connect")
            return None
        return await self._scheduler.connect()

    async def auto_connect(self) -> Optional[UserIdentity]:
        """Reconnect silently on startup if a previous session was remembered."""
        if self._scheduler is None or self._auth is None:
            return None
        if not self._auth.ready or self._auth.remembered_identity() is None:
            return None
        return await self._scheduler.connect(silent=True)

    async def force_push(self) -> bool:
        if self._scheduler is None:
            return False
        return await self._scheduler.force_push()

    async def force_pull(self) -> bool:
        if self._scheduler is None:
            return False
        return await self._scheduler.force_pull()

    def sign_out(self) -> None:
        if self._scheduler is not None:
            self._scheduler.sign_out()

    @property
    def status(self) -> SyncStatus:
        return self.sync_session.status

    async def close(self) -> None:
        """Flush a pending push if connected, then release resources."""
        if self._scheduler is not None:
            if self._scheduler.push_pending and self._scheduler.handle is not None:
                await self._scheduler.force_push()
            await self._scheduler.wait_idle()
            self._scheduler.close()
        self._interlock.close()
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []
        if isinstance(self._storage, SQLiteKeyValueStorage):
            self._storage.close()


def create_engine(
    settings: Optional[Settings] = None,
    use_cloud: bool = True,
) -> TradeMindEngine:
    """
    Factory function to create a fully wired engine.

    Args:
        settings: Settings to use (defaults to get_settings())
        use_cloud: Whether to set up the Google Drive backup.
                   Set to False for a purely local journal.

    Returns:
        The engine; call start() to load local data

    Note:
        The tilt cooldown counts down on the running asyncio event loop.
        A host that locks the interlock with no loop running must call
        engine.interlock.tick() itself (once per second), otherwise the
        lock never clears.
    """
    settings = settings or get_settings()
    app = settings.app
    configure_logging(app.log_level, app.log_json)
    audit_logger = get_audit_logger()

    local = settings.local_storage
    storage = SQLiteKeyValueStorage(local.db_path)
    store = LedgerStore(storage, key_prefix=local.key_prefix, audit_logger=audit_logger)
    interlock = TiltInterlock(settings.tilt, audit_logger=audit_logger)

    auth = None
    scheduler = None
    if use_cloud:
        try:
            drive = settings.google_drive
        except ValidationError as e:
            # Drive not configured - run offline
            logger.warning("cloud_not_configured", error=str(e))
            drive = None

        if drive is not None:
            client = GoogleClient(drive)
            auth = AuthSessionManager(
                GoogleIdentityProvider(client),
                storage,
                key_prefix=local.key_prefix,
                audit_logger=audit_logger,
            )
            adapter = RemoteBackupAdapter(
                GoogleDriveDocumentProvider(client),
                document_name=drive.backup_file_name,
                settings=settings.sync,
                audit_logger=audit_logger,
            )
            scheduler = SyncScheduler(
                store,
                auth,
                adapter,
                settings=settings.sync,
                audit_logger=audit_logger,
            )
            auth.initialize(drive.client_id or _loaded_client_id(client))

    return TradeMindEngine(
        store,
        interlock,
        auth=auth,
        scheduler=scheduler,
        storage=storage,
    )


def _loaded_client_id(client: GoogleClient) -> str:
    try:
        return client.client_id() or ""
    except (OSError, ValueError) as e:
        logger.warning("credentials_unavailable", error=str(e))
        return ""
