"""
Ledger Store

The authoritative in-memory ledger plus its durable local mirror.

DESIGN DECISION: Local first. Every mutation:
1. Updates the in-memory aggregate
2. Persists the whole affected aggregate to local storage (synchronously)
3. Emits one change event carrying the new snapshot

Step 2 completes before the mutating call returns, so nothing is lost
if the process dies right after a mutation. Remote backup is a
downstream consumer of step 3 and can never fail a mutation.

Local persistence failures are logged and absorbed. A broken disk
degrades durability, but the journal stays usable with the data it has.
"""

import json
from datetime import date, datetime
from typing import Any, Callable, Iterable, Optional

from pydantic import ValidationError

from trademind.audit import AuditLogger, get_audit_logger
from trademind.ledger.events import (
    ChangeDispatcher,
    ChangeKind,
    ChangeListener,
    ChangeOrigin,
    LedgerChange,
)
from trademind.models.audit import AuditEventBuilder
from trademind.models.records import (
    ArtifactKind,
    BackupDocument,
    ProfileDocument,
    SessionArtifact,
    TradeRecord,
    default_profile,
    today_key,
)
from trademind.services.storage.interface import (
    KeyValueStorage,
    LocalPersistenceError,
)


RECORDS_KEY = "trades"
PROFILE_KEY = "strategy"
ARTIFACT_KEY_PREFIX = "artifact_"


class LedgerStore:
    """
    Owns trade records, the strategy profile and session artifacts.

    Nothing else mutates these aggregates; other components read
    snapshots and subscribe to change events.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        key_prefix: str = "tradeMind_",
        audit_logger: Optional[AuditLogger] = None,
        today: Callable[[], date] = date.today,
    ):
        self._storage = storage
        self._prefix = key_prefix
        self._audit = audit_logger or get_audit_logger()
        self._today = today
        self._dispatcher = ChangeDispatcher(self._audit)

        self._records: list[TradeRecord] = []
        self._profile: ProfileDocument = default_profile()
        self._artifacts: dict[ArtifactKind, SessionArtifact] = {}

    # =========================================================================
    # Keys
    # =========================================================================

    @property
    def records_key(self) -> str:
        return f"{self._prefix}{RECORDS_KEY}"

    @property
    def profile_key(self) -> str:
        return f"{self._prefix}{PROFILE_KEY}"

    def artifact_key(self, kind: ArtifactKind) -> str:
        return f"{self._prefix}{ARTIFACT_KEY_PREFIX}{kind.value}"

    # =========================================================================
    # Reads
    # =========================================================================

    @property
    def records(self) -> list[TradeRecord]:
        """Records in display order (newest insert first)."""
        return list(self._records)

    def get_record(self, record_id: str) -> Optional[TradeRecord]:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    @property
    def profile(self) -> ProfileDocument:
        return self._profile

    def artifact(self, kind: ArtifactKind) -> Optional[SessionArtifact]:
        return self._artifacts.get(kind)

    @property
    def artifacts(self) -> dict[ArtifactKind, SessionArtifact]:
        return dict(self._artifacts)

    def snapshot(self) -> BackupDocument:
        """Deep copy of the full aggregate, stamped with the current time."""
        return BackupDocument(
            records=[r.model_copy(deep=True) for r in self._records],
            profile=self._profile.model_copy(deep=True),
            session_artifacts={
                kind: artifact.model_copy(deep=True)
                for kind, artifact in self._artifacts.items()
            },
        ).stamped()

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Subscribe to change events; returns an unsubscribe function."""
        return self._dispatcher.subscribe(listener)

    # =========================================================================
    # Startup load
    # =========================================================================

    def load(self) -> None:
        """
        Load every aggregate from local storage.

        Each aggregate is read independently. A failure on one is logged
        and that aggregate is treated as absent; the others still load.
        """
        failed: list[str] = []

        records = self._load_json(self.records_key, failed)
        self._records = []
        if records is not None:
            if isinstance(records, list):
                self._records = self._parse_records(records)
            else:
                self._log_failure(self.records_key, "parse", "expected a JSON list")
                failed.append(self.records_key)

        profile = self._load_json(self.profile_key, failed)
        self._profile = default_profile()
        if profile is not None:
            try:
                self._profile = ProfileDocument.model_validate(profile)
            except ValidationError as e:
                self._log_failure(self.profile_key, "parse", str(e))
                failed.append(self.profile_key)

        self._artifacts = {}
        for kind in ArtifactKind:
            key = self.artifact_key(kind)
            raw = self._load_json(key, failed)
            if raw is None:
                continue
            try:
                self._artifacts[kind] = SessionArtifact.model_validate(raw)
            except ValidationError as e:
                self._log_failure(key, "parse", str(e))
                failed.append(key)

        self._audit.log(AuditEventBuilder.ledger_loaded(
            record_count=len(self._records),
            has_profile=profile is not None and self.profile_key not in failed,
            artifact_kinds=[kind.value for kind in self._artifacts],
            failed_aggregates=failed,
        ))

    def _load_json(self, key: str, failed: list[str]) -> Optional[Any]:
        try:
            raw = self._storage.get(key)
        except LocalPersistenceError as e:
            self._log_failure(key, "read", str(e))
            failed.append(key)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            self._log_failure(key, "parse", str(e))
            failed.append(key)
            return None

    def _parse_records(self, items: list) -> list[TradeRecord]:
        records = []
        seen: set[str] = set()
        for index, item in enumerate(items):
            try:
                record = TradeRecord.model_validate(item)
            except ValidationError as e:
                # Skip malformed records, keep the rest
                self._log_failure(self.records_key, "parse", f"record {index}: {e}")
                continue
            if record.id in seen:
                continue
            seen.add(record.id)
            records.append(record)
        return records

    # =========================================================================
    # Mutations
    # =========================================================================

    def upsert_record(self, record: TradeRecord) -> bool:
        """
        Insert a record, or replace the record with the same id in place.

        New records go to the head of the sequence.

        Returns:
            True if the record was inserted, False if it replaced one
        """
        for index, existing in enumerate(self._records):
            if existing.id == record.id:
                self._records[index] = record
                inserted = False
                break
        else:
            self._records.insert(0, record)
            inserted = True

        self._persist_records()
        self._audit.log(AuditEventBuilder.record_upserted(record.id, inserted))
        self._emit(ChangeKind.RECORDS, record_ids=[record.id])
        return inserted

    def delete_record(self, record_id: str) -> bool:
        """
        Remove a record by id. No-op (and no event) if absent.

        Returns:
            True if a record was removed
        """
        remaining = [r for r in self._records if r.id != record_id]
        if len(remaining) == len(self._records):
            return False

        self._records = remaining
        self._persist_records()
        self._audit.log(AuditEventBuilder.record_deleted(record_id))
        self._emit(ChangeKind.RECORDS, record_ids=[record_id])
        return True

    def import_records(self, records: Iterable[TradeRecord]) -> int:
        """
        Add records whose ids are not present yet, ahead of existing ones.

        Records already in the ledger are left untouched.

        Returns:
            Number of records added
        """
        existing = {r.id for r in self._records}
        fresh: list[TradeRecord] = []
        skipped = 0
        for record in records:
            if record.id in existing:
                skipped += 1
                continue
            existing.add(record.id)
            fresh.append(record)

        if fresh:
            self._records = fresh + self._records
            self._persist_records()
        self._audit.log(AuditEventBuilder.records_imported(len(fresh), skipped))
        if fresh:
            self._emit(ChangeKind.RECORDS, record_ids=[r.id for r in fresh])
        return len(fresh)

    def replace_profile(self, profile: ProfileDocument) -> None:
        """Replace the strategy profile (full overwrite)."""
        self._profile = profile
        self._persist(self.profile_key, profile.model_dump_json(by_alias=True))
        self._audit.log(AuditEventBuilder.profile_replaced(profile.name))
        self._emit(ChangeKind.PROFILE)

    def write_artifact(
        self,
        kind: ArtifactKind,
        value: Any,
        date_key: Optional[str] = None,
    ) -> Optional[SessionArtifact]:
        """
        Store the artifact of `kind`, replacing any previous one.

        `date_key` defaults to today. Writing None clears the artifact.
        """
        if value is None:
            self.clear_artifact(kind)
            return None

        artifact = SessionArtifact(
            date=date_key or today_key(self._today()),
            timestamp=datetime.now().isoformat(),
            data=value,
        )
        self._artifacts[kind] = artifact
        self._persist(self.artifact_key(kind), artifact.model_dump_json(by_alias=True))
        self._audit.log(AuditEventBuilder.artifact_written(kind.value, artifact.date))
        self._emit(ChangeKind.ARTIFACT)
        return artifact

    def clear_artifact(self, kind: ArtifactKind) -> None:
        if kind not in self._artifacts:
            return
        del self._artifacts[kind]
        self._remove(self.artifact_key(kind))
        self._audit.log(AuditEventBuilder.artifact_cleared(kind.value))
        self._emit(ChangeKind.ARTIFACT)

    def replace_all(
        self,
        backup: BackupDocument,
        origin: ChangeOrigin = ChangeOrigin.REMOTE,
    ) -> None:
        """
        Replace every aggregate with the content of `backup`.

        This is a full overwrite: artifact kinds missing from the backup
        are removed, a missing profile falls back to the template.
        """
        self._records = self._parse_records(
            [r.model_dump() for r in backup.records]
        )
        self._profile = (
            backup.profile.model_copy(deep=True)
            if backup.profile is not None
            else default_profile()
        )
        self._artifacts = {
            kind: artifact.model_copy(deep=True)
            for kind, artifact in backup.session_artifacts.items()
        }

        self._persist_records()
        if backup.profile is not None:
            self._persist(self.profile_key, self._profile.model_dump_json(by_alias=True))
        else:
            self._remove(self.profile_key)
        for kind in ArtifactKind:
            if kind in self._artifacts:
                self._persist(
                    self.artifact_key(kind),
                    self._artifacts[kind].model_dump_json(by_alias=True),
                )
            else:
                self._remove(self.artifact_key(kind))

        self._audit.log(AuditEventBuilder.ledger_replaced(origin.value, len(self._records)))
        self._emit(
            ChangeKind.ALL,
            origin=origin,
            record_ids=[r.id for r in self._records],
        )

    def reset(self) -> None:
        """Delete all local data and return to an empty ledger."""
        self._records = []
        self._profile = default_profile()
        self._artifacts = {}
        try:
            self._storage.clear()
        except LocalPersistenceError as e:
            self._log_failure("*", "clear", str(e))
        self._audit.log(AuditEventBuilder.ledger_reset())
        self._emit(ChangeKind.ALL)

    # =========================================================================
    # Persistence helpers
    # =========================================================================

    def serialized_records(self) -> str:
        """The records aggregate exactly as it is persisted."""
        return json.dumps(
            [record.to_wire() for record in self._records],
            ensure_ascii=False,
        )

    def _persist_records(self) -> None:
        self._persist(self.records_key, self.serialized_records())

    def _persist(self, key: str, value: str) -> None:
        try:
            self._storage.set(key, value)
        except LocalPersistenceError as e:
            self._log_failure(key, "write", str(e))

    def _remove(self, key: str) -> None:
        try:
            self._storage.delete(key)
        except LocalPersistenceError as e:
            self._log_failure(key, "delete", str(e))

    def _log_failure(self, key: str, operation: str, message: str) -> None:
        self._audit.log(
            AuditEventBuilder.local_persistence_failed(key, operation, message)
        )

    def _emit(
        self,
        kind: ChangeKind,
        origin: ChangeOrigin = ChangeOrigin.LOCAL,
        record_ids: Optional[list[str]] = None,
    ) -> None:
        self._dispatcher.dispatch(LedgerChange(
            kind=kind,
            origin=origin,
            snapshot=self.snapshot(),
            record_ids=record_ids or [],
        ))
