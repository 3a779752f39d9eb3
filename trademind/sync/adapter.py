"""
Remote Backup Adapter

Create, read and overwrite the ONE remote document mirroring the ledger,
plus the initial reconciliation between local and remote data.

DESIGN DECISION: Reconciliation merges instead of picking a winner.
When a session is first established:
1. No backup yet -> create it seeded from local data
2. Backup exists -> merge and push the merged result back:
   - Records: union by id, local wins on conflict
   - Profile: local, unless local is still the shipped template
   - Artifacts: per kind, the one with the newest date wins (ties: local)
3. Backup exists but is unreadable -> keep local data for this session
   and do NOT push, so a backup we cannot parse is never destroyed

After reconciliation every push is a full overwrite ("last full write
wins"). There is no per-record remote granularity.

Retries: all three remote operations are idempotent, but the default is
a single attempt. A failed push is re-attempted by the next mutation or
a manual action. Setting SyncSettings.retry_attempts > 1 enables bounded
exponential backoff on transient failures only.
"""

import json
from typing import Optional

from pydantic import BaseModel, ConfigDict, ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from trademind.audit import AuditLogger, get_audit_logger
from trademind.config import SyncSettings
from trademind.models.audit import AuditEventBuilder
from trademind.models.records import BackupDocument, SessionArtifact
from trademind.services.storage.interface import (
    RemoteDocumentProvider,
    RemoteEmptyError,
    RemoteTransientError,
)


DEFAULT_BACKUP_NAME = "trademind_backup.json"


class ReconcileResult(BaseModel):
    """Outcome of locate_or_create."""
    model_config = ConfigDict(frozen=True)

    handle: str
    data: BackupDocument
    created: bool = False
    push_allowed: bool = True


def merge_backups(local: BackupDocument, remote: BackupDocument) -> BackupDocument:
    """
    Merge a remote backup into local data (see module docstring for rules).

    Record order follows the remote document; records only known locally
    are appended.
    """
    merged_records = {record.id: record for record in remote.records}
    for record in local.records:
        merged_records[record.id] = record

    if local.profile is None or local.profile.is_template:
        profile = remote.profile or local.profile
    else:
        profile = local.profile

    artifacts: dict = dict(remote.session_artifacts)
    for kind, local_artifact in local.session_artifacts.items():
        remote_artifact: Optional[SessionArtifact] = artifacts.get(kind)
        if remote_artifact is None or local_artifact.date >= remote_artifact.date:
            artifacts[kind] = local_artifact

    return BackupDocument(
        records=list(merged_records.values()),
        profile=profile,
        session_artifacts=artifacts,
    ).stamped()


class RemoteBackupAdapter:
    """
    Backup operations on top of a RemoteDocumentProvider.

    Holds no state besides configuration; the document handle is owned
    by the caller (the sync scheduler).
    """

    def __init__(
        self,
        provider: RemoteDocumentProvider,
        document_name: str = DEFAULT_BACKUP_NAME,
        settings: Optional[SyncSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._provider = provider
        self._name = document_name
        self._settings = settings or SyncSettings()
        self._audit = audit_logger or get_audit_logger()

    @property
    def document_name(self) -> str:
        return self._name

    # =========================================================================
    # Public operations
    # =========================================================================

    async def locate_or_create(self, local: BackupDocument) -> ReconcileResult:
        """
        Find the backup (or create it from `local`) and reconcile.

        Raises:
            RemoteError: Transport or auth failure while locating,
                creating or pushing the merged result
        """
        handle = await self._call(self._provider.find_document, self._name)

        if handle is None:
            seeded = local.stamped()
            handle = await self._call(
                self._provider.create_document, self._name, self.serialize(seeded)
            )
            self._audit.log(AuditEventBuilder.backup_created(handle, len(seeded.records)))
            return ReconcileResult(handle=handle, data=seeded, created=True)

        try:
            remote = await self.read(handle)
        except RemoteEmptyError as e:
            self._audit.log(AuditEventBuilder.remote_failed(
                "reconcile", str(e), "REMOTE_EMPTY", handle
            ))
            return ReconcileResult(handle=handle, data=local, push_allowed=False)

        merged = merge_backups(local, remote)
        await self.overwrite(handle, merged)
        self._audit.log(AuditEventBuilder.backup_merged(
            handle,
            remote_count=len(remote.records),
            local_count=len(local.records),
            merged_count=len(merged.records),
        ))
        return ReconcileResult(handle=handle, data=merged)

    async def read(self, handle: str) -> BackupDocument:
        """
        Read and deserialize the backup.

        Raises:
            RemoteEmptyError: Content is missing, blank, undecodable or
                carries no data
            RemoteError: Transport or auth failure
        """
        content = await self._call(self._provider.read_document, handle)
        return self.deserialize(content)

    async def overwrite(self, handle: str, backup: BackupDocument) -> None:
        """Replace the remote content with `backup`."""
        await self._call(self._provider.update_document, handle, self.serialize(backup))

    # =========================================================================
    # Serialization
    # =========================================================================

    @staticmethod
    def serialize(backup: BackupDocument) -> str:
        return json.dumps(backup.to_wire(), indent=2, ensure_ascii=False)

    @staticmethod
    def deserialize(content: Optional[str]) -> BackupDocument:
        if content is None or not content.strip():
            raise RemoteEmptyError("Backup document is empty")
        try:
            payload = json.loads(content)
        except json.JSONDecodeError as e:
            raise RemoteEmptyError(f"Backup document is not valid JSON: {e}")
        if not isinstance(payload, dict):
            raise RemoteEmptyError("Backup document is not a JSON object")
        try:
            backup = BackupDocument.model_validate(payload)
        except ValidationError as e:
            raise RemoteEmptyError(f"Backup document is unreadable: {e}")
        if backup.is_empty():
            raise RemoteEmptyError("Backup document contains no data")
        return backup

    # =========================================================================
    # Retry
    # =========================================================================

    async def _call(self, operation, *args):
        """Run a provider call with the configured retry policy."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._settings.retry_attempts),
            wait=wait_exponential(
                multiplier=1,
                min=self._settings.retry_min_wait_seconds,
                max=self._settings.retry_max_wait_seconds,
            ),
            retry=retry_if_exception_type(RemoteTransientError),
            reraise=True,
        ):
            with attempt:
                return await operation(*args)
