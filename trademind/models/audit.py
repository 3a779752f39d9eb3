"""
Audit Models for TradeMind

Every significant action of the engine is logged as an audit event.
This provides:
1. Traceability of every ledger mutation and every remote call
2. Debugging information when a sync goes wrong
3. A record of when and why the tilt interlock fired

DESIGN DECISION: Events are immutable value objects built through
AuditEventBuilder, so the wording and details of one event type stay
identical wherever it is emitted.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Grouped by the component that emits them.
    """
    # Ledger store
    LEDGER_LOADED = "ledger_loaded"
    LEDGER_REPLACED = "ledger_replaced"
    LEDGER_RESET = "ledger_reset"
    RECORD_UPSERTED = "record_upserted"
    RECORD_DELETED = "record_deleted"
    RECORDS_IMPORTED = "records_imported"
    PROFILE_REPLACED = "profile_replaced"
    ARTIFACT_WRITTEN = "artifact_written"
    ARTIFACT_CLEARED = "artifact_cleared"
    LOCAL_PERSISTENCE_FAILED = "local_persistence_failed"
    LISTENER_FAILED = "listener_failed"

    # Sync scheduler and remote backup
    SYNC_STATUS_CHANGED = "sync_status_changed"
    BACKUP_CREATED = "backup_created"
    BACKUP_MERGED = "backup_merged"
    BACKUP_PUSHED = "backup_pushed"
    BACKUP_PULLED = "backup_pulled"
    REMOTE_FAILED = "remote_failed"

    # Auth session
    AUTH_CONNECTED = "auth_connected"
    AUTH_SIGNED_OUT = "auth_signed_out"
    AUTH_FAILED = "auth_failed"

    # Tilt interlock
    TILT_LOCKED = "tilt_locked"
    TILT_UNLOCKED = "tilt_unlocked"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.now,
        description="When the event occurred (local time)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'record', 'profile', 'backup')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one connect flow)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.record_upserted(record_id, inserted=True)
        event = AuditEventBuilder.backup_pushed(handle, record_count)
    """

    # -- ledger ---------------------------------------------------------------

    @staticmethod
    def ledger_loaded(
        record_count: int,
        has_profile: bool,
        artifact_kinds: list[str],
        failed_aggregates: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_LOADED,
            severity=AuditSeverity.WARNING if failed_aggregates else AuditSeverity.INFO,
            entity_type="ledger",
            description=f"Ledger loaded with {record_count} records",
            details={
                "record_count": record_count,
                "has_profile": has_profile,
                "artifact_kinds": artifact_kinds,
                "failed_aggregates": failed_aggregates,
            },
        )

    @staticmethod
    def ledger_replaced(origin: str, record_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_REPLACED,
            entity_type="ledger",
            description=f"Ledger replaced from {origin} with {record_count} records",
            details={
                "origin": origin,
                "record_count": record_count,
            },
        )

    @staticmethod
    def ledger_reset() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_RESET,
            severity=AuditSeverity.WARNING,
            entity_type="ledger",
            description="All local data cleared",
            is_user_action=True,
        )

    @staticmethod
    def record_upserted(record_id: str, inserted: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_UPSERTED,
            entity_type="record",
            entity_id=record_id,
            description="Record inserted" if inserted else "Record updated",
            details={"inserted": inserted},
            is_user_action=True,
        )

    @staticmethod
    def record_deleted(record_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_DELETED,
            entity_type="record",
            entity_id=record_id,
            description="Record deleted",
            is_user_action=True,
        )

    @staticmethod
    def records_imported(imported: int, skipped: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORDS_IMPORTED,
            entity_type="record",
            description=f"Imported {imported} records ({skipped} already present)",
            details={
                "imported": imported,
                "skipped": skipped,
            },
            is_user_action=True,
        )

    @staticmethod
    def profile_replaced(name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROFILE_REPLACED,
            entity_type="profile",
            description=f"Profile replaced: {name}",
            details={"name": name},
            is_user_action=True,
        )

    @staticmethod
    def artifact_written(kind: str, date_key: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ARTIFACT_WRITTEN,
            entity_type="artifact",
            entity_id=kind,
            description=f"Session artifact {kind} written for {date_key}",
            details={"date": date_key},
        )

    @staticmethod
    def artifact_cleared(kind: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ARTIFACT_CLEARED,
            entity_type="artifact",
            entity_id=kind,
            description=f"Session artifact {kind} cleared",
        )

    @staticmethod
    def local_persistence_failed(key: str, operation: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOCAL_PERSISTENCE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="aggregate",
            entity_id=key,
            description=f"Local storage {operation} failed for {key}",
            error_code="LOCAL_PERSISTENCE_FAILURE",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def listener_failed(listener: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LISTENER_FAILED,
            severity=AuditSeverity.ERROR,
            description=f"Change listener failed: {listener}",
            error_message=error_message,
            details={"listener": listener},
        )

    # -- sync -----------------------------------------------------------------

    @staticmethod
    def sync_status_changed(
        previous: str,
        current: str,
        message: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_STATUS_CHANGED,
            severity=AuditSeverity.WARNING if current == "ERROR" else AuditSeverity.DEBUG,
            entity_type="sync",
            description=f"Sync status {previous} -> {current}",
            details={
                "previous": previous,
                "current": current,
                "message": message,
            },
        )

    @staticmethod
    def backup_created(handle: str, record_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_CREATED,
            entity_type="backup",
            entity_id=handle,
            description=f"Remote backup created with {record_count} records",
            details={"record_count": record_count},
        )

    @staticmethod
    def backup_merged(
        handle: str,
        remote_count: int,
        local_count: int,
        merged_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_MERGED,
            entity_type="backup",
            entity_id=handle,
            description=(
                f"Merged remote ({remote_count}) and local ({local_count}) "
                f"into {merged_count} records"
            ),
            details={
                "remote_count": remote_count,
                "local_count": local_count,
                "merged_count": merged_count,
            },
        )

    @staticmethod
    def backup_pushed(handle: str, record_count: int, manual: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_PUSHED,
            entity_type="backup",
            entity_id=handle,
            description=f"Backup pushed with {record_count} records",
            details={
                "record_count": record_count,
                "manual": manual,
            },
            is_user_action=manual,
        )

    @staticmethod
    def backup_pulled(handle: str, record_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_PULLED,
            entity_type="backup",
            entity_id=handle,
            description=f"Backup pulled with {record_count} records",
            details={"record_count": record_count},
            is_user_action=True,
        )

    @staticmethod
    def remote_failed(
        operation: str,
        error_message: str,
        error_code: str,
        handle: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMOTE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="backup",
            entity_id=handle,
            description=f"Remote {operation} failed",
            error_code=error_code,
            error_message=error_message,
            details={"operation": operation},
        )

    # -- auth -----------------------------------------------------------------

    @staticmethod
    def auth_connected(email: str, correlation_id: Optional[UUID] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTH_CONNECTED,
            entity_type="identity",
            entity_id=email or None,
            correlation_id=correlation_id,
            description="Signed in to the backup provider",
            is_user_action=True,
        )

    @staticmethod
    def auth_signed_out() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTH_SIGNED_OUT,
            entity_type="identity",
            description="Signed out",
            is_user_action=True,
        )

    @staticmethod
    def auth_failed(
        kind: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        # An abandoned login is routine, not an error
        severity = AuditSeverity.INFO if kind == "popup_closed" else AuditSeverity.WARNING
        return AuditEvent(
            event_type=AuditEventType.AUTH_FAILED,
            severity=severity,
            entity_type="identity",
            correlation_id=correlation_id,
            description=f"Sign-in failed: {kind}",
            error_code=kind.upper(),
            error_message=error_message,
        )

    # -- tilt -----------------------------------------------------------------

    @staticmethod
    def tilt_locked(
        day_key: str,
        seconds: int,
        record_ids: list[str],
        gap_minutes: float,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TILT_LOCKED,
            severity=AuditSeverity.WARNING,
            entity_type="tilt",
            entity_id=day_key,
            description=(
                f"Two losses {gap_minutes:.0f} minutes apart, "
                f"new records locked for {seconds}s"
            ),
            details={
                "record_ids": record_ids,
                "gap_minutes": gap_minutes,
                "seconds": seconds,
            },
        )

    @staticmethod
    def tilt_unlocked(day_key: Optional[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TILT_UNLOCKED,
            entity_type="tilt",
            entity_id=day_key,
            description="Tilt cooldown finished",
        )
