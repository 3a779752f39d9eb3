"""
Data Models Package

This package contains all Pydantic models used by the TradeMind engine.
Everything persisted locally or sent to the backup conforms to these schemas.
"""

from trademind.models.records import (
    BACKUP_FORMAT_VERSION,
    ArtifactKind,
    BackupDocument,
    ExecutionType,
    OptionType,
    ProfileDocument,
    RecordOutcome,
    SessionArtifact,
    StrategyLink,
    StrategyRule,
    StrategyStep,
    SystemChecks,
    TradeDirection,
    TradeNote,
    TradeRecord,
    default_profile,
    today_key,
)
from trademind.models.sync import (
    AuthErrorKind,
    AuthSession,
    SyncSession,
    SyncStatus,
    SyncStatusEvent,
    TiltLock,
    UserIdentity,
)
from trademind.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "BACKUP_FORMAT_VERSION",
    "ArtifactKind",
    "BackupDocument",
    "ExecutionType",
    "OptionType",
    "ProfileDocument",
    "RecordOutcome",
    "SessionArtifact",
    "StrategyLink",
    "StrategyRule",
    "StrategyStep",
    "SystemChecks",
    "TradeDirection",
    "TradeNote",
    "TradeRecord",
    "default_profile",
    "today_key",
    # Sync models
    "AuthErrorKind",
    "AuthSession",
    "SyncSession",
    "SyncStatus",
    "SyncStatusEvent",
    "TiltLock",
    "UserIdentity",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
