"""
Sync package: sign-in, remote backup and the debounced sync scheduler.
"""

from trademind.sync.adapter import ReconcileResult, RemoteBackupAdapter, merge_backups
from trademind.sync.auth import (
    AuthFlowError,
    AuthSessionManager,
    LoginCancelledError,
    classify_auth_error,
    classify_remote_failure,
    raw_message_of,
    user_message,
)
from trademind.sync.scheduler import (
    EMPTY_BACKUP_MESSAGE,
    NOT_CONNECTED_MESSAGE,
    SYNC_FAILED_MESSAGE,
    SyncScheduler,
)
from trademind.sync.timer import SingleSlotTimer

__all__ = [
    # Adapter
    "ReconcileResult",
    "RemoteBackupAdapter",
    "merge_backups",
    # Auth
    "AuthFlowError",
    "AuthSessionManager",
    "LoginCancelledError",
    "classify_auth_error",
    "classify_remote_failure",
    "raw_message_of",
    "user_message",
    # Scheduler
    "EMPTY_BACKUP_MESSAGE",
    "NOT_CONNECTED_MESSAGE",
    "SYNC_FAILED_MESSAGE",
    "SyncScheduler",
    "SingleSlotTimer",
]
