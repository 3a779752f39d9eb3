"""
Sync, Auth and Interlock State Models

Small value objects describing the engine's externally visible state.
The components own the live state; these are the snapshots they hand out.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SyncStatus(str, Enum):
    """
    Sync scheduler status.

    The machine has exactly these four states. Auth failure kinds only
    change the message shown to the user, never the state.
    """
    OFFLINE = "OFFLINE"
    SYNCING = "SYNCING"
    SYNCED = "SYNCED"
    ERROR = "ERROR"


class AuthErrorKind(str, Enum):
    """Closed classification of identity and session failures."""
    ORIGIN_MISMATCH = "origin_mismatch"
    ACCESS_DENIED = "access_denied"
    POPUP_CLOSED = "popup_closed"      # User abandoned the flow - not an error
    INVALID_CLIENT = "invalid_client"
    SESSION_EXPIRED = "session_expired"  # Only from failed remote calls
    UNKNOWN = "unknown"


class SyncSession(BaseModel):
    """Current sync status plus the remote document handle, if any."""

    status: SyncStatus = SyncStatus.OFFLINE
    remote_document_id: Optional[str] = None


class SyncStatusEvent(BaseModel):
    """Emitted to status listeners on every status change."""
    model_config = ConfigDict(frozen=True)

    status: SyncStatus
    message: Optional[str] = None
    error_kind: Optional[AuthErrorKind] = None
    occurred_at: datetime = Field(default_factory=datetime.now)


class UserIdentity(BaseModel):
    """Identity profile returned by the identity provider."""

    name: str = ""
    email: str = ""
    picture: Optional[str] = None


class AuthSession(BaseModel):
    identity: UserIdentity
    valid: bool = True
    connected_at: datetime = Field(default_factory=datetime.now)


class TiltLock(BaseModel):
    """Snapshot of the tilt interlock."""
    model_config = ConfigDict(frozen=True)

    locked: bool = False
    seconds_remaining: int = Field(default=0, ge=0)
    day_key: Optional[str] = Field(
        default=None,
        description="Calendar day of the last recorded lock (YYYY-MM-DD)"
    )
