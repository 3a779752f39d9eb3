"""
Auth Session Manager

Owns the sign-in lifecycle with the identity provider and is the ONE
place where provider error shapes are normalized.

DESIGN DECISION: Providers fail with heterogeneous signals (OAuth error
codes, dicts from a token callback, RefreshError messages, plain
exceptions). `classify_auth_error` maps all of them onto the closed
AuthErrorKind set before anything reaches the scheduler, so the core
never inspects provider-specific shapes.

Classification feeds user-facing messaging only. It never changes which
state the scheduler moves to beyond the OFFLINE (popup closed) versus
ERROR split.

Sign-in attempts carry a generation number. sign_out() bumps the
generation, so a login that completes after the user signed out is
discarded instead of resurrecting the session.
"""

import json
from typing import Any, Callable, Optional

from pydantic import ValidationError

from trademind.audit import AuditLogger, create_correlation_id, get_audit_logger
from trademind.models.audit import AuditEventBuilder
from trademind.models.sync import AuthErrorKind, AuthSession, UserIdentity
from trademind.services.storage.interface import (
    IdentityProvider,
    KeyValueStorage,
    LocalPersistenceError,
    RemoteAuthError,
)


IDENTITY_KEY = "userProfile"


# =============================================================================
# Exceptions
# =============================================================================

class AuthFlowError(Exception):
    """A sign-in attempt failed; `kind` is the normalized classification."""

    def __init__(self, kind: AuthErrorKind, raw_message: str = ""):
        self.kind = kind
        self.raw_message = raw_message
        super().__init__(user_message(kind, raw_message))


class LoginCancelledError(Exception):
    """A sign-in attempt was superseded by sign-out before it completed."""
    pass


# =============================================================================
# Error classification
# =============================================================================

# Ordered: the first matching marker wins
_MARKERS: list[tuple[AuthErrorKind, tuple[str, ...]]] = [
    (AuthErrorKind.POPUP_CLOSED, (
        "popup_closed",
        "popup_closed_by_user",
        "popup_failed_to_open",
        "user_cancelled",
        "user cancelled",
        "cancelled by user",
    )),
    (AuthErrorKind.ORIGIN_MISMATCH, (
        "origin_mismatch",
        "idpiframe_initialization_failed",
        "redirect_uri_mismatch",
        "not a valid origin",
    )),
    (AuthErrorKind.INVALID_CLIENT, (
        "invalid_client",
        "unauthorized_client",
        "deleted_client",
        "client not initialized",
        "different oauth client",
    )),
    (AuthErrorKind.ACCESS_DENIED, (
        "access_denied",
        "invalid_grant",
        "admin_policy_enforced",
        "org_internal",
        "insufficient",
        "consent",
    )),
]


def _signal_text(signal: Any) -> str:
    """Flatten an error signal into lowercase searchable text."""
    if signal is None:
        return ""
    if isinstance(signal, str):
        return signal.lower()
    if isinstance(signal, dict):
        parts = [
            str(signal.get(key, ""))
            for key in ("error", "type", "error_description", "details", "message")
        ]
        return " ".join(parts).lower()
    if isinstance(signal, BaseException):
        parts = [type(signal).__name__, str(signal)]
        parts.extend(str(arg) for arg in signal.args)
        return " ".join(parts).lower()
    return str(signal).lower()


def raw_message_of(signal: Any) -> str:
    """Best human-readable message carried by an error signal."""
    if isinstance(signal, dict):
        return str(
            signal.get("error_description")
            or signal.get("details")
            or signal.get("message")
            or signal.get("error")
            or signal.get("type")
            or ""
        )
    if signal is None:
        return ""
    return str(signal)


def classify_auth_error(signal: Any) -> AuthErrorKind:
    """
    Map a provider error signal from the sign-in flow to an AuthErrorKind.

    Accepts OAuth error codes, callback dicts ({"error": ..., "type": ...})
    and exceptions. Never returns SESSION_EXPIRED: expiry is only ever
    detected from a failed remote call.
    """
    text = _signal_text(signal)
    for kind, markers in _MARKERS:
        if any(marker in text for marker in markers):
            return kind
    return AuthErrorKind.UNKNOWN


def classify_remote_failure(error: BaseException) -> Optional[AuthErrorKind]:
    """SESSION_EXPIRED for a remote call rejected for auth reasons, else None."""
    if isinstance(error, RemoteAuthError):
        return AuthErrorKind.SESSION_EXPIRED
    return None


_MESSAGES = {
    AuthErrorKind.ORIGIN_MISMATCH: (
        "This app's origin is not authorized for the OAuth client. Add it to "
        "the authorized origins in the Google Cloud Console."
    ),
    AuthErrorKind.ACCESS_DENIED: (
        "Access denied. Make sure your account is allowed to use this app "
        "and that you granted Drive access."
    ),
    AuthErrorKind.POPUP_CLOSED: "Sign-in was cancelled.",
    AuthErrorKind.INVALID_CLIENT: (
        "The OAuth client id is invalid. Check the client id in your settings."
    ),
    AuthErrorKind.SESSION_EXPIRED: (
        "Your Google session has expired. Please sign in again to resume backups."
    ),
}


def user_message(kind: AuthErrorKind, raw_message: str = "") -> str:
    """User-facing text for a classified failure; UNKNOWN passes the raw message through."""
    if kind == AuthErrorKind.UNKNOWN:
        return raw_message or "Authentication failed."
    return _MESSAGES[kind]


# =============================================================================
# Session manager
# =============================================================================

class AuthSessionManager:
    """
    Sign-in lifecycle on top of an IdentityProvider.

    The signed-in identity is persisted under IDENTITY_KEY so the engine
    can reconnect silently on the next start.
    """

    def __init__(
        self,
        provider: IdentityProvider,
        storage: KeyValueStorage,
        key_prefix: str = "tradeMind_",
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._provider = provider
        self._storage = storage
        self._identity_key = f"{key_prefix}{IDENTITY_KEY}"
        self._audit = audit_logger or get_audit_logger()
        self._session: Optional[AuthSession] = None
        self._generation = 0
        self._ready = False

    @property
    def session(self) -> Optional[AuthSession]:
        return self._session

    @property
    def is_connected(self) -> bool:
        return self._session is not None and self._session.valid

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def generation(self) -> int:
        return self._generation

    def initialize(
        self,
        client_credential: str,
        ready_callback: Optional[Callable[[bool], None]] = None,
    ) -> None:
        """Initialize the provider; readiness is reported, never raised."""

        def on_ready(ready: bool) -> None:
            self._ready = ready
            if ready_callback is not None:
                ready_callback(ready)

        self._provider.initialize(client_credential, on_ready)

    async def connect(self) -> UserIdentity:
        """
        Sign in and return the identity.

        Raises:
            AuthFlowError: Login failed (classified)
            LoginCancelledError: sign_out() happened while logging in
        """
        generation = self._generation
        correlation_id = create_correlation_id()

        if not self._ready:
            raw = "Google client not initialized. Check the OAuth client id."
            self._audit.log(AuditEventBuilder.auth_failed(
                AuthErrorKind.INVALID_CLIENT.value, raw, correlation_id
            ))
            raise AuthFlowError(AuthErrorKind.INVALID_CLIENT, raw)

        try:
            await self._provider.login()
        except Exception as e:
            if generation != self._generation:
                raise LoginCancelledError("sign-in superseded by sign-out") from e
            kind = classify_auth_error(e)
            raw = raw_message_of(e)
            self._audit.log(AuditEventBuilder.auth_failed(kind.value, raw, correlation_id))
            raise AuthFlowError(kind, raw) from e

        identity = await self._provider.get_profile()
        if generation != self._generation:
            raise LoginCancelledError("sign-in superseded by sign-out")

        if identity is None:
            # Profile lookup is cosmetic; fall back to what we remembered
            identity = self.remembered_identity() or UserIdentity()

        self._session = AuthSession(identity=identity)
        self._remember(identity)
        self._audit.log(AuditEventBuilder.auth_connected(identity.email, correlation_id))
        return identity

    def invalidate(self) -> None:
        """Mark the session invalid after the provider rejected a remote call."""
        if self._session is not None:
            self._session = self._session.model_copy(update={"valid": False})

    def sign_out(self) -> None:
        """Clear identity, forget the stored profile, cancel pending sign-ins."""
        self._generation += 1
        self._session = None
        self._provider.sign_out()
        try:
            self._storage.delete(self._identity_key)
        except LocalPersistenceError as e:
            self._audit.log(AuditEventBuilder.local_persistence_failed(
                self._identity_key, "delete", str(e)
            ))
        self._audit.log(AuditEventBuilder.auth_signed_out())

    def remembered_identity(self) -> Optional[UserIdentity]:
        """Identity persisted by the last successful sign-in, if any."""
        try:
            raw = self._storage.get(self._identity_key)
        except LocalPersistenceError as e:
            self._audit.log(AuditEventBuilder.local_persistence_failed(
                self._identity_key, "read", str(e)
            ))
            return None
        if not raw:
            return None
        try:
            return UserIdentity.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            self._audit.log(AuditEventBuilder.local_persistence_failed(
                self._identity_key, "parse", str(e)
            ))
            return None

    def _remember(self, identity: UserIdentity) -> None:
        try:
            self._storage.set(self._identity_key, identity.model_dump_json())
        except LocalPersistenceError as e:
            self._audit.log(AuditEventBuilder.local_persistence_failed(
                self._identity_key, "write", str(e)
            ))
