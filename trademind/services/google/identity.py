"""
Google Identity Provider

Signs the user in with stored Google OAuth credentials and fetches the
profile shown in the account panel.

Provider errors are NOT translated here. They are raised as-is and
classified by the Auth Session Manager, which is the single boundary
where provider-specific shapes are normalized.
"""

import asyncio
from typing import Callable, Optional

import structlog

from trademind.services.google.client import USERINFO_URL, GoogleClient
from trademind.services.storage.interface import IdentityProvider
from trademind.models.sync import UserIdentity


logger = structlog.get_logger(__name__)


class GoogleIdentityProvider(IdentityProvider):
    """Identity provider backed by google-auth credentials."""

    def __init__(self, client: Optional[GoogleClient] = None):
        self._client = client or GoogleClient()
        self._client_credential: Optional[str] = None

    def initialize(
        self,
        client_credential: str,
        ready_callback: Callable[[bool], None],
    ) -> None:
        """
        Check that credentials load and belong to the configured client.

        Readiness is reported through `ready_callback` rather than raised,
        so a misconfigured machine still runs fully offline.
        """
        if not client_credential:
            logger.warning("identity_init_skipped", reason="no OAuth client id")
            ready_callback(False)
            return

        self._client_credential = client_credential
        try:
            loaded_client_id = self._client.client_id()
        except (OSError, ValueError) as e:
            logger.error("identity_init_failed", error=str(e))
            ready_callback(False)
            return

        if loaded_client_id and loaded_client_id != client_credential:
            logger.error(
                "identity_init_failed",
                error="credentials were issued for a different OAuth client",
                expected=client_credential[:12] + "...",
            )
            ready_callback(False)
            return

        logger.info("identity_initialized", client_id=client_credential[:12] + "...")
        ready_callback(True)

    async def login(self) -> str:
        return await asyncio.to_thread(self._client.refresh)

    async def get_profile(self) -> Optional[UserIdentity]:
        try:
            return await asyncio.to_thread(self._fetch_profile)
        except Exception as e:
            logger.warning("profile_fetch_failed", error=str(e))
            return None

    def _fetch_profile(self) -> UserIdentity:
        creds = self._client.load_credentials()
        service_email = getattr(creds, "service_account_email", None)
        if service_email:
            # Service accounts have no userinfo profile
            return UserIdentity(name=service_email.split("@")[0], email=service_email)

        info = self._client.request_json("GET", USERINFO_URL, operation="fetch profile")
        return UserIdentity(
            name=info.get("name", ""),
            email=info.get("email", ""),
            picture=info.get("picture"),
        )

    def sign_out(self) -> None:
        self._client.reset()
