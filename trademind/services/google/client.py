"""
Low-level Google API Client

Owns the OAuth credentials and the authorized HTTP session shared by the
Drive document provider and the identity provider.

DESIGN DECISION: We talk to the Drive v3 REST API through google-auth's
AuthorizedSession instead of a generated discovery client. The engine
needs four calls (list, create, get media, patch media); a thin session
keeps token refresh in google-auth and keeps every status code visible
to our own error mapping.
"""

from typing import Optional, Union

import google.auth.exceptions
import requests
from google.auth.transport.requests import AuthorizedSession, Request
from google.oauth2 import credentials as user_credentials
from google.oauth2 import service_account

from trademind.config import GoogleDriveSettings, get_settings
from trademind.services.storage.interface import (
    RemoteAuthError,
    RemoteError,
    RemoteNotFoundError,
    RemoteTransientError,
)


DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"

# 403 reasons that mean "slow down", not "you are not allowed"
_RATE_LIMIT_REASONS = ("rateLimitExceeded", "userRateLimitExceeded")

Credentials = Union[user_credentials.Credentials, service_account.Credentials]


class GoogleClient:
    """
    Google credentials and session wrapper.

    Credentials are loaded lazily from the configured file; the
    session refreshes the access token on demand.
    """

    def __init__(
        self,
        settings: Optional[GoogleDriveSettings] = None,
        timeout_seconds: float = 30.0,
    ):
        self._settings = settings or get_settings().google_drive
        self._timeout = timeout_seconds
        self._credentials: Optional[Credentials] = None
        self._session: Optional[AuthorizedSession] = None

    @property
    def settings(self) -> GoogleDriveSettings:
        return self._settings

    def load_credentials(self) -> Credentials:
        """
        Load credentials from disk.

        Raises:
            FileNotFoundError: If the credentials file is missing
            ValueError: If the file is not valid credentials JSON
        """
        if self._credentials is None:
            path = self._settings.credentials_path
            scopes = self._settings.scopes_list
            if self._settings.credentials_type == "service_account":
                self._credentials = service_account.Credentials.from_service_account_file(
                    path, scopes=scopes
                )
            else:
                self._credentials = user_credentials.Credentials.from_authorized_user_file(
                    path, scopes=scopes
                )
        return self._credentials

    def client_id(self) -> Optional[str]:
        """OAuth client id (or service account email) the credentials belong to."""
        creds = self.load_credentials()
        return (
            getattr(creds, "client_id", None)
            or getattr(creds, "service_account_email", None)
        )

    def refresh(self) -> str:
        """
        Make sure the access token is valid and return it.

        Raises:
            google.auth.exceptions.RefreshError: If the provider rejects
                the refresh (revoked consent, bad client, ...)
        """
        creds = self.load_credentials()
        if not creds.valid:
            creds.refresh(Request())
        return creds.token

    def session(self) -> AuthorizedSession:
        if self._session is None:
            self._session = AuthorizedSession(self.load_credentials())
        return self._session

    def request(self, method: str, url: str, operation: str, **kwargs) -> requests.Response:
        """
        Perform an authorized request and map failures to RemoteError.

        Only 2xx responses are returned.
        """
        kwargs.setdefault("timeout", self._timeout)
        try:
            session = self.session()
        except (OSError, ValueError) as e:
            raise RemoteAuthError(f"{operation}: credentials unavailable: {e}")

        try:
            response = session.request(method, url, **kwargs)
        except google.auth.exceptions.RefreshError as e:
            raise RemoteAuthError(f"{operation}: session refresh rejected: {e}")
        except google.auth.exceptions.TransportError as e:
            raise RemoteTransientError(f"{operation}: token endpoint unreachable: {e}")
        except requests.RequestException as e:
            raise RemoteTransientError(f"{operation}: network error: {e}")

        raise_for_status(response, operation)
        return response

    def request_json(self, method: str, url: str, operation: str, **kwargs) -> dict:
        """
        Perform an authorized request and decode a JSON object body.

        A 2xx response that is not a JSON object (a captive portal or
        proxy error page) is reported as RemoteTransientError.
        """
        response = self.request(method, url, operation, **kwargs)
        try:
            payload = response.json()
        except ValueError as e:
            raise RemoteTransientError(f"{operation}: response is not JSON: {e}")
        if not isinstance(payload, dict):
            raise RemoteTransientError(f"{operation}: expected a JSON object")
        return payload

    def reset(self) -> None:
        """Forget credentials and session (sign-out)."""
        if self._session is not None:
            self._session.close()
        self._session = None
        self._credentials = None


def raise_for_status(response: requests.Response, operation: str) -> None:
    """Translate an HTTP error status into the remote error taxonomy."""
    status = response.status_code
    if status < 400:
        return

    body = response.text[:500]
    message = f"{operation} failed: HTTP {status} - {body}"

    if status == 401:
        raise RemoteAuthError(message)
    if status == 403:
        if any(reason in body for reason in _RATE_LIMIT_REASONS):
            raise RemoteTransientError(message)
        raise RemoteAuthError(message)
    if status == 404:
        raise RemoteNotFoundError(message)
    if status == 429 or status >= 500:
        raise RemoteTransientError(message)
    raise RemoteError(message)
