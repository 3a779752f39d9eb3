"""Google Drive backup and identity services."""

from trademind.services.google.client import GoogleClient, raise_for_status
from trademind.services.google.drive import GoogleDriveDocumentProvider
from trademind.services.google.identity import GoogleIdentityProvider

__all__ = [
    "GoogleClient",
    "GoogleDriveDocumentProvider",
    "GoogleIdentityProvider",
    "raise_for_status",
]
