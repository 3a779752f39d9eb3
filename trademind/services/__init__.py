"""Services package."""

from trademind.services.google import (
    GoogleClient,
    GoogleDriveDocumentProvider,
    GoogleIdentityProvider,
)
from trademind.services.storage import (
    IdentityProvider,
    InMemoryKeyValueStorage,
    KeyValueStorage,
    LocalPersistenceError,
    RemoteAuthError,
    RemoteDocumentProvider,
    RemoteEmptyError,
    RemoteError,
    RemoteNotFoundError,
    RemoteTransientError,
    SQLiteKeyValueStorage,
    StorageError,
)

__all__ = [
    # Google services
    "GoogleClient",
    "GoogleDriveDocumentProvider",
    "GoogleIdentityProvider",
    # Storage interfaces
    "IdentityProvider",
    "KeyValueStorage",
    "RemoteDocumentProvider",
    # Storage implementations
    "InMemoryKeyValueStorage",
    "SQLiteKeyValueStorage",
    # Exceptions
    "LocalPersistenceError",
    "RemoteAuthError",
    "RemoteEmptyError",
    "RemoteError",
    "RemoteNotFoundError",
    "RemoteTransientError",
    "StorageError",
]
