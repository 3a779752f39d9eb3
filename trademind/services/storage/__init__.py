"""
Storage Services Package

Provides the abstract interfaces of every external collaborator and the
local key-value implementations. SQLite is the default local backend,
but everything above this package only sees the interfaces.
"""

from trademind.services.storage.interface import (
    IdentityProvider,
    KeyValueStorage,
    LocalPersistenceError,
    RemoteAuthError,
    RemoteDocumentProvider,
    RemoteEmptyError,
    RemoteError,
    RemoteNotFoundError,
    RemoteTransientError,
    StorageError,
)
from trademind.services.storage.local import (
    InMemoryKeyValueStorage,
    SQLiteKeyValueStorage,
)

__all__ = [
    # Interfaces
    "IdentityProvider",
    "KeyValueStorage",
    "RemoteDocumentProvider",
    # Exceptions
    "LocalPersistenceError",
    "RemoteAuthError",
    "RemoteEmptyError",
    "RemoteError",
    "RemoteNotFoundError",
    "RemoteTransientError",
    "StorageError",
    # Local implementations
    "InMemoryKeyValueStorage",
    "SQLiteKeyValueStorage",
]
