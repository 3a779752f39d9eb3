"""
Abstract Storage and Provider Interfaces

DESIGN DECISION: We define abstract interfaces for every external
collaborator of the engine. This allows us to:
1. Swap SQLite for another local store (or an in-memory one in tests)
2. Swap Google Drive for another remote document host
3. Keep provider-specific error shapes out of the sync core

The interfaces are intentionally small - only the operations the
engine actually needs.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

from trademind.models.sync import UserIdentity


class KeyValueStorage(ABC):
    """
    Local durable key-value storage.

    Values are serialized aggregates. Writes must be durable when the
    call returns.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """
        Read a value.

        Returns:
            The stored string, or None if the key is absent

        Raises:
            LocalPersistenceError: If the backend cannot be read
        """
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """
        Write a value, replacing any previous one.

        Raises:
            LocalPersistenceError: If the write did not complete
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key. Removing an absent key is a no-op."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove every key."""
        pass

    @abstractmethod
    def keys(self) -> list[str]:
        """List stored keys."""
        pass


class RemoteDocumentProvider(ABC):
    """
    Remote host of the single backup document.

    Handles are opaque strings chosen by the provider.
    """

    @abstractmethod
    async def find_document(self, name: str) -> Optional[str]:
        """
        Look up the backup document by name.

        Returns:
            The handle of the first matching document, None if absent

        Raises:
            RemoteError: On transport or auth failure
        """
        pass

    @abstractmethod
    async def create_document(self, name: str, content: str) -> str:
        """
        Create a new document.

        Returns:
            The handle of the created document
        """
        pass

    @abstractmethod
    async def read_document(self, handle: str) -> Optional[str]:
        """
        Read a document's content.

        Returns:
            The raw content, None or empty if the document holds nothing

        Raises:
            RemoteNotFoundError: If the handle no longer exists
            RemoteError: On transport or auth failure
        """
        pass

    @abstractmethod
    async def update_document(self, handle: str, content: str) -> None:
        """Fully replace a document's content."""
        pass


class IdentityProvider(ABC):
    """External identity/session provider."""

    @abstractmethod
    def initialize(
        self,
        client_credential: str,
        ready_callback: Callable[[bool], None],
    ) -> None:
        """Prepare the provider; `ready_callback(success)` reports readiness."""
        pass

    @abstractmethod
    async def login(self) -> str:
        """
        Run the login flow.

        Returns:
            An identity assertion (access token)

        Raises:
            Exception: Provider-specific error signal, classified by the
                Auth Session Manager
        """
        pass

    @abstractmethod
    async def get_profile(self) -> Optional[UserIdentity]:
        """Fetch the signed-in user's profile, None if unavailable."""
        pass

    def sign_out(self) -> None:
        """Drop any cached session. Optional for providers."""
        pass


# =============================================================================
# EXCEPTIONS
# =============================================================================

class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class LocalPersistenceError(StorageError):
    """Local storage could not be read or written."""
    pass


class RemoteError(StorageError):
    """Base exception for remote backup operations."""
    pass


class RemoteTransientError(RemoteError):
    """Network failure or server error - retrying later may succeed."""
    pass


class RemoteAuthError(RemoteError):
    """The session was rejected by the provider - the user must sign in again."""
    pass


class RemoteNotFoundError(RemoteError):
    """The remote document handle no longer exists."""
    pass


class RemoteEmptyError(RemoteError):
    """The remote document holds no usable content."""
    pass
