"""
Shared fixtures and fakes.

No real Google calls in tests: the remote side is an in-memory document
provider and a scriptable identity provider. Debounce timing is driven
by FakeTimer, which only fires when a test tells it to.
"""

import asyncio
import inspect
from datetime import date, datetime
from typing import Any, Callable, Optional
from unittest.mock import Mock

import pytest

from trademind.audit import AuditLogger
from trademind.config import SyncSettings, TiltSettings
from trademind.ledger import LedgerStore
from trademind.models.records import RecordOutcome, TradeRecord
from trademind.models.sync import UserIdentity
from trademind.services.storage import (
    IdentityProvider,
    InMemoryKeyValueStorage,
    RemoteDocumentProvider,
    RemoteNotFoundError,
)
from trademind.sync import AuthSessionManager, RemoteBackupAdapter, SyncScheduler
from trademind.tilt import TiltInterlock


# =============================================================================
# Fakes
# =============================================================================

class FakeTimer:
    """Single-slot timer that fires only when the test calls fire()."""

    def __init__(self):
        self.callback: Optional[Callable[[], Any]] = None
        self.delay: Optional[float] = None
        self.schedule_count = 0
        self.cancel_count = 0

    @property
    def pending(self) -> bool:
        return self.callback is not None

    def schedule(self, delay: float, callback: Callable[[], Any]) -> None:
        self.cancel()
        self.delay = delay
        self.callback = callback
        self.schedule_count += 1

    def cancel(self) -> None:
        if self.callback is not None:
            self.cancel_count += 1
        self.callback = None

    async def fire(self) -> None:
        callback, self.callback = self.callback, None
        assert callback is not None, "no callback scheduled"
        result = callback()
        if inspect.isawaitable(result):
            await result

    async def wait(self) -> None:
        return None


class InMemoryDocumentProvider(RemoteDocumentProvider):
    """Remote documents kept in a dict; failures can be injected per call."""

    def __init__(self):
        self.documents: dict[str, str] = {}
        self.names: dict[str, str] = {}
        self.updates: list[tuple[str, str]] = []
        self.fail_find: Optional[Exception] = None
        self.fail_read: Optional[Exception] = None
        self.fail_update: list[Exception] = []
        self.update_gate: Optional[asyncio.Event] = None

    def seed(self, name: str, content: str, handle: str = "doc-1") -> str:
        self.names[name] = handle
        self.documents[handle] = content
        return handle

    async def find_document(self, name: str) -> Optional[str]:
        if self.fail_find:
            raise self.fail_find
        return self.names.get(name)

    async def create_document(self, name: str, content: str) -> str:
        handle = f"doc-{len(self.documents) + 1}"
        self.names[name] = handle
        self.documents[handle] = content
        return handle

    async def read_document(self, handle: str) -> Optional[str]:
        if self.fail_read:
            raise self.fail_read
        if handle not in self.documents:
            raise RemoteNotFoundError(f"no document {handle}")
        return self.documents[handle]

    async def update_document(self, handle: str, content: str) -> None:
        if self.update_gate is not None:
            await self.update_gate.wait()
        if self.fail_update:
            raise self.fail_update.pop(0)
        self.updates.append((handle, content))
        self.documents[handle] = content


class FakeIdentityProvider(IdentityProvider):
    """Identity provider whose login outcome is set by the test."""

    def __init__(self, identity: Optional[UserIdentity] = None):
        self.identity = identity or UserIdentity(
            name="Asha", email="asha@example.com", picture=None
        )
        self.login_error: Optional[Any] = None
        self.login_gate: Optional[asyncio.Event] = None
        self.signed_out = 0
        self.ready = True

    def initialize(self, client_credential, ready_callback) -> None:
        ready_callback(self.ready and bool(client_credential))

    async def login(self) -> str:
        if self.login_gate is not None:
            await self.login_gate.wait()
        if self.login_error is not None:
            raise self.login_error
        return "token"

    async def get_profile(self) -> Optional[UserIdentity]:
        return self.identity

    def sign_out(self) -> None:
        self.signed_out += 1


# =============================================================================
# Helpers
# =============================================================================

def make_record(
    record_id: str,
    exit_time: Optional[str] = "10:00",
    outcome: RecordOutcome = RecordOutcome.WIN,
    record_date: str = "2024-03-04",
    **fields: Any,
) -> TradeRecord:
    return TradeRecord(
        id=record_id,
        date=record_date,
        entry_time="09:15",
        exit_time=exit_time,
        outcome=outcome,
        **fields,
    )


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def audit_logger():
    return Mock(spec=AuditLogger)


@pytest.fixture
def storage():
    return InMemoryKeyValueStorage()


@pytest.fixture
def store(storage, audit_logger):
    return LedgerStore(storage, audit_logger=audit_logger, today=lambda: date(2024, 3, 4))


@pytest.fixture
def provider():
    return InMemoryDocumentProvider()


@pytest.fixture
def identity_provider():
    return FakeIdentityProvider()


@pytest.fixture
def auth(identity_provider, storage, audit_logger):
    manager = AuthSessionManager(identity_provider, storage, audit_logger=audit_logger)
    manager.initialize("client-123.apps.googleusercontent.com")
    return manager


@pytest.fixture
def adapter(provider, audit_logger):
    return RemoteBackupAdapter(provider, settings=SyncSettings(), audit_logger=audit_logger)


@pytest.fixture
def timer():
    return FakeTimer()


@pytest.fixture
def scheduler(store, auth, adapter, timer, audit_logger):
    sync = SyncScheduler(
        store,
        auth,
        adapter,
        settings=SyncSettings(debounce_seconds=5.0),
        timer=timer,
        audit_logger=audit_logger,
    )
    store.subscribe(sync.on_ledger_change)
    return sync


@pytest.fixture
def clock():
    """Mutable local clock for the tilt interlock."""
    now = {"value": datetime(2024, 3, 4, 10, 0)}

    def read() -> datetime:
        return now["value"]

    read.now = now
    return read


@pytest.fixture
def interlock(clock, audit_logger):
    return TiltInterlock(TiltSettings(), clock=clock, timer=FakeTimer(), audit_logger=audit_logger)
