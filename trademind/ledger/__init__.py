"""Ledger package: the authoritative local store and its change events."""

from trademind.ledger.events import (
    ChangeDispatcher,
    ChangeKind,
    ChangeListener,
    ChangeOrigin,
    LedgerChange,
)
from trademind.ledger.store import LedgerStore

__all__ = [
    "ChangeDispatcher",
    "ChangeKind",
    "ChangeListener",
    "ChangeOrigin",
    "LedgerChange",
    "LedgerStore",
]
