"""Ledger persistence for DRIP."""

from .store import (
    AddressRecord,
    LedgerStore,
    MemoryLedgerStore,
    RedisLedgerStore,
    create_store,
)

__all__ = [
    "AddressRecord",
    "LedgerStore",
    "MemoryLedgerStore",
    "RedisLedgerStore",
    "create_store",
]
