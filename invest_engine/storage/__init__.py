# Storage module
"""Persistence services for ledgers and settings."""

from invest_engine.storage.storage import IStorageService, JsonFileStorage
from invest_engine.storage.ledger import (
    ILedgerStore,
    InMemoryLedgerStore,
    JsonLedgerStore,
    LedgerSerializer,
)

__all__ = [
    "IStorageService",
    "JsonFileStorage",
    "ILedgerStore",
    "InMemoryLedgerStore",
    "JsonLedgerStore",
    "LedgerSerializer",
]
