"""Ledger stores: the source of operations the engine reads and consolidates."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import AbstractSet, Iterable, List, Optional, Sequence, Tuple

from ..config import EngineConfig
from ..engine.consolidation import replace_buy_lots
from ..engine.models import Lineage, Operation
from ..errors import LedgerStoreError
from .storage import IStorageService, JsonFileStorage

logger = logging.getLogger(__name__)


class ILedgerStore(ABC):
    """Interface for ledger storage.

    Implementations must make `replace_operations` atomic: a concurrent
    reader sees either the old lots or the replacement, never both or neither.
    """

    @abstractmethod
    def get_operations(self) -> Tuple[Operation, ...]:
        """Get a snapshot of all operations in ledger order."""
        ...

    @abstractmethod
    def append_operation(self, operation: Operation) -> None:
        ...

    @abstractmethod
    def replace_operations(
        self,
        instrument_key: str,
        new_ops: Sequence[Operation],
        replaced_ids: Optional[AbstractSet[str]] = None,
    ) -> bool:
        """Swap an instrument's buy lots for new_ops in one step.

        Args:
            instrument_key: Instrument whose lots are replaced
            new_ops: Operations taking the place of the removed lots
            replaced_ids: Lots expected to be replaced; when given and any of
                them is no longer in the ledger, nothing changes

        Returns:
            True if the ledger was updated, False if it changed underneath
        """
        ...


class InMemoryLedgerStore(ILedgerStore):
    """Lock-protected in-memory ledger.

    The ledger is held as an immutable tuple that is swapped wholesale, so
    readers never need the lock.
    """

    def __init__(self, operations: Iterable[Operation] = ()) -> None:
        self._operations: Tuple[Operation, ...] = tuple(operations)
        self._lock = threading.Lock()

    def get_operations(self) -> Tuple[Operation, ...]:
        return self._operations

    def append_operation(self, operation: Operation) -> None:
        with self._lock:
            self._commit(self._operations + (operation,))

    def replace_operations(
        self,
        instrument_key: str,
        new_ops: Sequence[Operation],
        replaced_ids: Optional[AbstractSet[str]] = None,
    ) -> bool:
        with self._lock:
            current = self._operations
            if replaced_ids is not None:
                present = {
                    op.id for op in current
                    if op.instrument_key == instrument_key and op.is_buy
                }
                missing = set(replaced_ids) - present
                if missing:
                    logger.warning(
                        f"Replacement for '{instrument_key}' rejected; "
                        f"{len(missing)} lot(s) no longer in the ledger"
                    )
                    return False
            updated = replace_buy_lots(current, instrument_key, new_ops, replaced_ids)
            self._commit(tuple(updated))
            return True

    def _commit(self, operations: Tuple[Operation, ...]) -> None:
        """Publish a new ledger state. Called with the lock held."""
        self._operations = operations


class JsonLedgerStore(InMemoryLedgerStore):
    """Ledger persisted as one JSON document in an IStorageService.

    Each change is written to storage before it becomes visible in memory;
    a failed write leaves both untouched.
    """

    def __init__(self, storage: IStorageService, key: str = "ledger") -> None:
        self._storage = storage
        self._key = key
        data = storage.load(key)
        operations: List[Operation] = []
        if data is not None:
            try:
                operations = LedgerSerializer.deserialize(data)
            except (KeyError, TypeError, ValueError, InvalidOperation) as e:
                raise LedgerStoreError(f"Ledger '{key}' cannot be read: {e}") from e
            logger.info(f"Ledger '{key}' restored with {len(operations)} operations")
        super().__init__(operations)

    @classmethod
    def from_config(cls, config: EngineConfig, key: str = "ledger") -> "JsonLedgerStore":
        """Open the ledger kept in the configured data directory."""
        return cls(JsonFileStorage(config.data_dir), key)

    def _commit(self, operations: Tuple[Operation, ...]) -> None:
        try:
            self._storage.save(self._key, LedgerSerializer.serialize(operations))
        except (TypeError, OSError) as e:
            raise LedgerStoreError(f"Failed to save ledger '{self._key}': {e}") from e
        super()._commit(operations)


class LedgerSerializer:
    """Serializer for ledgers to/from JSON-compatible dictionaries."""

    @staticmethod
    def serialize_operation(op: Operation) -> dict:
        data = {
            "id": op.id,
            "instrument_key": op.instrument_key,
            "operation_type": op.operation_type,
            "asset_type": op.asset_type.value,
            "quantity": str(op.quantity),
            "unit_price": str(op.unit_price),
            "fees": str(op.fees),
            "total_value": str(op.total_value),
            "date": op.date.isoformat(),
            "name": op.name,
        }
        if op.lineage is not None:
            data["lineage"] = {
                "first_purchase": op.lineage.first_purchase.isoformat(),
                "last_purchase": op.lineage.last_purchase.isoformat(),
                "source_ids": list(op.lineage.source_ids),
                "total_fees": str(op.lineage.total_fees),
            }
        return data

    @staticmethod
    def serialize(operations: Iterable[Operation]) -> dict:
        return {
            "operations": [LedgerSerializer.serialize_operation(op) for op in operations],
            "saved_at": datetime.now().isoformat(),
        }

    @staticmethod
    def deserialize(data: dict) -> List[Operation]:
        """Restore operations from a serialized ledger.

        Raises:
            ValidationError: If an entry cannot be parsed
        """
        operations = []
        for entry in data.get("operations", []):
            op = Operation.from_dict(entry)
            lineage = entry.get("lineage")
            if lineage:
                op = replace(op, lineage=Lineage(
                    first_purchase=datetime.fromisoformat(lineage["first_purchase"]),
                    last_purchase=datetime.fromisoformat(lineage["last_purchase"]),
                    source_ids=tuple(lineage.get("source_ids", ())),
                    total_fees=Decimal(lineage.get("total_fees", "0")),
                ))
            operations.append(op)
        return operations
