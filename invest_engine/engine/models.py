"""Data models for the investment position engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Literal, Mapping, Optional, Tuple
import uuid

from ..errors import ValidationError

ZERO = Decimal("0")

OperationType = Literal["buy", "sell"]


class AssetType(Enum):
    """Closed set of asset classes an instrument can belong to."""
    STOCK = "stock"
    FII = "fii"
    TREASURY = "treasury"
    CDB = "cdb"
    CRYPTO = "crypto"
    FUND = "fund"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Any) -> "AssetType":
        """Resolve an enum member from a member or its string value.

        Raises:
            ValueError: If the value names no known asset class
        """
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


def to_decimal(value: Any) -> Decimal:
    """Coerce ints, floats and strings to Decimal without float artifacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("booleans are not numeric amounts")
    return Decimal(str(value))


@dataclass(frozen=True)
class Lineage:
    """Audit trail of a synthetic lot produced by consolidation.

    Attributes:
        first_purchase: Date of the earliest merged lot
        last_purchase: Date of the latest merged lot
        source_ids: Identifiers of the merged lots, in ledger order
        total_fees: Sum of the fees paid on the merged lots
    """
    first_purchase: datetime
    last_purchase: datetime
    source_ids: Tuple[str, ...]
    total_fees: Decimal = ZERO

    @property
    def lot_count(self) -> int:
        return len(self.source_ids)


@dataclass(frozen=True)
class Operation:
    """One immutable ledger entry (a buy lot or a sale).

    Attributes:
        instrument_key: Ticker, or name when the instrument has no ticker
        operation_type: "buy" or "sell"
        quantity: Units traded
        unit_price: Price per unit
        asset_type: Asset class of the instrument
        fees: Brokerage fees paid on the operation
        date: When the operation happened
        total_value: Stored total; derived from the other fields when omitted
        name: Display name of the instrument
        id: Unique operation identifier (UUID)
        lineage: Set only on lots created by consolidation
    """
    instrument_key: str
    operation_type: OperationType
    quantity: Decimal
    unit_price: Decimal
    asset_type: AssetType = AssetType.OTHER
    fees: Decimal = ZERO
    date: datetime = field(default_factory=datetime.now)
    total_value: Optional[Decimal] = None
    name: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    lineage: Optional[Lineage] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "quantity", to_decimal(self.quantity))
        object.__setattr__(self, "unit_price", to_decimal(self.unit_price))
        object.__setattr__(self, "fees", to_decimal(self.fees))
        if self.total_value is None:
            object.__setattr__(self, "total_value", self.derived_total)
        else:
            object.__setattr__(self, "total_value", to_decimal(self.total_value))

    @property
    def is_buy(self) -> bool:
        return self.operation_type == "buy"

    @property
    def derived_total(self) -> Decimal:
        """Total recomputed from quantity, price and fees.

        Buys add fees to the cost; sells subtract them from the proceeds.
        """
        if not all(v.is_finite() for v in (self.quantity, self.unit_price, self.fees)):
            return Decimal("NaN")
        gross = self.quantity * self.unit_price
        if self.is_buy:
            return gross + self.fees
        return gross - self.fees

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Operation":
        """Build an operation from a loosely typed mapping.

        Accepts both snake_case keys and the camelCase keys used by the
        dashboard's exported ledgers.

        Raises:
            ValidationError: If a field is missing or cannot be parsed
        """
        def pick(*names: str, default: Any = None) -> Any:
            for name in names:
                if name in data and data[name] is not None:
                    return data[name]
            return default

        op_id = pick("id", default=None)
        try:
            operation_type = str(pick("operation_type", "operationType", "operation", default="")).lower()
            if operation_type not in ("buy", "sell"):
                raise ValidationError(
                    f"Unknown operation type: {operation_type!r}", rule="operation_type", operation_id=op_id
                )
            date_value = pick("date", default=None)
            if isinstance(date_value, str):
                date_value = datetime.fromisoformat(date_value)
            total = pick("total_value", "totalValue", default=None)
            kwargs: dict = {
                "instrument_key": str(pick("instrument_key", "instrumentKey", "ticker", "name", default="")).strip(),
                "operation_type": operation_type,
                "quantity": to_decimal(pick("quantity", default="0")),
                "unit_price": to_decimal(pick("unit_price", "unitPrice", "price", default="0")),
                "asset_type": AssetType.parse(pick("asset_type", "assetType", "type", default="other")),
                "fees": to_decimal(pick("fees", default="0")),
                "total_value": to_decimal(total) if total is not None else None,
                "name": str(pick("name", default="")),
            }
            if date_value is not None:
                kwargs["date"] = date_value
            if op_id is not None:
                kwargs["id"] = str(op_id)
        except ValidationError:
            raise
        except (InvalidOperation, TypeError, ValueError) as e:
            raise ValidationError(f"Malformed operation: {e}", rule="parse", operation_id=op_id) from e
        return cls(**kwargs)


@dataclass(frozen=True)
class Position:
    """Net holding of one instrument derived from its operations.

    Attributes:
        instrument_key: Instrument identity
        asset_type: Asset class of the instrument
        total_quantity: Bought minus sold units (negative on oversell)
        total_invested: Buy totals minus sell totals
        operations: Contributing operations in ledger order
    """
    instrument_key: str
    asset_type: AssetType
    total_quantity: Decimal
    total_invested: Decimal
    operations: Tuple[Operation, ...] = ()

    @property
    def average_cost(self) -> Optional[Decimal]:
        """Weighted average cost, or None when nothing is held."""
        if self.total_quantity <= ZERO:
            return None
        return self.total_invested / self.total_quantity

    @property
    def is_current_holding(self) -> bool:
        return self.total_quantity > ZERO

    @property
    def total_cost(self) -> Decimal:
        """Cost basis of the units still held (zero when nothing is held).

        Equals quantity * average_cost, taken from the invested total so no
        division rounding creeps in.
        """
        if not self.is_current_holding:
            return ZERO
        return self.total_invested

    @property
    def buy_lot_count(self) -> int:
        return sum(1 for op in self.operations if op.is_buy)

    @property
    def first_purchase(self) -> Optional[datetime]:
        dates = [op.date for op in self.operations if op.is_buy]
        return min(dates) if dates else None

    @property
    def last_purchase(self) -> Optional[datetime]:
        dates = [op.date for op in self.operations if op.is_buy]
        return max(dates) if dates else None


class AnomalyKind(Enum):
    """Kind of problem found while aggregating a ledger."""
    VALIDATION_ERROR = "validation_error"
    INCONSISTENT_LEDGER = "inconsistent_ledger"


@dataclass(frozen=True)
class Anomaly:
    """A recovered, non-fatal problem reported next to aggregation results."""
    kind: AnomalyKind
    instrument_key: str
    message: str
    operation_id: Optional[str] = None
