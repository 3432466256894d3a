"""Duplicate lot detection and weighted-average consolidation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import AbstractSet, Iterable, List, Optional, Sequence, Tuple

from .models import ZERO, Lineage, Operation, Position
from .validation import DEFAULT_EPSILON, is_valid

logger = logging.getLogger(__name__)


class ConsolidationStatus(Enum):
    """Outcome of a consolidation request."""
    CONSOLIDATED = "consolidated"
    NO_OP = "no_op"


@dataclass(frozen=True)
class ConsolidationResult:
    """Result of consolidating one instrument's buy lots.

    Attributes:
        status: CONSOLIDATED when a synthetic lot was built, NO_OP otherwise
        instrument_key: Instrument the request was about
        operation: The synthetic lot replacing the merged ones
        replaced: The buy lots the synthetic lot replaces
        message: Human-readable description of the outcome
    """
    status: ConsolidationStatus
    instrument_key: str
    operation: Optional[Operation] = None
    replaced: Tuple[Operation, ...] = ()
    message: str = ""

    @property
    def is_noop(self) -> bool:
        return self.status is ConsolidationStatus.NO_OP

    @property
    def replaced_ids(self) -> frozenset:
        return frozenset(op.id for op in self.replaced)


@dataclass(frozen=True)
class LotSummary:
    """Totals of an instrument's buy lots, as shown before merging them."""
    instrument_key: str
    lots: Tuple[Operation, ...]
    total_quantity: Decimal
    total_value: Decimal
    total_fees: Decimal
    average_price: Decimal
    first_purchase: datetime
    last_purchase: datetime


def find_consolidatable(positions: Iterable[Position]) -> List[str]:
    """Instrument keys holding more than one buy lot.

    Sell-only and single-lot instruments are left out.
    """
    return [p.instrument_key for p in positions if p.buy_lot_count > 1]


def _buy_lots(instrument_key: str, operations: Iterable[Operation], epsilon: Decimal) -> List[Operation]:
    return [
        op for op in operations
        if op.instrument_key == instrument_key and op.is_buy and is_valid(op, epsilon)
    ]


def summarize_lots(
    instrument_key: str, operations: Iterable[Operation], epsilon: Decimal = DEFAULT_EPSILON
) -> Optional[LotSummary]:
    """Summarize the valid buy lots of an instrument, or None if it has none."""
    lots = _buy_lots(instrument_key, operations, epsilon)
    if not lots:
        return None

    total_quantity = sum((op.quantity for op in lots), ZERO)
    total_value = sum((op.total_value for op in lots), ZERO)
    total_fees = sum((op.fees for op in lots), ZERO)
    dates = [op.date for op in lots]
    return LotSummary(
        instrument_key=instrument_key,
        lots=tuple(lots),
        total_quantity=total_quantity,
        total_value=total_value,
        total_fees=total_fees,
        average_price=total_value / total_quantity,
        first_purchase=min(dates),
        last_purchase=max(dates),
    )


def consolidate(
    instrument_key: str, operations: Iterable[Operation], epsilon: Decimal = DEFAULT_EPSILON
) -> ConsolidationResult:
    """Merge an instrument's buy lots into a single weighted-average lot.

    The merged lot keeps the summed quantity and the summed total value, so
    share count and invested capital are conserved. Its unit price is the
    total value divided by the quantity, and fees stay folded into the total
    (the fee sum is kept in the lineage). Sells are never touched.

    Args:
        instrument_key: Instrument whose lots are merged
        operations: Full ledger, or any superset of the instrument's lots
        epsilon: Tolerance used to skip invalid lots

    Returns:
        ConsolidationResult with the synthetic lot, or a NO_OP result when
        fewer than two lots exist
    """
    summary = summarize_lots(instrument_key, operations, epsilon)
    if summary is None or len(summary.lots) < 2:
        count = 0 if summary is None else len(summary.lots)
        return ConsolidationResult(
            status=ConsolidationStatus.NO_OP,
            instrument_key=instrument_key,
            message=f"Nothing to consolidate for {instrument_key}: {count} buy lot(s)",
        )

    latest = max(summary.lots, key=lambda op: op.date)
    merged = Operation(
        instrument_key=instrument_key,
        operation_type="buy",
        quantity=summary.total_quantity,
        unit_price=summary.average_price,
        asset_type=latest.asset_type,
        fees=ZERO,
        date=summary.last_purchase,
        total_value=summary.total_value,
        name=latest.name,
        lineage=Lineage(
            first_purchase=summary.first_purchase,
            last_purchase=summary.last_purchase,
            source_ids=tuple(op.id for op in summary.lots),
            total_fees=summary.total_fees,
        ),
    )
    logger.info(
        f"Consolidated {len(summary.lots)} lots of {instrument_key} into "
        f"{merged.quantity} @ {merged.unit_price}"
    )
    return ConsolidationResult(
        status=ConsolidationStatus.CONSOLIDATED,
        instrument_key=instrument_key,
        operation=merged,
        replaced=summary.lots,
        message=f"Merged {len(summary.lots)} lots of {instrument_key}",
    )


def replace_buy_lots(
    operations: Sequence[Operation],
    instrument_key: str,
    new_ops: Sequence[Operation],
    replaced_ids: Optional[AbstractSet[str]] = None,
) -> List[Operation]:
    """Build a new ledger with an instrument's buy lots swapped for new_ops.

    The new operations take the slot of the first removed lot, so the ledger
    keeps its order otherwise. When replaced_ids is given only those lots are
    removed; otherwise every buy lot of the instrument is.
    """
    def removed(op: Operation) -> bool:
        if op.instrument_key != instrument_key or not op.is_buy:
            return False
        return replaced_ids is None or op.id in replaced_ids

    result: List[Operation] = []
    inserted = False
    for op in operations:
        if removed(op):
            if not inserted:
                result.extend(new_ops)
                inserted = True
            continue
        result.append(op)
    if not inserted:
        result.extend(new_ops)
    return result
