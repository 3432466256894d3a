"""Position aggregation: folds ledger operations into per-instrument positions."""

from __future__ import annotations

import logging
from collections import Counter
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..errors import ValidationError
from .models import ZERO, Anomaly, AnomalyKind, AssetType, Operation, Position
from .validation import DEFAULT_EPSILON, validate_operation

logger = logging.getLogger(__name__)


def aggregate(
    operations: Iterable[Operation], epsilon: Decimal = DEFAULT_EPSILON
) -> Tuple[List[Position], List[Anomaly]]:
    """Fold operations into one position per instrument.

    Invalid operations are skipped and reported as anomalies; they never
    block the rest of the batch. Oversold instruments are still returned
    but flagged.

    Args:
        operations: Ledger entries in ledger order
        epsilon: Tolerance used when validating stored totals

    Returns:
        Tuple of (positions sorted by instrument key, anomalies)
    """
    groups: Dict[str, List[Operation]] = {}
    anomalies: List[Anomaly] = []

    for op in operations:
        try:
            validate_operation(op, epsilon)
        except ValidationError as e:
            logger.warning(f"Skipping operation {op.id} for '{op.instrument_key}': {e}")
            anomalies.append(Anomaly(
                kind=AnomalyKind.VALIDATION_ERROR,
                instrument_key=op.instrument_key,
                message=str(e),
                operation_id=op.id,
            ))
            continue
        groups.setdefault(op.instrument_key, []).append(op)

    positions: List[Position] = []
    for key in sorted(groups):
        position, problems = _fold(key, groups[key])
        positions.append(position)
        anomalies.extend(problems)

    return positions, anomalies


def _dominant_asset_type(ops: Sequence[Operation]) -> AssetType:
    """Most frequent asset type; ties go to the earlier enum member."""
    counts = Counter(op.asset_type for op in ops)
    order = list(AssetType)
    return min(counts, key=lambda t: (-counts[t], order.index(t)))


def _fold(key: str, ops: Sequence[Operation]) -> Tuple[Position, List[Anomaly]]:
    total_quantity = ZERO
    total_invested = ZERO
    for op in ops:
        if op.is_buy:
            total_quantity += op.quantity
            total_invested += op.total_value
        else:
            total_quantity -= op.quantity
            total_invested -= op.total_value

    problems: List[Anomaly] = []
    asset_type = _dominant_asset_type(ops)
    mixed = sorted({op.asset_type.value for op in ops})
    if len(mixed) > 1:
        problems.append(Anomaly(
            kind=AnomalyKind.INCONSISTENT_LEDGER,
            instrument_key=key,
            message=f"Operations disagree on asset type {mixed}; using '{asset_type.value}'",
        ))

    if total_quantity < ZERO:
        logger.warning(f"Instrument '{key}' is oversold: quantity {total_quantity}")
        problems.append(Anomaly(
            kind=AnomalyKind.INCONSISTENT_LEDGER,
            instrument_key=key,
            message=f"Sells exceed buys; net quantity is {total_quantity}",
        ))

    position = Position(
        instrument_key=key,
        asset_type=asset_type,
        total_quantity=total_quantity,
        total_invested=total_invested,
        operations=tuple(ops),
    )
    return position, problems


def current_holdings(positions: Iterable[Position]) -> List[Position]:
    """Positions that still hold units (quantity > 0)."""
    return [p for p in positions if p.is_current_holding]


def find_position(positions: Iterable[Position], instrument_key: str) -> Optional[Position]:
    """Get the position for a specific instrument, if any."""
    for position in positions:
        if position.instrument_key == instrument_key:
            return position
    return None
