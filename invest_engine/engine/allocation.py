"""Allocation of portfolio value across instruments and asset classes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .models import ZERO, AssetType, Position, to_decimal

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class InstrumentAllocation:
    """Share of the portfolio held in one instrument."""
    instrument_key: str
    asset_type: AssetType
    current_value: Decimal
    allocation_percent: Decimal


@dataclass(frozen=True)
class AssetClassAllocation:
    """Share of the portfolio held in one asset class.

    Attributes:
        asset_type: The asset class
        value: Summed current value of the class members
        percentage: Share of the total portfolio value (0-100)
        instrument_keys: Member instruments, in allocation order
    """
    asset_type: AssetType
    value: Decimal
    percentage: Decimal
    instrument_keys: Tuple[str, ...] = ()

    @property
    def count(self) -> int:
        return len(self.instrument_keys)


@dataclass(frozen=True)
class AllocationView:
    """Point-in-time allocation of the current holdings."""
    total_portfolio_value: Decimal
    holdings: Tuple[InstrumentAllocation, ...] = ()
    by_asset_type: Mapping[AssetType, AssetClassAllocation] = field(default_factory=dict)
    ignored_quotes: Tuple[str, ...] = ()

    def class_value(self, asset_type: AssetType) -> Decimal:
        """Current value of an asset class, zero when the class is absent."""
        entry = self.by_asset_type.get(asset_type)
        return entry.value if entry else ZERO

    def members(self, asset_type: AssetType) -> List[InstrumentAllocation]:
        return [h for h in self.holdings if h.asset_type == asset_type]

    def holding(self, instrument_key: str) -> Optional[InstrumentAllocation]:
        for entry in self.holdings:
            if entry.instrument_key == instrument_key:
                return entry
        return None

    def asset_distribution(self) -> List[AssetClassAllocation]:
        """Asset classes sorted by value, largest first."""
        return sorted(self.by_asset_type.values(), key=lambda a: a.value, reverse=True)


def quoted_price(instrument_key: str, prices: Optional[Mapping[str, Decimal]]) -> Optional[Decimal]:
    """Usable quote for an instrument, or None.

    Quotes that are not numbers, not finite, or negative are ignored so the
    position falls back to cost basis.
    """
    if not prices or instrument_key not in prices:
        return None
    raw = prices[instrument_key]
    try:
        price = to_decimal(raw)
    except (InvalidOperation, TypeError, ValueError):
        price = None
    if price is None or not price.is_finite() or price < ZERO:
        logger.warning(f"Ignoring unusable quote {raw!r} for '{instrument_key}'")
        return None
    return price


def current_value(position: Position, prices: Optional[Mapping[str, Decimal]] = None) -> Decimal:
    """Value of a position at the quoted price, or at cost basis when unquoted."""
    if not position.is_current_holding:
        return ZERO
    price = quoted_price(position.instrument_key, prices)
    if price is not None:
        return position.total_quantity * price
    # Use cost basis if no current price available
    return position.total_cost


def _percent(part: Decimal, total: Decimal) -> Decimal:
    if total == ZERO:
        return ZERO
    return part / total * HUNDRED


def allocate(
    positions: Iterable[Position], prices: Optional[Mapping[str, Decimal]] = None
) -> AllocationView:
    """Compute per-instrument and per-asset-class allocation.

    Only current holdings (quantity > 0) take part.

    Args:
        positions: Aggregated positions
        prices: Optional quotes by instrument key; unquoted instruments and
            unusable quotes (not finite or negative) are valued at cost basis

    Returns:
        AllocationView with percentages summing to ~100, or all zero when
        nothing is held
    """
    valued: List[Tuple[Position, Decimal]] = []
    ignored: List[str] = []
    for p in positions:
        if not p.is_current_holding:
            continue
        price = quoted_price(p.instrument_key, prices)
        if price is None and prices and p.instrument_key in prices:
            ignored.append(p.instrument_key)
        valued.append((p, p.total_cost if price is None else p.total_quantity * price))
    total = sum((value for _, value in valued), ZERO)

    holdings = tuple(
        InstrumentAllocation(
            instrument_key=p.instrument_key,
            asset_type=p.asset_type,
            current_value=value,
            allocation_percent=_percent(value, total),
        )
        for p, value in valued
    )

    class_values: Dict[AssetType, Decimal] = {}
    class_members: Dict[AssetType, List[str]] = {}
    for entry in holdings:
        class_values[entry.asset_type] = class_values.get(entry.asset_type, ZERO) + entry.current_value
        class_members.setdefault(entry.asset_type, []).append(entry.instrument_key)

    by_asset_type = {
        asset_type: AssetClassAllocation(
            asset_type=asset_type,
            value=value,
            percentage=_percent(value, total),
            instrument_keys=tuple(class_members[asset_type]),
        )
        for asset_type, value in class_values.items()
    }

    return AllocationView(
        total_portfolio_value=total,
        holdings=holdings,
        by_asset_type=by_asset_type,
        ignored_quotes=tuple(ignored),
    )
