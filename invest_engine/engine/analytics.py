"""Performance analytics over positions and ledger operations."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Tuple

from ..errors import InsufficientHoldingsError, ValidationError
from .allocation import current_value
from .models import ZERO, Operation, Position, to_decimal
from .validation import is_valid

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class SaleResult:
    """Outcome of selling part of a position at its weighted average cost.

    Attributes:
        gross_value: quantity * unit_price
        net_value: Gross value minus fees
        cost_basis: Average cost of the units sold
        profit_loss: Net value minus cost basis
        remaining_quantity: Units left after the sale
    """
    gross_value: Decimal
    net_value: Decimal
    cost_basis: Decimal
    profit_loss: Decimal
    remaining_quantity: Decimal


@dataclass(frozen=True)
class PerformanceMetrics:
    """Trading activity metrics.

    Attributes:
        total_trades: Number of sells matched against holdings
        profitable_trades: Number of sells with positive PnL
        win_rate: Percentage of profitable sells (0-100)
        realized_pnl: Total realized profit/loss
        total_volume: Sum of all operation totals
    """
    total_trades: int
    profitable_trades: int
    win_rate: Decimal
    realized_pnl: Decimal
    total_volume: Decimal


@dataclass(frozen=True)
class PortfolioSummary:
    """Invested capital versus current value across all positions."""
    total_invested: Decimal
    current_value: Decimal
    profit_loss: Decimal
    profit_loss_percent: Decimal
    active_count: int
    closed_count: int

    @property
    def total_count(self) -> int:
        return self.active_count + self.closed_count


def calculate_sale_result(
    position: Position, quantity, unit_price, fees=ZERO
) -> SaleResult:
    """Preview the result of selling `quantity` units of a position.

    Raises:
        ValidationError: If quantity or price is not positive, or fees are negative
        InsufficientHoldingsError: If the position holds fewer units
    """
    quantity = to_decimal(quantity)
    unit_price = to_decimal(unit_price)
    fees = to_decimal(fees)

    if not quantity.is_finite() or quantity <= ZERO:
        raise ValidationError("Quantity must be greater than zero", rule="quantity")
    if not unit_price.is_finite() or unit_price <= ZERO:
        raise ValidationError("Unit price must be greater than zero", rule="unit_price")
    if not fees.is_finite() or fees < ZERO:
        raise ValidationError("Fees cannot be negative", rule="fees")

    average_cost = position.average_cost
    if average_cost is None or quantity > position.total_quantity:
        raise InsufficientHoldingsError(
            f"Insufficient holdings: need {quantity}, have {position.total_quantity}"
        )

    gross_value = quantity * unit_price
    net_value = gross_value - fees
    cost_basis = average_cost * quantity
    return SaleResult(
        gross_value=gross_value,
        net_value=net_value,
        cost_basis=cost_basis,
        profit_loss=net_value - cost_basis,
        remaining_quantity=position.total_quantity - quantity,
    )


class IPerformanceAnalytics(ABC):
    """Interface for performance analytics operations."""

    @abstractmethod
    def calculate_metrics(self, operations: List[Operation]) -> PerformanceMetrics:
        ...

    @abstractmethod
    def calculate_realized_pnl(self, operations: List[Operation]) -> Decimal:
        ...

    @abstractmethod
    def summarize(
        self, positions: List[Position], prices: Optional[Mapping[str, Decimal]] = None
    ) -> PortfolioSummary:
        ...


class PerformanceAnalytics(IPerformanceAnalytics):
    """Weighted-average-cost performance analytics.

    Invalid operations are ignored, matching how the aggregator skips them.
    """

    def calculate_metrics(self, operations: List[Operation]) -> PerformanceMetrics:
        """Calculate trade statistics from a ledger.

        Args:
            operations: Ledger operations in any order

        Returns:
            PerformanceMetrics with calculated values
        """
        valid = [op for op in operations if is_valid(op)]
        sell_pnls = self._calculate_per_trade_pnl(valid)
        total_trades = len(sell_pnls)
        profitable_trades = sum(1 for pnl in sell_pnls if pnl > ZERO)

        if total_trades > 0:
            win_rate = Decimal(profitable_trades) / Decimal(total_trades) * HUNDRED
        else:
            win_rate = ZERO

        return PerformanceMetrics(
            total_trades=total_trades,
            profitable_trades=profitable_trades,
            win_rate=win_rate,
            realized_pnl=sum(sell_pnls, ZERO),
            total_volume=sum((op.total_value for op in valid), ZERO),
        )

    def calculate_realized_pnl(self, operations: List[Operation]) -> Decimal:
        valid = [op for op in operations if is_valid(op)]
        return sum(self._calculate_per_trade_pnl(valid), ZERO)

    def _calculate_per_trade_pnl(self, operations: List[Operation]) -> List[Decimal]:
        """PnL of each sell that had holdings to match against, in date order."""
        # {instrument_key: (quantity, cost)}
        cost_basis: Dict[str, Tuple[Decimal, Decimal]] = {}
        sell_pnls: List[Decimal] = []

        for op in sorted(operations, key=lambda o: o.date):
            qty, cost = cost_basis.get(op.instrument_key, (ZERO, ZERO))

            if op.is_buy:
                cost_basis[op.instrument_key] = (qty + op.quantity, cost + op.total_value)
                continue

            if qty <= ZERO:
                # Sell without holdings; reported as an oversell by the aggregator
                continue

            avg_cost = cost / qty
            sell_pnls.append(op.total_value - avg_cost * op.quantity)

            remaining_qty = qty - op.quantity
            if remaining_qty > ZERO:
                cost_basis[op.instrument_key] = (remaining_qty, avg_cost * remaining_qty)
            else:
                cost_basis[op.instrument_key] = (ZERO, ZERO)

        return sell_pnls

    def summarize(
        self, positions: List[Position], prices: Optional[Mapping[str, Decimal]] = None
    ) -> PortfolioSummary:
        """Invested capital, current value and PnL of the current holdings.

        Args:
            positions: Aggregated positions
            prices: Optional quotes; unquoted holdings are valued at cost

        Returns:
            PortfolioSummary for the holdings, with closed positions counted
        """
        active = [p for p in positions if p.is_current_holding]
        total_invested = sum((p.total_cost for p in active), ZERO)
        total_value = sum((current_value(p, prices) for p in active), ZERO)
        profit_loss = total_value - total_invested
        if total_invested > ZERO:
            profit_loss_percent = profit_loss / total_invested * HUNDRED
        else:
            profit_loss_percent = ZERO

        return PortfolioSummary(
            total_invested=total_invested,
            current_value=total_value,
            profit_loss=profit_loss,
            profit_loss_percent=profit_loss_percent,
            active_count=len(active),
            closed_count=len(positions) - len(active),
        )

    def sort_operations_by_date(
        self, operations: List[Operation], descending: bool = True
    ) -> List[Operation]:
        """Sort operations by date, most recent first by default."""
        return sorted(operations, key=lambda o: o.date, reverse=descending)
