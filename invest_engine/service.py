"""Portfolio service wiring a ledger store to the pure engine stages."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple

from .config import EngineConfig
from .engine.aggregator import aggregate, current_holdings, find_position
from .engine.allocation import AllocationView, allocate
from .engine.analytics import (
    IPerformanceAnalytics,
    PerformanceAnalytics,
    PerformanceMetrics,
    PortfolioSummary,
    SaleResult,
    calculate_sale_result,
)
from .engine.consolidation import (
    ConsolidationResult,
    LotSummary,
    consolidate,
    find_consolidatable,
    summarize_lots,
)
from .engine.models import Anomaly, Operation, Position
from .engine.rebalancing import RebalancingPlan, TargetsLike, build_plan
from .engine.targets import AllocationTarget
from .engine.validation import validate_operation
from .errors import InsufficientHoldingsError, LedgerStoreError
from .storage.ledger import ILedgerStore

logger = logging.getLogger(__name__)

LedgerListener = Callable[[str], None]

MAX_COMMIT_ATTEMPTS = 3


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Everything derived from one ledger state."""
    operations: Tuple[Operation, ...]
    positions: Tuple[Position, ...]
    anomalies: Tuple[Anomaly, ...]
    allocation: AllocationView

    @property
    def holdings(self) -> List[Position]:
        return current_holdings(self.positions)


class PortfolioService:
    """Entry point for callers that own a ledger store.

    Derived values are cached per ledger state. The cache is dropped only by
    `invalidate()` or by a change made through this service, which also
    notifies subscribers with the affected instrument key.
    """

    def __init__(
        self,
        store: ILedgerStore,
        config: Optional[EngineConfig] = None,
        analytics: Optional[IPerformanceAnalytics] = None,
    ) -> None:
        self._store = store
        self._config = config or EngineConfig()
        self._analytics = analytics or PerformanceAnalytics()
        self._snapshot: Optional[PortfolioSnapshot] = None
        self._listeners: List[LedgerListener] = []

    @property
    def config(self) -> EngineConfig:
        return self._config

    def subscribe(self, listener: LedgerListener) -> Callable[[], None]:
        """Register a ledger-changed callback.

        Returns:
            A function that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def invalidate(self) -> None:
        """Drop the cached snapshot; the next read recomputes it."""
        self._snapshot = None

    def _ledger_changed(self, instrument_key: str) -> None:
        self.invalidate()
        for listener in list(self._listeners):
            try:
                listener(instrument_key)
            except Exception as e:
                logger.error(f"Ledger listener failed for '{instrument_key}': {e}")

    def snapshot(self) -> PortfolioSnapshot:
        """Positions, anomalies and allocation of the current ledger."""
        if self._snapshot is None:
            operations = tuple(self._store.get_operations())
            positions, anomalies = aggregate(operations, self._config.epsilon)
            self._snapshot = PortfolioSnapshot(
                operations=operations,
                positions=tuple(positions),
                anomalies=tuple(anomalies),
                allocation=allocate(positions),
            )
        return self._snapshot

    def positions(self) -> List[Position]:
        return list(self.snapshot().positions)

    def holdings(self) -> List[Position]:
        return self.snapshot().holdings

    def anomalies(self) -> List[Anomaly]:
        return list(self.snapshot().anomalies)

    def find_position(self, instrument_key: str) -> Optional[Position]:
        return find_position(self.snapshot().positions, instrument_key)

    def allocation(self, prices: Optional[Mapping[str, Decimal]] = None) -> AllocationView:
        """Allocation at cost basis, or at the given quotes."""
        if prices is None:
            return self.snapshot().allocation
        return allocate(self.snapshot().positions, prices)

    def record_operation(self, operation: Operation) -> Optional[ConsolidationResult]:
        """Append a validated operation to the ledger.

        With auto-consolidation enabled, a buy is merged into the
        instrument's existing lots right away.

        Returns:
            The consolidation result when auto-consolidation ran

        Raises:
            ValidationError: If the operation breaks a ledger rule
        """
        validate_operation(operation, self._config.epsilon)
        self._store.append_operation(operation)
        self._ledger_changed(operation.instrument_key)

        if self._config.auto_consolidate and operation.is_buy:
            return self.consolidate(operation.instrument_key)
        return None

    def duplicates(self) -> List[str]:
        """Instruments whose buy lots can be merged."""
        return find_consolidatable(self.snapshot().positions)

    def lot_summary(self, instrument_key: str) -> Optional[LotSummary]:
        return summarize_lots(instrument_key, self.snapshot().operations, self._config.epsilon)

    def consolidate(self, instrument_key: str) -> ConsolidationResult:
        """Merge an instrument's buy lots and commit the result to the store.

        The merge is recomputed if the ledger changes between reading the
        lots and committing the replacement.

        Raises:
            LedgerStoreError: If the store keeps rejecting the replacement
        """
        for _ in range(MAX_COMMIT_ATTEMPTS):
            operations = self._store.get_operations()
            result = consolidate(instrument_key, operations, self._config.epsilon)
            if result.is_noop:
                return result
            if self._store.replace_operations(instrument_key, [result.operation], result.replaced_ids):
                self._ledger_changed(instrument_key)
                return result
            logger.warning(f"Ledger changed while consolidating '{instrument_key}', retrying")
        raise LedgerStoreError(f"Could not commit consolidation of '{instrument_key}'")

    def consolidate_many(self, instrument_keys: Optional[Iterable[str]] = None) -> List[ConsolidationResult]:
        """Consolidate the given instruments, or every duplicate when None."""
        keys = list(instrument_keys) if instrument_keys is not None else self.duplicates()
        results = [self.consolidate(key) for key in keys]
        merged = sum(1 for r in results if not r.is_noop)
        logger.info(f"Consolidated {merged} of {len(results)} instrument(s)")
        return results

    def plan_rebalancing(
        self,
        targets: Optional[TargetsLike] = None,
        base_amount: Optional[Any] = None,
        prices: Optional[Mapping[str, Decimal]] = None,
    ) -> RebalancingPlan:
        """Rebalancing plan against the given (or default) targets."""
        if targets is None:
            targets = AllocationTarget.default()
        return build_plan(self.allocation(prices), targets, base_amount, self._config)

    def summary(self, prices: Optional[Mapping[str, Decimal]] = None) -> PortfolioSummary:
        return self._analytics.summarize(self.positions(), prices)

    def metrics(self) -> PerformanceMetrics:
        return self._analytics.calculate_metrics(list(self.snapshot().operations))

    def preview_sale(self, instrument_key: str, quantity, unit_price, fees=Decimal("0")) -> SaleResult:
        """Result of selling part of a holding, without touching the ledger.

        Raises:
            InsufficientHoldingsError: If the instrument is not held or
                holds fewer units
        """
        position = self.find_position(instrument_key)
        if position is None:
            raise InsufficientHoldingsError(f"No position held in {instrument_key}")
        return calculate_sale_result(position, quantity, unit_price, fees)
