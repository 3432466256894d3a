# Engine module
"""Pure position, consolidation, allocation and rebalancing stages."""

from .models import (
    AssetType,
    Operation,
    OperationType,
    Lineage,
    Position,
    Anomaly,
    AnomalyKind,
)
from .validation import validate_operation, is_valid
from .aggregator import aggregate, current_holdings, find_position
from .consolidation import (
    ConsolidationStatus,
    ConsolidationResult,
    LotSummary,
    find_consolidatable,
    summarize_lots,
    consolidate,
    replace_buy_lots,
)
from .allocation import (
    InstrumentAllocation,
    AssetClassAllocation,
    AllocationView,
    allocate,
)
from .targets import DEFAULT_TARGETS, AllocationTarget, ConfigurationWarning
from .rebalancing import (
    RebalancingSuggestion,
    RebalancingPlan,
    RebalancingPlanSerializer,
    rebalance,
    rebalance_instruments,
    build_plan,
)
from .analytics import (
    SaleResult,
    PerformanceMetrics,
    PortfolioSummary,
    IPerformanceAnalytics,
    PerformanceAnalytics,
    calculate_sale_result,
)

__all__ = [
    "AssetType",
    "Operation",
    "OperationType",
    "Lineage",
    "Position",
    "Anomaly",
    "AnomalyKind",
    "validate_operation",
    "is_valid",
    "aggregate",
    "current_holdings",
    "find_position",
    "ConsolidationStatus",
    "ConsolidationResult",
    "LotSummary",
    "find_consolidatable",
    "summarize_lots",
    "consolidate",
    "replace_buy_lots",
    "InstrumentAllocation",
    "AssetClassAllocation",
    "AllocationView",
    "allocate",
    "DEFAULT_TARGETS",
    "AllocationTarget",
    "ConfigurationWarning",
    "RebalancingSuggestion",
    "RebalancingPlan",
    "RebalancingPlanSerializer",
    "rebalance",
    "rebalance_instruments",
    "build_plan",
    "SaleResult",
    "PerformanceMetrics",
    "PortfolioSummary",
    "IPerformanceAnalytics",
    "PerformanceAnalytics",
    "calculate_sale_result",
]
