"""Rebalancing: compares current allocation to targets and suggests trades."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Literal, Mapping, Optional, Tuple, Union

from ..config import EngineConfig
from ..errors import ConfigurationError
from .allocation import AllocationView
from .models import ZERO, AssetType, to_decimal
from .targets import AllocationTarget, ConfigurationWarning

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")

Action = Literal["buy", "sell", "hold"]
Priority = Literal["high", "medium", "low"]
Scope = Literal["asset_class", "instrument"]

TargetsLike = Union[AllocationTarget, Mapping[Any, Any]]


@dataclass(frozen=True)
class RebalancingSuggestion:
    """Suggested move for one asset class or instrument.

    Attributes:
        subject: Asset class value (e.g. "stock") or instrument key
        scope: "asset_class" or "instrument"
        asset_type: Asset class the subject belongs to
        current_value: Value currently held
        target_value: Value the target allocation asks for
        target_percent: Target share of the base amount (0-100)
        action: "buy", "sell" or "hold"
        priority: "high", "medium" or "low"
        reason: Human-readable explanation
    """
    subject: str
    scope: Scope
    asset_type: AssetType
    current_value: Decimal
    target_value: Decimal
    target_percent: Decimal
    action: Action
    priority: Priority
    reason: str = ""

    @property
    def delta(self) -> Decimal:
        """Amount to buy (positive) or sell (negative) to reach the target."""
        return self.target_value - self.current_value


@dataclass(frozen=True)
class RebalancingPlan:
    """Class and instrument suggestions computed against one base amount."""
    base_amount: Decimal
    total_portfolio_value: Decimal
    targets: AllocationTarget
    allocation: AllocationView
    class_suggestions: Tuple[RebalancingSuggestion, ...] = ()
    instrument_suggestions: Tuple[RebalancingSuggestion, ...] = ()
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def warnings(self) -> Tuple[ConfigurationWarning, ...]:
        return self.targets.warnings

    @property
    def actionable(self) -> List[RebalancingSuggestion]:
        return [s for s in self.instrument_suggestions if s.action != "hold"]


def _coerce_targets(targets: TargetsLike) -> AllocationTarget:
    if isinstance(targets, AllocationTarget):
        return targets
    return AllocationTarget.from_mapping(targets)


def _resolve_base(allocation: AllocationView, base_amount: Optional[Any]) -> Decimal:
    if base_amount is None:
        return allocation.total_portfolio_value
    base = to_decimal(base_amount)
    if not base.is_finite() or base < ZERO:
        raise ConfigurationError(f"Base amount must be a non-negative number, got {base_amount!r}")
    return base


def classify(delta: Decimal, base: Decimal, config: EngineConfig) -> Tuple[Action, Priority]:
    """Pick the action and priority for a gap of `delta` on `base`.

    Gaps inside the hold band are held; zero gaps are always held.
    """
    magnitude = abs(delta)

    action: Action
    if delta == ZERO or magnitude < config.hold_band * base:
        action = "hold"
    elif delta > ZERO:
        action = "buy"
    else:
        action = "sell"

    priority: Priority
    if magnitude > config.high_priority_band * base:
        priority = "high"
    elif magnitude > config.medium_priority_band * base:
        priority = "medium"
    else:
        priority = "low"
    return action, priority


def _reason(delta: Decimal, base: Decimal) -> str:
    share = abs(delta) / base * HUNDRED if base > ZERO else ZERO
    return f"Difference of {share:.1f}% of the total portfolio"


def _suggest(
    subject: str,
    scope: Scope,
    asset_type: AssetType,
    current: Decimal,
    target_percent: Decimal,
    base: Decimal,
    config: EngineConfig,
) -> RebalancingSuggestion:
    target_value = target_percent / HUNDRED * base
    delta = target_value - current
    action, priority = classify(delta, base, config)
    return RebalancingSuggestion(
        subject=subject,
        scope=scope,
        asset_type=asset_type,
        current_value=current,
        target_value=target_value,
        target_percent=target_percent,
        action=action,
        priority=priority,
        reason=_reason(delta, base),
    )


def _by_gap(suggestions: List[RebalancingSuggestion]) -> List[RebalancingSuggestion]:
    # sorted() is stable, so equal gaps keep their enumeration order
    return sorted(suggestions, key=lambda s: abs(s.delta), reverse=True)


def rebalance(
    allocation: AllocationView,
    targets: TargetsLike,
    base_amount: Optional[Any] = None,
    config: Optional[EngineConfig] = None,
) -> List[RebalancingSuggestion]:
    """Asset-class suggestions for every class present in the targets.

    Args:
        allocation: Current allocation view
        targets: Target percentages by asset class
        base_amount: Amount the targets apply to; defaults to the total
            portfolio value ("what if I add X" when larger)
        config: Bands used for hold/priority decisions

    Returns:
        Suggestions sorted by absolute gap, largest first
    """
    config = config or EngineConfig()
    target = _coerce_targets(targets)
    base = _resolve_base(allocation, base_amount)

    suggestions = [
        _suggest(
            subject=asset_type.value,
            scope="asset_class",
            asset_type=asset_type,
            current=allocation.class_value(asset_type),
            target_percent=pct,
            base=base,
            config=config,
        )
        for asset_type, pct in target.percentages.items()
    ]
    return _by_gap(suggestions)


def rebalance_instruments(
    allocation: AllocationView,
    targets: TargetsLike,
    base_amount: Optional[Any] = None,
    config: Optional[EngineConfig] = None,
) -> List[RebalancingSuggestion]:
    """Per-instrument suggestions for every current holding.

    An asset-class target is split evenly across the class members;
    holdings whose class has no target are aimed at zero.
    """
    config = config or EngineConfig()
    target = _coerce_targets(targets)
    base = _resolve_base(allocation, base_amount)

    suggestions = []
    for holding in allocation.holdings:
        members = allocation.by_asset_type[holding.asset_type].count
        share = target.get(holding.asset_type) / Decimal(members)
        suggestions.append(_suggest(
            subject=holding.instrument_key,
            scope="instrument",
            asset_type=holding.asset_type,
            current=holding.current_value,
            target_percent=share,
            base=base,
            config=config,
        ))
    return _by_gap(suggestions)


def build_plan(
    allocation: AllocationView,
    targets: TargetsLike,
    base_amount: Optional[Any] = None,
    config: Optional[EngineConfig] = None,
) -> RebalancingPlan:
    """Bundle class and instrument suggestions into one plan."""
    target = _coerce_targets(targets)
    base = _resolve_base(allocation, base_amount)
    for warning in target.warnings:
        logger.warning(f"Rebalancing with questionable targets: {warning.message}")

    return RebalancingPlan(
        base_amount=base,
        total_portfolio_value=allocation.total_portfolio_value,
        targets=target,
        allocation=allocation,
        class_suggestions=tuple(rebalance(allocation, target, base, config)),
        instrument_suggestions=tuple(rebalance_instruments(allocation, target, base, config)),
    )


class RebalancingPlanSerializer:
    """Serializer for rebalancing plans to JSON-compatible dictionaries."""

    @staticmethod
    def _suggestion(s: RebalancingSuggestion) -> dict:
        return {
            "subject": s.subject,
            "scope": s.scope,
            "asset_type": s.asset_type.value,
            "current_value": str(s.current_value),
            "target_value": str(s.target_value),
            "target_percent": str(s.target_percent),
            "delta": str(s.delta),
            "action": s.action,
            "priority": s.priority,
            "reason": s.reason,
        }

    @staticmethod
    def serialize(plan: RebalancingPlan) -> dict:
        """Serialize a plan for export.

        Args:
            plan: Plan to serialize

        Returns:
            Dictionary with string-encoded amounts
        """
        current = {
            entry.asset_type.value: {
                "value": str(entry.value),
                "percentage": str(entry.percentage),
                "count": entry.count,
            }
            for entry in plan.allocation.asset_distribution()
        }
        return {
            "date": plan.created_at.isoformat(),
            "total_value": str(plan.total_portfolio_value),
            "rebalance_amount": str(plan.base_amount),
            "current_portfolio": current,
            "targets": plan.targets.to_dict(),
            "warnings": [
                {"code": w.code, "message": w.message, "subject": w.subject}
                for w in plan.warnings
            ],
            "asset_classes": [RebalancingPlanSerializer._suggestion(s) for s in plan.class_suggestions],
            "suggestions": [RebalancingPlanSerializer._suggestion(s) for s in plan.instrument_suggestions],
        }
