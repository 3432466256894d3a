"""Target allocation configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Tuple

from ..errors import ConfigurationError
from .models import ZERO, AssetType, to_decimal

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")

DEFAULT_TARGETS: Dict[str, int] = {
    "stock": 60,
    "fii": 20,
    "treasury": 15,
    "crypto": 5,
}


@dataclass(frozen=True)
class ConfigurationWarning:
    """Non-fatal problem found in a target configuration.

    Attributes:
        code: "unknown_asset_type" or "unbalanced_total"
        message: Human-readable description
        subject: Offending key, when the warning is about one entry
    """
    code: str
    message: str
    subject: str = ""


@dataclass(frozen=True)
class AllocationTarget:
    """Validated mapping of asset class to target percentage (0-100).

    The percentages are not required to sum to 100; an unbalanced map is
    kept as-is and reported through `warnings`.
    """
    percentages: Mapping[AssetType, Decimal] = field(default_factory=dict)
    warnings: Tuple[ConfigurationWarning, ...] = ()

    @classmethod
    def from_mapping(cls, raw: Mapping[Any, Any]) -> "AllocationTarget":
        """Validate a user-edited target map.

        Unknown asset classes are dropped with a warning. Percentages must be
        numbers between 0 and 100.

        Raises:
            ConfigurationError: If a percentage is not a number in 0-100
        """
        percentages: Dict[AssetType, Decimal] = {}
        warnings = []

        for key, value in raw.items():
            try:
                asset_type = AssetType.parse(key)
            except ValueError:
                logger.warning(f"Ignoring target for unknown asset class '{key}'")
                warnings.append(ConfigurationWarning(
                    code="unknown_asset_type",
                    message=f"Unknown asset class '{key}' ignored",
                    subject=str(key),
                ))
                continue

            try:
                pct = to_decimal(value)
            except (InvalidOperation, TypeError, ValueError) as e:
                raise ConfigurationError(f"Target for '{key}' is not a number: {value!r}") from e
            if not pct.is_finite() or pct < ZERO or pct > HUNDRED:
                raise ConfigurationError(f"Target for '{key}' must be between 0 and 100, got {value!r}")
            percentages[asset_type] = pct

        target = cls(percentages=percentages, warnings=tuple(warnings))
        return target._with_balance_warning()

    @classmethod
    def default(cls) -> "AllocationTarget":
        return cls.from_mapping(DEFAULT_TARGETS)

    def with_overrides(self, overrides: Mapping[Any, Any]) -> "AllocationTarget":
        """Return a new target with custom percentages layered on top."""
        merged: Dict[Any, Any] = {k.value: v for k, v in self.percentages.items()}
        for key, value in overrides.items():
            merged[key.value if isinstance(key, AssetType) else key] = value
        return AllocationTarget.from_mapping(merged)

    @property
    def total_percentage(self) -> Decimal:
        return sum(self.percentages.values(), ZERO)

    def is_balanced(self, epsilon: Decimal = Decimal("0.01")) -> bool:
        return abs(self.total_percentage - HUNDRED) <= epsilon

    def get(self, asset_type: AssetType) -> Decimal:
        """Target percentage for an asset class, zero when not configured."""
        return self.percentages.get(asset_type, ZERO)

    def to_dict(self) -> Dict[str, str]:
        return {k.value: str(v) for k, v in self.percentages.items()}

    def _with_balance_warning(self) -> "AllocationTarget":
        if self.is_balanced():
            return self
        logger.warning(f"Target allocation sums to {self.total_percentage}%, not 100%")
        warning = ConfigurationWarning(
            code="unbalanced_total",
            message=f"Targets sum to {self.total_percentage}% instead of 100%",
        )
        return AllocationTarget(percentages=self.percentages, warnings=self.warnings + (warning,))
