"""Engine settings."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path

from .errors import ConfigurationError
from .util.env import env_bool, env_decimal, env_str


@dataclass(frozen=True)
class EngineConfig:
    """Tunable thresholds of the engine.

    Attributes:
        epsilon: Tolerance for amount comparisons
        hold_band: Fraction of the base amount under which a gap is held
        high_priority_band: Fraction of the base amount above which a gap is high priority
        medium_priority_band: Fraction of the base amount above which a gap is medium priority
        auto_consolidate: Merge buy lots right after a new buy is recorded
        data_dir: Directory used by the JSON ledger store
    """
    epsilon: Decimal = Decimal("0.000001")
    hold_band: Decimal = Decimal("0.02")
    high_priority_band: Decimal = Decimal("0.10")
    medium_priority_band: Decimal = Decimal("0.05")
    auto_consolidate: bool = False
    data_dir: Path = Path("data")

    def __post_init__(self) -> None:
        if self.medium_priority_band > self.high_priority_band:
            raise ConfigurationError("medium_priority_band must not exceed high_priority_band")

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from INVEST_ENGINE_* environment variables.

        Unset variables keep their defaults.

        Raises:
            ConfigurationError: If a variable holds a malformed value
        """
        defaults = cls()
        return cls(
            epsilon=env_decimal("EPSILON", defaults.epsilon),
            hold_band=env_decimal("HOLD_BAND", defaults.hold_band),
            high_priority_band=env_decimal("HIGH_PRIORITY_BAND", defaults.high_priority_band),
            medium_priority_band=env_decimal("MEDIUM_PRIORITY_BAND", defaults.medium_priority_band),
            auto_consolidate=env_bool("AUTO_CONSOLIDATE", defaults.auto_consolidate),
            data_dir=Path(env_str("DATA_DIR") or defaults.data_dir),
        )
