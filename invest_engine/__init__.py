"""Investment position and rebalancing engine."""

from .config import EngineConfig
from .errors import (
    InvestEngineError,
    ValidationError,
    ConfigurationError,
    InsufficientHoldingsError,
    LedgerStoreError,
)
from .service import PortfolioService, PortfolioSnapshot

__version__ = "0.1.0"

__all__ = [
    "EngineConfig",
    "InvestEngineError",
    "ValidationError",
    "ConfigurationError",
    "InsufficientHoldingsError",
    "LedgerStoreError",
    "PortfolioService",
    "PortfolioSnapshot",
]
