"""Exception types raised by the investment engine."""

from __future__ import annotations


class InvestEngineError(Exception):
    """Base class for all engine errors."""


class ValidationError(InvestEngineError, ValueError):
    """Raised when a single ledger operation fails validation.

    Attributes:
        rule: Short identifier of the rule that failed (e.g. "quantity")
        operation_id: Identifier of the offending operation, if known
    """

    def __init__(self, message: str, rule: str = "", operation_id: str | None = None) -> None:
        super().__init__(message)
        self.rule = rule
        self.operation_id = operation_id


class ConfigurationError(InvestEngineError, ValueError):
    """Raised when targets or engine settings cannot be parsed."""


class InsufficientHoldingsError(InvestEngineError):
    """Raised when a sale asks for more units than the position holds."""


class LedgerStoreError(InvestEngineError):
    """Raised when the ledger store cannot read or commit operations."""
