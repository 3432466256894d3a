"""Validation rules shared by the engine stages."""

from __future__ import annotations

from decimal import Decimal

from ..errors import ValidationError
from .models import ZERO, Operation

DEFAULT_EPSILON = Decimal("0.000001")


def approx_equal(a: Decimal, b: Decimal, epsilon: Decimal = DEFAULT_EPSILON) -> bool:
    """Check two amounts are equal within epsilon."""
    return abs(a - b) <= epsilon


def validate_operation(op: Operation, epsilon: Decimal = DEFAULT_EPSILON) -> None:
    """Check a single operation against the ledger rules.

    Args:
        op: Operation to check
        epsilon: Tolerance for the stored vs. derived total comparison

    Raises:
        ValidationError: On the first rule the operation breaks
    """
    if not op.instrument_key or not op.instrument_key.strip():
        raise ValidationError("Instrument key must not be empty", rule="instrument_key", operation_id=op.id)

    if op.operation_type not in ("buy", "sell"):
        raise ValidationError(
            f"Unknown operation type: {op.operation_type!r}", rule="operation_type", operation_id=op.id
        )

    for name in ("quantity", "unit_price", "fees", "total_value"):
        value = getattr(op, name)
        if not value.is_finite():
            raise ValidationError(f"{name} must be a finite number", rule=name, operation_id=op.id)

    if op.quantity <= ZERO:
        raise ValidationError("Quantity must be greater than zero", rule="quantity", operation_id=op.id)

    if op.unit_price <= ZERO:
        raise ValidationError("Unit price must be greater than zero", rule="unit_price", operation_id=op.id)

    if op.fees < ZERO:
        raise ValidationError("Fees cannot be negative", rule="fees", operation_id=op.id)

    if not approx_equal(op.total_value, op.derived_total, epsilon):
        raise ValidationError(
            f"Stored total {op.total_value} does not match derived total {op.derived_total}",
            rule="total_value",
            operation_id=op.id,
        )


def is_valid(op: Operation, epsilon: Decimal = DEFAULT_EPSILON) -> bool:
    try:
        validate_operation(op, epsilon)
    except ValidationError:
        return False
    return True
