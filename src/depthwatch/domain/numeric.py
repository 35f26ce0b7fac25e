"""Exact base-10 arithmetic helpers for prices and sizes.

Every price and size is converted to Decimal exactly once, at the wire
boundary. Floats go through str() first so 0.1 becomes Decimal("0.1") rather
than its binary expansion.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Any

from depthwatch.core.errors import ValidationError

ZERO = Decimal("0")
ONE = Decimal("1")
TWO = Decimal("2")
HUNDRED = Decimal("100")


def to_decimal(value: Any, field: str = "value") -> Decimal:
    """Convert a wire value (str, int, float, Decimal) to Decimal.

    Args:
        value: Raw value from a JSON payload.
        field: Name used in the error message.

    Returns:
        The exact Decimal value.

    Raises:
        ValidationError: If the value is not a finite number.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} is not numeric: {value!r}")
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation as e:
            raise ValidationError(f"{field} is not numeric: {value!r}", cause=e) from e
    else:
        raise ValidationError(f"{field} has unsupported type {type(value).__name__}")

    if not result.is_finite():
        raise ValidationError(f"{field} is not finite: {value!r}")
    return result


def round_half_up(value: Decimal, digits: int) -> Decimal:
    """Round to `digits` decimal places, ties away from zero.

    The working precision is widened to fit the result, so large prices
    round instead of raising InvalidOperation.
    """
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, value.adjusted() + digits + 2)
        return value.quantize(Decimal(1).scaleb(-digits), rounding=ROUND_HALF_UP)


def percent(part: Decimal, whole: Decimal) -> Decimal:
    """part / whole * 100, or zero when whole is zero."""
    if whole == 0:
        return ZERO
    return part / whole * HUNDRED
