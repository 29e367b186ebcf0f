"""Numeric helpers shared across simcore."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Union

from simcore.errors import InvalidInputError

Number = Union[Decimal, int, float, str]

ZERO = Decimal("0")
ONE = Decimal("1")


def to_decimal(value: Number) -> Decimal:
    """Convert a number to Decimal.

    Floats go through ``str`` so ``0.1`` becomes ``Decimal("0.1")`` rather
    than its binary expansion.

    Raises:
        InvalidInputError: NaN or infinity.
    """
    if isinstance(value, bool):
        raise TypeError(f"Expected a number, got bool: {value!r}")
    result = value if isinstance(value, Decimal) else Decimal(str(value))
    if not result.is_finite():
        raise InvalidInputError(f"Expected a finite number, got {value!r}")
    return result


def utc_now() -> datetime:
    """Current wall-clock time in UTC."""
    return datetime.now(timezone.utc)
