"""
Module: expense_kernel.db.types
Responsibility: Annotated type aliases and utility functions for monetary
    column types.  Centralizes precision and parsing so that every model and
    service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats for money.  Amounts are Decimal, parsed from strings.
    - round_money() is the only sanctioned rounding function.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Any

from sqlalchemy import Numeric, String

# Monetary amount with high precision
# 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Short identifier strings (opaque ids, status codes, roles)
ShortCode = Annotated[str, String(64)]

# Human-readable names
Name = Annotated[str, String(200)]

# Long text for descriptions and audit details
LongText = Annotated[str, String(4000)]


MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


def to_money(value: Any) -> Decimal:
    """
    Coerce a user- or file-supplied amount into a Decimal.

    Floats are converted through ``str()`` so that ``500.01`` stays
    ``Decimal("500.01")`` rather than its binary expansion.

    Raises:
        ValueError: If the value cannot be interpreted as a number.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary amount: {value!r}")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation as exc:
            raise ValueError(f"Not a monetary amount: {value!r}") from exc
    raise ValueError(f"Not a monetary amount: {value!r}")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the specified decimal places.

    Preconditions: value is a Decimal.
    Postconditions: Returns value quantized using the rounding mode.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)
