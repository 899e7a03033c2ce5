"""
Module: transformation_kernel.db.types
Responsibility: Annotated column type aliases and the rounding helpers every
    model, engine and service uses for quantities and money.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and the engines.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats.  Quantities and amounts are Decimal stored as Numeric(38, 9).
    - round_money() / round_quantity() are the only sanctioned rounding
      functions; both use ROUND_HALF_UP.
    - Quantities carry at most QUANTITY_DECIMAL_PLACES decimals; see
      decimal_places().
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import Numeric, String

# Quantities and amounts: 38 digits total, 9 decimal places
Quantity = Annotated[Decimal, Numeric(38, 9)]
Money = Annotated[Decimal, Numeric(38, 9)]

# Short identifier strings (codes, statuses)
ShortCode = Annotated[str, String(50)]

# Free text
LongText = Annotated[str, String(4000)]


MONEY_DECIMAL_PLACES = 2
QUANTITY_DECIMAL_PLACES = 9
RATE_DECIMAL_PLACES = 9
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def quantum(places: int) -> Decimal:
    """Return the Decimal quantum for ``places`` decimal places (2 -> 0.01)."""
    return Decimal(1).scaleb(-places)


def round_money(value: Decimal, places: int = MONEY_DECIMAL_PLACES) -> Decimal:
    """Round a monetary amount with ROUND_HALF_UP."""
    return value.quantize(quantum(places), rounding=DEFAULT_ROUNDING)


def round_quantity(value: Decimal, places: int = QUANTITY_DECIMAL_PLACES) -> Decimal:
    """Round a quantity with ROUND_HALF_UP."""
    return value.quantize(quantum(places), rounding=DEFAULT_ROUNDING)


def to_decimal(value) -> Decimal:
    """
    Coerce int/str/Decimal input to Decimal.

    Floats are converted through ``str`` so that 0.1 becomes Decimal("0.1")
    rather than its binary expansion.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def decimal_places(value: Decimal) -> int:
    """Significant decimal places of ``value``; trailing zeros do not count."""
    exponent = value.normalize().as_tuple().exponent
    return max(0, -exponent)
