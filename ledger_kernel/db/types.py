"""
Module: ledger_kernel.db.types
Responsibility: Annotated column type aliases and the monetary rounding
    helpers shared by models, domain and services.
Architecture position: Kernel > DB.  MUST NOT import from models/, domain/,
    services/ or selectors/.

Invariants enforced:
    - No floats anywhere in the kernel: amounts are Decimal.
    - round_money() is the ONLY sanctioned rounding function for monetary
      values; to_money() is the only sanctioned parser.
    - BALANCE_TOLERANCE is the fixed epsilon for debit/credit equality.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import Numeric, String

# 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

ShortCode = Annotated[str, String(50)]

LongText = Annotated[str, String(500)]

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")

# Tolerance for |total_debit - total_credit|
BALANCE_TOLERANCE = Decimal("0.01")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    Preconditions: value is a Decimal.
    Postconditions: Returns value quantized with the given rounding mode.
    """
    quantum = Decimal(1).scaleb(-decimal_places)
    return value.quantize(quantum, rounding=rounding)


def to_money(value: Decimal | int | str | float | None) -> Decimal:
    """
    Parse an amount into a rounded Decimal.

    None and "" mean zero.  Floats go through str() so 0.1 stays 0.10.

    Raises:
        ValueError: If the value is not a finite number.
    """
    if value is None or value == "":
        return round_money(ZERO)
    if isinstance(value, bool):
        raise ValueError(f"Invalid money value: {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValueError(f"Invalid money value: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid money value: {value!r}")
    return round_money(amount)


def is_within_tolerance(
    left: Decimal,
    right: Decimal,
    tolerance: Decimal = BALANCE_TOLERANCE,
) -> bool:
    """True iff |left - right| < tolerance."""
    return abs(left - right) < tolerance
