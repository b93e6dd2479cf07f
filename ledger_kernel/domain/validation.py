"""
Pure journal validation rules.

Responsibility:
    Normalizes requested lines, enforces the single-sided line rule,
    computes totals and the fiscal period.  No I/O; every failure is a
    ValidationError naming the offending field.

Rules:
    - debit and credit amounts are non-negative, rounded to money places.
    - exactly one side of a line is positive ("both zero" and "both
      positive" are rejected at creation, not at posting).
    - balanced iff |total_debit - total_credit| < tolerance.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Sequence

from ledger_kernel.db.types import (
    BALANCE_TOLERANCE,
    MONEY_DECIMAL_PLACES,
    ZERO,
    is_within_tolerance,
    round_money,
    to_money,
)
from ledger_kernel.domain.dtos import BalanceCheck, LineSpec
from ledger_kernel.exceptions import ValidationError

MAX_DESCRIPTION_LENGTH = 500


def _amount(value, field: str, places: int) -> Decimal:
    try:
        amount = round_money(to_money(value), places)
    except ValueError as exc:
        raise ValidationError(field=field, reason=str(exc)) from None
    if amount < ZERO:
        raise ValidationError(field=field, reason=f"Amount must not be negative, got {amount}")
    return amount


def normalize_line(
    index: int,
    line: LineSpec,
    places: int = MONEY_DECIMAL_PLACES,
) -> LineSpec:
    """
    Validate one line and return it with Decimal amounts.

    Raises:
        ValidationError: Missing account, negative amount, or not exactly
            one positive side.
    """
    prefix = f"lines[{index}]"
    if line.account_id is None:
        raise ValidationError(field=f"{prefix}.account_id", reason="Account is required")

    debit = _amount(line.debit_amount, f"{prefix}.debit_amount", places)
    credit = _amount(line.credit_amount, f"{prefix}.credit_amount", places)

    if debit > ZERO and credit > ZERO:
        raise ValidationError(
            field=prefix,
            reason="A line cannot carry both a debit and a credit amount",
        )
    if debit == ZERO and credit == ZERO:
        raise ValidationError(
            field=prefix,
            reason="A line must carry a positive debit or credit amount",
        )

    return LineSpec(
        account_id=line.account_id,
        debit_amount=debit,
        credit_amount=credit,
        description=line.description,
        department=line.department,
        project=line.project,
        cost_center=line.cost_center,
    )


def normalize_lines(
    lines: Sequence[LineSpec],
    places: int = MONEY_DECIMAL_PLACES,
) -> tuple[LineSpec, ...]:
    """Validate every line; an entry needs at least one."""
    if not lines:
        raise ValidationError(field="lines", reason="At least one line is required")
    return tuple(normalize_line(i, line, places) for i, line in enumerate(lines))


def compute_totals(
    lines: Iterable[LineSpec],
    places: int = MONEY_DECIMAL_PLACES,
) -> tuple[Decimal, Decimal]:
    """Sum of debits and sum of credits of normalized lines."""
    total_debit = ZERO
    total_credit = ZERO
    for line in lines:
        total_debit += Decimal(line.debit_amount)
        total_credit += Decimal(line.credit_amount)
    return round_money(total_debit, places), round_money(total_credit, places)


def is_balanced(
    total_debit: Decimal,
    total_credit: Decimal,
    tolerance: Decimal = BALANCE_TOLERANCE,
) -> bool:
    return is_within_tolerance(total_debit, total_credit, tolerance)


def check_balance(
    lines: Sequence[LineSpec],
    tolerance: Decimal = BALANCE_TOLERANCE,
    places: int = MONEY_DECIMAL_PLACES,
) -> BalanceCheck:
    """
    Preview totals of a set of lines.

    Amounts are parsed but the one-side rule is not applied, so a form in
    progress can still be previewed.
    """
    total_debit = ZERO
    total_credit = ZERO
    for i, line in enumerate(lines):
        total_debit += _amount(line.debit_amount, f"lines[{i}].debit_amount", places)
        total_credit += _amount(line.credit_amount, f"lines[{i}].credit_amount", places)
    difference = round_money(total_debit - total_credit, places)
    return BalanceCheck(
        total_debit=round_money(total_debit, places),
        total_credit=round_money(total_credit, places),
        difference=difference,
        is_balanced=is_balanced(total_debit, total_credit, tolerance),
    )


def fiscal_period_of(entry_date: date) -> tuple[int, int]:
    """Fiscal year and period (calendar month) of an entry date."""
    return entry_date.year, entry_date.month


def validate_description(description: str | None) -> str:
    if description is None or not description.strip():
        raise ValidationError(field="description", reason="Description is required")
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            field="description",
            reason=f"Description exceeds {MAX_DESCRIPTION_LENGTH} characters",
        )
    return description.strip()
