"""
Voucher types and voucher number formatting.

A voucher number identifies a journal entry to humans:

    {PREFIX}-{sequence:03d}/{MM}-{YY}        e.g.  JV-001/09-25

The sequence restarts every calendar month and is independent per voucher
type.  Label and prefix live on the enum so numbering and reporting share a
single table.
"""

from datetime import date
from enum import Enum

from ledger_kernel.exceptions import ValidationError


class VoucherType(str, Enum):
    """Kinds of journal vouchers, each with a display label and number prefix."""

    JOURNAL = ("JOURNAL", "General Journal Entry", "JV")
    CASH_RECEIPT = ("CASH_RECEIPT", "Cash Receipt Voucher", "CR")
    CASH_PAYMENT = ("CASH_PAYMENT", "Cash Payment Voucher", "CP")
    BANK_RECEIPT = ("BANK_RECEIPT", "Bank Receipt Voucher", "BR")
    BANK_PAYMENT = ("BANK_PAYMENT", "Bank Payment Voucher", "BP")
    PURCHASE = ("PURCHASE", "Purchase Voucher", "PV")
    SALES = ("SALES", "Sales Voucher", "SV")
    ADJUSTMENT = ("ADJUSTMENT", "Adjustment Entry", "AJ")
    OPENING = ("OPENING", "Opening Balance Entry", "OB")
    CLOSING = ("CLOSING", "Closing Entry", "CB")

    def __new__(cls, value: str, label: str, prefix: str):
        member = str.__new__(cls, value)
        member._value_ = value
        member.label = label
        member.prefix = prefix
        return member

    @classmethod
    def parse(cls, value: "VoucherType | str") -> "VoucherType":
        """
        Resolve a voucher type from its value (case-insensitive).

        Raises:
            ValidationError: If the value is not a known voucher type.
        """
        if isinstance(value, VoucherType):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValidationError(
                field="voucher_type",
                reason=f"Unknown voucher type {value!r}",
            ) from None


def period_key(on_date: date) -> str:
    """Numbering period of a date: ``YYYY-MM``."""
    return f"{on_date.year:04d}-{on_date.month:02d}"


def month_bounds(on_date: date) -> tuple[date, date]:
    """First day of the date's month and first day of the next month."""
    start = on_date.replace(day=1)
    if start.month == 12:
        return start, date(start.year + 1, 1, 1)
    return start, date(start.year, start.month + 1, 1)


def format_voucher_number(voucher_type: VoucherType, sequence: int, on_date: date) -> str:
    """Render ``{PREFIX}-{seq:03d}/{MM}-{YY}``."""
    return f"{voucher_type.prefix}-{sequence:03d}/{on_date.month:02d}-{on_date.year % 100:02d}"
