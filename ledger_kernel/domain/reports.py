"""
Report records produced by LedgerSelector.

All figures are reconstructions from posted journal lines; none of them is
read from Account.current_balance (reconcile() is the one place the two are
compared).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from ledger_kernel.models.account import AccountType, NormalBalance


@dataclass(frozen=True)
class TrialBalanceRow:
    """
    One account's line in the trial balance.

    ``balance`` is in the account's normal-balance sign: positive means the
    account sits on its normal side.
    """

    account_id: UUID
    account_code: str
    account_name: str
    account_type: AccountType
    normal_balance: NormalBalance
    debit_total: Decimal
    credit_total: Decimal
    balance: Decimal

    @property
    def debit_balance(self) -> Decimal:
        """Net balance when it falls on the debit side, else zero."""
        net = self.debit_total - self.credit_total
        return net if net > 0 else Decimal("0.00")

    @property
    def credit_balance(self) -> Decimal:
        net = self.credit_total - self.debit_total
        return net if net > 0 else Decimal("0.00")


@dataclass(frozen=True)
class TrialBalanceReport:
    as_of_date: date
    rows: tuple[TrialBalanceRow, ...]
    total_debit_balances: Decimal
    total_credit_balances: Decimal
    fiscal_year: int | None = None
    fiscal_period: int | None = None

    @property
    def is_balanced(self) -> bool:
        return abs(self.total_debit_balances - self.total_credit_balances) < Decimal("0.01")

    def row_for(self, account_code: str) -> TrialBalanceRow | None:
        for row in self.rows:
            if row.account_code == account_code:
                return row
        return None


@dataclass(frozen=True)
class GeneralLedgerLine:
    entry_id: UUID
    entry_date: date
    voucher_number: str
    description: str
    debit: Decimal
    credit: Decimal
    running_balance: Decimal


@dataclass(frozen=True)
class GeneralLedger:
    account_id: UUID
    account_code: str
    account_name: str
    normal_balance: NormalBalance
    date_from: date | None
    date_to: date | None
    opening_balance: Decimal
    lines: tuple[GeneralLedgerLine, ...]
    closing_balance: Decimal

    @property
    def total_debit(self) -> Decimal:
        return sum((line.debit for line in self.lines), Decimal("0.00"))

    @property
    def total_credit(self) -> Decimal:
        return sum((line.credit for line in self.lines), Decimal("0.00"))


@dataclass(frozen=True)
class ReconciliationDifference:
    """An account whose running balance disagrees with its history."""

    account_id: UUID
    account_code: str
    current_balance: Decimal
    reconstructed_balance: Decimal

    @property
    def difference(self) -> Decimal:
        return self.current_balance - self.reconstructed_balance


@dataclass(frozen=True)
class StatementLine:
    account_id: UUID
    account_code: str
    account_name: str
    amount: Decimal


@dataclass(frozen=True)
class StatementSection:
    account_type: AccountType
    lines: tuple[StatementLine, ...]
    total: Decimal


@dataclass(frozen=True)
class IncomeStatement:
    date_from: date
    date_to: date
    revenue: StatementSection
    expenses: StatementSection

    @property
    def net_income(self) -> Decimal:
        return self.revenue.total - self.expenses.total


@dataclass(frozen=True)
class BalanceSheet:
    """
    Assets, liabilities and equity as of a date.

    ``retained_earnings`` is the cumulative revenue minus expenses not yet
    closed into equity, so the equation holds without closing entries.
    """

    as_of_date: date
    assets: StatementSection
    liabilities: StatementSection
    equity: StatementSection
    retained_earnings: Decimal

    @property
    def total_liabilities_and_equity(self) -> Decimal:
        return self.liabilities.total + self.equity.total + self.retained_earnings

    @property
    def is_balanced(self) -> bool:
        return abs(self.assets.total - self.total_liabilities_and_equity) < Decimal("0.01")
