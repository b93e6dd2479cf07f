"""
LedgerSelector -- trial balance, general ledger and financial statements.

Responsibility:
    Reconstructs balances from journal lines.  Lines count when their entry
    is POSTED or REVERSED: a reversed entry stays in history and is offset
    by its POSTED mirror.

Architecture position:
    Kernel > Selectors.  Reads models/, returns domain/reports records.

Invariants enforced:
    - Reports never read Account.current_balance.  reconcile() is the one
      method that does, to compare it with the reconstruction.
    - Sign convention: raw = debits - credits; CREDIT-normal accounts
      report -raw.
    - Sum of trial balance debit balances equals sum of credit balances
      whenever every posted entry was balanced.

Failure modes:
    - AccountNotFoundError from general_ledger() / account_balance() for an
      unknown account id.
    - Empty reports (zero rows or zero amounts) when nothing is posted.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select

from ledger_kernel.db.types import ZERO, round_money, to_money
from ledger_kernel.domain.reports import (
    BalanceSheet,
    GeneralLedger,
    GeneralLedgerLine,
    IncomeStatement,
    ReconciliationDifference,
    StatementLine,
    StatementSection,
    TrialBalanceReport,
    TrialBalanceRow,
)
from ledger_kernel.exceptions import AccountNotFoundError
from ledger_kernel.models.account import Account, AccountType, NormalBalance
from ledger_kernel.models.journal import LEDGER_STATUSES, JournalEntry, JournalLine
from ledger_kernel.selectors.base import BaseSelector

_LEDGER_STATUS_VALUES = tuple(status.value for status in LEDGER_STATUSES)


def signed_balance(normal_balance: NormalBalance | str, debit: Decimal, credit: Decimal) -> Decimal:
    """Net of debit and credit in the account's normal-balance sign."""
    raw = debit - credit
    if NormalBalance(normal_balance) == NormalBalance.CREDIT:
        return -raw
    return raw


class LedgerSelector(BaseSelector[JournalLine]):
    """
    Selector for ledger reconstruction.

    Contract:
        All amounts are Decimals rounded to money places.  Dates are
        inclusive on both ends unless stated otherwise.
    """

    def _movements(
        self,
        *,
        account_ids=None,
        date_from: date | None = None,
        date_to: date | None = None,
        before: date | None = None,
        fiscal_year: int | None = None,
        fiscal_period: int | None = None,
    ) -> dict[UUID, tuple[Decimal, Decimal]]:
        """Debit and credit totals per account over ledger lines."""
        stmt = (
            select(
                JournalLine.account_id,
                func.coalesce(func.sum(JournalLine.debit_amount), 0).label("debit_total"),
                func.coalesce(func.sum(JournalLine.credit_amount), 0).label("credit_total"),
            )
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(JournalEntry.status.in_(_LEDGER_STATUS_VALUES))
            .group_by(JournalLine.account_id)
        )
        if account_ids is not None:
            stmt = stmt.where(JournalLine.account_id.in_(list(account_ids)))
        if date_from is not None:
            stmt = stmt.where(JournalEntry.entry_date >= date_from)
        if date_to is not None:
            stmt = stmt.where(JournalEntry.entry_date <= date_to)
        if before is not None:
            stmt = stmt.where(JournalEntry.entry_date < before)
        if fiscal_year is not None:
            stmt = stmt.where(JournalEntry.fiscal_year == fiscal_year)
        if fiscal_period is not None:
            stmt = stmt.where(JournalEntry.fiscal_period == fiscal_period)

        return {
            row.account_id: (round_money(to_money(row.debit_total)), round_money(to_money(row.credit_total)))
            for row in self.session.execute(stmt)
        }

    def _account(self, account_id: UUID) -> Account:
        account = self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    # ------------------------------------------------------------------
    # Trial balance
    # ------------------------------------------------------------------

    def trial_balance(
        self,
        as_of_date: date,
        fiscal_year: int | None = None,
        fiscal_period: int | None = None,
    ) -> TrialBalanceReport:
        """
        One row per active account, ordered by code.

        Inactive accounts appear only when they carry movement, which keeps
        the report balanced even if an account was deactivated by hand.
        """
        movements = self._movements(
            date_to=as_of_date,
            fiscal_year=fiscal_year,
            fiscal_period=fiscal_period,
        )
        accounts = self.session.execute(
            select(Account)
            .where(or_(Account.is_active.is_(True), Account.id.in_(list(movements))))
            .order_by(Account.code)
        ).scalars()

        rows = []
        total_debit_balances = ZERO
        total_credit_balances = ZERO
        for account in accounts:
            debit_total, credit_total = movements.get(account.id, (ZERO, ZERO))
            row = TrialBalanceRow(
                account_id=account.id,
                account_code=account.code,
                account_name=account.name,
                account_type=AccountType(account.account_type),
                normal_balance=NormalBalance(account.normal_balance),
                debit_total=debit_total,
                credit_total=credit_total,
                balance=round_money(
                    signed_balance(account.normal_balance, debit_total, credit_total)
                ),
            )
            total_debit_balances += row.debit_balance
            total_credit_balances += row.credit_balance
            rows.append(row)

        return TrialBalanceReport(
            as_of_date=as_of_date,
            rows=tuple(rows),
            total_debit_balances=round_money(total_debit_balances),
            total_credit_balances=round_money(total_credit_balances),
            fiscal_year=fiscal_year,
            fiscal_period=fiscal_period,
        )

    # ------------------------------------------------------------------
    # Single account
    # ------------------------------------------------------------------

    def account_balance(self, account_id: UUID, as_of_date: date | None = None) -> Decimal:
        """Reconstructed balance of one account in its normal-balance sign."""
        account = self._account(account_id)
        debit, credit = self._movements(account_ids=[account.id], date_to=as_of_date).get(
            account.id, (ZERO, ZERO)
        )
        return round_money(signed_balance(account.normal_balance, debit, credit))

    def general_ledger(
        self,
        account_id: UUID,
        date_from: date | None = None,
        date_to: date | None = None,
        include_opening_balance: bool = True,
    ) -> GeneralLedger:
        """
        Chronological lines of one account with a running balance.

        The opening balance is the net movement strictly before
        ``date_from`` (zero without a ``date_from`` or when not requested).
        Lines are ordered by entry date, then voucher number, then line
        order within the entry.
        """
        account = self._account(account_id)

        opening = ZERO
        if include_opening_balance and date_from is not None:
            debit, credit = self._movements(account_ids=[account.id], before=date_from).get(
                account.id, (ZERO, ZERO)
            )
            opening = round_money(signed_balance(account.normal_balance, debit, credit))

        stmt = (
            select(
                JournalEntry.id,
                JournalEntry.entry_date,
                JournalEntry.voucher_number,
                JournalEntry.description,
                JournalLine.description.label("line_description"),
                JournalLine.debit_amount,
                JournalLine.credit_amount,
            )
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalLine.account_id == account.id,
                JournalEntry.status.in_(_LEDGER_STATUS_VALUES),
            )
            .order_by(JournalEntry.entry_date, JournalEntry.voucher_number, JournalLine.line_seq)
        )
        if date_from is not None:
            stmt = stmt.where(JournalEntry.entry_date >= date_from)
        if date_to is not None:
            stmt = stmt.where(JournalEntry.entry_date <= date_to)

        running = opening
        lines = []
        for row in self.session.execute(stmt):
            debit = round_money(to_money(row.debit_amount))
            credit = round_money(to_money(row.credit_amount))
            running = round_money(running + signed_balance(account.normal_balance, debit, credit))
            lines.append(
                GeneralLedgerLine(
                    entry_id=row.id,
                    entry_date=row.entry_date,
                    voucher_number=row.voucher_number,
                    description=row.line_description or row.description,
                    debit=debit,
                    credit=credit,
                    running_balance=running,
                )
            )

        return GeneralLedger(
            account_id=account.id,
            account_code=account.code,
            account_name=account.name,
            normal_balance=NormalBalance(account.normal_balance),
            date_from=date_from,
            date_to=date_to,
            opening_balance=opening,
            lines=tuple(lines),
            closing_balance=running,
        )

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reconcile(self) -> list[ReconciliationDifference]:
        """Accounts whose current_balance disagrees with their history."""
        movements = self._movements()
        differences = []
        for account in self.session.execute(select(Account).order_by(Account.code)).scalars():
            debit, credit = movements.get(account.id, (ZERO, ZERO))
            reconstructed = round_money(signed_balance(account.normal_balance, debit, credit))
            current = round_money(to_money(account.current_balance))
            if current != reconstructed:
                differences.append(
                    ReconciliationDifference(
                        account_id=account.id,
                        account_code=account.code,
                        current_balance=current,
                        reconstructed_balance=reconstructed,
                    )
                )
        return differences

    # ------------------------------------------------------------------
    # Financial statements
    # ------------------------------------------------------------------

    def _section(
        self,
        account_type: AccountType,
        movements: dict[UUID, tuple[Decimal, Decimal]],
    ) -> StatementSection:
        accounts = self.session.execute(
            select(Account)
            .where(Account.account_type == account_type.value)
            .order_by(Account.code)
        ).scalars()
        lines = []
        total = ZERO
        for account in accounts:
            debit, credit = movements.get(account.id, (ZERO, ZERO))
            amount = round_money(signed_balance(account.normal_balance, debit, credit))
            if amount == ZERO and not account.is_active:
                continue
            lines.append(
                StatementLine(
                    account_id=account.id,
                    account_code=account.code,
                    account_name=account.name,
                    amount=amount,
                )
            )
            total += amount
        return StatementSection(account_type=account_type, lines=tuple(lines), total=round_money(total))

    def income_statement(self, date_from: date, date_to: date) -> IncomeStatement:
        movements = self._movements(date_from=date_from, date_to=date_to)
        return IncomeStatement(
            date_from=date_from,
            date_to=date_to,
            revenue=self._section(AccountType.REVENUE, movements),
            expenses=self._section(AccountType.EXPENSE, movements),
        )

    def balance_sheet(self, as_of_date: date) -> BalanceSheet:
        """
        Assets = liabilities + equity + retained earnings, as of a date.

        Retained earnings are cumulative revenue minus expenses up to the
        date, so the sheet balances without closing entries.
        """
        movements = self._movements(date_to=as_of_date)
        revenue = self._section(AccountType.REVENUE, movements)
        expenses = self._section(AccountType.EXPENSE, movements)
        return BalanceSheet(
            as_of_date=as_of_date,
            assets=self._section(AccountType.ASSET, movements),
            liabilities=self._section(AccountType.LIABILITY, movements),
            equity=self._section(AccountType.EQUITY, movements),
            retained_earnings=round_money(revenue.total - expenses.total),
        )
