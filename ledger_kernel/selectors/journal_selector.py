"""
JournalSelector -- read-only access to journal entries.

Responsibility:
    Lookup by id or voucher number, filtered listings with paging, the
    entries touching an account, and aggregate statistics.  Converts ORM
    rows to JournalEntryInfo so callers never hold session-bound objects.

Architecture position:
    Kernel > Selectors.  Reads models/, returns domain/dtos records.

Failure modes:
    - Returns None or empty results when nothing matches; never raises on
      absence of data.
    - ValidationError for a negative offset or a non-positive limit.
"""

from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from ledger_kernel.db.types import ZERO, round_money, to_money
from ledger_kernel.domain.dtos import JournalEntryInfo, JournalStats, Page
from ledger_kernel.domain.voucher import VoucherType
from ledger_kernel.exceptions import ValidationError
from ledger_kernel.models.journal import JournalEntry, JournalEntryStatus, JournalLine
from ledger_kernel.selectors.base import BaseSelector

MAX_PAGE_SIZE = 500


class JournalSelector(BaseSelector[JournalEntry]):
    """
    Selector for journal entry queries.

    Guarantees:
        - Lines are eagerly loaded (selectin) and ordered by line_seq.
        - Listings are ordered newest first: entry date descending, then
          voucher number descending.
    """

    def get(self, entry_id: UUID) -> JournalEntryInfo | None:
        entry = self.session.get(JournalEntry, entry_id)
        return JournalEntryInfo.from_model(entry) if entry is not None else None

    def get_by_voucher_number(self, voucher_number: str) -> JournalEntryInfo | None:
        entry = self.session.execute(
            select(JournalEntry).where(
                JournalEntry.voucher_number == voucher_number.strip().upper()
            )
        ).scalar_one_or_none()
        return JournalEntryInfo.from_model(entry) if entry is not None else None

    def _filtered(
        self,
        stmt,
        status: JournalEntryStatus | str | None = None,
        voucher_type: VoucherType | str | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ):
        if status is not None:
            stmt = stmt.where(JournalEntry.status == JournalEntryStatus(status).value)
        if voucher_type is not None:
            stmt = stmt.where(JournalEntry.voucher_type == VoucherType.parse(voucher_type).value)
        if date_from is not None:
            stmt = stmt.where(JournalEntry.entry_date >= date_from)
        if date_to is not None:
            stmt = stmt.where(JournalEntry.entry_date <= date_to)
        return stmt

    def list_entries(
        self,
        status: JournalEntryStatus | str | None = None,
        voucher_type: VoucherType | str | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Page[JournalEntryInfo]:
        """One page of entries matching every given filter."""
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(field="limit", reason=f"Must be between 1 and {MAX_PAGE_SIZE}")
        if offset < 0:
            raise ValidationError(field="offset", reason="Must not be negative")

        filters = dict(status=status, voucher_type=voucher_type, date_from=date_from, date_to=date_to)
        total = self.session.execute(
            self._filtered(select(func.count(JournalEntry.id)), **filters)
        ).scalar_one()
        entries = self.session.execute(
            self._filtered(select(JournalEntry), **filters)
            .order_by(JournalEntry.entry_date.desc(), JournalEntry.voucher_number.desc())
            .limit(limit)
            .offset(offset)
        ).scalars()

        return Page(
            items=tuple(JournalEntryInfo.from_model(entry) for entry in entries),
            total=total,
            limit=limit,
            offset=offset,
        )

    def entries_for_account(
        self,
        account_id: UUID,
        statuses: Iterable[JournalEntryStatus] | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[JournalEntryInfo]:
        """Entries with at least one line on the account, oldest first."""
        stmt = select(JournalEntry).where(
            JournalEntry.id.in_(
                select(JournalLine.journal_entry_id).where(JournalLine.account_id == account_id)
            )
        )
        if statuses is not None:
            stmt = stmt.where(
                JournalEntry.status.in_([JournalEntryStatus(s).value for s in statuses])
            )
        stmt = self._filtered(stmt, date_from=date_from, date_to=date_to)
        entries = self.session.execute(
            stmt.order_by(JournalEntry.entry_date, JournalEntry.voucher_number)
        ).scalars()
        return [JournalEntryInfo.from_model(entry) for entry in entries]

    def stats(
        self,
        date_from: date | None = None,
        date_to: date | None = None,
        voucher_type: VoucherType | str | None = None,
    ) -> JournalStats:
        """
        Counts and totals over entries of every status.

        ``average_entry_amount`` is the mean total_debit per entry.
        """
        filters = dict(voucher_type=voucher_type, date_from=date_from, date_to=date_to)
        summary = self.session.execute(
            self._filtered(
                select(
                    func.count(JournalEntry.id).label("entry_count"),
                    func.coalesce(func.sum(JournalEntry.total_debit), 0).label("total_debit"),
                    func.coalesce(func.sum(JournalEntry.total_credit), 0).label("total_credit"),
                ),
                **filters,
            )
        ).one()

        by_status = {
            row.status: row.count
            for row in self.session.execute(
                self._filtered(
                    select(JournalEntry.status, func.count(JournalEntry.id).label("count")),
                    **filters,
                ).group_by(JournalEntry.status)
            )
        }
        by_voucher_type = {
            row.voucher_type: row.count
            for row in self.session.execute(
                self._filtered(
                    select(JournalEntry.voucher_type, func.count(JournalEntry.id).label("count")),
                    **filters,
                ).group_by(JournalEntry.voucher_type)
            )
        }

        count = summary.entry_count
        total_debit = round_money(to_money(summary.total_debit))
        total_credit = round_money(to_money(summary.total_credit))
        average = round_money(total_debit / Decimal(count)) if count else ZERO
        return JournalStats(
            entry_count=count,
            total_debit=total_debit,
            total_credit=total_credit,
            average_entry_amount=round_money(average),
            by_status=by_status,
            by_voucher_type=by_voucher_type,
        )
