"""
Module: ledger_kernel.models.journal
Responsibility: ORM persistence for journal entries and journal lines, the
    single source of financial truth for every report.
Architecture position: Kernel > Models.  May import from db/ only.
    MUST NOT import from services/, selectors/, domain/ or outer layers.

Invariants enforced:
    - voucher_number is unique (uq_journal_voucher_number).
    - Lines are immutable once the entry leaves DRAFT; entries are frozen
      once POSTED, except the single POSTED -> REVERSED transition
      (ORM listeners in db/immutability.py).
    - reversal_entry_id / reversed_entry_id are set together on the
      original and its mirror.
    - version is the optimistic lock column.

Failure modes:
    - IntegrityError on duplicate voucher_number (retried by the facade).
    - ImmutabilityViolationError on illegal UPDATE/DELETE.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account


class JournalEntryStatus(str, Enum):
    """Lifecycle status of a journal entry.

    Contract: DRAFT -> POSTED -> REVERSED, or DRAFT -> CANCELLED.
    POSTED entries never return to DRAFT.
    """

    DRAFT = "draft"
    POSTED = "posted"
    REVERSED = "reversed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JournalEntryStatus.REVERSED, JournalEntryStatus.CANCELLED)


# Statuses whose lines belong to the ledger history
LEDGER_STATUSES = (JournalEntryStatus.POSTED, JournalEntryStatus.REVERSED)


class SourceDocumentType(str, Enum):
    """Business document an entry was raised from."""

    ORDER = "ORDER"
    INVOICE = "INVOICE"
    RECEIPT = "RECEIPT"
    PAYMENT = "PAYMENT"
    MANUAL = "MANUAL"
    SYSTEM = "SYSTEM"


class JournalEntry(TrackedBase):
    """
    Journal entry header.

    Contract:
        total_debit / total_credit are always the sums of the lines.
        fiscal_year / fiscal_period are derived from entry_date.
        Posting requires |total_debit - total_credit| < 0.01 and at least
        two lines.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint("voucher_number", name="uq_journal_voucher_number"),
        Index("idx_journal_entry_date", "entry_date"),
        Index("idx_journal_status", "status"),
        Index("idx_journal_voucher_type", "voucher_type"),
        Index("idx_journal_fiscal", "fiscal_year", "fiscal_period"),
    )

    voucher_number: Mapped[str] = mapped_column(String(30), nullable=False)

    voucher_type: Mapped[str] = mapped_column(String(20), nullable=False)

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)

    fiscal_period: Mapped[int] = mapped_column(Integer, nullable=False)

    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    tags: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    source_document_type: Mapped[SourceDocumentType] = mapped_column(
        String(20),
        default=SourceDocumentType.MANUAL,
        nullable=False,
    )

    source_document_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    source_document_number: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    total_debit: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    total_credit: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    status: Mapped[JournalEntryStatus] = mapped_column(
        String(10),
        default=JournalEntryStatus.DRAFT,
        nullable=False,
    )

    posted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    posted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # On an original: the mirror that reversed it
    reversal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    # On a mirror: the original it reverses
    reversed_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    reversal_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    reversal_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="JournalLine.line_seq",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<JournalEntry {self.voucher_number} status={self.status}>"

    @property
    def is_draft(self) -> bool:
        return self.status == JournalEntryStatus.DRAFT

    @property
    def is_posted(self) -> bool:
        return self.status == JournalEntryStatus.POSTED

    @property
    def is_reversed(self) -> bool:
        return self.status == JournalEntryStatus.REVERSED


class JournalLine(TrackedBase):
    """
    One debit or credit line of a journal entry.

    Contract:
        Exactly one of debit_amount / credit_amount is positive, the other
        is zero.  line_seq orders the lines within the entry.
    """

    __tablename__ = "journal_lines"

    __table_args__ = (
        Index("idx_line_entry", "journal_entry_id"),
        Index("idx_line_account", "account_id"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    line_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    debit_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    credit_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    department: Mapped[str | None] = mapped_column(String(100), nullable=True)

    project: Mapped[str | None] = mapped_column(String(100), nullable=True)

    cost_center: Mapped[str | None] = mapped_column(String(100), nullable=True)

    entry: Mapped["JournalEntry"] = relationship(back_populates="lines")

    account: Mapped["Account"] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<JournalLine Dr {self.debit_amount} Cr {self.credit_amount}>"

    @property
    def is_debit(self) -> bool:
        return self.debit_amount > 0

    @property
    def is_credit(self) -> bool:
        return self.credit_amount > 0
