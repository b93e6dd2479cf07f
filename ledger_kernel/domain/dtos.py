"""
DTOs -- immutable data transfer objects for the ledger.

Responsibility:
    Input specs accepted by the services (AccountSpec, AccountPatch,
    LineSpec, JournalEntrySpec, JournalEntryPatch) and read-side records
    returned to callers (AccountInfo, JournalEntryInfo, ReversalResult, ...).

Architecture position:
    Kernel > Domain.  No database access.  ``from_model()`` class methods
    are boundary converters invoked only from services and selectors, so
    callers never hold live ORM objects.

Data flow:
    JournalEntrySpec -> JournalService.create() -> JournalEntry (ORM)
        -> JournalEntryInfo.from_model() -> caller
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Generic, TypeVar
from uuid import UUID

from ledger_kernel.db.types import BALANCE_TOLERANCE, round_money
from ledger_kernel.domain.voucher import VoucherType
from ledger_kernel.models.account import (
    AccountCategory,
    AccountType,
    NormalBalance,
    SubledgerEntityType,
)
from ledger_kernel.models.journal import JournalEntryStatus, SourceDocumentType

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account as AccountModel
    from ledger_kernel.models.journal import JournalEntry as JournalEntryModel
    from ledger_kernel.models.journal import JournalLine as JournalLineModel

T = TypeVar("T")

ZERO = Decimal("0")


# ---------------------------------------------------------------------------
# Account inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccountSpec:
    """
    Request to create an account.

    ``code`` is generated from the type when omitted.  Normal balance is
    never part of the spec; it follows from ``account_type``.
    """

    name: str
    account_type: AccountType | str
    account_category: AccountCategory | str
    code: str | None = None
    account_sub_category: str | None = None
    parent_id: UUID | None = None
    description: str | None = None
    notes: str | None = None
    tags: tuple[str, ...] = ()
    allow_posting: bool = True
    is_system_account: bool = False


@dataclass(frozen=True)
class AccountPatch:
    """Partial account update.  ``None`` leaves a field unchanged."""

    name: str | None = None
    account_type: AccountType | str | None = None
    account_category: AccountCategory | str | None = None
    account_sub_category: str | None = None
    description: str | None = None
    notes: str | None = None
    tags: tuple[str, ...] | None = None
    allow_posting: bool | None = None
    is_active: bool | None = None


# ---------------------------------------------------------------------------
# Journal inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineSpec:
    """
    One requested journal line.

    Exactly one of debit_amount / credit_amount must be positive; amounts
    may be given as Decimal, int or str and are normalized on validation.
    """

    account_id: UUID
    debit_amount: Decimal | int | str = ZERO
    credit_amount: Decimal | int | str = ZERO
    description: str | None = None
    department: str | None = None
    project: str | None = None
    cost_center: str | None = None

    @classmethod
    def debit(cls, account_id: UUID, amount, description: str | None = None, **dims) -> LineSpec:
        return cls(account_id=account_id, debit_amount=amount, description=description, **dims)

    @classmethod
    def credit(cls, account_id: UUID, amount, description: str | None = None, **dims) -> LineSpec:
        return cls(account_id=account_id, credit_amount=amount, description=description, **dims)


@dataclass(frozen=True)
class JournalEntrySpec:
    """Request to create a DRAFT journal entry."""

    voucher_type: VoucherType | str
    entry_date: date
    description: str
    lines: tuple[LineSpec, ...]
    voucher_number: str | None = None
    reference_number: str | None = None
    notes: str | None = None
    tags: tuple[str, ...] = ()
    source_document_type: SourceDocumentType = SourceDocumentType.MANUAL
    source_document_id: str | None = None
    source_document_number: str | None = None


@dataclass(frozen=True)
class JournalEntryPatch:
    """Partial update of a DRAFT entry.  ``lines`` replaces all lines."""

    entry_date: date | None = None
    description: str | None = None
    lines: tuple[LineSpec, ...] | None = None
    reference_number: str | None = None
    notes: str | None = None
    tags: tuple[str, ...] | None = None


@dataclass(frozen=True)
class BalanceCheck:
    """Totals preview of a set of lines."""

    total_debit: Decimal
    total_credit: Decimal
    difference: Decimal
    is_balanced: bool


# ---------------------------------------------------------------------------
# Read-side records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccountInfo:
    """Detached snapshot of an account."""

    id: UUID
    code: str
    name: str
    account_type: AccountType
    account_category: AccountCategory
    account_sub_category: str | None
    normal_balance: NormalBalance
    current_balance: Decimal
    allow_posting: bool
    is_active: bool
    is_system_account: bool
    parent_id: UUID | None
    level: int
    description: str | None = None
    tags: tuple[str, ...] = ()
    subledger_entity_type: SubledgerEntityType | None = None
    subledger_entity_code: str | None = None

    @classmethod
    def from_model(cls, model: AccountModel) -> AccountInfo:
        return cls(
            id=model.id,
            code=model.code,
            name=model.name,
            account_type=AccountType(model.account_type),
            account_category=AccountCategory(model.account_category),
            account_sub_category=model.account_sub_category,
            normal_balance=NormalBalance(model.normal_balance),
            current_balance=round_money(model.current_balance),
            allow_posting=model.allow_posting,
            is_active=model.is_active,
            is_system_account=model.is_system_account,
            parent_id=model.parent_id,
            level=model.level,
            description=model.description,
            tags=tuple(model.tags or ()),
            subledger_entity_type=(
                SubledgerEntityType(model.subledger_entity_type)
                if model.subledger_entity_type
                else None
            ),
            subledger_entity_code=model.subledger_entity_code,
        )


@dataclass(frozen=True)
class AccountNode:
    """An account and its descendants."""

    account: AccountInfo
    children: tuple[AccountNode, ...] = ()

    def walk(self):
        """Yield every account in the subtree, depth first."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node.account
            stack.extend(reversed(node.children))


@dataclass(frozen=True)
class JournalLineInfo:
    account_id: UUID
    account_code: str
    line_seq: int
    debit_amount: Decimal
    credit_amount: Decimal
    description: str | None = None
    department: str | None = None
    project: str | None = None
    cost_center: str | None = None

    @classmethod
    def from_model(cls, model: JournalLineModel) -> JournalLineInfo:
        return cls(
            account_id=model.account_id,
            account_code=model.account.code if model.account else "",
            line_seq=model.line_seq,
            debit_amount=round_money(model.debit_amount),
            credit_amount=round_money(model.credit_amount),
            description=model.description,
            department=model.department,
            project=model.project,
            cost_center=model.cost_center,
        )


@dataclass(frozen=True)
class JournalEntryInfo:
    """Detached snapshot of a journal entry and its lines."""

    id: UUID
    voucher_number: str
    voucher_type: VoucherType
    entry_date: date
    fiscal_year: int
    fiscal_period: int
    description: str
    status: JournalEntryStatus
    total_debit: Decimal
    total_credit: Decimal
    lines: tuple[JournalLineInfo, ...]
    created_by_id: UUID
    reference_number: str | None = None
    notes: str | None = None
    tags: tuple[str, ...] = ()
    source_document_type: SourceDocumentType = SourceDocumentType.MANUAL
    source_document_id: str | None = None
    source_document_number: str | None = None
    posted_by_id: UUID | None = None
    posted_at: datetime | None = None
    approved_by_id: UUID | None = None
    approved_at: datetime | None = None
    reversal_entry_id: UUID | None = None
    reversed_entry_id: UUID | None = None
    reversal_reason: str | None = None
    reversal_date: date | None = None

    @property
    def is_balanced(self) -> bool:
        return abs(self.total_debit - self.total_credit) < BALANCE_TOLERANCE

    @classmethod
    def from_model(cls, model: JournalEntryModel) -> JournalEntryInfo:
        return cls(
            id=model.id,
            voucher_number=model.voucher_number,
            voucher_type=VoucherType(model.voucher_type),
            entry_date=model.entry_date,
            fiscal_year=model.fiscal_year,
            fiscal_period=model.fiscal_period,
            description=model.description,
            status=JournalEntryStatus(model.status),
            total_debit=round_money(model.total_debit),
            total_credit=round_money(model.total_credit),
            lines=tuple(JournalLineInfo.from_model(line) for line in model.lines),
            created_by_id=model.created_by_id,
            reference_number=model.reference_number,
            notes=model.notes,
            tags=tuple(model.tags or ()),
            source_document_type=SourceDocumentType(model.source_document_type),
            source_document_id=model.source_document_id,
            source_document_number=model.source_document_number,
            posted_by_id=model.posted_by_id,
            posted_at=model.posted_at,
            approved_by_id=model.approved_by_id,
            approved_at=model.approved_at,
            reversal_entry_id=model.reversal_entry_id,
            reversed_entry_id=model.reversed_entry_id,
            reversal_reason=model.reversal_reason,
            reversal_date=model.reversal_date,
        )


@dataclass(frozen=True)
class ReversalResult:
    """The reversed original and the posted mirror entry."""

    original: JournalEntryInfo
    reversal: JournalEntryInfo


@dataclass(frozen=True)
class VoucherTypeInfo:
    value: str
    label: str
    prefix: str


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a listing."""

    items: tuple[T, ...]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total


@dataclass(frozen=True)
class JournalStats:
    """Aggregate figures over a set of entries."""

    entry_count: int
    total_debit: Decimal
    total_credit: Decimal
    average_entry_amount: Decimal
    by_status: dict[str, int] = field(default_factory=dict)
    by_voucher_type: dict[str, int] = field(default_factory=dict)
