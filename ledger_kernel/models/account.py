"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the Chart of Accounts.
Architecture position: Kernel > Models.  May import from db/ only.
    MUST NOT import from services/, selectors/, domain/ or outer layers.

Invariants enforced:
    - code is globally unique (uq_account_code) and never changes.
    - normal_balance is derived from account_type (normal_balance_for);
      it is never caller input.
    - (subledger_entity_type, subledger_entity_code) is unique, so a
      customer or supplier owns at most one auto-provisioned account.
    - version is the optimistic lock column; every balance write is a
      compare-and-swap on it.

Failure modes:
    - IntegrityError on duplicate code or duplicate sub-ledger pair.
    - StaleDataError when the version check fails at flush.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.exceptions import ValidationError

MAX_ACCOUNT_LEVEL = 5


def _parse_member(enum_cls, value, field: str, normalize):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(normalize(str(value).strip()))
    except ValueError:
        raise ValidationError(
            field=field,
            reason=f"Unknown {field.replace('_', ' ')} {value!r}",
        ) from None


class AccountType(str, Enum):
    """Types of accounts in the chart of accounts."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"

    @classmethod
    def parse(cls, value: "AccountType | str", field: str = "account_type") -> "AccountType":
        """Resolve from any casing, e.g. "ASSET" or "asset"."""
        return _parse_member(cls, value, field, str.lower)

    @property
    def code_digit(self) -> str:
        """Leading digit of generated account codes."""
        return _CODE_DIGITS[self]


_CODE_DIGITS = {
    AccountType.ASSET: "1",
    AccountType.LIABILITY: "2",
    AccountType.EQUITY: "3",
    AccountType.REVENUE: "4",
    AccountType.EXPENSE: "5",
}


class NormalBalance(str, Enum):
    """Normal balance side for an account."""

    DEBIT = "debit"
    CREDIT = "credit"


def normal_balance_for(account_type: AccountType | str) -> NormalBalance:
    """ASSET and EXPENSE are debit-normal; everything else is credit-normal."""
    if AccountType(account_type) in (AccountType.ASSET, AccountType.EXPENSE):
        return NormalBalance.DEBIT
    return NormalBalance.CREDIT


class AccountCategory(str, Enum):
    """Reporting category; each belongs to exactly one account type."""

    CURRENT_ASSET = "CURRENT_ASSET"
    FIXED_ASSET = "FIXED_ASSET"
    INTANGIBLE_ASSET = "INTANGIBLE_ASSET"
    INVESTMENT = "INVESTMENT"
    CURRENT_LIABILITY = "CURRENT_LIABILITY"
    LONG_TERM_LIABILITY = "LONG_TERM_LIABILITY"
    OWNER_EQUITY = "OWNER_EQUITY"
    RETAINED_EARNINGS = "RETAINED_EARNINGS"
    OPERATING_REVENUE = "OPERATING_REVENUE"
    NON_OPERATING_REVENUE = "NON_OPERATING_REVENUE"
    COST_OF_GOODS_SOLD = "COST_OF_GOODS_SOLD"
    OPERATING_EXPENSE = "OPERATING_EXPENSE"
    NON_OPERATING_EXPENSE = "NON_OPERATING_EXPENSE"

    @classmethod
    def parse(
        cls, value: "AccountCategory | str", field: str = "account_category"
    ) -> "AccountCategory":
        return _parse_member(cls, value, field, str.upper)

    @property
    def account_type(self) -> AccountType:
        return _CATEGORY_TYPES[self]


_CATEGORY_TYPES = {
    AccountCategory.CURRENT_ASSET: AccountType.ASSET,
    AccountCategory.FIXED_ASSET: AccountType.ASSET,
    AccountCategory.INTANGIBLE_ASSET: AccountType.ASSET,
    AccountCategory.INVESTMENT: AccountType.ASSET,
    AccountCategory.CURRENT_LIABILITY: AccountType.LIABILITY,
    AccountCategory.LONG_TERM_LIABILITY: AccountType.LIABILITY,
    AccountCategory.OWNER_EQUITY: AccountType.EQUITY,
    AccountCategory.RETAINED_EARNINGS: AccountType.EQUITY,
    AccountCategory.OPERATING_REVENUE: AccountType.REVENUE,
    AccountCategory.NON_OPERATING_REVENUE: AccountType.REVENUE,
    AccountCategory.COST_OF_GOODS_SOLD: AccountType.EXPENSE,
    AccountCategory.OPERATING_EXPENSE: AccountType.EXPENSE,
    AccountCategory.NON_OPERATING_EXPENSE: AccountType.EXPENSE,
}


class SubledgerEntityType(str, Enum):
    """External parties that own an auto-provisioned ledger account."""

    CUSTOMER = "customer"
    SUPPLIER = "supplier"

    @classmethod
    def parse(
        cls, value: "SubledgerEntityType | str", field: str = "entity_type"
    ) -> "SubledgerEntityType":
        return _parse_member(cls, value, field, str.lower)


class Account(TrackedBase):
    """
    Chart of Accounts entry.

    Contract:
        current_balance follows the normal-balance sign convention and is
        only written by AccountRegistry.update_balance() during posting.
        Once any journal line references the account, account_type is
        frozen and the account cannot be deleted.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("code", name="uq_account_code"),
        UniqueConstraint(
            "subledger_entity_type",
            "subledger_entity_code",
            name="uq_account_subledger_entity",
        ),
        Index("idx_account_type", "account_type"),
        Index("idx_account_active", "is_active"),
        Index("idx_account_parent", "parent_id"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    account_category: Mapped[AccountCategory] = mapped_column(
        String(40),
        nullable=False,
    )

    # Free taxonomy (CASH_AND_CASH_EQUIVALENTS, ACCOUNTS_RECEIVABLE, ...)
    account_sub_category: Mapped[str | None] = mapped_column(
        String(60),
        nullable=True,
    )

    normal_balance: Mapped[NormalBalance] = mapped_column(String(10), nullable=False)

    current_balance: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    allow_posting: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    is_system_account: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    # 1 for roots, parent.level + 1 below
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    tags: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    subledger_entity_type: Mapped[SubledgerEntityType | None] = mapped_column(
        String(20),
        nullable=True,
    )

    subledger_entity_code: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"

    @property
    def is_debit_normal(self) -> bool:
        return self.normal_balance == NormalBalance.DEBIT

    @property
    def is_credit_normal(self) -> bool:
        return self.normal_balance == NormalBalance.CREDIT

    @property
    def is_postable(self) -> bool:
        """Active and open for posting."""
        return bool(self.is_active and self.allow_posting)
