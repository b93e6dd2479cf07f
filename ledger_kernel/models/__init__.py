"""ORM models for the ledger kernel."""

from ledger_kernel.models.account import (
    MAX_ACCOUNT_LEVEL,
    Account,
    AccountCategory,
    AccountType,
    NormalBalance,
    SubledgerEntityType,
    normal_balance_for,
)
from ledger_kernel.models.journal import (
    LEDGER_STATUSES,
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
    SourceDocumentType,
)
from ledger_kernel.models.voucher_counter import VoucherCounter

__all__ = [
    "MAX_ACCOUNT_LEVEL",
    "Account",
    "AccountCategory",
    "AccountType",
    "LEDGER_STATUSES",
    "JournalEntry",
    "JournalEntryStatus",
    "JournalLine",
    "NormalBalance",
    "SourceDocumentType",
    "SubledgerEntityType",
    "VoucherCounter",
    "normal_balance_for",
]
