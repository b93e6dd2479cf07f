"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.reversal_service import ReversalService
from ledger_kernel.services.voucher_sequence_service import VoucherSequenceService

__all__ = [
    "AccountRegistry",
    "JournalService",
    "ReversalService",
    "VoucherSequenceService",
]
