"""Ledger services: the transactional facade over the ledger kernel."""

from ledger_services.ledger_service import LedgerService, account_spec_from_default

__all__ = [
    "LedgerService",
    "account_spec_from_default",
]
