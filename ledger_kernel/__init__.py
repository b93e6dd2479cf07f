"""
Ledger Kernel

A double-entry bookkeeping engine with:
- Chart of Accounts registry with normal-balance sign conventions
- Journal entry lifecycle (draft -> posted -> reversed / cancelled)
- Atomic balance maintenance under concurrent postings
- Voucher numbering partitioned by voucher type and month
- Trial balance and general ledger reconstruction from posted lines
"""

__version__ = "0.1.0"
