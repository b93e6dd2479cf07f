"""
Module: ledger_kernel.models.voucher_counter
Responsibility: Counter rows backing voucher number allocation, one per
    (voucher type, calendar month).
Architecture position: Kernel > Models.  Written only by
    VoucherSequenceService under a row lock.

Invariants enforced:
    - (voucher_type, period) is unique; the locked row is the sole source
      of truth for the next sequence value.
"""

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base


class VoucherCounter(Base):
    """Last allocated sequence for a voucher type within a month."""

    __tablename__ = "voucher_counters"

    __table_args__ = (
        UniqueConstraint("voucher_type", "period", name="uq_voucher_counter"),
    )

    voucher_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # YYYY-MM
    period: Mapped[str] = mapped_column(String(7), nullable=False)

    current_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<VoucherCounter {self.voucher_type} {self.period}={self.current_value}>"
