"""
VoucherSequenceService -- voucher number allocation via locked counter rows.

Responsibility:
    Issues ``{PREFIX}-{seq:03d}/{MM}-{YY}`` numbers, one independent
    sequence per (voucher type, calendar month).

Architecture position:
    Kernel > Services.  Called by JournalService when an entry is created
    without an explicit voucher number.

Invariants enforced:
    - The locked VoucherCounter row is the only source of the next value.
      Counting existing entries happens once, to seed a new counter, so
      numbering continues where count-based numbering left off.
    - Allocation is transactional: a rolled back entry returns its number.
    - next_voucher_number() previews without consuming.

Failure modes:
    - IntegrityError on concurrent first use of a counter: handled with a
      savepoint and a re-read under lock.
    - A voucher_number collision with a manually numbered entry surfaces
      as IntegrityError at insert; JournalService allocates again.
"""

from datetime import date

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from ledger_kernel.domain.dtos import VoucherTypeInfo
from ledger_kernel.domain.voucher import (
    VoucherType,
    format_voucher_number,
    month_bounds,
    period_key,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.journal import JournalEntry
from ledger_kernel.models.voucher_counter import VoucherCounter
from ledger_kernel.services.base import BaseService

logger = get_logger("services.voucher_sequence")


class VoucherSequenceService(BaseService):
    """
    Voucher number allocator.

    Usage:
        with session_scope() as session:
            number = VoucherSequenceService(session).allocate("JOURNAL", entry_date)
    """

    def _lock_counter(self, voucher_type: VoucherType, period: str) -> VoucherCounter | None:
        return self.session.execute(
            select(VoucherCounter)
            .where(
                VoucherCounter.voucher_type == voucher_type.value,
                VoucherCounter.period == period,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _count_existing(self, voucher_type: VoucherType, on_date: date) -> int:
        start, end = month_bounds(on_date)
        return self.session.execute(
            select(func.count(JournalEntry.id)).where(
                JournalEntry.voucher_type == voucher_type.value,
                JournalEntry.entry_date >= start,
                JournalEntry.entry_date < end,
            )
        ).scalar_one()

    def next_voucher_number(self, voucher_type: VoucherType | str, on_date: date) -> str:
        """Number the next allocate() call would return.  Consumes nothing."""
        voucher_type = VoucherType.parse(voucher_type)
        counter = self.session.execute(
            select(VoucherCounter.current_value).where(
                VoucherCounter.voucher_type == voucher_type.value,
                VoucherCounter.period == period_key(on_date),
            )
        ).scalar_one_or_none()
        last = counter if counter is not None else self._count_existing(voucher_type, on_date)
        return format_voucher_number(voucher_type, last + 1, on_date)

    def allocate(self, voucher_type: VoucherType | str, on_date: date) -> str:
        """
        Consume and return the next voucher number.

        Postconditions:
            - The counter row is locked until the caller's transaction ends.
            - Within one (type, month) no two committed calls return the
              same number.
        """
        voucher_type = VoucherType.parse(voucher_type)
        period = period_key(on_date)

        counter = self._lock_counter(voucher_type, period)
        if counter is None:
            seed = self._count_existing(voucher_type, on_date)
            savepoint = self.session.begin_nested()
            try:
                counter = VoucherCounter(
                    voucher_type=voucher_type.value,
                    period=period,
                    current_value=seed,
                )
                self.session.add(counter)
                self.session.flush()
                savepoint.commit()
                logger.debug(
                    "voucher_counter_created",
                    extra={"voucher_type": voucher_type.value, "period": period, "seed": seed},
                )
            except IntegrityError:
                logger.debug(
                    "voucher_counter_race_retry",
                    extra={"voucher_type": voucher_type.value, "period": period},
                )
                savepoint.rollback()
                counter = self._lock_counter(voucher_type, period)
                if counter is None:
                    raise

        counter.current_value += 1
        self.session.flush()

        number = format_voucher_number(voucher_type, counter.current_value, on_date)
        logger.debug(
            "voucher_allocated",
            extra={
                "voucher_type": voucher_type.value,
                "period": period,
                "sequence": counter.current_value,
                "voucher_number": number,
            },
        )
        return number

    @staticmethod
    def list_voucher_types() -> list[VoucherTypeInfo]:
        return [
            VoucherTypeInfo(value=vt.value, label=vt.label, prefix=vt.prefix)
            for vt in VoucherType
        ]
