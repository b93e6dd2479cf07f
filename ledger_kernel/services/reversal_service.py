"""
ReversalService -- correcting a posted entry with its mirror image.

Responsibility:
    Validates reversal preconditions under the original entry's row lock,
    creates the mirror entry (every line's debit and credit swapped), posts
    it through JournalService, and links the pair.

Architecture position:
    Kernel > Services.  Consumes JournalService.  Called by the
    LedgerService facade.

Invariants enforced:
    - Only POSTED entries are reversed, and at most once.  The status
      check and the REVERSED transition happen in one transaction while
      the original row is locked, so two concurrent reversals cannot both
      succeed.
    - After reversal the net effect of original + mirror on every account
      balance is zero.
    - The original's lines never change; only the reversal linkage fields
      and status are written (see db/immutability.py).

Failure modes:
    - JournalEntryNotFoundError: Unknown entry id.
    - InvalidStateError: Original is not POSTED.
    - AlreadyReversedError: Original is already REVERSED (an
      InvalidStateError, like every other non-POSTED status).
    - ValidationError: Blank reason.
    - Any posting error of the mirror (e.g. an account closed for posting since
      the original was posted); the caller's rollback undoes everything.
"""

from __future__ import annotations

from uuid import UUID

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import JournalEntryInfo, JournalEntrySpec, LineSpec, ReversalResult
from ledger_kernel.exceptions import AlreadyReversedError, InvalidStateError, ValidationError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.journal import JournalEntry, JournalEntryStatus
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.journal_service import JournalService

logger = get_logger("services.reversal")


def mirror_lines(entry: JournalEntry) -> tuple[LineSpec, ...]:
    """The entry's lines with debit and credit swapped."""
    return tuple(
        LineSpec(
            account_id=line.account_id,
            debit_amount=line.credit_amount,
            credit_amount=line.debit_amount,
            description=f"Reversal: {line.description or entry.description}",
            department=line.department,
            project=line.project,
            cost_center=line.cost_center,
        )
        for line in entry.lines
    )


class ReversalService(BaseService):
    """
    Reverses posted journal entries.

    Usage:
        with session_scope() as session:
            result = ReversalService(session, clock).reverse(
                entry_id, actor_id=user_id, reason="Wrong account",
            )
    """

    def __init__(self, session, clock: Clock | None = None, journal: JournalService | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._journal = journal or JournalService(session, clock=self._clock)

    def reverse(self, entry_id: UUID, actor_id: UUID, reason: str) -> ReversalResult:
        if reason is None or not reason.strip():
            raise ValidationError(field="reason", reason="Reversal reason is required")
        reason = reason.strip()

        original = self._journal.get(entry_id, for_update=True)
        with LogContext.bind(entry_id=str(original.id), voucher_number=original.voucher_number):
            if original.status == JournalEntryStatus.REVERSED:
                raise AlreadyReversedError(str(original.id), str(original.reversal_entry_id))
            if original.status != JournalEntryStatus.POSTED or original.reversal_entry_id is not None:
                raise InvalidStateError(
                    str(original.id),
                    JournalEntryStatus(original.status).value,
                    "reverse",
                )

            today = self._clock.today()
            spec = JournalEntrySpec(
                voucher_type=original.voucher_type,
                entry_date=today,
                description=f"Reversal of {original.voucher_number}: {reason}"[:500],
                lines=mirror_lines(original),
                reference_number=original.reference_number,
                notes=original.notes,
                source_document_type=original.source_document_type,
                source_document_id=original.source_document_id,
                source_document_number=original.source_document_number,
            )
            mirror = self._journal.create(spec, actor_id)
            mirror.reversed_entry_id = original.id
            self.session.flush()
            self._journal.post(mirror.id, actor_id)

            original.reversal_entry_id = mirror.id
            original.reversal_reason = reason
            original.reversal_date = today
            original.status = JournalEntryStatus.REVERSED.value
            original.updated_by_id = actor_id
            self.session.flush()

            logger.info(
                "journal_entry_reversed",
                extra={
                    "reversal_entry_id": str(mirror.id),
                    "reversal_voucher_number": mirror.voucher_number,
                    "reason": reason,
                    "reversed_by": str(actor_id),
                },
            )

        return ReversalResult(
            original=JournalEntryInfo.from_model(original),
            reversal=JournalEntryInfo.from_model(mirror),
        )
