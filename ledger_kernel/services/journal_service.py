"""
JournalService -- journal entry lifecycle and posting.

Responsibility:
    Creates DRAFT entries (validation, totals, fiscal period, voucher
    number), edits and cancels drafts, and posts: the single operation that
    moves money.  Posting applies every line to its account balance and
    flips the entry to POSTED inside the caller's transaction.

Architecture position:
    Kernel > Services.  Uses AccountRegistry (balance mutator) and
    VoucherSequenceService (numbering).  Called by ReversalService and by
    the LedgerService facade.

State machine:
    DRAFT --post--> POSTED --reverse--> REVERSED
    DRAFT --cancel--> CANCELLED
    Nothing else.  REVERSED and CANCELLED are terminal.

Invariants enforced:
    - A posted entry has >= 2 lines and |debits - credits| < tolerance.
    - Every line is single-sided and non-negative (checked at creation).
    - All balance updates of a post happen in one transaction with the
      status change; any failure leaves the entry DRAFT and balances
      untouched once the caller rolls back.
    - Accounts are locked in sorted id order, so concurrent posts touching
      the same accounts cannot deadlock.

Failure modes:
    - ValidationError: malformed spec or line.
    - InvalidStateError: operation not allowed in the entry's status.
    - InsufficientLinesError / UnbalancedEntryError: post preconditions.
    - AccountNotFoundError / PostingNotAllowedError: line account issues.
    - DuplicateVoucherNumberError: number already taken.
    - OptimisticLockError: a concurrent writer changed an account row.
"""

from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ledger_kernel.db.types import BALANCE_TOLERANCE, MONEY_DECIMAL_PLACES
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    BalanceCheck,
    JournalEntryPatch,
    JournalEntrySpec,
    LineSpec,
)
from ledger_kernel.domain.validation import (
    check_balance,
    compute_totals,
    fiscal_period_of,
    is_balanced,
    normalize_lines,
    validate_description,
)
from ledger_kernel.domain.voucher import VoucherType
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    DuplicateVoucherNumberError,
    InsufficientLinesError,
    InvalidStateError,
    JournalEntryNotFoundError,
    OptimisticLockError,
    PostingNotAllowedError,
    ReferentialIntegrityError,
    UnbalancedEntryError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import (
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
    SourceDocumentType,
)
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.voucher_sequence_service import VoucherSequenceService

logger = get_logger("services.journal")

MIN_POSTING_LINES = 2


def _status_value(status) -> str:
    return JournalEntryStatus(status).value


class JournalService(BaseService):
    """
    Journal entry engine.

    Contract:
        Flushes into the caller's transaction; never commits.  Returns live
        ORM entries; the facade converts them to DTOs.
    """

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        registry: AccountRegistry | None = None,
        sequence: VoucherSequenceService | None = None,
        balance_tolerance: Decimal = BALANCE_TOLERANCE,
        money_places: int = MONEY_DECIMAL_PLACES,
        voucher_retry_attempts: int = 3,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._registry = registry or AccountRegistry(session)
        self._sequence = sequence or VoucherSequenceService(session)
        self._tolerance = balance_tolerance
        self._places = money_places
        self._voucher_retry_attempts = voucher_retry_attempts

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, entry_id: UUID, *, for_update: bool = False) -> JournalEntry:
        stmt = select(JournalEntry).where(JournalEntry.id == entry_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        entry = self.session.execute(stmt).scalar_one_or_none()
        if entry is None:
            raise JournalEntryNotFoundError(str(entry_id))
        return entry

    def _voucher_exists(self, voucher_number: str) -> bool:
        return (
            self.session.execute(
                select(JournalEntry.id).where(JournalEntry.voucher_number == voucher_number)
            ).first()
            is not None
        )

    def _require_status(self, entry: JournalEntry, expected: JournalEntryStatus, operation: str):
        if entry.status != expected:
            raise InvalidStateError(str(entry.id), _status_value(entry.status), operation)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def _check_accounts_exist(self, lines: Sequence[LineSpec]) -> None:
        wanted = {line.account_id for line in lines}
        found = set(
            self.session.execute(select(Account.id).where(Account.id.in_(wanted))).scalars()
        )
        missing = wanted - found
        if missing:
            raise AccountNotFoundError(str(sorted(missing, key=str)[0]))

    def _build_lines(self, lines: Sequence[LineSpec], actor_id: UUID) -> list[JournalLine]:
        return [
            JournalLine(
                account_id=line.account_id,
                line_seq=seq,
                description=line.description,
                debit_amount=line.debit_amount,
                credit_amount=line.credit_amount,
                department=line.department,
                project=line.project,
                cost_center=line.cost_center,
                created_by_id=actor_id,
            )
            for seq, line in enumerate(lines)
        ]

    def _build_entry(
        self,
        spec: JournalEntrySpec,
        voucher_type: VoucherType,
        description: str,
        lines: tuple[LineSpec, ...],
        voucher_number: str,
        actor_id: UUID,
    ) -> JournalEntry:
        total_debit, total_credit = compute_totals(lines, self._places)
        fiscal_year, fiscal_period = fiscal_period_of(spec.entry_date)
        return JournalEntry(
            voucher_number=voucher_number,
            voucher_type=voucher_type.value,
            entry_date=spec.entry_date,
            fiscal_year=fiscal_year,
            fiscal_period=fiscal_period,
            reference_number=spec.reference_number,
            description=description,
            notes=spec.notes,
            tags=list(spec.tags) or None,
            source_document_type=SourceDocumentType(spec.source_document_type).value,
            source_document_id=spec.source_document_id,
            source_document_number=spec.source_document_number,
            total_debit=total_debit,
            total_credit=total_credit,
            status=JournalEntryStatus.DRAFT.value,
            lines=self._build_lines(lines, actor_id),
            created_by_id=actor_id,
        )

    def _insert(self, entry: JournalEntry) -> bool:
        """Insert inside a savepoint; False if the voucher number collided."""
        savepoint = self.session.begin_nested()
        try:
            self.session.add(entry)
            self.session.flush()
            savepoint.commit()
            return True
        except IntegrityError:
            savepoint.rollback()
            if self._voucher_exists(entry.voucher_number):
                return False
            raise

    def create(self, spec: JournalEntrySpec, actor_id: UUID) -> JournalEntry:
        """
        Create a DRAFT entry.

        Balance is not required here; it is a posting rule.

        Postconditions:
            - totals equal the line sums; fiscal year/period follow the date.
            - voucher_number is set (allocated when the spec has none).

        Raises:
            ValidationError: Unknown voucher type, blank description, bad line.
            AccountNotFoundError: A line references an unknown account.
            DuplicateVoucherNumberError: Explicit number taken, or no free
                number after ``voucher_retry_attempts`` allocations.
        """
        voucher_type = VoucherType.parse(spec.voucher_type)
        if not isinstance(spec.entry_date, date):
            raise ValidationError(field="entry_date", reason="Entry date is required")
        description = validate_description(spec.description)
        lines = normalize_lines(spec.lines, self._places)
        self._check_accounts_exist(lines)

        if spec.voucher_number:
            number = spec.voucher_number.strip().upper()
            if self._voucher_exists(number):
                raise DuplicateVoucherNumberError(number)
            entry = self._build_entry(spec, voucher_type, description, lines, number, actor_id)
            if not self._insert(entry):
                raise DuplicateVoucherNumberError(number)
        else:
            entry = None
            number = ""
            for attempt in range(1, self._voucher_retry_attempts + 1):
                number = self._sequence.allocate(voucher_type, spec.entry_date)
                candidate = self._build_entry(
                    spec, voucher_type, description, lines, number, actor_id
                )
                if not self._voucher_exists(number) and self._insert(candidate):
                    entry = candidate
                    break
                logger.warning(
                    "voucher_number_collision",
                    extra={"voucher_number": number, "attempt": attempt},
                )
            if entry is None:
                raise DuplicateVoucherNumberError(number, attempts=self._voucher_retry_attempts)

        logger.info(
            "journal_entry_created",
            extra={
                "entry_id": str(entry.id),
                "voucher_number": entry.voucher_number,
                "voucher_type": entry.voucher_type,
                "line_count": len(lines),
                "total_debit": entry.total_debit,
                "total_credit": entry.total_credit,
            },
        )
        return entry

    def duplicate(
        self,
        entry_id: UUID,
        actor_id: UUID,
        entry_date: date | None = None,
        reference_number: str | None = None,
        notes: str | None = None,
    ) -> JournalEntry:
        """New DRAFT copy of any entry, dated today unless given, freshly numbered."""
        source = self.get(entry_id)
        spec = JournalEntrySpec(
            voucher_type=source.voucher_type,
            entry_date=entry_date or self._clock.today(),
            description=f"Copy of {source.description}"[:500],
            lines=tuple(
                LineSpec(
                    account_id=line.account_id,
                    debit_amount=line.debit_amount,
                    credit_amount=line.credit_amount,
                    description=line.description,
                    department=line.department,
                    project=line.project,
                    cost_center=line.cost_center,
                )
                for line in source.lines
            ),
            reference_number=reference_number,
            notes=notes if notes is not None else source.notes,
            tags=tuple(source.tags or ()),
        )
        entry = self.create(spec, actor_id)
        logger.info(
            "journal_entry_duplicated",
            extra={"source_entry_id": str(source.id), "entry_id": str(entry.id)},
        )
        return entry

    # ------------------------------------------------------------------
    # Draft maintenance
    # ------------------------------------------------------------------

    def update(self, entry_id: UUID, patch: JournalEntryPatch, actor_id: UUID) -> JournalEntry:
        """
        Edit a DRAFT entry.  The voucher number never changes, even when
        the date moves to another month.
        """
        entry = self.get(entry_id, for_update=True)
        self._require_status(entry, JournalEntryStatus.DRAFT, "update")

        if patch.entry_date is not None:
            entry.entry_date = patch.entry_date
            entry.fiscal_year, entry.fiscal_period = fiscal_period_of(patch.entry_date)
        if patch.description is not None:
            entry.description = validate_description(patch.description)
        if patch.reference_number is not None:
            entry.reference_number = patch.reference_number
        if patch.notes is not None:
            entry.notes = patch.notes
        if patch.tags is not None:
            entry.tags = list(patch.tags) or None
        if patch.lines is not None:
            lines = normalize_lines(patch.lines, self._places)
            self._check_accounts_exist(lines)
            entry.lines.clear()
            self.session.flush()
            entry.lines.extend(self._build_lines(lines, actor_id))
            entry.total_debit, entry.total_credit = compute_totals(lines, self._places)

        entry.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "journal_entry_updated",
            extra={"entry_id": str(entry.id), "voucher_number": entry.voucher_number},
        )
        return entry

    def approve(self, entry_id: UUID, actor_id: UUID) -> JournalEntry:
        """Record an approval on a DRAFT entry.  No state change."""
        entry = self.get(entry_id, for_update=True)
        self._require_status(entry, JournalEntryStatus.DRAFT, "approve")
        entry.approved_by_id = actor_id
        entry.approved_at = self._clock.now()
        entry.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "journal_entry_approved",
            extra={"entry_id": str(entry.id), "approved_by": str(actor_id)},
        )
        return entry

    def cancel(self, entry_id: UUID, actor_id: UUID, reason: str) -> JournalEntry:
        """DRAFT -> CANCELLED.  The reason is appended to the notes."""
        entry = self.get(entry_id, for_update=True)
        self._require_status(entry, JournalEntryStatus.DRAFT, "cancel")
        note = f"Cancelled: {reason}"
        entry.notes = f"{entry.notes}\n{note}" if entry.notes else note
        entry.status = JournalEntryStatus.CANCELLED.value
        entry.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "journal_entry_cancelled",
            extra={
                "entry_id": str(entry.id),
                "voucher_number": entry.voucher_number,
                "reason": reason,
            },
        )
        return entry

    def delete(self, entry_id: UUID) -> None:
        """Delete a DRAFT entry and its lines."""
        entry = self.get(entry_id, for_update=True)
        if entry.status != JournalEntryStatus.DRAFT:
            raise ReferentialIntegrityError(
                entity_type="JournalEntry",
                entity_id=str(entry.id),
                reason=f"Only draft entries can be deleted, entry is {_status_value(entry.status)}",
            )
        voucher_number = entry.voucher_number
        self.session.delete(entry)
        self.session.flush()
        logger.info(
            "journal_entry_deleted",
            extra={"entry_id": str(entry_id), "voucher_number": voucher_number},
        )

    def check_balance(self, lines: Sequence[LineSpec]) -> BalanceCheck:
        return check_balance(lines, self._tolerance, self._places)

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    def _lock_accounts(self, entry: JournalEntry) -> dict[UUID, Account]:
        """Lock every account the entry touches, in sorted id order."""
        account_ids = sorted({line.account_id for line in entry.lines}, key=str)
        accounts = {
            account.id: account
            for account in self.session.execute(
                select(Account)
                .where(Account.id.in_(account_ids))
                .order_by(Account.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars()
        }
        for account_id in account_ids:
            account = accounts.get(account_id)
            if account is None:
                raise AccountNotFoundError(str(account_id))
            if not account.allow_posting:
                raise PostingNotAllowedError(
                    str(account.id), account.code, "posting is disabled for this account"
                )
            if not account.is_active:
                raise PostingNotAllowedError(str(account.id), account.code, "account is inactive")
        return accounts

    def post(self, entry_id: UUID, actor_id: UUID) -> JournalEntry:
        """
        DRAFT -> POSTED, updating every referenced account balance.

        Preconditions (checked in this order):
            1. status is DRAFT
            2. at least MIN_POSTING_LINES lines
            3. |total_debit - total_credit| < tolerance
            4. every account exists, is active and allows posting

        Postconditions:
            - Each line applied via AccountRegistry.update_balance().
            - status POSTED, posted_by_id / posted_at set.
            - Nothing is committed; on any error the caller's rollback
              restores the DRAFT entry and all balances.
        """
        entry = self.get(entry_id, for_update=True)
        with LogContext.bind(entry_id=str(entry.id), voucher_number=entry.voucher_number):
            self._require_status(entry, JournalEntryStatus.DRAFT, "post")

            lines = list(entry.lines)
            if len(lines) < MIN_POSTING_LINES:
                raise InsufficientLinesError(str(entry.id), len(lines), MIN_POSTING_LINES)

            total_debit = sum((Decimal(line.debit_amount) for line in lines), Decimal("0"))
            total_credit = sum((Decimal(line.credit_amount) for line in lines), Decimal("0"))
            if not is_balanced(total_debit, total_credit, self._tolerance):
                logger.warning(
                    "journal_entry_unbalanced",
                    extra={"total_debit": total_debit, "total_credit": total_credit},
                )
                raise UnbalancedEntryError(str(entry.id), str(total_debit), str(total_credit))

            accounts = self._lock_accounts(entry)
            for line in lines:
                account = accounts[line.account_id]
                if line.debit_amount > 0:
                    self._registry.update_balance(account, Decimal(line.debit_amount), True, self._places)
                else:
                    self._registry.update_balance(account, Decimal(line.credit_amount), False, self._places)
                account.updated_by_id = actor_id

            entry.status = JournalEntryStatus.POSTED.value
            entry.posted_by_id = actor_id
            entry.posted_at = self._clock.now()
            entry.updated_by_id = actor_id
            try:
                self.session.flush()
            except StaleDataError as exc:
                logger.warning("journal_post_version_conflict", extra={"error": str(exc)})
                raise OptimisticLockError("Account", ",".join(str(a) for a in accounts)) from exc

            logger.info(
                "journal_entry_posted",
                extra={
                    "posted_by": str(actor_id),
                    "line_count": len(lines),
                    "total_debit": total_debit,
                    "total_credit": total_credit,
                    "accounts": sorted(a.code for a in accounts.values()),
                },
            )
        return entry
