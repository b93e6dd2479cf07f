"""
ledger_services.ledger_service -- the inbound boundary of the ledger.

Responsibility:
    One method per ledger operation.  Each write runs in its own
    ``session_scope()`` transaction, each read in a ``read_session_scope()``,
    and every result is a frozen DTO built before the session closes.

Architecture position:
    Services -- above ``ledger_kernel`` and ``ledger_config``.  This module
    is the only place that turns configuration into kernel arguments
    (tolerance, money places, retry bound, default chart of accounts).

Invariants enforced:
    - Atomicity: a write either commits entirely or leaves no trace.  A
      failed post leaves the entry DRAFT and every balance untouched.
    - Bounded retry: a transaction that fails with a retryable
      ConcurrencyError (optimistic lock conflict) is re-run from scratch in
      a fresh session, at most ``voucher_retry_attempts`` times.  Voucher
      number collisions are retried inside the journal engine.
    - The acting user is always an explicit ``actor_id`` argument.

Usage:
    from ledger_kernel.db.engine import create_tables, init_engine_from_url
    from ledger_services import LedgerService

    init_engine_from_url("postgresql://localhost/ledger")
    create_tables()
    ledger = LedgerService()
    ledger.initialize_default_accounts(actor_id=system_user)
    entry = ledger.post_journal_entry(spec, actor_id=user_id)
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import date
from decimal import Decimal
from typing import TypeVar
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from ledger_config import DefaultAccountDef, LedgerSettings, get_default_chart
from ledger_kernel.db.engine import (
    get_read_session_factory,
    get_session_factory,
    init_engine_from_url,
    read_session_scope,
    session_scope,
)
from ledger_kernel.db.types import BALANCE_TOLERANCE, MONEY_DECIMAL_PLACES
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    AccountInfo,
    AccountNode,
    AccountPatch,
    AccountSpec,
    BalanceCheck,
    JournalEntryInfo,
    JournalEntryPatch,
    JournalEntrySpec,
    JournalStats,
    LineSpec,
    Page,
    ReversalResult,
    VoucherTypeInfo,
)
from ledger_kernel.domain.reports import (
    BalanceSheet,
    GeneralLedger,
    IncomeStatement,
    ReconciliationDifference,
    TrialBalanceReport,
)
from ledger_kernel.domain.validation import check_balance
from ledger_kernel.domain.voucher import VoucherType
from ledger_kernel.exceptions import (
    ConcurrencyError,
    JournalEntryNotFoundError,
    OptimisticLockError,
)
from ledger_kernel.logging_config import LogContext, configure_logging, get_logger
from ledger_kernel.models.account import AccountCategory, AccountType, SubledgerEntityType
from ledger_kernel.models.journal import JournalEntryStatus
from ledger_kernel.selectors.journal_selector import JournalSelector
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.reversal_service import ReversalService
from ledger_kernel.services.voucher_sequence_service import VoucherSequenceService

logger = get_logger("services.ledger")

T = TypeVar("T")


def account_spec_from_default(definition: DefaultAccountDef) -> AccountSpec:
    """Kernel AccountSpec for one default chart entry (a system account)."""
    return AccountSpec(
        code=definition.code,
        name=definition.name,
        account_type=AccountType.parse(definition.account_type),
        account_category=AccountCategory.parse(definition.account_category),
        account_sub_category=definition.account_sub_category,
        description=definition.description,
        is_system_account=True,
    )


class _KernelServices:
    """Kernel services sharing one session and clock."""

    def __init__(
        self,
        session: Session,
        clock: Clock,
        balance_tolerance: Decimal,
        money_places: int,
        voucher_retry_attempts: int,
    ) -> None:
        self.session = session
        self.registry = AccountRegistry(session)
        self.sequence = VoucherSequenceService(session)
        self.journal = JournalService(
            session,
            clock=clock,
            registry=self.registry,
            sequence=self.sequence,
            balance_tolerance=balance_tolerance,
            money_places=money_places,
            voucher_retry_attempts=voucher_retry_attempts,
        )
        self.reversal = ReversalService(session, clock=clock, journal=self.journal)
        self.journal_selector = JournalSelector(session)
        self.ledger_selector = LedgerSelector(session)


class LedgerService:
    """
    Facade over the ledger kernel.

    Contract:
        Every public method is one transaction.  Arguments are plain values
        and kernel DTO specs; results are frozen DTOs or report records.

    Non-goals:
        - Does NOT authenticate or authorize; ``actor_id`` is trusted.
        - Does NOT create tables; see ``ledger_kernel.db.engine``.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        read_session_factory: sessionmaker[Session] | None = None,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
    ) -> None:
        self._session_factory = session_factory or get_session_factory()
        if read_session_factory is not None:
            self._read_session_factory = read_session_factory
        elif session_factory is not None:
            self._read_session_factory = session_factory
        else:
            self._read_session_factory = get_read_session_factory()
        self._clock = clock or SystemClock()
        self._settings = settings
        if settings is not None:
            self._tolerance = settings.balance_tolerance
            self._places = settings.money_places
            self._retry_attempts = settings.voucher_retry_attempts
        else:
            self._tolerance = BALANCE_TOLERANCE
            self._places = MONEY_DECIMAL_PLACES
            self._retry_attempts = 3

    @classmethod
    def from_settings(cls, settings: LedgerSettings, clock: Clock | None = None) -> LedgerService:
        """Initialize logging and the engine from settings, then build the facade."""
        configure_logging(level=settings.log_level)
        init_engine_from_url(
            settings.database_url,
            echo=settings.echo,
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
            pool_timeout=settings.pool_timeout,
        )
        return cls(clock=clock, settings=settings)

    # ------------------------------------------------------------------
    # Transaction plumbing
    # ------------------------------------------------------------------

    def _kernel(self, session: Session) -> _KernelServices:
        return _KernelServices(
            session,
            self._clock,
            self._tolerance,
            self._places,
            self._retry_attempts,
        )

    def _write(self, operation: str, actor_id: UUID | None, fn: Callable[[_KernelServices], T]) -> T:
        """Run ``fn`` in a fresh transaction, re-running retryable conflicts."""
        with LogContext.bind(actor_id=str(actor_id) if actor_id else None):
            for attempt in range(1, self._retry_attempts + 1):
                try:
                    with session_scope(self._session_factory) as session:
                        try:
                            return fn(self._kernel(session))
                        except StaleDataError as exc:
                            raise OptimisticLockError(operation, str(exc)) from exc
                except ConcurrencyError as exc:
                    if not exc.retryable or attempt == self._retry_attempts:
                        raise
                    logger.warning(
                        "ledger_transaction_retry",
                        extra={"operation": operation, "attempt": attempt, "error_code": exc.code},
                    )
        raise AssertionError("unreachable")

    def _read(self, fn: Callable[[_KernelServices], T]) -> T:
        with read_session_scope(self._read_session_factory) as session:
            return fn(self._kernel(session))

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def create_account(self, spec: AccountSpec, actor_id: UUID) -> AccountInfo:
        return self._write(
            "create_account",
            actor_id,
            lambda k: AccountInfo.from_model(k.registry.create_account(spec, actor_id)),
        )

    def update_account(self, account_id: UUID, patch: AccountPatch, actor_id: UUID) -> AccountInfo:
        return self._write(
            "update_account",
            actor_id,
            lambda k: AccountInfo.from_model(k.registry.update_account(account_id, patch, actor_id)),
        )

    def set_account_parent(
        self,
        account_id: UUID,
        parent_id: UUID | None,
        actor_id: UUID,
    ) -> AccountInfo:
        return self._write(
            "set_account_parent",
            actor_id,
            lambda k: AccountInfo.from_model(k.registry.set_parent(account_id, parent_id, actor_id)),
        )

    def deactivate_account(self, account_id: UUID, actor_id: UUID) -> AccountInfo:
        return self._write(
            "deactivate_account",
            actor_id,
            lambda k: AccountInfo.from_model(k.registry.deactivate_account(account_id, actor_id)),
        )

    def delete_account(self, account_id: UUID, actor_id: UUID | None = None) -> None:
        self._write("delete_account", actor_id, lambda k: k.registry.delete_account(account_id))

    def link_or_create_subledger_account(
        self,
        entity_type: SubledgerEntityType | str,
        entity_code: str,
        entity_name: str,
        actor_id: UUID,
    ) -> AccountInfo:
        """Receivable (customer) or payable (supplier) account of an entity."""

        def run(k: _KernelServices) -> AccountInfo:
            account, _created = k.registry.link_or_create_subledger_account(
                entity_type, entity_code, entity_name, actor_id
            )
            return AccountInfo.from_model(account)

        return self._write("link_or_create_subledger_account", actor_id, run)

    def initialize_default_accounts(
        self,
        actor_id: UUID,
        chart: Sequence[DefaultAccountDef] | None = None,
    ) -> list[AccountInfo]:
        """Seed the default chart of accounts; existing codes are left alone."""
        definitions = chart if chart is not None else get_default_chart()
        specs = [account_spec_from_default(d) for d in definitions]
        return self._write(
            "initialize_default_accounts",
            actor_id,
            lambda k: [
                AccountInfo.from_model(a)
                for a in k.registry.initialize_default_accounts(specs, actor_id)
            ],
        )

    def get_account(self, account_id: UUID) -> AccountInfo:
        return self._read(lambda k: AccountInfo.from_model(k.registry.get(account_id)))

    def get_account_by_code(self, code: str) -> AccountInfo | None:
        def run(k: _KernelServices) -> AccountInfo | None:
            account = k.registry.get_by_code(code.strip().upper())
            return AccountInfo.from_model(account) if account is not None else None

        return self._read(run)

    def get_accounts_by_type(
        self,
        account_type: AccountType | str,
        include_inactive: bool = False,
    ) -> list[AccountInfo]:
        return self._read(
            lambda k: [
                AccountInfo.from_model(a)
                for a in k.registry.get_accounts_by_type(account_type, include_inactive)
            ]
        )

    def get_children(self, account_id: UUID) -> list[AccountInfo]:
        return self._read(
            lambda k: [AccountInfo.from_model(a) for a in k.registry.get_children(account_id)]
        )

    def get_hierarchy(self, account_id: UUID) -> AccountNode:
        return self._read(lambda k: k.registry.get_hierarchy(account_id))

    def get_account_balance(self, account_id: UUID, as_of_date: date | None = None) -> Decimal:
        """
        Current balance in the account's normal-balance sign.

        With ``as_of_date`` the balance is reconstructed from posted lines
        up to that date instead.
        """
        if as_of_date is not None:
            return self._read(lambda k: k.ledger_selector.account_balance(account_id, as_of_date))
        return self._read(lambda k: AccountInfo.from_model(k.registry.get(account_id)).current_balance)

    # ------------------------------------------------------------------
    # Journal entries
    # ------------------------------------------------------------------

    def create_journal_entry(self, spec: JournalEntrySpec, actor_id: UUID) -> JournalEntryInfo:
        return self._write(
            "create_journal_entry",
            actor_id,
            lambda k: JournalEntryInfo.from_model(k.journal.create(spec, actor_id)),
        )

    def update_journal_entry(
        self,
        entry_id: UUID,
        patch: JournalEntryPatch,
        actor_id: UUID,
    ) -> JournalEntryInfo:
        return self._write(
            "update_journal_entry",
            actor_id,
            lambda k: JournalEntryInfo.from_model(k.journal.update(entry_id, patch, actor_id)),
        )

    def post_journal_entry(
        self,
        entry: UUID | JournalEntrySpec,
        actor_id: UUID,
    ) -> JournalEntryInfo:
        """
        Post a DRAFT entry by id, or create and post a spec atomically.

        When a spec fails to post, nothing is kept: not even the draft.
        """

        def run(k: _KernelServices) -> JournalEntryInfo:
            if isinstance(entry, JournalEntrySpec):
                entry_id = k.journal.create(entry, actor_id).id
            else:
                entry_id = entry
            return JournalEntryInfo.from_model(k.journal.post(entry_id, actor_id))

        return self._write("post_journal_entry", actor_id, run)

    def reverse_journal_entry(self, entry_id: UUID, actor_id: UUID, reason: str) -> ReversalResult:
        return self._write(
            "reverse_journal_entry",
            actor_id,
            lambda k: k.reversal.reverse(entry_id, actor_id, reason),
        )

    def cancel_journal_entry(self, entry_id: UUID, actor_id: UUID, reason: str) -> JournalEntryInfo:
        return self._write(
            "cancel_journal_entry",
            actor_id,
            lambda k: JournalEntryInfo.from_model(k.journal.cancel(entry_id, actor_id, reason)),
        )

    def delete_journal_entry(self, entry_id: UUID, actor_id: UUID | None = None) -> None:
        self._write("delete_journal_entry", actor_id, lambda k: k.journal.delete(entry_id))

    def duplicate_journal_entry(
        self,
        entry_id: UUID,
        actor_id: UUID,
        entry_date: date | None = None,
    ) -> JournalEntryInfo:
        return self._write(
            "duplicate_journal_entry",
            actor_id,
            lambda k: JournalEntryInfo.from_model(
                k.journal.duplicate(entry_id, actor_id, entry_date=entry_date)
            ),
        )

    def approve_journal_entry(self, entry_id: UUID, actor_id: UUID) -> JournalEntryInfo:
        return self._write(
            "approve_journal_entry",
            actor_id,
            lambda k: JournalEntryInfo.from_model(k.journal.approve(entry_id, actor_id)),
        )

    def check_balance(self, lines: Sequence[LineSpec]) -> BalanceCheck:
        """Totals preview; touches no database."""
        return check_balance(lines, self._tolerance, self._places)

    def get_journal_entry(self, entry_id: UUID) -> JournalEntryInfo:
        def run(k: _KernelServices) -> JournalEntryInfo:
            info = k.journal_selector.get(entry_id)
            if info is None:
                raise JournalEntryNotFoundError(str(entry_id))
            return info

        return self._read(run)

    def get_journal_entry_by_voucher(self, voucher_number: str) -> JournalEntryInfo | None:
        return self._read(lambda k: k.journal_selector.get_by_voucher_number(voucher_number))

    def list_journal_entries(
        self,
        status: JournalEntryStatus | str | None = None,
        voucher_type: VoucherType | str | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Page[JournalEntryInfo]:
        return self._read(
            lambda k: k.journal_selector.list_entries(
                status=status,
                voucher_type=voucher_type,
                date_from=date_from,
                date_to=date_to,
                limit=limit,
                offset=offset,
            )
        )

    def entries_for_account(
        self,
        account_id: UUID,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[JournalEntryInfo]:
        return self._read(
            lambda k: k.journal_selector.entries_for_account(
                account_id, date_from=date_from, date_to=date_to
            )
        )

    def journal_stats(
        self,
        date_from: date | None = None,
        date_to: date | None = None,
        voucher_type: VoucherType | str | None = None,
    ) -> JournalStats:
        return self._read(lambda k: k.journal_selector.stats(date_from, date_to, voucher_type))

    # ------------------------------------------------------------------
    # Voucher numbering
    # ------------------------------------------------------------------

    def next_voucher_number(
        self,
        voucher_type: VoucherType | str,
        on_date: date | None = None,
    ) -> str:
        """Preview of the next number; consumes nothing."""
        on_date = on_date or self._clock.today()
        return self._read(lambda k: k.sequence.next_voucher_number(voucher_type, on_date))

    def list_voucher_types(self) -> list[VoucherTypeInfo]:
        return VoucherSequenceService.list_voucher_types()

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def trial_balance(
        self,
        as_of_date: date | None = None,
        fiscal_year: int | None = None,
        fiscal_period: int | None = None,
    ) -> TrialBalanceReport:
        as_of_date = as_of_date or self._clock.today()
        return self._read(
            lambda k: k.ledger_selector.trial_balance(as_of_date, fiscal_year, fiscal_period)
        )

    def general_ledger(
        self,
        account_id: UUID,
        date_from: date | None = None,
        date_to: date | None = None,
        include_opening_balance: bool = True,
    ) -> GeneralLedger:
        return self._read(
            lambda k: k.ledger_selector.general_ledger(
                account_id, date_from, date_to, include_opening_balance
            )
        )

    def reconcile(self) -> list[ReconciliationDifference]:
        differences = self._read(lambda k: k.ledger_selector.reconcile())
        if differences:
            logger.error(
                "ledger_reconciliation_failed",
                extra={"accounts": [d.account_code for d in differences]},
            )
        return differences

    def income_statement(self, date_from: date, date_to: date) -> IncomeStatement:
        return self._read(lambda k: k.ledger_selector.income_statement(date_from, date_to))

    def balance_sheet(self, as_of_date: date | None = None) -> BalanceSheet:
        as_of_date = as_of_date or self._clock.today()
        return self._read(lambda k: k.ledger_selector.balance_sheet(as_of_date))
