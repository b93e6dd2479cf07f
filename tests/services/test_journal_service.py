"""
Journal entry lifecycle: create, edit, post, cancel, delete, duplicate.

Includes the worked scenarios:
- post [Cash Dr 500, Sales Cr 500] moves both balances to 500
- an unbalanced post leaves the entry DRAFT and balances untouched
- a one-line entry cannot be posted
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_config import get_default_chart
from ledger_kernel.domain.dtos import AccountPatch, JournalEntryPatch, JournalEntrySpec, LineSpec
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    DuplicateVoucherNumberError,
    InsufficientLinesError,
    InvalidStateError,
    JournalEntryNotFoundError,
    PostingNotAllowedError,
    ReferentialIntegrityError,
    UnbalancedEntryError,
    ValidationError,
)
from ledger_kernel.models.journal import JournalEntryStatus
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.journal_service import JournalService
from ledger_services import account_spec_from_default


def _balance(ledger, account):
    return ledger.get_account(account.id).current_balance


class TestCreate:
    def test_draft_with_derived_fields(self, ledger, actor_id, standard_accounts, make_spec):
        cash, sales = standard_accounts["cash"], standard_accounts["sales"]
        entry = ledger.create_journal_entry(
            make_spec([(cash, "120.50", 0), (sales, 0, "120.50")], entry_date=date(2025, 9, 3)),
            actor_id,
        )
        assert entry.status == JournalEntryStatus.DRAFT
        assert entry.total_debit == Decimal("120.50")
        assert entry.total_credit == Decimal("120.50")
        assert (entry.fiscal_year, entry.fiscal_period) == (2025, 9)
        assert entry.voucher_number == "JV-001/09-25"
        assert entry.created_by_id == actor_id
        assert [line.line_seq for line in entry.lines] == [0, 1]
        assert [line.account_code for line in entry.lines] == ["1001", "4001"]

    def test_draft_does_not_touch_balances(self, ledger, standard_accounts, draft_entry):
        cash, sales = standard_accounts["cash"], standard_accounts["sales"]
        draft_entry([(cash, 100, 0), (sales, 0, 100)])
        assert _balance(ledger, cash) == Decimal("0.00")

    def test_unbalanced_draft_is_allowed(self, standard_accounts, draft_entry):
        cash, sales = standard_accounts["cash"], standard_accounts["sales"]
        entry = draft_entry([(cash, 100, 0), (sales, 0, 90)])
        assert not entry.is_balanced

    def test_line_with_both_sides_rejected(self, ledger, actor_id, standard_accounts, make_spec):
        cash, sales = standard_accounts["cash"], standard_accounts["sales"]
        with pytest.raises(ValidationError):
            ledger.create_journal_entry(make_spec([(cash, 10, 10), (sales, 0, 10)]), actor_id)

    def test_unknown_voucher_type(self, ledger, actor_id, standard_accounts, make_spec):
        cash, sales = standard_accounts["cash"], standard_accounts["sales"]
        with pytest.raises(ValidationError) as exc_info:
            ledger.create_journal_entry(
                make_spec([(cash, 10, 0), (sales, 0, 10)], voucher_type="BARTER"), actor_id
            )
        assert exc_info.value.field == "voucher_type"

    def test_unknown_account(self, ledger, actor_id, standard_accounts, make_spec):
        from ledger_kernel.domain.dtos import JournalEntrySpec

        spec = JournalEntrySpec(
            voucher_type="JOURNAL",
            entry_date=date(2025, 9, 1),
            description="Ghost",
            lines=(LineSpec.debit(uuid4(), 10), LineSpec.credit(standard_accounts["sales"].id, 10)),
        )
        with pytest.raises(AccountNotFoundError):
            ledger.create_journal_entry(spec, actor_id)

    def test_explicit_voucher_number_is_kept(self, ledger, actor_id, standard_accounts, make_spec):
        cash, sales = standard_accounts["cash"], standard_accounts["sales"]
        entry = ledger.create_journal_entry(
            make_spec([(cash, 1, 0), (sales, 0, 1)], voucher_number="jv-900/09-25"), actor_id
        )
        assert entry.voucher_number == "JV-900/09-25"

    def test_duplicate_explicit_voucher_number(self, ledger, actor_id, standard_accounts, make_spec):
        cash, sales = standard_accounts["cash"], standard_accounts["sales"]
        lines = [(cash, 1, 0), (sales, 0, 1)]
        ledger.create_journal_entry(make_spec(lines, voucher_number="JV-900/09-25"), actor_id)
        with pytest.raises(DuplicateVoucherNumberError) as exc_info:
            ledger.create_journal_entry(make_spec(lines, voucher_number="JV-900/09-25"), actor_id)
        assert exc_info.value.voucher_number == "JV-900/09-25"


class TestPost:
    def test_cash_sale(self, ledger, actor_id, clock, standard_accounts, draft_entry):
        """Cash Dr 500 / Sales Cr 500: both balances become 500."""
        cash, sales = standard_accounts["cash"], standard_accounts["sales"]
        draft = draft_entry([(cash, 500, 0), (sales, 0, 500)])

        posted = ledger.post_journal_entry(draft.id, actor_id)

        assert posted.status == JournalEntryStatus.POSTED
        assert posted.posted_by_id == actor_id
        assert posted.posted_at == clock.now()
        assert _balance(ledger, cash) == Decimal("500.00")
        assert _balance(ledger, sales) == Decimal("500.00")

    def test_credit_reduces_debit_normal_account(self, ledger, standard_accounts, post_entry):
        cash, rent, equity = (standard_accounts[k] for k in ("cash", "rent", "equity"))
        post_entry([(cash, 1000, 0), (equity, 0, 1000)])
        post_entry([(rent, 300, 0), (cash, 0, 300)])
        assert _balance(ledger, cash) == Decimal("700.00")
        assert _balance(ledger, rent) == Decimal("300.00")
        assert _balance(ledger, equity) == Decimal("1000.00")

    def test_unbalanced_post_changes_nothing(self, ledger, actor_id, standard_accounts, draft_entry):
        cash, sales = standard_accounts["cash"], standard_accounts["sales"]
        draft = draft_entry([(cash, 100, 0), (sales, 0, 90)])

        with pytest.raises(UnbalancedEntryError) as exc_info:
            ledger.post_journal_entry(draft.id, actor_id)

        assert Decimal(exc_info.value.debits) == Decimal("100")
        assert Decimal(exc_info.value.credits) == Decimal("90")
        assert ledger.get_journal_entry(draft.id).status == JournalEntryStatus.DRAFT
        assert _balance(ledger, cash) == Decimal("0.00")
        assert _balance(ledger, sales) == Decimal("0.00")

    def test_single_line_entry(self, ledger, actor_id, standard_accounts, draft_entry):
        draft = draft_entry([(standard_accounts["cash"], 100, 0)])
        with pytest.raises(InsufficientLinesError) as exc_info:
            ledger.post_journal_entry(draft.id, actor_id)
        assert exc_info.value.line_count == 1
        assert ledger.get_journal_entry(draft.id).status == JournalEntryStatus.DRAFT

    def test_post_twice(self, ledger, actor_id, standard_accounts, post_entry):
        cash, sales = standard_accounts["cash"], standard_accounts["sales"]
        posted = post_entry([(cash, 50, 0), (sales, 0, 50)])
        with pytest.raises(InvalidStateError) as exc_info:
            ledger.post_journal_entry(posted.id, actor_id)
        assert exc_info.value.status == "posted"
        assert _balance(ledger, cash) == Decimal("50.00")

    def test_closed_account_rolls_back_every_line(self, ledger, actor_id, standard_accounts, draft_entry):
        """Balance updates applied before the failing account must not stick."""
        cash, sales = standard_accounts["cash"], standard_accounts["sales"]
        spare = standard_accounts["service"]
        draft = draft_entry([(cash, 100, 0), (sales, 0, 60), (spare, 0, 40)])
        ledger.update_account(spare.id, AccountPatch(allow_posting=False), actor_id)

        with pytest.raises(PostingNotAllowedError) as exc_info:
            ledger.post_journal_entry(draft.id, actor_id)

        assert exc_info.value.account_code == "4100"
        assert _balance(ledger, cash) == Decimal("0.00")
        assert _balance(ledger, sales) == Decimal("0.00")
        assert ledger.get_journal_entry(draft.id).status == JournalEntryStatus.DRAFT

    def test_non_posting_account(self, ledger, actor_id, standard_accounts, draft_entry):
        cash, sales = standard_accounts["cash"], standard_accounts["sales"]
        ledger.update_account(sales.id, AccountPatch(allow_posting=False), actor_id)
        draft = draft_entry([(cash, 5, 0), (sales, 0, 5)])
        with pytest.raises(PostingNotAllowedError):
            ledger.post_journal_entry(draft.id, actor_id)

    def test_create_and_post_spec_is_atomic(self, ledger, actor_id, standard_accounts, make_spec):
        """A spec that fails to post leaves no draft behind."""
        cash, sales = standard_accounts["cash"], standard_accounts["sales"]
        with pytest.raises(UnbalancedEntryError):
            ledger.post_journal_entry(make_spec([(cash, 10, 0), (sales, 0, 9)]), actor_id)
        assert ledger.list_journal_entries().total == 0

    def test_create_and_post_spec(self, ledger, actor_id, standard_accounts, make_spec):
        cash, sales = standard_accounts["cash"], standard_accounts["sales"]
        posted = ledger.post_journal_entry(make_spec([(cash, 10, 0), (sales, 0, 10)]), actor_id)
        assert posted.status == JournalEntryStatus.POSTED

    def test_unknown_entry(self, ledger, actor_id):
        with pytest.raises(JournalEntryNotFoundError):
            ledger.post_journal_entry(uuid4(), actor_id)

    def test_post_is_logged(self, ledger, actor_id, standard_accounts, draft_entry, captured_logs):
        cash, sales = standard_accounts["cash"], standard_accounts["sales"]
        draft = draft_entry([(cash, 10, 0), (sales, 0, 10)])
        ledger.post_journal_entry(draft.id, actor_id)

        posted = [r for r in captured_logs() if r["message"] == "journal_entry_posted"]
        assert len(posted) == 1
        assert posted[0]["voucher_number"] == draft.voucher_number
        assert posted[0]["actor_id"] == str(actor_id)
        assert posted[0]["accounts"] == ["1001", "4001"]


class TestDraftMaintenance:
    def test_update_replaces_lines_and_keeps_number(self, ledger, actor_id, standard_accounts, draft_entry):
        cash, sales, service = (standard_accounts[k] for k in ("cash", "sales", "service"))
        draft = draft_entry([(cash, 10, 0), (sales, 0, 10)], entry_date=date(2025, 9, 30))

        updated = ledger.update_journal_entry(
            draft.id,
            JournalEntryPatch(
                entry_date=date(2025, 10, 1),
                description="Corrected",
                lines=(LineSpec.debit(cash.id, 25), LineSpec.credit(service.id, 25)),
            ),
            actor_id,
        )
        assert updated.voucher_number == draft.voucher_number
        assert (updated.fiscal_year, updated.fiscal_period) == (2025, 10)
        assert updated.description == "Corrected"
        assert updated.total_debit == Decimal("25.00")
        assert [line.account_code for line in updated.lines] == ["1001", "4100"]

    def test_update_posted_entry(self, ledger, actor_id, standard_accounts, post_entry):
        cash, sales = standard_accounts["cash"], standard_accounts["sales"]
        posted = post_entry([(cash, 10, 0), (sales, 0, 10)])
        with pytest.raises(InvalidStateError):
            ledger.update_journal_entry(posted.id, JournalEntryPatch(description="Sneaky"), actor_id)

    def test_cancel_appends_reason(self, ledger, actor_id, standard_accounts, draft_entry):
        cash, sales = standard_accounts["cash"], standard_accounts["sales"]
        draft = draft_entry([(cash, 10, 0), (sales, 0, 10)], notes="Week 37")
        cancelled = ledger.cancel_journal_entry(draft.id, actor_id, "entered twice")
        assert cancelled.status == JournalEntryStatus.CANCELLED
        assert cancelled.notes == "Week 37\nCancelled: entered twice"

    def test_cancelled_is_terminal(self, ledger, actor_id, standard_accounts, draft_entry):
        cash, sales = standard_accounts["cash"], standard_accounts["sales"]
        draft = draft_entry([(cash, 10, 0), (sales, 0, 10)])
        ledger.cancel_journal_entry(draft.id, actor_id, "no")
        with pytest.raises(InvalidStateError):
            ledger.post_journal_entry(draft.id, actor_id)
        with pytest.raises(InvalidStateError):
            ledger.cancel_journal_entry(draft.id, actor_id, "again")
        assert _balance(ledger, cash) == Decimal("0.00")

    def test_cancel_posted(self, ledger, actor_id, standard_accounts, post_entry):
        cash, sales = standard_accounts["cash"], standard_accounts["sales"]
        posted = post_entry([(cash, 10, 0), (sales, 0, 10)])
        with pytest.raises(InvalidStateError):
            ledger.cancel_journal_entry(posted.id, actor_id, "too late")

    def test_delete_draft(self, ledger, standard_accounts, draft_entry):
        cash, sales = standard_accounts["cash"], standard_accounts["sales"]
        draft = draft_entry([(cash, 10, 0), (sales, 0, 10)])
        ledger.delete_journal_entry(draft.id)
        with pytest.raises(JournalEntryNotFoundError):
            ledger.get_journal_entry(draft.id)

    def test_delete_posted(self, ledger, standard_accounts, post_entry):
        cash, sales = standard_accounts["cash"], standard_accounts["sales"]
        posted = post_entry([(cash, 10, 0), (sales, 0, 10)])
        with pytest.raises(ReferentialIntegrityError):
            ledger.delete_journal_entry(posted.id)

    def test_approve_records_approver(self, ledger, actor_id, clock, standard_accounts, draft_entry):
        cash, sales = standard_accounts["cash"], standard_accounts["sales"]
        draft = draft_entry([(cash, 10, 0), (sales, 0, 10)])
        approver = uuid4()
        approved = ledger.approve_journal_entry(draft.id, approver)
        assert approved.approved_by_id == approver
        assert approved.approved_at == clock.now()
        assert approved.status == JournalEntryStatus.DRAFT


class TestDuplicate:
    def test_copy_is_a_fresh_draft(self, ledger, actor_id, clock, standard_accounts, post_entry):
        cash, sales = standard_accounts["cash"], standard_accounts["sales"]
        original = post_entry(
            [(cash, 75, 0), (sales, 0, 75)],
            entry_date=date(2025, 8, 20),
            description="Monthly fee",
            notes="standing order",
        )

        copy = ledger.duplicate_journal_entry(original.id, actor_id)

        assert copy.id != original.id
        assert copy.status == JournalEntryStatus.DRAFT
        assert copy.description == "Copy of Monthly fee"
        assert copy.entry_date == clock.today()
        assert copy.notes == "standing order"
        assert copy.voucher_number == "JV-001/09-25"
        assert [(l.account_id, l.debit_amount, l.credit_amount) for l in copy.lines] == [
            (l.account_id, l.debit_amount, l.credit_amount) for l in original.lines
        ]

    def test_copy_with_date(self, ledger, actor_id, standard_accounts, post_entry):
        cash, sales = standard_accounts["cash"], standard_accounts["sales"]
        original = post_entry([(cash, 5, 0), (sales, 0, 5)])
        copy = ledger.duplicate_journal_entry(original.id, actor_id, entry_date=date(2025, 11, 2))
        assert copy.fiscal_period == 11
        assert copy.voucher_number == "JV-001/11-25"


class TestBalancePreview:
    def test_check_balance(self, ledger, standard_accounts):
        cash, sales = standard_accounts["cash"], standard_accounts["sales"]
        result = ledger.check_balance([LineSpec.debit(cash.id, "10.00"), LineSpec.credit(sales.id, "9.995")])
        assert result.total_credit == Decimal("10.00")
        assert result.is_balanced


class TestConfiguredMoneyPlaces:
    """The engine rounds totals and balances to its configured places."""

    @pytest.fixture
    def accounts(self, session, actor_id):
        registry = AccountRegistry(session)
        created = registry.initialize_default_accounts(
            [account_spec_from_default(d) for d in get_default_chart()], actor_id
        )
        by_code = {a.code: a for a in created}
        return by_code["1001"], by_code["4001"]

    def test_three_places_kept_in_totals_and_balances(self, session, actor_id, accounts):
        cash, sales = accounts
        journal = JournalService(session, money_places=3)
        entry = journal.create(
            JournalEntrySpec(
                voucher_type="JOURNAL",
                entry_date=date(2025, 9, 10),
                description="Fuel surcharge",
                lines=(LineSpec.debit(cash.id, "0.125"), LineSpec.credit(sales.id, "0.125")),
            ),
            actor_id,
        )
        assert (entry.total_debit, entry.total_credit) == (Decimal("0.125"), Decimal("0.125"))

        journal.post(entry.id, actor_id)

        assert Decimal(cash.current_balance) == Decimal("0.125")
        assert Decimal(sales.current_balance) == Decimal("0.125")

    def test_edit_recomputes_totals_with_configured_places(self, session, actor_id, accounts):
        cash, sales = accounts
        journal = JournalService(session, money_places=3)
        entry = journal.create(
            JournalEntrySpec(
                voucher_type="JOURNAL",
                entry_date=date(2025, 9, 10),
                description="Draft",
                lines=(LineSpec.debit(cash.id, 1), LineSpec.credit(sales.id, 1)),
            ),
            actor_id,
        )
        journal.update(
            entry.id,
            JournalEntryPatch(lines=(LineSpec.debit(cash.id, "2.005"), LineSpec.credit(sales.id, "2.005"))),
            actor_id,
        )
        assert entry.total_debit == Decimal("2.005")
