"""
Account registry: creation, code assignment, hierarchy and sub-ledger
provisioning.
"""

from decimal import Decimal

import pytest

from ledger_kernel.domain.dtos import AccountPatch, AccountSpec
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    DuplicateAccountCodeError,
    ReferentialIntegrityError,
    ValidationError,
)
from ledger_kernel.models.account import (
    MAX_ACCOUNT_LEVEL,
    AccountCategory,
    AccountType,
    NormalBalance,
    SubledgerEntityType,
)
from ledger_kernel.services.account_registry import AccountRegistry


def _spec(name, account_type, category, **kwargs):
    return AccountSpec(name=name, account_type=account_type, account_category=category, **kwargs)


CASH_SPEC = _spec("Cash", AccountType.ASSET, AccountCategory.CURRENT_ASSET)
SALES_SPEC = _spec("Sales", AccountType.REVENUE, AccountCategory.OPERATING_REVENUE)


class TestCreateAccount:
    def test_new_account_has_zero_balance_and_derived_normal_side(self, ledger, actor_id):
        cash = ledger.create_account(CASH_SPEC, actor_id)
        sales = ledger.create_account(SALES_SPEC, actor_id)

        assert cash.current_balance == Decimal("0.00")
        assert cash.normal_balance == NormalBalance.DEBIT
        assert sales.normal_balance == NormalBalance.CREDIT
        assert cash.level == 1
        assert cash.is_active and cash.allow_posting

    def test_generated_codes_follow_type_digit_and_sequence(self, ledger, actor_id):
        first = ledger.create_account(CASH_SPEC, actor_id)
        second = ledger.create_account(_spec("Bank", AccountType.ASSET, AccountCategory.CURRENT_ASSET), actor_id)
        revenue = ledger.create_account(SALES_SPEC, actor_id)

        assert first.code == "10001"
        assert second.code == "10002"
        assert revenue.code == "40001"

    def test_generated_code_skips_taken_codes(self, ledger, actor_id):
        """An explicit code that occupies the next generated slot is skipped."""
        ledger.create_account(_spec("Petty", AccountType.ASSET, AccountCategory.CURRENT_ASSET, code="10002"), actor_id)
        generated = ledger.create_account(CASH_SPEC, actor_id)
        assert generated.code == "10003"

    def test_duplicate_explicit_code(self, ledger, actor_id):
        ledger.create_account(_spec("Cash", AccountType.ASSET, AccountCategory.CURRENT_ASSET, code="1001"), actor_id)
        with pytest.raises(DuplicateAccountCodeError) as exc_info:
            ledger.create_account(_spec("Other", AccountType.ASSET, AccountCategory.CURRENT_ASSET, code="1001"), actor_id)
        assert exc_info.value.account_code == "1001"
        assert isinstance(exc_info.value, ValidationError)

    def test_category_must_match_type(self, ledger, actor_id):
        with pytest.raises(ValidationError) as exc_info:
            ledger.create_account(_spec("Odd", AccountType.ASSET, AccountCategory.OPERATING_REVENUE), actor_id)
        assert exc_info.value.field == "account_category"

    def test_type_and_category_as_strings_in_any_case(self, ledger, actor_id):
        account = ledger.create_account(
            AccountSpec(name="Cash", account_type="ASSET", account_category="current_asset"),
            actor_id,
        )
        assert account.account_type == AccountType.ASSET
        assert account.account_category == AccountCategory.CURRENT_ASSET
        assert account.normal_balance == NormalBalance.DEBIT

    @pytest.mark.parametrize(
        "account_type,category,field",
        [
            ("ASSETS", "CURRENT_ASSET", "account_type"),
            ("asset", "PETTY_CASH", "account_category"),
        ],
    )
    def test_unknown_type_or_category(self, ledger, actor_id, account_type, category, field):
        with pytest.raises(ValidationError) as exc_info:
            ledger.create_account(
                AccountSpec(name="Odd", account_type=account_type, account_category=category),
                actor_id,
            )
        assert exc_info.value.field == field

    def test_blank_name(self, ledger, actor_id):
        with pytest.raises(ValidationError):
            ledger.create_account(_spec("  ", AccountType.ASSET, AccountCategory.CURRENT_ASSET), actor_id)

    def test_child_level(self, ledger, actor_id):
        parent = ledger.create_account(CASH_SPEC, actor_id)
        child = ledger.create_account(
            _spec("Till 1", AccountType.ASSET, AccountCategory.CURRENT_ASSET, parent_id=parent.id),
            actor_id,
        )
        assert child.parent_id == parent.id
        assert child.level == 2

    def test_depth_limit(self, ledger, actor_id):
        parent = None
        for depth in range(MAX_ACCOUNT_LEVEL):
            parent = ledger.create_account(
                _spec(f"Level {depth + 1}", AccountType.ASSET, AccountCategory.CURRENT_ASSET,
                      parent_id=parent.id if parent else None),
                actor_id,
            )
        assert parent.level == MAX_ACCOUNT_LEVEL
        with pytest.raises(ValidationError):
            ledger.create_account(
                _spec("Too deep", AccountType.ASSET, AccountCategory.CURRENT_ASSET, parent_id=parent.id),
                actor_id,
            )

    def test_unknown_parent(self, ledger, actor_id):
        from uuid import uuid4

        with pytest.raises(AccountNotFoundError):
            ledger.create_account(
                _spec("Orphan", AccountType.ASSET, AccountCategory.CURRENT_ASSET, parent_id=uuid4()),
                actor_id,
            )


class TestDefaultChart:
    def test_seeds_fourteen_system_accounts(self, ledger, actor_id):
        created = ledger.initialize_default_accounts(actor_id)
        assert len(created) == 14
        assert all(a.is_system_account for a in created)
        assert ledger.get_account_by_code("4001").name == "Sales Revenue"

    def test_second_run_is_a_no_op(self, ledger, actor_id):
        ledger.initialize_default_accounts(actor_id)
        assert ledger.initialize_default_accounts(actor_id) == []

    def test_accounts_by_type(self, ledger, standard_accounts):
        expenses = ledger.get_accounts_by_type(AccountType.EXPENSE)
        assert [a.code for a in expenses] == ["5001", "5100", "5200", "5300"]

    def test_seeding_is_logged_with_counts(self, ledger, actor_id, captured_logs):
        ledger.initialize_default_accounts(actor_id)
        ledger.initialize_default_accounts(actor_id)

        seeded = [r for r in captured_logs() if r["message"] == "default_accounts_initialized"]
        assert [(r["created_count"], r["requested_count"]) for r in seeded] == [(14, 14), (0, 14)]

    def test_accounts_by_type_name_in_any_case(self, ledger, standard_accounts):
        assert [a.code for a in ledger.get_accounts_by_type("LIABILITY")] == ["2001", "2100"]


class TestSubledgerAccounts:
    def test_customer_receivable(self, ledger, actor_id):
        account = ledger.link_or_create_subledger_account(
            SubledgerEntityType.CUSTOMER, "CUST-0042", "Acme Ltd", actor_id
        )
        assert account.name == "Accounts Receivable - Acme Ltd"
        assert account.account_type == AccountType.ASSET
        assert account.account_category == AccountCategory.CURRENT_ASSET
        assert account.account_sub_category == "ACCOUNTS_RECEIVABLE"
        assert "cust-0042" in account.tags
        assert account.subledger_entity_code == "CUST-0042"

    def test_supplier_payable(self, ledger, actor_id):
        account = ledger.link_or_create_subledger_account("supplier", "SUP-7", "Widgets Inc", actor_id)
        assert account.name == "Accounts Payable - Widgets Inc"
        assert account.account_type == AccountType.LIABILITY
        assert account.normal_balance == NormalBalance.CREDIT

    def test_is_idempotent(self, ledger, actor_id):
        first = ledger.link_or_create_subledger_account("customer", "C1", "Acme", actor_id)
        second = ledger.link_or_create_subledger_account("customer", "C1", "Acme renamed", actor_id)
        assert first.id == second.id

    def test_same_code_different_entity_type(self, ledger, actor_id):
        customer = ledger.link_or_create_subledger_account("customer", "X1", "X", actor_id)
        supplier = ledger.link_or_create_subledger_account("supplier", "X1", "X", actor_id)
        assert customer.id != supplier.id

    def test_unknown_entity_type(self, ledger, actor_id):
        with pytest.raises(ValidationError) as exc_info:
            ledger.link_or_create_subledger_account("employee", "E1", "Someone", actor_id)
        assert exc_info.value.field == "entity_type"

    def test_entity_type_in_any_case(self, ledger, actor_id):
        account = ledger.link_or_create_subledger_account("CUSTOMER", "C9", "Acme", actor_id)
        assert account.subledger_entity_type == SubledgerEntityType.CUSTOMER

    def test_blank_entity_code(self, ledger, actor_id):
        with pytest.raises(ValidationError):
            ledger.link_or_create_subledger_account("customer", " ", "Nobody", actor_id)

    def test_returns_created_flag_at_kernel_level(self, session, actor_id):
        registry = AccountRegistry(session)
        _, created = registry.link_or_create_subledger_account("customer", "K1", "K", actor_id)
        _, created_again = registry.link_or_create_subledger_account("customer", "K1", "K", actor_id)
        assert created is True
        assert created_again is False


class TestUpdateAccount:
    def test_rename_and_tags(self, ledger, actor_id):
        cash = ledger.create_account(CASH_SPEC, actor_id)
        updated = ledger.update_account(cash.id, AccountPatch(name="Cash on hand", tags=("petty",)), actor_id)
        assert updated.name == "Cash on hand"
        assert updated.tags == ("petty",)
        assert updated.code == cash.code

    def test_type_change_recomputes_normal_balance(self, ledger, actor_id):
        account = ledger.create_account(CASH_SPEC, actor_id)
        updated = ledger.update_account(
            account.id,
            AccountPatch(account_type=AccountType.LIABILITY, account_category=AccountCategory.CURRENT_LIABILITY),
            actor_id,
        )
        assert updated.normal_balance == NormalBalance.CREDIT

    def test_type_change_rejected_for_system_account(self, ledger, actor_id, standard_accounts):
        with pytest.raises(ValidationError):
            ledger.update_account(
                standard_accounts["cash"].id,
                AccountPatch(account_type=AccountType.EXPENSE, account_category=AccountCategory.OPERATING_EXPENSE),
                actor_id,
            )

    def test_type_change_rejected_once_referenced(self, ledger, actor_id, post_entry):
        cash = ledger.create_account(CASH_SPEC, actor_id)
        sales = ledger.create_account(SALES_SPEC, actor_id)
        post_entry([(cash, 10, 0), (sales, 0, 10)])
        with pytest.raises(ReferentialIntegrityError):
            ledger.update_account(
                cash.id,
                AccountPatch(account_type=AccountType.EXPENSE, account_category=AccountCategory.OPERATING_EXPENSE),
                actor_id,
            )

    def test_category_change_must_match_type(self, ledger, actor_id):
        cash = ledger.create_account(CASH_SPEC, actor_id)
        with pytest.raises(ValidationError):
            ledger.update_account(cash.id, AccountPatch(account_category=AccountCategory.OWNER_EQUITY), actor_id)


class TestEnumParsing:
    def test_account_type(self):
        assert AccountType.parse("Liability") is AccountType.LIABILITY
        assert AccountType.parse(AccountType.EQUITY) is AccountType.EQUITY

    def test_account_category(self):
        assert AccountCategory.parse(" owner_equity ") is AccountCategory.OWNER_EQUITY

    def test_subledger_entity_type(self):
        assert SubledgerEntityType.parse("Supplier") is SubledgerEntityType.SUPPLIER

    def test_unknown_value_names_the_field(self):
        with pytest.raises(ValidationError) as exc_info:
            AccountType.parse("income", field="patch.account_type")
        assert exc_info.value.field == "patch.account_type"

    def test_update_with_unknown_type(self, ledger, actor_id):
        cash = ledger.create_account(CASH_SPEC, actor_id)
        with pytest.raises(ValidationError) as exc_info:
            ledger.update_account(cash.id, AccountPatch(account_type="cash"), actor_id)
        assert exc_info.value.field == "account_type"


class TestHierarchyQueries:
    def test_children_are_active_and_ordered(self, ledger, actor_id):
        root = ledger.create_account(_spec("Assets", AccountType.ASSET, AccountCategory.CURRENT_ASSET, code="1000"), actor_id)
        b = ledger.create_account(_spec("B", AccountType.ASSET, AccountCategory.CURRENT_ASSET, code="1020", parent_id=root.id), actor_id)
        a = ledger.create_account(_spec("A", AccountType.ASSET, AccountCategory.CURRENT_ASSET, code="1010", parent_id=root.id), actor_id)
        gone = ledger.create_account(_spec("Gone", AccountType.ASSET, AccountCategory.CURRENT_ASSET, code="1030", parent_id=root.id), actor_id)
        ledger.deactivate_account(gone.id, actor_id)

        assert [c.id for c in ledger.get_children(root.id)] == [a.id, b.id]

    def test_hierarchy_tree(self, ledger, actor_id):
        root = ledger.create_account(_spec("Assets", AccountType.ASSET, AccountCategory.CURRENT_ASSET, code="1000"), actor_id)
        mid = ledger.create_account(_spec("Cash", AccountType.ASSET, AccountCategory.CURRENT_ASSET, code="1100", parent_id=root.id), actor_id)
        ledger.create_account(_spec("Till", AccountType.ASSET, AccountCategory.CURRENT_ASSET, code="1110", parent_id=mid.id), actor_id)

        tree = ledger.get_hierarchy(root.id)
        assert [a.code for a in tree.walk()] == ["1000", "1100", "1110"]
        assert tree.children[0].children[0].account.level == 3
