"""
Report record arithmetic (no database).
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from ledger_kernel.domain.dtos import AccountInfo, AccountNode, Page
from ledger_kernel.domain.reports import (
    BalanceSheet,
    ReconciliationDifference,
    StatementSection,
    TrialBalanceReport,
    TrialBalanceRow,
)
from ledger_kernel.models.account import (
    AccountCategory,
    AccountType,
    NormalBalance,
    normal_balance_for,
)


def _row(code, account_type, debit, credit):
    normal = normal_balance_for(account_type)
    raw = Decimal(debit) - Decimal(credit)
    return TrialBalanceRow(
        account_id=uuid4(),
        account_code=code,
        account_name=code,
        account_type=account_type,
        normal_balance=normal,
        debit_total=Decimal(debit),
        credit_total=Decimal(credit),
        balance=raw if normal == NormalBalance.DEBIT else -raw,
    )


class TestNormalBalance:
    def test_debit_normal_types(self):
        assert normal_balance_for(AccountType.ASSET) == NormalBalance.DEBIT
        assert normal_balance_for(AccountType.EXPENSE) == NormalBalance.DEBIT

    def test_credit_normal_types(self):
        for account_type in (AccountType.LIABILITY, AccountType.EQUITY, AccountType.REVENUE):
            assert normal_balance_for(account_type) == NormalBalance.CREDIT

    def test_every_category_maps_to_one_type(self):
        assert AccountCategory.COST_OF_GOODS_SOLD.account_type == AccountType.EXPENSE
        assert AccountCategory.RETAINED_EARNINGS.account_type == AccountType.EQUITY
        assert {c.account_type for c in AccountCategory} == set(AccountType)


class TestTrialBalanceRow:
    def test_debit_side_balance(self):
        row = _row("1001", AccountType.ASSET, "500", "200")
        assert row.balance == Decimal("300")
        assert row.debit_balance == Decimal("300")
        assert row.credit_balance == Decimal("0.00")

    def test_credit_normal_balance_is_positive(self):
        row = _row("4001", AccountType.REVENUE, "0", "500")
        assert row.balance == Decimal("500")
        assert row.credit_balance == Decimal("500")
        assert row.debit_balance == Decimal("0.00")

    def test_report_lookup_and_balance(self):
        rows = (
            _row("1001", AccountType.ASSET, "500", "0"),
            _row("4001", AccountType.REVENUE, "0", "500"),
        )
        report = TrialBalanceReport(
            as_of_date=date(2025, 9, 30),
            rows=rows,
            total_debit_balances=Decimal("500.00"),
            total_credit_balances=Decimal("500.00"),
        )
        assert report.is_balanced
        assert report.row_for("4001") is rows[1]
        assert report.row_for("9999") is None


class TestStatements:
    def test_balance_sheet_equation_includes_retained_earnings(self):
        def section(account_type, total):
            return StatementSection(account_type=account_type, lines=(), total=Decimal(total))

        sheet = BalanceSheet(
            as_of_date=date(2025, 9, 30),
            assets=section(AccountType.ASSET, "1500"),
            liabilities=section(AccountType.LIABILITY, "300"),
            equity=section(AccountType.EQUITY, "1000"),
            retained_earnings=Decimal("200"),
        )
        assert sheet.total_liabilities_and_equity == Decimal("1500")
        assert sheet.is_balanced

    def test_reconciliation_difference(self):
        diff = ReconciliationDifference(
            account_id=uuid4(),
            account_code="1001",
            current_balance=Decimal("110.00"),
            reconstructed_balance=Decimal("100.00"),
        )
        assert diff.difference == Decimal("10.00")


class TestReadRecords:
    def test_page_has_more(self):
        assert Page(items=(1, 2), total=5, limit=2, offset=0).has_more
        assert not Page(items=(5,), total=5, limit=2, offset=4).has_more

    def test_account_node_walk_is_depth_first(self):
        def info(code):
            return AccountInfo(
                id=uuid4(),
                code=code,
                name=code,
                account_type=AccountType.ASSET,
                account_category=AccountCategory.CURRENT_ASSET,
                account_sub_category=None,
                normal_balance=NormalBalance.DEBIT,
                current_balance=Decimal("0.00"),
                allow_posting=True,
                is_active=True,
                is_system_account=False,
                parent_id=None,
                level=1,
            )

        tree = AccountNode(
            info("1000"),
            (
                AccountNode(info("1100"), (AccountNode(info("1110")),)),
                AccountNode(info("1200")),
            ),
        )
        assert [a.code for a in tree.walk()] == ["1000", "1100", "1110", "1200"]
