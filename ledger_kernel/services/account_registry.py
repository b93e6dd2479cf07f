"""
AccountRegistry -- the Chart of Accounts.

Responsibility:
    Creates accounts (with generated codes), maintains the account tree,
    guards deletion, provisions customer/supplier sub-ledger accounts and
    owns the single balance mutator used by posting.

Architecture position:
    Kernel > Services.  Called by JournalService (update_balance) and by
    LedgerService (everything else).

Invariants enforced:
    - normal_balance is derived from account_type, never supplied.
    - current_balance changes only through update_balance().
    - The account tree is acyclic and at most MAX_ACCOUNT_LEVEL deep.
    - An account referenced by any journal line is never deleted or
      deactivated.

Failure modes:
    - DuplicateAccountCodeError: explicit code already in use.
    - AccountNotFoundError: unknown account or parent id.
    - AccountHierarchyCycleError: re-parenting under a descendant.
    - ReferentialIntegrityError: delete/deactivate of a referenced account.
"""

from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from ledger_kernel.db.types import MONEY_DECIMAL_PLACES, ZERO, round_money
from ledger_kernel.domain.dtos import AccountNode, AccountPatch, AccountSpec, AccountInfo
from ledger_kernel.exceptions import (
    AccountHierarchyCycleError,
    AccountNotFoundError,
    DuplicateAccountCodeError,
    ReferentialIntegrityError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import (
    MAX_ACCOUNT_LEVEL,
    Account,
    AccountCategory,
    AccountType,
    SubledgerEntityType,
    normal_balance_for,
)
from ledger_kernel.models.journal import JournalLine
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account_registry")

# entity type -> (account type, category, sub-category, name prefix, tag)
_SUBLEDGER_TEMPLATES = {
    SubledgerEntityType.CUSTOMER: (
        AccountType.ASSET,
        AccountCategory.CURRENT_ASSET,
        "ACCOUNTS_RECEIVABLE",
        "Accounts Receivable",
        "accounts-receivable",
    ),
    SubledgerEntityType.SUPPLIER: (
        AccountType.LIABILITY,
        AccountCategory.CURRENT_LIABILITY,
        "ACCOUNTS_PAYABLE",
        "Accounts Payable",
        "accounts-payable",
    ),
}

_SUBLEDGER_CREATE_ATTEMPTS = 3


class AccountRegistry(BaseService):
    """
    Chart of Accounts service.

    Contract:
        All writes are flushed into the caller's transaction.  Lookups
        raise AccountNotFoundError rather than returning None.
    """

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, account_id: UUID, *, for_update: bool = False) -> Account:
        stmt = select(Account).where(Account.id == account_id)
        if for_update:
            stmt = stmt.with_for_update()
        account = self.session.execute(stmt).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def get_by_code(self, code: str) -> Account | None:
        return self.session.execute(
            select(Account).where(Account.code == code)
        ).scalar_one_or_none()

    def get_accounts_by_type(
        self,
        account_type: AccountType | str,
        include_inactive: bool = False,
    ) -> list[Account]:
        stmt = select(Account).where(Account.account_type == AccountType.parse(account_type).value)
        if not include_inactive:
            stmt = stmt.where(Account.is_active.is_(True))
        return list(self.session.execute(stmt.order_by(Account.code)).scalars())

    def is_referenced(self, account_id: UUID) -> int:
        """Number of journal lines (any status) referencing the account."""
        return self.session.execute(
            select(func.count(JournalLine.id)).where(JournalLine.account_id == account_id)
        ).scalar_one()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_account(self, spec: AccountSpec, actor_id: UUID) -> Account:
        """
        Create an account with zero balance.

        Postconditions:
            - normal_balance follows account_type.
            - level is 1 for roots, parent.level + 1 otherwise.

        Raises:
            ValidationError: Blank name, category of another type, or the
                tree would exceed MAX_ACCOUNT_LEVEL.
            DuplicateAccountCodeError: Explicit code already exists.
            AccountNotFoundError: Unknown parent.
        """
        account_type = AccountType.parse(spec.account_type)
        category = AccountCategory.parse(spec.account_category)
        if not spec.name or not spec.name.strip():
            raise ValidationError(field="name", reason="Account name is required")
        self._check_category(account_type, category)

        level = 1
        if spec.parent_id is not None:
            parent = self.get(spec.parent_id)
            level = parent.level + 1
            if level > MAX_ACCOUNT_LEVEL:
                raise ValidationError(
                    field="parent_id",
                    reason=f"Account hierarchy is limited to {MAX_ACCOUNT_LEVEL} levels",
                )

        if spec.code:
            code = spec.code.strip().upper()
            if self.get_by_code(code) is not None:
                raise DuplicateAccountCodeError(code)
        else:
            code = self._generate_code(account_type)

        account = Account(
            code=code,
            name=spec.name.strip(),
            account_type=account_type.value,
            account_category=category.value,
            account_sub_category=spec.account_sub_category,
            normal_balance=normal_balance_for(account_type).value,
            current_balance=ZERO,
            allow_posting=spec.allow_posting,
            is_active=True,
            is_system_account=spec.is_system_account,
            parent_id=spec.parent_id,
            level=level,
            description=spec.description,
            notes=spec.notes,
            tags=list(spec.tags) or None,
            created_by_id=actor_id,
        )

        savepoint = self.session.begin_nested()
        try:
            self.session.add(account)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            raise DuplicateAccountCodeError(code) from None

        logger.info(
            "account_created",
            extra={
                "account_id": str(account.id),
                "account_code": account.code,
                "account_type": account.account_type,
                "normal_balance": account.normal_balance,
            },
        )
        return account

    def _generate_code(self, account_type: AccountType) -> str:
        """
        Type digit + 4-digit sequence, sequence = accounts of the type + 1.

        Skips forward while the candidate is taken.
        """
        count = self.session.execute(
            select(func.count(Account.id)).where(Account.account_type == account_type.value)
        ).scalar_one()
        sequence = count + 1
        while True:
            code = f"{account_type.code_digit}{sequence:04d}"
            if self.get_by_code(code) is None:
                return code
            sequence += 1

    @staticmethod
    def _check_category(account_type: AccountType, category: AccountCategory) -> None:
        if category.account_type != account_type:
            raise ValidationError(
                field="account_category",
                reason=(
                    f"Category {category.value} belongs to {category.account_type.value} "
                    f"accounts, not {account_type.value}"
                ),
            )

    def initialize_default_accounts(
        self,
        specs: Sequence[AccountSpec],
        actor_id: UUID,
    ) -> list[Account]:
        """
        Seed a chart of accounts.  Codes that already exist are skipped.

        Returns:
            The accounts created by this call.
        """
        created = []
        for spec in specs:
            if spec.code and self.get_by_code(spec.code.strip().upper()) is not None:
                continue
            created.append(self.create_account(spec, actor_id))
        logger.info(
            "default_accounts_initialized",
            extra={"created_count": len(created), "requested_count": len(specs)},
        )
        return created

    def link_or_create_subledger_account(
        self,
        entity_type: SubledgerEntityType | str,
        entity_code: str,
        entity_name: str,
        actor_id: UUID,
    ) -> tuple[Account, bool]:
        """
        Get or create the receivable/payable account owned by an entity.

        Idempotent: concurrent callers for the same entity end up with the
        same account through the unique (entity type, entity code) pair.

        Returns:
            (account, created)
        """
        entity_type = SubledgerEntityType.parse(entity_type)
        entity_code = entity_code.strip()
        if not entity_code:
            raise ValidationError(field="entity_code", reason="Entity code is required")
        account_type, category, sub_category, prefix, tag = _SUBLEDGER_TEMPLATES[entity_type]

        for attempt in range(1, _SUBLEDGER_CREATE_ATTEMPTS + 1):
            existing = self._find_subledger_account(entity_type, entity_code)
            if existing is not None:
                return existing, False

            savepoint = self.session.begin_nested()
            try:
                account = Account(
                    code=self._generate_code(account_type),
                    name=f"{prefix} - {entity_name}",
                    account_type=account_type.value,
                    account_category=category.value,
                    account_sub_category=sub_category,
                    normal_balance=normal_balance_for(account_type).value,
                    current_balance=ZERO,
                    allow_posting=True,
                    is_active=True,
                    is_system_account=False,
                    level=1,
                    tags=[entity_type.value, tag, entity_code.lower()],
                    subledger_entity_type=entity_type.value,
                    subledger_entity_code=entity_code,
                    created_by_id=actor_id,
                )
                self.session.add(account)
                self.session.flush()
                savepoint.commit()
            except IntegrityError:
                savepoint.rollback()
                logger.debug(
                    "subledger_account_race_retry",
                    extra={
                        "entity_type": entity_type.value,
                        "entity_code": entity_code,
                        "attempt": attempt,
                    },
                )
                continue

            logger.info(
                "subledger_account_created",
                extra={
                    "account_id": str(account.id),
                    "account_code": account.code,
                    "entity_type": entity_type.value,
                    "entity_code": entity_code,
                },
            )
            return account, True

        existing = self._find_subledger_account(entity_type, entity_code)
        if existing is None:
            raise ValidationError(
                field="entity_code",
                reason=f"Could not provision account for {entity_type.value} {entity_code}",
            )
        return existing, False

    def _find_subledger_account(
        self,
        entity_type: SubledgerEntityType,
        entity_code: str,
    ) -> Account | None:
        return self.session.execute(
            select(Account).where(
                Account.subledger_entity_type == entity_type.value,
                Account.subledger_entity_code == entity_code,
            )
        ).scalar_one_or_none()

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def update_account(self, account_id: UUID, patch: AccountPatch, actor_id: UUID) -> Account:
        """
        Apply a partial update.  ``code`` never changes.

        Raises:
            ValidationError: Type change on a system account, or a category
                that does not belong to the (new) type.
            ReferentialIntegrityError: Type change on, or deactivation of, a
                referenced account.
        """
        account = self.get(account_id)
        account_type = AccountType(account.account_type)

        new_type = account_type
        if patch.account_type is not None:
            new_type = AccountType.parse(patch.account_type)
        if new_type != account_type:
            if account.is_system_account:
                raise ValidationError(
                    field="account_type",
                    reason="Cannot change the type of a system account",
                )
            references = self.is_referenced(account.id)
            if references:
                raise ReferentialIntegrityError(
                    entity_type="Account",
                    entity_id=str(account.id),
                    reason=f"Account type is fixed once {references} journal line(s) reference it",
                )
            account_type = new_type
            account.account_type = account_type.value
            account.normal_balance = normal_balance_for(account_type).value

        category = AccountCategory.parse(patch.account_category or account.account_category)
        self._check_category(account_type, category)
        account.account_category = category.value

        if patch.is_active is False and account.is_active:
            self._guard_unreferenced(account, "deactivate")
        if patch.name is not None:
            if not patch.name.strip():
                raise ValidationError(field="name", reason="Account name is required")
            account.name = patch.name.strip()
        for field in ("account_sub_category", "description", "notes", "allow_posting", "is_active"):
            value = getattr(patch, field)
            if value is not None:
                setattr(account, field, value)
        if patch.tags is not None:
            account.tags = list(patch.tags) or None

        account.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "account_updated",
            extra={"account_id": str(account.id), "account_code": account.code},
        )
        return account

    def deactivate_account(self, account_id: UUID, actor_id: UUID) -> Account:
        account = self.get(account_id)
        self._guard_unreferenced(account, "deactivate")
        account.is_active = False
        account.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "account_deactivated",
            extra={"account_id": str(account.id), "account_code": account.code},
        )
        return account

    def delete_account(self, account_id: UUID) -> None:
        """
        Delete an unreferenced, non-system leaf account.

        Raises:
            ReferentialIntegrityError: System account, child accounts, or
                journal lines referencing it.
        """
        account = self.get(account_id)
        if account.is_system_account:
            raise ReferentialIntegrityError(
                entity_type="Account",
                entity_id=str(account.id),
                reason="System accounts cannot be deleted",
            )
        self._guard_unreferenced(account, "delete")
        children = self.session.execute(
            select(func.count(Account.id)).where(Account.parent_id == account.id)
        ).scalar_one()
        if children:
            raise ReferentialIntegrityError(
                entity_type="Account",
                entity_id=str(account.id),
                reason=f"Account has {children} child account(s)",
            )
        self.session.delete(account)
        self.session.flush()
        logger.info(
            "account_deleted",
            extra={"account_id": str(account_id), "account_code": account.code},
        )

    def _guard_unreferenced(self, account: Account, operation: str) -> None:
        references = self.is_referenced(account.id)
        if references:
            logger.warning(
                "account_referenced",
                extra={
                    "account_id": str(account.id),
                    "account_code": account.code,
                    "operation": operation,
                    "line_count": references,
                },
            )
            raise ReferentialIntegrityError(
                entity_type="Account",
                entity_id=str(account.id),
                reason=f"Cannot {operation}: referenced by {references} journal line(s)",
            )

    # ------------------------------------------------------------------
    # Hierarchy
    # ------------------------------------------------------------------

    def get_children(self, account_id: UUID) -> list[Account]:
        """Active direct children, ordered by code."""
        self.get(account_id)
        return list(
            self.session.execute(
                select(Account)
                .where(Account.parent_id == account_id, Account.is_active.is_(True))
                .order_by(Account.code)
            ).scalars()
        )

    def get_hierarchy(self, account_id: UUID) -> AccountNode:
        """
        The account and all active descendants as a tree.

        Built iteratively with a visited set, so corrupt data cannot make it
        loop forever.
        """
        root = self.get(account_id)
        children_of: dict[UUID, list[Account]] = {}
        visited = {root.id}
        frontier = [root.id]
        while frontier:
            rows = list(
                self.session.execute(
                    select(Account)
                    .where(Account.parent_id.in_(frontier), Account.is_active.is_(True))
                    .order_by(Account.code)
                ).scalars()
            )
            frontier = []
            for child in rows:
                if child.id in visited:
                    continue
                visited.add(child.id)
                children_of.setdefault(child.parent_id, []).append(child)
                frontier.append(child.id)

        def build(account: Account) -> AccountNode:
            return AccountNode(
                account=AccountInfo.from_model(account),
                children=tuple(build(c) for c in children_of.get(account.id, [])),
            )

        return build(root)

    def _subtree_ids(self, account_id: UUID) -> list[UUID]:
        """account_id and all descendants, breadth first."""
        ordered = [account_id]
        seen = {account_id}
        frontier = [account_id]
        while frontier:
            child_ids = list(
                self.session.execute(
                    select(Account.id).where(Account.parent_id.in_(frontier))
                ).scalars()
            )
            frontier = [c for c in child_ids if c not in seen]
            seen.update(frontier)
            ordered.extend(frontier)
        return ordered

    def set_parent(self, account_id: UUID, parent_id: UUID | None, actor_id: UUID) -> Account:
        """
        Move an account (with its subtree) under ``parent_id``, or to the
        root when ``parent_id`` is None.

        Raises:
            AccountHierarchyCycleError: parent is the account or a descendant.
            ValidationError: The moved subtree would exceed MAX_ACCOUNT_LEVEL.
        """
        account = self.get(account_id)
        subtree = self._subtree_ids(account.id)

        new_level = 1
        if parent_id is not None:
            if parent_id in subtree:
                raise AccountHierarchyCycleError(str(account_id), str(parent_id))
            parent = self.get(parent_id)
            new_level = parent.level + 1

        accounts = {
            a.id: a
            for a in self.session.execute(
                select(Account).where(Account.id.in_(subtree))
            ).scalars()
        }
        shift = new_level - account.level
        deepest = max(a.level for a in accounts.values()) + shift
        if deepest > MAX_ACCOUNT_LEVEL:
            raise ValidationError(
                field="parent_id",
                reason=f"Account hierarchy is limited to {MAX_ACCOUNT_LEVEL} levels",
            )

        account.parent_id = parent_id
        for member in accounts.values():
            member.level += shift
            if shift:
                member.updated_by_id = actor_id
        account.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "account_reparented",
            extra={
                "account_id": str(account.id),
                "parent_id": str(parent_id) if parent_id else None,
                "level": account.level,
            },
        )
        return account

    # ------------------------------------------------------------------
    # Balance
    # ------------------------------------------------------------------

    def update_balance(
        self,
        account: Account,
        amount: Decimal,
        is_debit: bool,
        places: int = MONEY_DECIMAL_PLACES,
    ) -> Account:
        """
        Apply one posted line to the running balance.

        DEBIT-normal accounts grow with debits, CREDIT-normal accounts with
        credits.  The caller holds the account row lock; the version column
        turns the write into a compare-and-swap at flush.
        """
        if amount < ZERO:
            raise ValidationError(field="amount", reason="Balance movements are non-negative")
        increases = is_debit == account.is_debit_normal
        delta = amount if increases else -amount
        before = Decimal(account.current_balance)
        account.current_balance = round_money(before + delta, places)
        logger.debug(
            "account_balance_updated",
            extra={
                "account_id": str(account.id),
                "account_code": account.code,
                "delta": delta,
                "balance": account.current_balance,
            },
        )
        return account
