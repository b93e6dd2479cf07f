"""
ORM-level immutability enforcement for the ledger.

Posted history is append-only: a mistake in a posted entry is corrected by
a reversal, never by editing rows.  The services already refuse illegal
operations; these listeners are the second layer and catch any code path
that reaches the session directly.

    session.flush()
         |
         v
    [before_flush]   --> account deletion guard ----------> ReferentialIntegrityError
    [before_update]  --> _check_*_immutability() ---------> ImmutabilityViolationError
    [before_delete]  --> _check_*_delete() ---------------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Protected entities
------------------

Entity        | Rule
--------------|------------------------------------------------------------
JournalEntry  | POSTED: only POSTED -> REVERSED with reversal linkage
              | REVERSED / CANCELLED: frozen
              | not DRAFT: cannot be deleted
JournalLine   | frozen (update and delete) once the parent leaves DRAFT
Account       | code never changes; account_type frozen once referenced;
              | cannot be deleted while referenced by any journal line

Audit columns (updated_at, updated_by_id, version) may always change.

Inline imports avoid the models <-> db import cycle.
"""

from sqlalchemy import event, func, inspect, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.db.base import AUDIT_COLUMNS
from ledger_kernel.exceptions import (
    ImmutabilityViolationError,
    ReferentialIntegrityError,
)
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Fields that may change while an entry goes POSTED -> REVERSED
REVERSAL_FIELDS = frozenset(
    {"status", "reversal_entry_id", "reversal_reason", "reversal_date"}
)


def _previous_value(target, key: str):
    """Value of ``key`` as last loaded from the database."""
    history = get_history(target, key)
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return getattr(target, key)


def _status_text(status) -> str:
    return getattr(status, "value", status)


def _changed_fields(target) -> list[str]:
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.mapper.column_attrs
        if attr.key not in AUDIT_COLUMNS and insp.attrs[attr.key].history.has_changes()
    ]


def _blocked(entity_type: str, entity_id, operation: str, reason: str, **fields):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **fields,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_journal_entry_immutability(mapper, connection, target):
    """
    Block updates to entries that have left DRAFT.

    DRAFT -> POSTED and DRAFT -> CANCELLED are the workflow itself and pass.
    A POSTED entry may only become REVERSED, touching the reversal fields.
    """
    from ledger_kernel.models.journal import JournalEntryStatus

    old_status = _previous_value(target, "status")
    if old_status == JournalEntryStatus.DRAFT:
        return

    changed = _changed_fields(target)
    if not changed:
        return

    if old_status == JournalEntryStatus.POSTED:
        illegal = [f for f in changed if f not in REVERSAL_FIELDS]
        if not illegal and target.status == JournalEntryStatus.REVERSED:
            return
        field = illegal[0] if illegal else "status"
    else:
        field = changed[0]

    raise _blocked(
        "JournalEntry",
        target.id,
        "UPDATE",
        f"Cannot modify field '{field}' on {_status_text(old_status)} journal entry",
        field=field,
        status=_status_text(old_status),
    )


def _check_journal_entry_delete(mapper, connection, target):
    """Only DRAFT entries may be deleted."""
    from ledger_kernel.models.journal import JournalEntryStatus

    status = _previous_value(target, "status")
    if status != JournalEntryStatus.DRAFT:
        raise _blocked(
            "JournalEntry",
            target.id,
            "DELETE",
            f"Cannot delete {_status_text(status)} journal entry",
            status=_status_text(status),
        )


def _parent_is_frozen(connection, line) -> bool:
    from ledger_kernel.models.journal import JournalEntry, JournalEntryStatus

    status = connection.execute(
        select(JournalEntry.status).where(JournalEntry.id == line.journal_entry_id)
    ).scalar()
    return status is not None and status != JournalEntryStatus.DRAFT


def _check_journal_line_immutability(mapper, connection, target):
    if _changed_fields(target) and _parent_is_frozen(connection, target):
        raise _blocked(
            "JournalLine",
            target.id,
            "UPDATE",
            "Journal lines cannot be modified once the entry has left draft",
        )


def _check_journal_line_delete(mapper, connection, target):
    if _parent_is_frozen(connection, target):
        raise _blocked(
            "JournalLine",
            target.id,
            "DELETE",
            "Journal lines cannot be deleted once the entry has left draft",
        )


def _account_is_referenced(connection, account_id) -> bool:
    from ledger_kernel.models.journal import JournalLine

    count = connection.execute(
        select(func.count(JournalLine.id)).where(JournalLine.account_id == account_id)
    ).scalar()
    return bool(count)


def _check_account_immutability(mapper, connection, target):
    """code never changes; account_type is frozen once lines reference it."""
    if get_history(target, "code").deleted:
        raise _blocked(
            "Account", target.id, "UPDATE", "Account code cannot be changed", field="code"
        )
    if get_history(target, "account_type").deleted and _account_is_referenced(
        connection, target.id
    ):
        raise _blocked(
            "Account",
            target.id,
            "UPDATE",
            "Account type cannot change once journal lines reference the account",
            field="account_type",
        )


def _check_account_deletion_before_flush(session, flush_context, instances):
    """
    Refuse to delete accounts referenced by any journal line.

    Runs in before_flush because mapper-level delete events fire after the
    flush plan is fixed.
    """
    from ledger_kernel.models.account import Account
    from ledger_kernel.models.journal import JournalLine

    for obj in list(session.deleted):
        if not isinstance(obj, Account):
            continue
        with session.no_autoflush:
            referenced = session.execute(
                select(func.count(JournalLine.id)).where(JournalLine.account_id == obj.id)
            ).scalar()
        if referenced:
            logger.error(
                "immutability_violation_blocked",
                extra={
                    "entity_type": "Account",
                    "entity_id": str(obj.id),
                    "operation": "DELETE",
                    "reason": "account_has_journal_lines",
                },
            )
            raise ReferentialIntegrityError(
                entity_type="Account",
                entity_id=str(obj.id),
                reason=f"Account {obj.code} is referenced by {referenced} journal line(s)",
            )


def _listener_table():
    from ledger_kernel.models.account import Account
    from ledger_kernel.models.journal import JournalEntry, JournalLine

    return [
        (Session, "before_flush", _check_account_deletion_before_flush),
        (JournalEntry, "before_update", _check_journal_entry_immutability),
        (JournalEntry, "before_delete", _check_journal_entry_delete),
        (JournalLine, "before_update", _check_journal_line_immutability),
        (JournalLine, "before_delete", _check_journal_line_delete),
        (Account, "before_update", _check_account_immutability),
    ]


def register_immutability_listeners() -> None:
    """
    Register all immutability listeners.  Safe to call more than once.
    """
    for target, identifier, fn in _listener_table():
        if not event.contains(target, identifier, fn):
            event.listen(target, identifier, fn)
    logger.debug("immutability_listeners_registered")
