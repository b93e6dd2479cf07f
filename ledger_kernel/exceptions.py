"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger (order, customer and supplier modules, HTTP handlers)
must render precise messages and decide whether to retry.  Parsing message
strings for that is fragile, so every error:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA (offending field / id) as attributes

Example:
    try:
        ledger.post_journal_entry(entry_id, actor_id=user_id)
    except UnbalancedEntryError as e:
        return {"error": e.code, "debits": e.debits, "credits": e.credits}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- ValidationError
    |   +-- DuplicateAccountCodeError
    |   +-- AccountHierarchyCycleError
    |
    +-- PostingError
    |   +-- UnbalancedEntryError
    |   +-- InsufficientLinesError
    |   +-- PostingNotAllowedError
    |
    +-- AccountError
    |   +-- AccountNotFoundError
    |
    +-- JournalEntryError
    |   +-- JournalEntryNotFoundError
    |   +-- InvalidStateError
    |       +-- AlreadyReversedError
    |
    +-- ConcurrencyError
    |   +-- DuplicateVoucherNumberError
    |   +-- OptimisticLockError
    |
    +-- ReferentialIntegrityError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Malformed entry/account input
                | DUPLICATE_ACCOUNT_CODE      | Account code already in use
                | ACCOUNT_HIERARCHY_CYCLE     | Re-parent would create a cycle
----------------|-----------------------------|-----------------------------------------
Posting         | UNBALANCED_ENTRY            | |debits - credits| >= 0.01
                | INSUFFICIENT_LINES          | Fewer than 2 lines
                | POSTING_NOT_ALLOWED         | Account is not a posting account
----------------|-----------------------------|-----------------------------------------
Account         | ACCOUNT_NOT_FOUND           | Account ID doesn't exist
----------------|-----------------------------|-----------------------------------------
Journal entry   | JOURNAL_ENTRY_NOT_FOUND     | Entry ID doesn't exist
                | INVALID_STATE               | Transition not allowed from status
                | ALREADY_REVERSED            | Entry already has a reversal
----------------|-----------------------------|-----------------------------------------
Concurrency     | DUPLICATE_VOUCHER_NUMBER    | Voucher number already taken
                | OPTIMISTIC_LOCK_CONFLICT    | Concurrent modification detected
----------------|-----------------------------|-----------------------------------------
Integrity       | REFERENTIAL_INTEGRITY       | Delete of referenced account / non-draft
Immutability    | IMMUTABILITY_VIOLATION      | Modifying a finalized record

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Domain errors inherit from Exception, not ValueError, so they are
   catchable as a group without mixing in programming errors.
2. Only ConcurrencyError subclasses with retryable=True are safe to re-run;
   LedgerService re-runs those transactions itself.  Voucher collisions are
   retried inside JournalService.create().
"""


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# Validation exceptions


class ValidationError(LedgerKernelError):
    """Malformed input at account or journal entry creation/update."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class DuplicateAccountCodeError(ValidationError):
    """Account code is already assigned to another account."""

    code: str = "DUPLICATE_ACCOUNT_CODE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__("account_code", f"'{account_code}' already exists")


class AccountHierarchyCycleError(ValidationError):
    """Parent assignment would make an account its own ancestor."""

    code: str = "ACCOUNT_HIERARCHY_CYCLE"

    def __init__(self, account_id: str, parent_id: str):
        self.account_id = account_id
        self.parent_id = parent_id
        super().__init__(
            "parent_id",
            f"account {parent_id} is {account_id} or one of its descendants",
        )


# Posting exceptions


class PostingError(LedgerKernelError):
    """Base exception for posting-related errors."""

    code: str = "POSTING_ERROR"


class UnbalancedEntryError(PostingError):
    """Journal entry debits do not equal credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, entry_id: str, debits: str, credits: str):
        self.entry_id = entry_id
        self.debits = debits
        self.credits = credits
        super().__init__(
            f"Unbalanced entry {entry_id}: debits={debits}, credits={credits}"
        )


class InsufficientLinesError(PostingError):
    """Journal entry has fewer lines than a posting requires."""

    code: str = "INSUFFICIENT_LINES"

    def __init__(self, entry_id: str, line_count: int, minimum: int = 2):
        self.entry_id = entry_id
        self.line_count = line_count
        self.minimum = minimum
        super().__init__(
            f"Entry {entry_id} has {line_count} line(s); at least {minimum} required"
        )


class PostingNotAllowedError(PostingError):
    """Account cannot receive postings."""

    code: str = "POSTING_NOT_ALLOWED"

    def __init__(self, account_id: str, account_code: str, reason: str):
        self.account_id = account_id
        self.account_code = account_code
        self.reason = reason
        super().__init__(f"Posting not allowed to account {account_code}: {reason}")


# Account exceptions


class AccountError(LedgerKernelError):
    """Base exception for account-related errors."""

    code: str = "ACCOUNT_ERROR"


class AccountNotFoundError(AccountError):
    """Account was not found."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


# Journal entry exceptions


class JournalEntryError(LedgerKernelError):
    """Base exception for journal entry lifecycle errors."""

    code: str = "JOURNAL_ENTRY_ERROR"


class JournalEntryNotFoundError(JournalEntryError):
    """Journal entry was not found."""

    code: str = "JOURNAL_ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Journal entry not found: {entry_id}")


class InvalidStateError(JournalEntryError):
    """Transition attempted from a status that does not allow it."""

    code: str = "INVALID_STATE"

    def __init__(self, entry_id: str, status: str, operation: str):
        self.entry_id = entry_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} journal entry {entry_id}: status is {status}"
        )


class AlreadyReversedError(InvalidStateError):
    """Reverse attempted on an entry that is already REVERSED."""

    code: str = "ALREADY_REVERSED"

    def __init__(self, entry_id: str, reversal_entry_id: str | None):
        super().__init__(entry_id, "reversed", "reverse")
        self.reversal_entry_id = reversal_entry_id


# Concurrency exceptions


class ConcurrencyError(LedgerKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"

    # Safe to re-run the whole transaction from scratch
    retryable: bool = False


class DuplicateVoucherNumberError(ConcurrencyError):
    """Voucher number collided with an existing entry."""

    code: str = "DUPLICATE_VOUCHER_NUMBER"

    def __init__(self, voucher_number: str, attempts: int = 1):
        self.voucher_number = voucher_number
        self.attempts = attempts
        super().__init__(
            f"Voucher number {voucher_number} already exists "
            f"(after {attempts} attempt(s))"
        )


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"
    retryable = True

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Integrity exceptions


class ReferentialIntegrityError(LedgerKernelError):
    """Delete/deactivate of a referenced account, or delete of a non-draft entry."""

    code: str = "REFERENTIAL_INTEGRITY"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Referential integrity on {entity_type} {entity_id}: {reason}")


class ImmutabilityViolationError(LedgerKernelError):
    """
    Attempted to modify or delete a finalized record.

    Posted, reversed and cancelled journal entries and their lines are
    append-only; corrections go through reversal.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
