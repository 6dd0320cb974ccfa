"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger must react to refusals precisely. A refused posting
because of a locked period is handled differently from a refused posting
because of an unbalanced draft, and neither should be detected by parsing
message strings.

Every exception in this module:
  1. Is a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (not just a message string)

Example:
    try:
        transaction_service.post(company_id, transaction_id, actor_id)
    except ValidationBlocked as e:
        render_hits(e.result.blocks)          # full set of hits, not the first
    except ValidationWarned as e:
        ask_for_override(e.warning_codes)     # caller re-submits with override
    except PeriodNotOpen as e:
        notify(f"Period {e.period_code} is {e.status}")

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- ImbalanceError
    |
    +-- ValidationError
    |   +-- ValidationBlocked
    |   +-- ValidationWarned
    |
    +-- PeriodError
    |   +-- PeriodNotOpen
    |   +-- InvalidPeriodTransition
    |   +-- InvalidPeriodCode
    |
    +-- ConcurrencyError
    |   +-- Conflict
    |
    +-- TransactionError
    |   +-- TransactionNotFound
    |   +-- TransactionImmutable
    |   +-- InvalidLineAmount
    |
    +-- AccountError
    |   +-- AccountNotFound
    |   +-- AccountProtected
    |
    +-- TemplateError
        +-- TemplateNotFound
        +-- TemplateIntegrityError
        +-- TemplateReadOnly

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Balance         | UNBALANCED_TRANSACTION      | Debits != Credits beyond 0.01
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_BLOCKED          | At least one BLOCK rule hit
                | VALIDATION_WARNED           | WARN hits without a matching override
----------------|-----------------------------|-----------------------------------------
Period          | PERIOD_NOT_OPEN             | Writing into a CLOSED/LOCKED period
                | INVALID_PERIOD_TRANSITION   | State machine edge does not exist
                | INVALID_PERIOD_CODE         | Period code is not YYYY-MM
----------------|-----------------------------|-----------------------------------------
Concurrency     | CONCURRENCY_CONFLICT        | Retries exhausted on numbering/locking
----------------|-----------------------------|-----------------------------------------
Transaction     | TRANSACTION_NOT_FOUND       | Transaction ID doesn't exist
                | TRANSACTION_IMMUTABLE       | Edit/delete of a non-DRAFT transaction
                | INVALID_LINE_AMOUNT         | Line amount <= 0
----------------|-----------------------------|-----------------------------------------
Account         | ACCOUNT_NOT_FOUND           | Account code doesn't exist
                | ACCOUNT_PROTECTED           | System or referenced account change
----------------|-----------------------------|-----------------------------------------
Template        | TEMPLATE_NOT_FOUND          | Template code doesn't exist
                | TEMPLATE_INTEGRITY          | Template fails load-time checks
                | TEMPLATE_READ_ONLY          | Attempt to overwrite a system template

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Rule evaluation itself never raises. The rule engine returns a RuleResult
   value; ValidationBlocked / ValidationWarned are raised only at the
   service boundary where an action is refused, and they carry the full
   RuleResult.

2. Conflict is the only retryable error. It is raised after the bounded
   retry policy of the orchestrators is exhausted; callers retry the whole
   operation.

===============================================================================
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ledger_kernel.domain.rules import RuleResult


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# Balance


class ImbalanceError(LedgerKernelError):
    """Debit and credit totals differ beyond the 0.01 tolerance."""

    code: str = "UNBALANCED_TRANSACTION"

    def __init__(self, total_debit: Decimal, total_credit: Decimal):
        self.total_debit = total_debit
        self.total_credit = total_credit
        self.difference = abs(total_debit - total_credit)
        super().__init__(
            f"Transaction is unbalanced: debits {total_debit}, "
            f"credits {total_credit}, difference {self.difference}"
        )


# Validation


class ValidationError(LedgerKernelError):
    """Base exception for refusals driven by rule results."""

    code: str = "VALIDATION_ERROR"


class ValidationBlocked(ValidationError):
    """
    One or more BLOCK-severity rule hits.

    The action is refused; ``result`` carries every hit for display.
    """

    code: str = "VALIDATION_BLOCKED"

    def __init__(self, entity_type: str, result: RuleResult):
        self.entity_type = entity_type
        self.result = result
        self.block_codes = tuple(hit.code for hit in result.blocks)
        super().__init__(
            f"{entity_type} blocked by {len(self.block_codes)} rule(s): "
            f"{', '.join(self.block_codes)}"
        )


class ValidationWarned(ValidationError):
    """
    WARN hits exist and no matching override was supplied.

    The caller re-submits with an override acknowledging exactly
    ``warning_codes``.
    """

    code: str = "VALIDATION_WARNED"

    def __init__(self, entity_type: str, result: RuleResult):
        self.entity_type = entity_type
        self.result = result
        self.warning_codes = result.warning_codes
        super().__init__(
            f"{entity_type} has unacknowledged warnings: "
            f"{', '.join(self.warning_codes)}"
        )


# Period


class PeriodError(LedgerKernelError):
    """Base exception for accounting period errors."""

    code: str = "PERIOD_ERROR"


class PeriodNotOpen(PeriodError):
    """Attempt to create or modify a transaction in a CLOSED/LOCKED period."""

    code: str = "PERIOD_NOT_OPEN"

    def __init__(self, company_id: str, period_code: str, status: str):
        self.company_id = company_id
        self.period_code = period_code
        self.status = status
        super().__init__(
            f"Period {period_code} is {status}; transactions cannot be "
            "created or modified"
        )


class InvalidPeriodTransition(PeriodError):
    """Requested state change is not an edge of the period state machine."""

    code: str = "INVALID_PERIOD_TRANSITION"

    def __init__(self, period_code: str, from_status: str, to_status: str):
        self.period_code = period_code
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Period {period_code} cannot move from {from_status} to {to_status}"
        )


class InvalidPeriodCode(PeriodError):
    """Period code is not a valid YYYY-MM month."""

    code: str = "INVALID_PERIOD_CODE"

    def __init__(self, period_code: str):
        self.period_code = period_code
        super().__init__(f"Invalid period code: {period_code!r} (expected YYYY-MM)")


# Concurrency


class ConcurrencyError(LedgerKernelError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class Conflict(ConcurrencyError):
    """Optimistic-concurrency retries exhausted; retry the whole operation."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, operation: str, key: str, attempts: int):
        self.operation = operation
        self.key = key
        self.attempts = attempts
        super().__init__(
            f"Concurrent modification during {operation} on {key}; "
            f"gave up after {attempts} attempt(s)"
        )


# Transaction


class TransactionError(LedgerKernelError):
    """Base exception for transaction errors."""

    code: str = "TRANSACTION_ERROR"


class TransactionNotFound(TransactionError):
    """Transaction with given ID was not found."""

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")


class TransactionImmutable(TransactionError):
    """Only DRAFT transactions may be edited or deleted."""

    code: str = "TRANSACTION_IMMUTABLE"

    def __init__(self, transaction_id: str, status: str, action: str):
        self.transaction_id = transaction_id
        self.status = status
        self.action = action
        super().__init__(
            f"Cannot {action} transaction {transaction_id} in status {status}"
        )


class InvalidLineAmount(TransactionError):
    """A line carries a zero or negative amount."""

    code: str = "INVALID_LINE_AMOUNT"

    def __init__(self, account_code: str, amount: Decimal):
        self.account_code = account_code
        self.amount = amount
        super().__init__(
            f"Line on account {account_code} has non-positive amount {amount}"
        )


# Account


class AccountError(LedgerKernelError):
    """Base exception for chart-of-accounts errors."""

    code: str = "ACCOUNT_ERROR"


class AccountNotFound(AccountError):
    """Account code does not exist for the company."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, company_id: str, account_code: str):
        self.company_id = company_id
        self.account_code = account_code
        super().__init__(f"Account not found: {account_code}")


class AccountProtected(AccountError):
    """System account or account referenced by posted transactions."""

    code: str = "ACCOUNT_PROTECTED"

    def __init__(self, account_code: str, reason: str):
        self.account_code = account_code
        self.reason = reason
        super().__init__(f"Account {account_code} is protected: {reason}")


# Template


class TemplateError(LedgerKernelError):
    """Base exception for accounting template errors."""

    code: str = "TEMPLATE_ERROR"


class TemplateNotFound(TemplateError):
    """Template code does not exist."""

    code: str = "TEMPLATE_NOT_FOUND"

    def __init__(self, template_code: str):
        self.template_code = template_code
        super().__init__(f"Template not found: {template_code}")


class TemplateIntegrityError(TemplateError):
    """Template fails integrity checks (accounts, sides, line count)."""

    code: str = "TEMPLATE_INTEGRITY"

    def __init__(self, template_code: str, problems: list[str]):
        self.template_code = template_code
        self.problems = problems
        super().__init__(
            f"Template {template_code} is invalid: {'; '.join(problems)}"
        )


class TemplateReadOnly(TemplateError):
    """System templates cannot be modified or replaced."""

    code: str = "TEMPLATE_READ_ONLY"

    def __init__(self, template_code: str):
        self.template_code = template_code
        super().__init__(f"Template {template_code} is a read-only system template")
