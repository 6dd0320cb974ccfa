"""
Ledger -- Account, transaction and line value types plus balance checks.

Responsibility:
    Defines the immutable data model of the double-entry ledger (accounts,
    transaction lines, transactions) and the pure functions that derive
    totals and verify the balance invariant.  Also owns money rounding and
    the YYYY-MM period code helpers every other layer relies on.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Leaf module: imports only the standard library and kernel exceptions.

Invariants enforced:
    - Balance: a transaction is balanced iff |sum(debit) - sum(credit)| is
      below BALANCE_TOLERANCE (0.01).
    - Money is Decimal quantized to 2 places, rounded half away from zero
      (ROUND_HALF_UP in Decimal semantics).  Floats are never used.
    - A transaction's period is always derived from its date, never stored
      independently in the domain.

Failure modes:
    - InvalidPeriodCode from ``parse_period`` for malformed codes.
    - decimal.InvalidOperation from ``round_money`` for non-numeric input.

Audit relevance:
    ``validate_balance`` is the single definition of "balanced" used by the
    template engine, the rule engine and the transaction service, so a
    posted transaction can never be balanced under one check and
    unbalanced under another.
"""

from __future__ import annotations

import calendar
import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Protocol

from ledger_kernel.exceptions import InvalidPeriodCode

BALANCE_TOLERANCE = Decimal("0.01")
MONEY_QUANTUM = Decimal("0.01")
ZERO = Decimal("0.00")

_PERIOD_RE = re.compile(r"^(\d{4})-(\d{2})$")


class Side(str, Enum):
    """Side of a ledger line (MD = debit, D = credit)."""

    DEBIT = "debit"
    CREDIT = "credit"


class AccountType(str, Enum):
    """Types of accounts in the chart of accounts."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class TransactionStatus(str, Enum):
    """Lifecycle status of a transaction.

    Contract: DRAFT -> POSTED by explicit post; POSTED -> LOCKED only by
    period lock; LOCKED -> POSTED only by period unlock.
    """

    DRAFT = "draft"
    POSTED = "posted"
    LOCKED = "locked"


# ---------------------------------------------------------------------------
# Money and period helpers
# ---------------------------------------------------------------------------


def round_money(value: Decimal | int | str) -> Decimal:
    """Round to 2 decimal places, half away from zero."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def period_of(value: date) -> str:
    """Return the YYYY-MM period code containing ``value``."""
    return f"{value.year:04d}-{value.month:02d}"


def parse_period(period_code: str) -> tuple[int, int]:
    """
    Parse a YYYY-MM period code.

    Raises:
        InvalidPeriodCode: If the code is malformed or the month is out of range.
    """
    match = _PERIOD_RE.match(period_code or "")
    if match is None:
        raise InvalidPeriodCode(period_code)
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise InvalidPeriodCode(period_code)
    return year, month


def period_bounds(period_code: str) -> tuple[date, date]:
    """First and last calendar day of the period (inclusive)."""
    year, month = parse_period(period_code)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def compact_period(period_code: str) -> str:
    """YYYY-MM -> YYYYMM, as used in transaction numbers."""
    year, month = parse_period(period_code)
    return f"{year:04d}{month:02d}"


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccountInfo:
    """
    Chart of accounts entry.

    Contract:
        ``normal_side`` is the side on which increases are recorded.
        System accounts are seeded from configuration and cannot be deleted.
    """

    code: str
    name: str
    account_type: AccountType
    normal_side: Side
    is_system: bool = False


@dataclass(frozen=True)
class LineData:
    """
    One ledger line.

    Contract:
        Direction is carried by ``side``; a persisted line always has a
        positive amount.  This type does not reject non-positive amounts so
        that the rule engine can report them as rule hits; the transaction
        service refuses them before persisting.
    """

    account_code: str
    side: Side
    amount: Decimal
    partner_id: str | None = None
    partner_name: str | None = None
    description: str | None = None
    line_key: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, "amount", Decimal(str(self.amount)))


class HasLines(Protocol):
    """Anything carrying an ordered collection of ledger lines."""

    @property
    def lines(self) -> tuple[LineData, ...]: ...


@dataclass(frozen=True)
class TransactionData:
    """
    Immutable snapshot of a transaction.

    Guarantees:
        - ``period`` is derived from ``transaction_date``.
        - ``total_debit`` / ``total_credit`` are derived from ``lines``.
    """

    transaction_date: date
    description: str
    lines: tuple[LineData, ...]
    status: TransactionStatus = TransactionStatus.DRAFT
    number: str | None = None
    id: str | None = None
    document_id: str | None = None
    template_id: str | None = None

    @property
    def period(self) -> str:
        return period_of(self.transaction_date)

    @property
    def total_debit(self) -> Decimal:
        return derive_totals(self.lines)[0]

    @property
    def total_credit(self) -> Decimal:
        return derive_totals(self.lines)[1]


# ---------------------------------------------------------------------------
# Balance functions
# ---------------------------------------------------------------------------


def derive_totals(lines: Iterable[LineData]) -> tuple[Decimal, Decimal]:
    """
    Sum debit and credit line amounts.

    Postconditions:
        Returns ``(total_debit, total_credit)`` quantized to 2 places.
    """
    total_debit = ZERO
    total_credit = ZERO
    for line in lines:
        if line.side == Side.DEBIT:
            total_debit += line.amount
        else:
            total_credit += line.amount
    return round_money(total_debit), round_money(total_credit)


def is_within_tolerance(total_debit: Decimal, total_credit: Decimal) -> bool:
    return abs(total_debit - total_credit) < BALANCE_TOLERANCE


def validate_balance(transaction: HasLines) -> bool:
    """True iff debit and credit totals agree within BALANCE_TOLERANCE."""
    total_debit, total_credit = derive_totals(transaction.lines)
    return is_within_tolerance(total_debit, total_credit)
