"""
ledger_engines.open_items -- Per-partner open-item ledger (saldokonto).

Responsibility:
    Derive outstanding receivables (account 311) and payables (account 321)
    per partner from posted ledger lines.  Open items are never stored;
    they are recomputed from transactions on demand.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Called by PeriodService (closing readiness) and the quality score.

Invariants enforced:
    - DRAFT transactions never contribute.
    - Receivable balance = debit - credit; payable balance = credit - debit.
    - An item is open only while |remaining| > 0.01.
    - Lines without a partner are not attributable and are skipped.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from ledger_kernel.domain.ledger import (
    BALANCE_TOLERANCE,
    ZERO,
    Side,
    TransactionData,
    TransactionStatus,
    round_money,
)

RECEIVABLE_ACCOUNT = "311"
PAYABLE_ACCOUNT = "321"

_TRACKED_ACCOUNTS = (RECEIVABLE_ACCOUNT, PAYABLE_ACCOUNT)


@dataclass(frozen=True)
class OpenItem:
    """Outstanding balance for one partner on one receivable/payable account."""

    account_code: str
    partner_id: str
    partner_name: str | None
    debit_turnover: Decimal
    credit_turnover: Decimal
    remaining_amount: Decimal
    periods: frozenset[str]

    @property
    def is_receivable(self) -> bool:
        return self.account_code == RECEIVABLE_ACCOUNT


@dataclass
class _Accumulator:
    partner_name: str | None = None
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    periods: set[str] | None = None


def compute_open_items(transactions: Iterable[TransactionData]) -> list[OpenItem]:
    """
    Open items from non-draft transactions, sorted by account then partner.
    """
    accumulators: dict[tuple[str, str], _Accumulator] = {}

    for transaction in transactions:
        if transaction.status == TransactionStatus.DRAFT:
            continue
        for line in transaction.lines:
            if line.account_code not in _TRACKED_ACCOUNTS or not line.partner_id:
                continue
            acc = accumulators.setdefault(
                (line.account_code, line.partner_id), _Accumulator(periods=set())
            )
            acc.partner_name = acc.partner_name or line.partner_name
            acc.periods.add(transaction.period)
            if line.side == Side.DEBIT:
                acc.debit += line.amount
            else:
                acc.credit += line.amount

    items: list[OpenItem] = []
    for (account_code, partner_id), acc in sorted(accumulators.items()):
        if account_code == RECEIVABLE_ACCOUNT:
            remaining = acc.debit - acc.credit
        else:
            remaining = acc.credit - acc.debit
        if abs(remaining) <= BALANCE_TOLERANCE:
            continue
        items.append(
            OpenItem(
                account_code=account_code,
                partner_id=partner_id,
                partner_name=acc.partner_name,
                debit_turnover=round_money(acc.debit),
                credit_turnover=round_money(acc.credit),
                remaining_amount=round_money(remaining),
                periods=frozenset(acc.periods),
            )
        )
    return items


def count_open_items(
    items: Iterable[OpenItem],
    account_code: str,
    period: str | None = None,
) -> int:
    """Count open items on ``account_code``, optionally only those touching ``period``."""
    return sum(
        1
        for item in items
        if item.account_code == account_code and (period is None or period in item.periods)
    )
