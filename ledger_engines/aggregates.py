"""
ledger_engines.aggregates -- Period summaries, account turnover and quality score.

Responsibility:
    Read-only aggregations over transaction snapshots: per-period totals
    and status counts, per-account turnover with a balance on the account's
    normal side (trial balance rows), and the bookkeeping quality score
    shown on the dashboard.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Inputs come from selectors (TransactionSelector) and open_items.

Invariants enforced:
    - DRAFT transactions are counted in summaries but never contribute to
      account turnover.
    - Quality score is clamped to [0, 100]; the grade is derived from the
      clamped score.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal

from ledger_kernel.domain.ledger import (
    ZERO,
    AccountInfo,
    Side,
    TransactionData,
    TransactionStatus,
    round_money,
)

PENDING_DOCUMENT_PENALTY = 5
LOW_CONFIDENCE_PENALTY = 3
UNPAIRED_MOVEMENT_PENALTY = 2
OPEN_ITEM_PENALTY = 1
LOCKED_MONTH_BONUS = 2

_GRADES: tuple[tuple[int, str], ...] = ((90, "A"), (80, "B"), (70, "C"), (60, "D"))


@dataclass(frozen=True)
class PeriodSummary:
    period: str
    transaction_count: int
    total_debit: Decimal
    total_credit: Decimal
    draft_count: int
    posted_count: int
    locked_count: int


@dataclass(frozen=True)
class AccountTurnover:
    """One trial-balance row."""

    account_code: str
    account_name: str
    debit_turnover: Decimal
    credit_turnover: Decimal
    balance: Decimal
    normal_side: Side


@dataclass(frozen=True)
class QualityInputs:
    inbox_pending: int = 0
    low_confidence_documents: int = 0
    unpaired_bank_movements: int = 0
    open_receivable_items: int = 0
    open_payable_items: int = 0
    locked_months: int = 0


@dataclass(frozen=True)
class QualityScore:
    inputs: QualityInputs
    score: int
    grade: str


def summarize_period(
    transactions: Iterable[TransactionData],
    period: str,
) -> PeriodSummary:
    """Totals and status counts for the transactions dated in ``period``."""
    in_period = [t for t in transactions if t.period == period]
    status_counts = {status: 0 for status in TransactionStatus}
    total_debit = ZERO
    total_credit = ZERO
    for transaction in in_period:
        status_counts[transaction.status] += 1
        total_debit += transaction.total_debit
        total_credit += transaction.total_credit
    return PeriodSummary(
        period=period,
        transaction_count=len(in_period),
        total_debit=round_money(total_debit),
        total_credit=round_money(total_credit),
        draft_count=status_counts[TransactionStatus.DRAFT],
        posted_count=status_counts[TransactionStatus.POSTED],
        locked_count=status_counts[TransactionStatus.LOCKED],
    )


def account_turnover(
    transactions: Iterable[TransactionData],
    accounts: Mapping[str, AccountInfo],
) -> list[AccountTurnover]:
    """
    Debit/credit turnover per account, sorted by account code.

    Accounts without any movement are omitted.  Lines on accounts missing
    from ``accounts`` are reported with the debit side as normal side.
    """
    debits: dict[str, Decimal] = {}
    credits: dict[str, Decimal] = {}
    for transaction in transactions:
        if transaction.status == TransactionStatus.DRAFT:
            continue
        for line in transaction.lines:
            bucket = debits if line.side == Side.DEBIT else credits
            bucket[line.account_code] = bucket.get(line.account_code, ZERO) + line.amount

    rows: list[AccountTurnover] = []
    for code in sorted(set(debits) | set(credits)):
        debit = round_money(debits.get(code, ZERO))
        credit = round_money(credits.get(code, ZERO))
        info = accounts.get(code)
        normal_side = info.normal_side if info else Side.DEBIT
        balance = debit - credit if normal_side == Side.DEBIT else credit - debit
        rows.append(
            AccountTurnover(
                account_code=code,
                account_name=info.name if info else code,
                debit_turnover=debit,
                credit_turnover=credit,
                balance=balance,
                normal_side=normal_side,
            )
        )
    return rows


def grade_for(score: int) -> str:
    for threshold, grade in _GRADES:
        if score >= threshold:
            return grade
    return "F"


def quality_score(inputs: QualityInputs) -> QualityScore:
    """Weighted bookkeeping-quality score, 0-100, with a letter grade."""
    score = 100
    score -= inputs.inbox_pending * PENDING_DOCUMENT_PENALTY
    score -= inputs.low_confidence_documents * LOW_CONFIDENCE_PENALTY
    score -= inputs.unpaired_bank_movements * UNPAIRED_MOVEMENT_PENALTY
    score -= (inputs.open_receivable_items + inputs.open_payable_items) * OPEN_ITEM_PENALTY
    score += inputs.locked_months * LOCKED_MONTH_BONUS
    score = max(0, min(100, score))
    return QualityScore(inputs=inputs, score=score, grade=grade_for(score))
