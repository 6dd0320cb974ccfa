"""
ledger_engines.matching -- Bank movement to open item pairing engine.

Responsibility:
    Score every (bank movement, unpaid entry) pair by summing independent
    signals and return the pairs worth proposing to the user, ranked by
    confidence.  Accepting a proposal is not this module's job: the caller
    books it with a payment template via the template engine.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumes ``BankMovement`` (see ledger_engines.bank_statement) and
    ``OpenEntry`` snapshots supplied by the caller.

Invariants enforced:
    - Signals and weights: variable symbol +40; exact amount (difference
      < 0.01) +30, otherwise amount within 1 % +20 (never both); partner
      name containment +20 (case-insensitive); direction +10.
    - Pairs below ``min_confidence`` (30) are dropped.
    - Ranking is a stable sort by confidence descending: ties keep
      encounter order (movement-major, entry-minor).
    - ``match_reasons`` list the fired signals in the fixed order
      VS -> amount -> partner -> direction.
    - Entries with payment status PAID are never candidates.

Failure modes:
    - None for well-formed input; amounts are Decimal throughout.

Audit relevance:
    The reasons trace lets a reviewer see why a pairing was proposed
    before it is accepted and booked.

Usage:
    matcher = PairingMatcher()
    matches = matcher.find_pairing_matches(
        bank_movements=movements,
        open_entries=entries,
    )
"""

from __future__ import annotations

import re
import time
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from ledger_engines.tracer import traced_engine
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.matching")

VS_WEIGHT = 40
EXACT_AMOUNT_WEIGHT = 30
APPROX_AMOUNT_WEIGHT = 20
PARTNER_WEIGHT = 20
DIRECTION_WEIGHT = 10
DEFAULT_MIN_CONFIDENCE = 30

_EXACT_TOLERANCE = Decimal("0.01")
_RELATIVE_TOLERANCE = Decimal("0.01")
_NON_DIGITS = re.compile(r"\D")


class Direction(str, Enum):
    """Bank movement direction from the account holder's view."""

    CREDIT = "credit"  # incoming
    DEBIT = "debit"  # outgoing


class EntryType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


@dataclass(frozen=True)
class BankMovement:
    """
    A movement on a bank account as supplied by the bank collaborator.

    ``amount`` is always non-negative; ``direction`` carries the sign.
    """

    movement_date: date
    amount: Decimal
    direction: Direction
    currency: str = "EUR"
    description: str = ""
    counterparty_name: str | None = None
    counterparty_account: str | None = None
    variable_symbol: str | None = None
    specific_symbol: str | None = None
    constant_symbol: str | None = None
    reference: str | None = None
    movement_id: str | None = None


@dataclass(frozen=True)
class OpenEntry:
    """An internally tracked receivable/payable (issued or received invoice)."""

    entry_id: str
    entry_type: EntryType
    amount: Decimal
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    doc_number: str | None = None
    variable_symbol: str | None = None
    partner_id: str | None = None
    partner_name: str | None = None


@dataclass(frozen=True)
class PairingMatch:
    """A scored pairing proposal."""

    bank_movement: BankMovement
    entry: OpenEntry
    confidence: int
    match_reasons: tuple[str, ...]


def normalize_symbol(value: str | None) -> str:
    """Strip non-digits, then leading zeros."""
    return _NON_DIGITS.sub("", value or "").lstrip("0")


def _symbols_match(movement_vs: str | None, entry_vs: str | None) -> bool:
    left = normalize_symbol(movement_vs)
    right = normalize_symbol(entry_vs)
    if not left or not right:
        return False
    return left == right or left in right or right in left


def _partner_match(counterparty: str | None, partner: str | None) -> bool:
    left = (counterparty or "").strip().lower()
    right = (partner or "").strip().lower()
    if not left or not right:
        return False
    return left in right or right in left


def _direction_match(direction: Direction, entry_type: EntryType) -> bool:
    return (direction == Direction.CREDIT and entry_type == EntryType.INCOME) or (
        direction == Direction.DEBIT and entry_type == EntryType.EXPENSE
    )


class PairingMatcher:
    """
    Scores bank movements against open entries.

    Contract:
        Pure function of its inputs; no I/O, no clock.

    Guarantees:
        - Output is reproducible for identical inputs (stable ordering).
        - Each pair appears at most once.

    Non-goals:
        - Does NOT resolve one-to-many or many-to-one allocations; each
          proposal pairs one movement with one entry.
        - Does NOT mark anything as paid.
    """

    def __init__(self, min_confidence: int = DEFAULT_MIN_CONFIDENCE):
        self._min_confidence = min_confidence

    def score(self, movement: BankMovement, entry: OpenEntry) -> tuple[int, tuple[str, ...]]:
        """Confidence and reasons for a single pair (no threshold applied)."""
        confidence = 0
        reasons: list[str] = []

        entry_vs = entry.variable_symbol or entry.doc_number
        if _symbols_match(movement.variable_symbol, entry_vs):
            confidence += VS_WEIGHT
            reasons.append(f"VS: {movement.variable_symbol}")

        difference = abs(entry.amount - movement.amount)
        if difference < _EXACT_TOLERANCE:
            confidence += EXACT_AMOUNT_WEIGHT
            reasons.append(f"Amount: {movement.amount}")
        elif entry.amount > 0 and difference / entry.amount < _RELATIVE_TOLERANCE:
            confidence += APPROX_AMOUNT_WEIGHT
            reasons.append(f"Amount ≈ {movement.amount}")

        if _partner_match(movement.counterparty_name, entry.partner_name):
            confidence += PARTNER_WEIGHT
            reasons.append(f"Partner: {movement.counterparty_name}")

        if _direction_match(movement.direction, entry.entry_type):
            confidence += DIRECTION_WEIGHT
            reasons.append("Income" if entry.entry_type == EntryType.INCOME else "Expense")

        return confidence, tuple(reasons)

    @traced_engine("matching", "1.0", fingerprint_fields=("bank_movements", "open_entries"))
    def find_pairing_matches(
        self,
        bank_movements: Sequence[BankMovement],
        open_entries: Sequence[OpenEntry],
    ) -> list[PairingMatch]:
        """
        Propose pairings between bank movements and unpaid entries.

        Args:
            bank_movements: Movements fetched from the bank collaborator.
            open_entries: Internally tracked entries; PAID ones are skipped.

        Returns:
            Matches with confidence >= min_confidence, stable-sorted by
            confidence descending.
        """
        t0 = time.monotonic()
        candidates = [e for e in open_entries if e.payment_status != PaymentStatus.PAID]

        matches: list[PairingMatch] = []
        for movement in bank_movements:
            for entry in candidates:
                confidence, reasons = self.score(movement, entry)
                if confidence >= self._min_confidence:
                    matches.append(
                        PairingMatch(
                            bank_movement=movement,
                            entry=entry,
                            confidence=confidence,
                            match_reasons=reasons,
                        )
                    )

        # sorted() is stable: equal confidences keep encounter order
        ranked = sorted(matches, key=lambda m: -m.confidence)

        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info(
            "pairing_matches_found",
            extra={
                "movement_count": len(bank_movements),
                "candidate_count": len(candidates),
                "match_count": len(ranked),
                "duration_ms": duration_ms,
            },
        )
        return ranked
