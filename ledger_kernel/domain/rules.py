"""
Rules -- rule hit / result types and the entity snapshots rules evaluate.

Responsibility:
    Defines the value types shared by the rule engine and its callers:
    severities, entity types, ``RuleHit``, ``RuleResult`` (three ordered
    collections: blocks, warnings, infos), the read-only ``RuleContext``
    and one frozen snapshot type per entity type.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Evaluated by ledger_engines.rule_engine; enforced by
    ledger_kernel.services.validation_gate.

Invariants enforced:
    - "Any block refuses" is an emptiness test on ``RuleResult.blocks``.
    - RuleResult preserves evaluation order inside each severity bucket.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from ledger_kernel.domain.ledger import LineData


class Severity(str, Enum):
    BLOCK = "block"
    WARN = "warn"
    INFO = "info"


class EntityType(str, Enum):
    """Entities the rule engine can evaluate."""

    DOCUMENT = "document"
    TRANSACTION = "transaction"
    BANK_PAIRING = "bank_pairing"
    PERIOD_CLOSING = "period_closing"
    PAYROLL = "payroll"


@dataclass(frozen=True)
class RuleHit:
    """A single rule that fired."""

    code: str
    severity: Severity
    title: str
    message: str
    fix_suggestion: str
    field_path: str | None = None
    guide_link: str | None = None


@dataclass(frozen=True)
class RuleResult:
    """
    Severity-classified rule hits.

    Guarantees:
        - Each tuple is in rule evaluation order.
        - ``is_valid`` is True iff there are no blocks.
    """

    blocks: tuple[RuleHit, ...] = ()
    warnings: tuple[RuleHit, ...] = ()
    infos: tuple[RuleHit, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.blocks

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    @property
    def warning_codes(self) -> tuple[str, ...]:
        return tuple(hit.code for hit in self.warnings)

    @property
    def block_codes(self) -> tuple[str, ...]:
        return tuple(hit.code for hit in self.blocks)

    @property
    def all_hits(self) -> tuple[RuleHit, ...]:
        return self.blocks + self.warnings + self.infos

    @classmethod
    def from_hits(cls, hits: list[RuleHit]) -> RuleResult:
        """Split an ordered list of hits into the three buckets."""
        return cls(
            blocks=tuple(h for h in hits if h.severity == Severity.BLOCK),
            warnings=tuple(h for h in hits if h.severity == Severity.WARN),
            infos=tuple(h for h in hits if h.severity == Severity.INFO),
        )


@dataclass(frozen=True)
class RuleContext:
    """Read-only caller context; rules never look beyond this and the entity."""

    company_id: str
    period: str | None = None
    user_id: str | None = None


# ---------------------------------------------------------------------------
# Entity snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransactionCandidate:
    """A transaction about to be posted (or edited)."""

    description: str
    transaction_date: date
    lines: tuple[LineData, ...]
    period_status: str = "open"
    template_id: str | None = None
    document_id: str | None = None
    transaction_id: str | None = None


@dataclass(frozen=True)
class ExtractedField:
    """A value pulled out of a scanned document with its extraction confidence."""

    value: str
    confidence: float


@dataclass(frozen=True)
class DocumentCandidate:
    """Extracted invoice data before an entry is created from it."""

    amount: Decimal | None = None
    issue_date: date | None = None
    partner_id: str | None = None
    partner_name: str | None = None
    partner_ico: str | None = None
    doc_number: str | None = None
    description: str | None = None
    extracted_fields: dict[str, ExtractedField] = field(default_factory=dict)
    document_id: str | None = None


@dataclass(frozen=True)
class BankPairingCandidate:
    """A proposed pairing of a bank movement with an open item."""

    movement_amount: Decimal
    open_item_amount: Decimal
    open_item_remaining: Decimal
    is_partial_payment: bool
    partner_id: str | None = None
    note: str | None = None


@dataclass(frozen=True)
class PeriodClosingCandidate:
    """Closing-readiness inputs gathered for a period."""

    period: str
    draft_transaction_count: int
    open_receivable_count: int
    open_payable_count: int
    inbox_pending_count: int = 0
    is_already_locked: bool = False


@dataclass(frozen=True)
class PayrollCandidate:
    """A payroll run about to be calculated and booked."""

    period: str
    gross_salary: Decimal
    existing_run_for_period: bool = False
    has_payroll_settings: bool = True
    create_payment_transactions: bool = False
