"""
ledger_engines.rule_engine -- Severity-classified validation of ledger entities.

Responsibility:
    Evaluate a candidate entity (document, transaction, bank pairing,
    period closing, payroll run) against an ordered rule set and classify
    every hit as BLOCK, WARN or INFO.  Returns a ``RuleResult`` value; it
    never raises for a rule violation, since callers must display the full
    set of hits rather than the first failure.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Imports only ledger_kernel.domain.  Results are enforced by
    ledger_kernel.services.validation_gate.ValidationGate.

Invariants enforced:
    - Rules are pure predicates over (entity, context, thresholds); they
      never mutate state and never read a clock or the database.
    - Determinism: the same inputs yield the same hits in the same order.
    - Dispatch is exhaustive over EntityType; an entity snapshot of the
      wrong type for its EntityType is a programming error (TypeError).

Failure modes:
    - TypeError if the entity snapshot does not match ``entity_type``.
    - ValueError if ``entity_type`` is not an EntityType.

Audit relevance:
    Rule codes are stable identifiers persisted in audit log entries when a
    user overrides warnings, so they must never be renamed casually.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.ledger import (
    BALANCE_TOLERANCE,
    Side,
    derive_totals,
    is_within_tolerance,
)
from ledger_kernel.domain.rules import (
    BankPairingCandidate,
    DocumentCandidate,
    EntityType,
    PayrollCandidate,
    PeriodClosingCandidate,
    RuleContext,
    RuleHit,
    RuleResult,
    Severity,
    TransactionCandidate,
)
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.rules")

RECEIVABLE_ACCOUNT = "311"
PAYABLE_ACCOUNT = "321"
BANK_ACCOUNT = "221"
WAGES_PAYABLE_ACCOUNT = "331"

_GUIDE_DOUBLE_ENTRY = "/guides/double-entry"
_GUIDE_OPEN_ITEMS = "/accounting/open-items"
_GUIDE_BANK = "/accounting/bank"
_GUIDE_TEMPLATES = "/accounting/templates"
_GUIDE_PERIODS = "/accounting/periods"
_GUIDE_PAYROLL = "/accounting/payroll"


@dataclass(frozen=True)
class RuleThresholds:
    """Tunable thresholds; loaded from the configuration set."""

    low_confidence_warn: float = 0.7
    low_confidence_block: float = 0.3
    min_description_length: int = 3
    payment_template_marker: str = "UHRADA"


@dataclass(frozen=True)
class Finding:
    """What a rule check reports when it fires."""

    message: str
    field_path: str | None = None


CheckFn = Callable[[Any, RuleContext, RuleThresholds], "Finding | None"]


@dataclass(frozen=True)
class Rule:
    """A rule: static metadata plus a pure check."""

    code: str
    severity: Severity
    title: str
    fix_suggestion: str
    check: CheckFn
    guide_link: str | None = None

    def evaluate(
        self, entity: Any, context: RuleContext, thresholds: RuleThresholds
    ) -> RuleHit | None:
        finding = self.check(entity, context, thresholds)
        if finding is None:
            return None
        return RuleHit(
            code=self.code,
            severity=self.severity,
            title=self.title,
            message=finding.message,
            fix_suggestion=self.fix_suggestion,
            field_path=finding.field_path,
            guide_link=self.guide_link,
        )


# ---------------------------------------------------------------------------
# TRANSACTION rules
# ---------------------------------------------------------------------------


def _trx_period_locked(t: TransactionCandidate, ctx: RuleContext, th: RuleThresholds):
    if t.period_status in ("closed", "locked"):
        period = ctx.period or f"{t.transaction_date:%Y-%m}"
        return Finding(
            f"Period {period} is {t.period_status}; its transactions cannot be changed.",
            "transaction_date",
        )
    return None


def _trx_no_debit(t: TransactionCandidate, ctx: RuleContext, th: RuleThresholds):
    if not any(line.side == Side.DEBIT for line in t.lines):
        return Finding("The transaction needs at least one debit line.", "lines")
    return None


def _trx_no_credit(t: TransactionCandidate, ctx: RuleContext, th: RuleThresholds):
    if not any(line.side == Side.CREDIT for line in t.lines):
        return Finding("The transaction needs at least one credit line.", "lines")
    return None


def _trx_unbalanced(t: TransactionCandidate, ctx: RuleContext, th: RuleThresholds):
    total_debit, total_credit = derive_totals(t.lines)
    diff = abs(total_debit - total_credit)
    if not is_within_tolerance(total_debit, total_credit):
        return Finding(
            f"Debits ({total_debit}) do not equal credits ({total_credit}); "
            f"difference {diff}.",
            "lines",
        )
    return None


def _trx_non_positive(t: TransactionCandidate, ctx: RuleContext, th: RuleThresholds):
    bad = [line for line in t.lines if line.amount <= 0]
    if bad:
        first = bad[0]
        return Finding(
            f"Line on account {first.account_code} has invalid amount {first.amount}.",
            f"lines.{first.line_key}.amount" if first.line_key else "lines",
        )
    return None


def _trx_no_description(t: TransactionCandidate, ctx: RuleContext, th: RuleThresholds):
    if len((t.description or "").strip()) < th.min_description_length:
        return Finding(
            "The transaction has no meaningful description.", "description"
        )
    return None


def _trx_partner_missing(t: TransactionCandidate, ctx: RuleContext, th: RuleThresholds):
    for line in t.lines:
        if line.account_code in (RECEIVABLE_ACCOUNT, PAYABLE_ACCOUNT) and not line.partner_id:
            kind = "receivables" if line.account_code == RECEIVABLE_ACCOUNT else "payables"
            return Finding(
                f"Account {line.account_code} ({kind}) has no partner assigned.",
                f"lines.{line.line_key}.partner_id" if line.line_key else "lines",
            )
    return None


def _trx_payment_no_bank(t: TransactionCandidate, ctx: RuleContext, th: RuleThresholds):
    is_payment = bool(t.template_id) and th.payment_template_marker in t.template_id
    if is_payment and not any(line.account_code == BANK_ACCOUNT for line in t.lines):
        return Finding(
            f"A payment transaction should include bank account {BANK_ACCOUNT}."
        )
    return None


def _trx_suggest_template(t: TransactionCandidate, ctx: RuleContext, th: RuleThresholds):
    codes = {line.account_code for line in t.lines}
    related = {RECEIVABLE_ACCOUNT, PAYABLE_ACCOUNT, WAGES_PAYABLE_ACCOUNT}
    if not t.template_id and BANK_ACCOUNT in codes and codes & related:
        return Finding("This looks like a payment; a payment template books it in one step.")
    return None


TRANSACTION_RULES: tuple[Rule, ...] = (
    Rule("TRX_PERIOD_LOCKED", Severity.BLOCK, "Period is closed",
         "Unlock the period or date the transaction in an open period.",
         _trx_period_locked, _GUIDE_PERIODS),
    Rule("TRX_NO_DEBIT_LINE", Severity.BLOCK, "Debit side missing",
         "Add a line on the debit side.", _trx_no_debit, _GUIDE_DOUBLE_ENTRY),
    Rule("TRX_NO_CREDIT_LINE", Severity.BLOCK, "Credit side missing",
         "Add a line on the credit side.", _trx_no_credit, _GUIDE_DOUBLE_ENTRY),
    Rule("TRX_UNBALANCED", Severity.BLOCK, "Transaction is not balanced",
         "Check the line amounts; total debits must equal total credits.",
         _trx_unbalanced, _GUIDE_DOUBLE_ENTRY),
    Rule("TRX_NON_POSITIVE_AMOUNT", Severity.BLOCK, "Zero or negative amount",
         "Amounts must be positive; to reverse, swap the sides instead.",
         _trx_non_positive),
    Rule("TRX_NO_DESCRIPTION", Severity.WARN, "Description missing",
         "Add a short description such as 'INV 2025001 - IT services'.",
         _trx_no_description),
    Rule("TRX_PARTNER_MISSING", Severity.WARN, "Receivable/payable without partner",
         "Assign the customer or supplier so the open-item ledger stays correct.",
         _trx_partner_missing, _GUIDE_OPEN_ITEMS),
    Rule("TRX_PAYMENT_NO_BANK", Severity.WARN, "Payment without bank account",
         f"Add a line on account {BANK_ACCOUNT}.", _trx_payment_no_bank, _GUIDE_BANK),
    Rule("TRX_SUGGEST_TEMPLATE", Severity.INFO, "Tip: use a template",
         "Pick a payment template next time.", _trx_suggest_template, _GUIDE_TEMPLATES),
)


# ---------------------------------------------------------------------------
# DOCUMENT rules
# ---------------------------------------------------------------------------


def _confidence(doc: DocumentCandidate, name: str) -> float | None:
    extracted = doc.extracted_fields.get(name)
    return None if extracted is None else extracted.confidence


def _doc_no_amount(d: DocumentCandidate, ctx: RuleContext, th: RuleThresholds):
    if d.amount is None or d.amount <= 0:
        return Finding("The document has no positive amount.", "amount")
    return None


def _doc_no_date(d: DocumentCandidate, ctx: RuleContext, th: RuleThresholds):
    if d.issue_date is None:
        return Finding("The document has no issue date.", "issue_date")
    return None


def _doc_confidence_critical(d: DocumentCandidate, ctx: RuleContext, th: RuleThresholds):
    conf = _confidence(d, "amount")
    if conf is not None and conf < th.low_confidence_block:
        return Finding(
            f"Amount was extracted with {conf:.0%} confidence; it cannot be trusted.",
            "extracted_fields.amount",
        )
    return None


def _doc_low_confidence_amount(d: DocumentCandidate, ctx: RuleContext, th: RuleThresholds):
    conf = _confidence(d, "amount")
    if conf is not None and th.low_confidence_block <= conf < th.low_confidence_warn:
        return Finding(
            f"Amount was extracted with {conf:.0%} confidence.",
            "extracted_fields.amount",
        )
    return None


def _doc_low_confidence_supplier(d: DocumentCandidate, ctx: RuleContext, th: RuleThresholds):
    conf = _confidence(d, "supplier")
    if conf is not None and conf < th.low_confidence_warn:
        return Finding(
            f"Supplier was extracted with {conf:.0%} confidence.",
            "extracted_fields.supplier",
        )
    return None


def _doc_supplier_no_ico(d: DocumentCandidate, ctx: RuleContext, th: RuleThresholds):
    if d.partner_name and not d.partner_ico:
        return Finding(
            f"Partner '{d.partner_name}' has no company registration number (ICO).",
            "partner_ico",
        )
    return None


def _doc_no_number(d: DocumentCandidate, ctx: RuleContext, th: RuleThresholds):
    if not d.doc_number:
        return Finding("The document has no number.", "doc_number")
    return None


def _doc_suggest_template(d: DocumentCandidate, ctx: RuleContext, th: RuleThresholds):
    if d.amount is not None and d.amount > 0:
        return Finding("Book this document with an invoice template.")
    return None


DOCUMENT_RULES: tuple[Rule, ...] = (
    Rule("DOC_NO_AMOUNT", Severity.BLOCK, "Amount missing",
         "Enter the document total.", _doc_no_amount),
    Rule("DOC_NO_DATE", Severity.BLOCK, "Date missing",
         "Enter the issue date.", _doc_no_date),
    Rule("DOC_CONFIDENCE_CRITICAL", Severity.BLOCK, "Amount unreadable",
         "Type the amount in manually from the original document.",
         _doc_confidence_critical),
    Rule("DOC_LOW_CONFIDENCE_AMOUNT", Severity.WARN, "Amount uncertain",
         "Compare the amount with the original document.",
         _doc_low_confidence_amount),
    Rule("DOC_LOW_CONFIDENCE_SUPPLIER", Severity.WARN, "Supplier uncertain",
         "Compare the supplier with the original document.",
         _doc_low_confidence_supplier),
    Rule("DOC_SUPPLIER_NO_ICO", Severity.WARN, "Partner without ICO",
         "Add the registration number to the partner record.",
         _doc_supplier_no_ico, "/partners"),
    Rule("DOC_NO_NUMBER", Severity.WARN, "Document number missing",
         "Enter the document number for later pairing.", _doc_no_number),
    Rule("DOC_SUGGEST_TEMPLATE", Severity.INFO, "Suggested template",
         "Use the matching invoice template.", _doc_suggest_template, _GUIDE_TEMPLATES),
)


# ---------------------------------------------------------------------------
# BANK_PAIRING rules
# ---------------------------------------------------------------------------


def _bank_overpayment(b: BankPairingCandidate, ctx: RuleContext, th: RuleThresholds):
    if abs(b.movement_amount) > b.open_item_remaining + BALANCE_TOLERANCE:
        return Finding(
            f"Payment {abs(b.movement_amount)} exceeds the remaining "
            f"{b.open_item_remaining} of the open item.",
            "movement_amount",
        )
    return None


def _bank_partial_no_note(b: BankPairingCandidate, ctx: RuleContext, th: RuleThresholds):
    if b.is_partial_payment and not (b.note or "").strip():
        return Finding("A partial payment should carry a note.", "note")
    return None


def _bank_no_partner(b: BankPairingCandidate, ctx: RuleContext, th: RuleThresholds):
    if not b.partner_id:
        return Finding("The pairing has no partner.", "partner_id")
    return None


def _bank_no_open_item(b: BankPairingCandidate, ctx: RuleContext, th: RuleThresholds):
    if b.open_item_remaining <= Decimal("0"):
        return Finding("There is nothing left to pay on this item.")
    return None


BANK_PAIRING_RULES: tuple[Rule, ...] = (
    Rule("BANK_OVERPAYMENT", Severity.BLOCK, "Overpayment",
         "Pair the surplus with another item or split the movement.",
         _bank_overpayment, _GUIDE_BANK),
    Rule("BANK_PARTIAL_NO_NOTE", Severity.WARN, "Partial payment without note",
         "Describe why only part of the item was paid.", _bank_partial_no_note),
    Rule("BANK_NO_PARTNER", Severity.WARN, "Payment without partner",
         "Assign the partner to keep the open-item ledger accurate.",
         _bank_no_partner, _GUIDE_OPEN_ITEMS),
    Rule("BANK_NO_OPEN_ITEM", Severity.INFO, "No open item",
         "Book the movement with a template instead.", _bank_no_open_item,
         _GUIDE_OPEN_ITEMS),
)


# ---------------------------------------------------------------------------
# PERIOD_CLOSING rules
# ---------------------------------------------------------------------------


def _closing_locked(p: PeriodClosingCandidate, ctx: RuleContext, th: RuleThresholds):
    if p.is_already_locked:
        return Finding(f"Period {p.period} is already locked.")
    return None


def _closing_inbox(p: PeriodClosingCandidate, ctx: RuleContext, th: RuleThresholds):
    if p.inbox_pending_count > 0:
        return Finding(f"{p.inbox_pending_count} inbound document(s) are not booked yet.")
    return None


def _closing_drafts(p: PeriodClosingCandidate, ctx: RuleContext, th: RuleThresholds):
    if p.draft_transaction_count > 0:
        return Finding(f"{p.draft_transaction_count} draft transaction(s) remain in {p.period}.")
    return None


def _closing_receivables(p: PeriodClosingCandidate, ctx: RuleContext, th: RuleThresholds):
    if p.open_receivable_count > 0:
        return Finding(f"{p.open_receivable_count} receivable(s) on {RECEIVABLE_ACCOUNT} are unpaid.")
    return None


def _closing_payables(p: PeriodClosingCandidate, ctx: RuleContext, th: RuleThresholds):
    if p.open_payable_count > 0:
        return Finding(f"{p.open_payable_count} payable(s) on {PAYABLE_ACCOUNT} are unpaid.")
    return None


def _closing_lock_effect(p: PeriodClosingCandidate, ctx: RuleContext, th: RuleThresholds):
    return Finding("After locking, transactions in this period cannot be edited or deleted.")


PERIOD_CLOSING_RULES: tuple[Rule, ...] = (
    Rule("CLOSING_ALREADY_LOCKED", Severity.BLOCK, "Period already locked",
         "Unlock the period first if it really needs changes.", _closing_locked),
    Rule("CLOSING_INBOX_NOT_EMPTY", Severity.BLOCK, "Unprocessed documents",
         "Book or discard the pending inbound documents.", _closing_inbox, "/documents"),
    Rule("CLOSING_DRAFT_TRANSACTIONS", Severity.BLOCK, "Draft transactions",
         "Post or delete the drafts in this period.", _closing_drafts,
         "/accounting/transactions"),
    Rule("CLOSING_OPEN_RECEIVABLES", Severity.WARN, "Open receivables",
         "Review the open-item ledger; pair any payments that arrived.",
         _closing_receivables, _GUIDE_OPEN_ITEMS),
    Rule("CLOSING_OPEN_PAYABLES", Severity.WARN, "Open payables",
         "Review the open-item ledger; pair any payments that were made.",
         _closing_payables, _GUIDE_OPEN_ITEMS),
    Rule("CLOSING_LOCK_EFFECT", Severity.INFO, "What locking means",
         "Make sure everything is correct; the period can be unlocked later.",
         _closing_lock_effect, _GUIDE_PERIODS),
)


# ---------------------------------------------------------------------------
# PAYROLL rules
# ---------------------------------------------------------------------------


def _payroll_duplicate(p: PayrollCandidate, ctx: RuleContext, th: RuleThresholds):
    if p.existing_run_for_period:
        return Finding(f"Payroll for {p.period} has already been calculated.")
    return None


def _payroll_invalid_salary(p: PayrollCandidate, ctx: RuleContext, th: RuleThresholds):
    if p.gross_salary <= 0:
        return Finding("Gross salary must be positive.", "gross_salary")
    return None


def _payroll_no_settings(p: PayrollCandidate, ctx: RuleContext, th: RuleThresholds):
    if not p.has_payroll_settings:
        return Finding("No payroll settings found; default contribution rates apply.")
    return None


def _payroll_auto_transactions(p: PayrollCandidate, ctx: RuleContext, th: RuleThresholds):
    if p.create_payment_transactions:
        return Finding("Payroll and payment transactions will be created automatically.")
    return None


PAYROLL_RULES: tuple[Rule, ...] = (
    Rule("PAYROLL_DUPLICATE", Severity.BLOCK, "Duplicate payroll run",
         "Delete the existing run before recalculating.", _payroll_duplicate,
         _GUIDE_PAYROLL),
    Rule("PAYROLL_INVALID_SALARY", Severity.BLOCK, "Invalid gross salary",
         "Enter a positive gross salary.", _payroll_invalid_salary),
    Rule("PAYROLL_NO_SETTINGS", Severity.WARN, "Payroll settings missing",
         "Configure contribution rates in payroll settings.", _payroll_no_settings,
         _GUIDE_PAYROLL),
    Rule("PAYROLL_AUTO_TRANSACTIONS", Severity.INFO, "Automatic transactions",
         "Review the generated transactions in the journal.",
         _payroll_auto_transactions, "/accounting/journal"),
)


_RULE_SETS: dict[EntityType, tuple[type, tuple[Rule, ...]]] = {
    EntityType.TRANSACTION: (TransactionCandidate, TRANSACTION_RULES),
    EntityType.DOCUMENT: (DocumentCandidate, DOCUMENT_RULES),
    EntityType.BANK_PAIRING: (BankPairingCandidate, BANK_PAIRING_RULES),
    EntityType.PERIOD_CLOSING: (PeriodClosingCandidate, PERIOD_CLOSING_RULES),
    EntityType.PAYROLL: (PayrollCandidate, PAYROLL_RULES),
}


class RuleEngine:
    """
    Evaluates entity snapshots against the rule catalogue.

    Contract:
        ``validate`` returns a RuleResult; hits keep catalogue order within
        each severity bucket.

    Guarantees:
        - Pure and deterministic; safe to share across threads.
        - Never raises for a rule violation.

    Non-goals:
        - Does NOT enforce the result (ValidationGate does).
        - Does NOT write audit entries.
    """

    def __init__(self, thresholds: RuleThresholds | None = None):
        self._thresholds = thresholds or RuleThresholds()

    @property
    def thresholds(self) -> RuleThresholds:
        return self._thresholds

    @traced_engine("rules", "1.0", fingerprint_fields=("entity_type", "entity"))
    def validate(
        self,
        entity_type: EntityType,
        entity: Any,
        context: RuleContext,
    ) -> RuleResult:
        """
        Evaluate ``entity`` against the rules for ``entity_type``.

        Raises:
            ValueError: If ``entity_type`` is not an EntityType.
            TypeError: If ``entity`` is not the snapshot type for ``entity_type``.
        """
        # EntityType() raises ValueError for unknown types
        entity_type = EntityType(entity_type)
        expected_type, rules = _RULE_SETS[entity_type]
        if not isinstance(entity, expected_type):
            raise TypeError(
                f"{entity_type} expects {expected_type.__name__}, "
                f"got {type(entity).__name__}"
            )

        hits = [
            hit
            for rule in rules
            if (hit := rule.evaluate(entity, context, self._thresholds)) is not None
        ]
        result = RuleResult.from_hits(hits)

        logger.debug(
            "rules_evaluated",
            extra={
                "entity_type": entity_type.value,
                "company_id": context.company_id,
                "blocks": list(result.block_codes),
                "warnings": list(result.warning_codes),
                "info_count": len(result.infos),
            },
        )
        return result
