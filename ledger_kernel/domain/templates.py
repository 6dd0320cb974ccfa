"""
Templates -- accounting template definitions and load-time integrity checks.

Responsibility:
    Defines the immutable shape of an accounting template (a recipe mapping
    a business event to ledger lines) and the draft transaction a template
    produces.  The amount source of each template line is a closed tagged
    variant: ``TotalAmount``, ``CustomAmount`` or ``PercentAmount``.  A
    percent without a value, or a fixed line carrying a stray percentage,
    cannot be constructed.  Also converts templates to and from the
    plain-data form used by YAML configuration and stored custom templates.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Consumed by ledger_engines.template_engine (calculation),
    ledger_config (YAML parsing) and TemplateService (custom templates).

Invariants enforced:
    - A valid template has >= 2 lines, at least one DEBIT and one CREDIT
      line, unique line ids, and only references accounts in the chart.
      ``check_template_integrity`` enforces this at load time, not at use.
    - PercentAmount.percent is in (0, 100].

Failure modes:
    - TemplateIntegrityError listing every problem found (not just the first).
    - ValueError from PercentAmount for a percentage outside (0, 100].
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Union

from ledger_kernel.domain.ledger import (
    LineData,
    Side,
    derive_totals,
    is_within_tolerance,
    period_of,
)
from ledger_kernel.exceptions import TemplateIntegrityError


class AmountSource(str, Enum):
    """How a template line derives its amount."""

    TOTAL = "total"
    CUSTOM = "custom"
    PERCENT = "percent"


class PartnerSide(str, Enum):
    """Which partner a template line books against."""

    SUPPLIER = "supplier"
    CUSTOMER = "customer"


class AppliesTo(str, Enum):
    """Business events a template is intended for."""

    INVOICE_ISSUED = "invoice_issued"
    INVOICE_RECEIVED = "invoice_received"
    BANK_RECEIPT = "bank_receipt"
    BANK_PAYMENT = "bank_payment"
    PAYROLL = "payroll"
    MANUAL = "manual"


@dataclass(frozen=True)
class TotalAmount:
    """Line amount equals the transaction amount."""

    source: ClassVar[AmountSource] = AmountSource.TOTAL


@dataclass(frozen=True)
class CustomAmount:
    """Line amount supplied by the caller per line id (falls back to total)."""

    source: ClassVar[AmountSource] = AmountSource.CUSTOM


@dataclass(frozen=True)
class PercentAmount:
    """Line amount is ``percent`` % of the transaction amount."""

    percent: Decimal
    source: ClassVar[AmountSource] = AmountSource.PERCENT

    def __post_init__(self) -> None:
        if not isinstance(self.percent, Decimal):
            object.__setattr__(self, "percent", Decimal(str(self.percent)))
        if not Decimal("0") < self.percent <= Decimal("100"):
            raise ValueError(f"Percent must be in (0, 100], got {self.percent}")


LineAmount = Union[TotalAmount, CustomAmount, PercentAmount]


@dataclass(frozen=True)
class TemplateLine:
    """One line of a template."""

    line_id: str
    side: Side
    account_code: str
    amount: LineAmount = TotalAmount()
    partner_side: PartnerSide | None = None
    description: str | None = None


@dataclass(frozen=True)
class Template:
    """
    Accounting template.

    Contract:
        Templates are configuration, not transactional state.  System
        templates (``is_system=True``) come from the configuration set and
        are read-only.
    """

    code: str
    name: str
    lines: tuple[TemplateLine, ...]
    applies_to: tuple[AppliesTo, ...] = (AppliesTo.MANUAL,)
    description: str = ""
    number_prefix: str = "TRN"
    is_system: bool = False

    def line(self, line_id: str) -> TemplateLine | None:
        for template_line in self.lines:
            if template_line.line_id == line_id:
                return template_line
        return None


@dataclass(frozen=True)
class TransactionDraft:
    """
    Output of the template engine.

    Contract:
        ``is_balanced`` reports the balance check; the draft itself is
        produced even when unbalanced so the caller can display it.
    """

    template_code: str
    transaction_date: date
    description: str
    lines: tuple[LineData, ...]
    total_debit: Decimal
    total_credit: Decimal
    is_balanced: bool
    number_prefix: str = "TRN"

    @property
    def period(self) -> str:
        return period_of(self.transaction_date)


def check_template_integrity(
    template: Template,
    account_codes: Iterable[str],
) -> None:
    """
    Validate a template against the chart of accounts.

    Preconditions:
        ``account_codes`` is the set of account codes known to the company.

    Raises:
        TemplateIntegrityError: With every problem found.
    """
    known = set(account_codes)
    problems: list[str] = []

    if len(template.lines) < 2:
        problems.append(f"needs at least 2 lines, has {len(template.lines)}")

    sides = {line.side for line in template.lines}
    if Side.DEBIT not in sides:
        problems.append("has no DEBIT line")
    if Side.CREDIT not in sides:
        problems.append("has no CREDIT line")

    seen: set[str] = set()
    for line in template.lines:
        if line.line_id in seen:
            problems.append(f"duplicate line id {line.line_id}")
        seen.add(line.line_id)
        if line.account_code not in known:
            problems.append(f"line {line.line_id} references unknown account {line.account_code}")

    if problems:
        raise TemplateIntegrityError(template.code, problems)


def draft_totals_balanced(lines: tuple[LineData, ...]) -> tuple[Decimal, Decimal, bool]:
    """Totals plus balance flag for a set of draft lines."""
    total_debit, total_credit = derive_totals(lines)
    return total_debit, total_credit, is_within_tolerance(total_debit, total_credit)


# ---------------------------------------------------------------------------
# Plain-data form (YAML configuration and stored custom templates)
# ---------------------------------------------------------------------------


def _amount_from_dict(data: dict[str, Any]) -> LineAmount:
    source = AmountSource(data.get("amount_source", AmountSource.TOTAL.value))
    if source == AmountSource.TOTAL:
        return TotalAmount()
    if source == AmountSource.CUSTOM:
        return CustomAmount()
    if source == AmountSource.PERCENT:
        if data.get("percent") is None:
            raise ValueError(f"Line {data.get('line_id')} has amount_source percent without percent")
        return PercentAmount(Decimal(str(data["percent"])))
    raise ValueError(f"Unsupported amount source: {source}")


def template_line_from_dict(data: dict[str, Any]) -> TemplateLine:
    partner_side = data.get("partner_side")
    return TemplateLine(
        line_id=str(data["line_id"]),
        side=Side(data["side"]),
        account_code=str(data["account"]),
        amount=_amount_from_dict(data),
        partner_side=PartnerSide(partner_side) if partner_side else None,
        description=data.get("description"),
    )


def template_from_dict(data: dict[str, Any], is_system: bool = False) -> Template:
    """
    Build a Template from its plain-data form.

    Raises:
        KeyError: If ``code``, ``name`` or a line's required key is missing.
        ValueError: For unknown enum values or an invalid percentage.
    """
    applies_to = data.get("applies_to") or [AppliesTo.MANUAL.value]
    return Template(
        code=str(data["code"]),
        name=str(data["name"]),
        lines=tuple(template_line_from_dict(line) for line in data.get("lines") or ()),
        applies_to=tuple(AppliesTo(value) for value in applies_to),
        description=data.get("description") or "",
        number_prefix=data.get("number_prefix") or "TRN",
        is_system=is_system,
    )


def template_line_to_dict(line: TemplateLine) -> dict[str, Any]:
    data: dict[str, Any] = {
        "line_id": line.line_id,
        "side": line.side.value,
        "account": line.account_code,
        "amount_source": line.amount.source.value,
    }
    if isinstance(line.amount, PercentAmount):
        data["percent"] = str(line.amount.percent)
    if line.partner_side is not None:
        data["partner_side"] = line.partner_side.value
    if line.description:
        data["description"] = line.description
    return data
