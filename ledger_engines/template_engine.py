"""
ledger_engines.template_engine -- Resolve a template plus an amount into a draft.

Responsibility:
    Turn an accounting template and a transaction amount into a
    ``TransactionDraft``: one ledger line per template line, each amount
    resolved from its amount source and rounded to 2 decimals half away
    from zero, partner fields copied where the template line asks for them,
    and an ``is_balanced`` flag.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Imports only ledger_kernel.domain.  Called by TransactionService when a
    business event is booked and by the payroll/bank pairing flows.

Invariants enforced:
    - Determinism: identical inputs produce identical line amounts and the
      same ``is_balanced`` value; there is no clock or hidden state.
    - Rounding: every line amount is quantized to 0.01 with ROUND_HALF_UP
      (half away from zero); e.g. 99.99 at 33.33 % -> 33.33.
    - The engine never raises on imbalance.  It reports it; the caller
      refuses to materialize an unbalanced draft.

Failure modes:
    - decimal.InvalidOperation if ``amount`` or a custom amount is not
      numeric.

Audit relevance:
    Every invocation is traced via ``@traced_engine`` with a fingerprint of
    the template code, amount and custom amounts.

Usage:
    engine = TemplateEngine()
    draft = engine.apply_template(
        template=template,
        amount=Decimal("120.00"),
        transaction_date=date(2025, 1, 10),
        description="FA 2025010 - IT services",
        partner_id="p-1",
        partner_name="Acme s.r.o.",
    )
    if not draft.is_balanced:
        ...
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date
from decimal import Decimal

from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.ledger import LineData, round_money
from ledger_kernel.domain.templates import (
    CustomAmount,
    PercentAmount,
    Template,
    TemplateLine,
    TotalAmount,
    TransactionDraft,
    draft_totals_balanced,
)
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.template")

_HUNDRED = Decimal("100")


def resolve_line_amount(
    line: TemplateLine,
    amount: Decimal,
    custom_amounts: Mapping[str, Decimal] | None = None,
) -> Decimal:
    """
    Resolve and round the amount of one template line.

    - TotalAmount: ``amount``.
    - CustomAmount: ``custom_amounts[line_id]``, falling back to ``amount``.
    - PercentAmount: ``amount * percent / 100``.
    """
    source = line.amount
    if isinstance(source, TotalAmount):
        raw = amount
    elif isinstance(source, CustomAmount):
        custom = (custom_amounts or {}).get(line.line_id)
        raw = amount if custom is None else Decimal(str(custom))
    elif isinstance(source, PercentAmount):
        raw = amount * source.percent / _HUNDRED
    else:
        raise TypeError(f"Unsupported amount source: {type(source).__name__}")
    return round_money(raw)


class TemplateEngine:
    """
    Pure template calculator.

    Contract:
        ``apply_template`` returns a draft whose lines mirror the template
        line order.  Line keys are ``line-1``, ``line-2``, ...

    Guarantees:
        - Stateless; safe to share across threads.
        - Never raises on imbalance.

    Non-goals:
        - Does NOT allocate transaction numbers (SequenceService).
        - Does NOT check the period state or persist anything.
    """

    @traced_engine(
        "template",
        "1.0",
        fingerprint_fields=("template", "amount", "custom_amounts"),
    )
    def apply_template(
        self,
        template: Template,
        amount: Decimal,
        transaction_date: date,
        description: str,
        partner_id: str | None = None,
        partner_name: str | None = None,
        custom_amounts: Mapping[str, Decimal] | None = None,
    ) -> TransactionDraft:
        """
        Resolve ``template`` for ``amount`` into a draft transaction.

        Args:
            template: Template to apply.
            amount: Transaction amount (the TOTAL).
            transaction_date: Date of the business event.
            description: Transaction description.
            partner_id: Partner copied onto lines that declare a partner side.
            partner_name: Partner display name, copied alongside partner_id.
            custom_amounts: Amounts keyed by template line id for CUSTOM lines.

        Returns:
            TransactionDraft with totals and ``is_balanced``.
        """
        amount = Decimal(str(amount))
        lines: list[LineData] = []
        for index, template_line in enumerate(template.lines, start=1):
            has_partner = template_line.partner_side is not None
            lines.append(
                LineData(
                    account_code=template_line.account_code,
                    side=template_line.side,
                    amount=resolve_line_amount(template_line, amount, custom_amounts),
                    partner_id=partner_id if has_partner else None,
                    partner_name=partner_name if has_partner else None,
                    description=template_line.description,
                    line_key=f"line-{index}",
                )
            )

        draft_lines = tuple(lines)
        total_debit, total_credit, is_balanced = draft_totals_balanced(draft_lines)

        if not is_balanced:
            logger.info(
                "template_draft_unbalanced",
                extra={
                    "template_code": template.code,
                    "total_debit": str(total_debit),
                    "total_credit": str(total_credit),
                },
            )

        return TransactionDraft(
            template_code=template.code,
            transaction_date=transaction_date,
            description=description,
            lines=draft_lines,
            total_debit=total_debit,
            total_credit=total_credit,
            is_balanced=is_balanced,
            number_prefix=template.number_prefix,
        )
