"""
ledger_services.booking_orchestrator -- Booking workflows as retried units of work.

Responsibility:
    Turn business events into ledger transactions: a template booking, a
    template booking that is posted straight away, a monthly payroll run,
    and an accepted bank pairing.  Each workflow validates through the
    rule engine and the validation gate, then books through
    TransactionService inside one committed, retried unit of work.

Architecture position:
    Services -- stateful orchestration over the kernel.
    Composes TransactionService, PeriodService, the pure engines
    (PayrollCalculator, RuleEngine) and the retry wrapper.

Invariants enforced:
    - A payroll run books at most one MZDA_NAKLAD transaction per period.
    - A refused action leaves no transaction behind; its VALIDATION_BLOCK
      audit entry is committed separately so the refusal is still recorded.
    - Numbering happens inside the unit of work, so a rolled back attempt
      never consumes a number.

Failure modes:
    - ValidationBlocked / ValidationWarned from the gate.
    - PeriodNotOpen, TemplateNotFound, ImbalanceError from the kernel.
    - Conflict once the retry policy is exhausted.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from ledger_engines.matching import EntryType, PairingMatch
from ledger_engines.payroll import (
    PayrollCalculator,
    PayrollConfig,
    PayrollResult,
    payroll_custom_amounts,
)
from ledger_engines.rule_engine import RuleEngine
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.ledger import (
    BALANCE_TOLERANCE,
    TransactionData,
    period_of,
)
from ledger_kernel.domain.rules import (
    BankPairingCandidate,
    EntityType,
    PayrollCandidate,
    RuleContext,
    RuleResult,
)
from ledger_kernel.domain.templates import Template
from ledger_kernel.exceptions import ValidationBlocked
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.selectors.transaction_selector import TransactionSelector
from ledger_kernel.services.audit_service import AuditRecord, AuditService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.template_service import TemplateService
from ledger_kernel.services.transaction_service import TransactionService
from ledger_kernel.services.validation_gate import ValidationGate, WarningOverride
from ledger_services.retry import RetryPolicy, run_unit_of_work

logger = get_logger("services.booking")

PAYROLL_TEMPLATE = "MZDA_NAKLAD"
SALARY_PAYMENT_TEMPLATE = "VYPLATA_MZDY"
CUSTOMER_PAYMENT_TEMPLATE = "UHRADA_ODBERATEL"
SUPPLIER_PAYMENT_TEMPLATE = "UHRADA_DODAVATEL"


@dataclass(frozen=True)
class PayrollBooking:
    """Outcome of a booked payroll run."""

    payroll: PayrollResult
    result: RuleResult
    expense_transaction: TransactionData
    payment_transaction: TransactionData | None = None
    override_entry: AuditRecord | None = None


@dataclass(frozen=True)
class PairingBooking:
    """Outcome of an accepted bank pairing."""

    match: PairingMatch
    result: RuleResult
    transaction: TransactionData
    is_partial_payment: bool
    override_entry: AuditRecord | None = None


class BookingOrchestrator:
    """
    Booking workflows with commit and bounded retry.

    Contract:
        Each public method is one committed unit of work.  Returned
        transactions are snapshots taken before commit.

    Guarantees:
        - Either the whole workflow commits or nothing does.
        - BLOCK refusals are audited even though the workflow rolls back.

    Non-goals:
        - Does NOT mark open items as paid; the open-item ledger is derived
          from the booked transactions.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        system_templates: Mapping[str, Template] | None = None,
        clock: Clock | None = None,
        rule_engine: RuleEngine | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        self._session_factory = session_factory
        self._system_templates = dict(system_templates or {})
        self._clock = clock or SystemClock()
        self._rules = rule_engine or RuleEngine()
        self._policy = retry_policy or RetryPolicy()

    def _transactions(self, session: Session) -> TransactionService:
        return TransactionService(
            session,
            self._clock,
            template_service=TemplateService(session, self._system_templates, self._clock),
            rule_engine=self._rules,
        )

    def _gate(self, session: Session) -> ValidationGate:
        return ValidationGate(AuditService(session, self._clock))

    def _record_block(
        self,
        company_id: str,
        exc: ValidationBlocked,
        entity_id: str | None,
        actor_id: str,
        ref: dict[str, Any] | None = None,
    ) -> None:
        run_unit_of_work(
            self._session_factory,
            "record_block",
            f"{company_id}/{exc.entity_type}",
            lambda session: AuditService(session, self._clock).record_block(
                company_id=company_id,
                entity_type=exc.entity_type,
                entity_id=entity_id,
                result=exc.result,
                actor_id=actor_id,
                ref=ref,
            ),
            self._policy,
        )

    # ------------------------------------------------------------------
    # Template bookings
    # ------------------------------------------------------------------

    def book_from_template(
        self,
        company_id: str,
        template_code: str,
        amount: Decimal,
        transaction_date: date,
        description: str,
        actor_id: str,
        partner_id: str | None = None,
        partner_name: str | None = None,
        custom_amounts: Mapping[str, Decimal] | None = None,
        document_id: str | None = None,
    ) -> TransactionData:
        """Create a numbered DRAFT from a template and commit it."""
        return run_unit_of_work(
            self._session_factory,
            "book_from_template",
            f"{company_id}/{template_code}",
            lambda session: self._transactions(session).create_from_template(
                company_id=company_id,
                template_code=template_code,
                amount=amount,
                transaction_date=transaction_date,
                description=description,
                actor_id=actor_id,
                partner_id=partner_id,
                partner_name=partner_name,
                custom_amounts=custom_amounts,
                document_id=document_id,
            ),
            self._policy,
        )

    def book_and_post(
        self,
        company_id: str,
        template_code: str,
        amount: Decimal,
        transaction_date: date,
        description: str,
        actor_id: str,
        partner_id: str | None = None,
        partner_name: str | None = None,
        custom_amounts: Mapping[str, Decimal] | None = None,
        document_id: str | None = None,
        override: WarningOverride | None = None,
    ) -> TransactionData:
        """
        Create from a template and post in the same unit of work.

        A refusal rolls back the draft as well, so no orphan draft and no
        consumed number remain.
        """

        def work(session: Session) -> TransactionData:
            service = self._transactions(session)
            draft = service.create_from_template(
                company_id=company_id,
                template_code=template_code,
                amount=amount,
                transaction_date=transaction_date,
                description=description,
                actor_id=actor_id,
                partner_id=partner_id,
                partner_name=partner_name,
                custom_amounts=custom_amounts,
                document_id=document_id,
            )
            return service.post(company_id, str(draft.id), actor_id, override=override)

        try:
            return run_unit_of_work(
                self._session_factory,
                "book_and_post",
                f"{company_id}/{template_code}",
                work,
                self._policy,
            )
        except ValidationBlocked as exc:
            self._record_block(
                company_id,
                exc,
                entity_id=document_id,
                actor_id=actor_id,
                ref={"template_id": template_code, "document_id": document_id},
            )
            raise

    # ------------------------------------------------------------------
    # Payroll
    # ------------------------------------------------------------------

    def book_payroll(
        self,
        company_id: str,
        payroll_date: date,
        gross_salary: Decimal,
        actor_id: str,
        employee_name: str | None = None,
        config: PayrollConfig | None = None,
        create_payment: bool = False,
        override: WarningOverride | None = None,
    ) -> PayrollBooking:
        """
        Calculate and book a monthly payroll run.

        Books MZDA_NAKLAD with the calculated components and, when
        ``create_payment`` is set, VYPLATA_MZDY for the net salary.  Both
        are left as drafts for review.

        Raises:
            ValidationBlocked: PAYROLL_DUPLICATE, PAYROLL_INVALID_SALARY.
            ValidationWarned: PAYROLL_NO_SETTINGS without an override.
        """
        period = period_of(payroll_date)
        label = f"Payroll {period}" + (f" {employee_name}" if employee_name else "")

        def work(session: Session) -> PayrollBooking:
            # The period row stays locked until commit, so a second run for
            # the same period waits here and then sees this one.
            PeriodService(session, self._clock, self._rules).ensure_open_for_posting(company_id, payroll_date)
            existing = [
                t
                for t in TransactionSelector(session).list_transactions(company_id, period=period)
                if t.template_id == PAYROLL_TEMPLATE
            ]
            candidate = PayrollCandidate(
                period=period,
                gross_salary=gross_salary,
                existing_run_for_period=bool(existing),
                has_payroll_settings=config is not None,
                create_payment_transactions=create_payment,
            )
            result = self._rules.validate(
                entity_type=EntityType.PAYROLL,
                entity=candidate,
                context=RuleContext(company_id=company_id, period=period, user_id=actor_id),
            )
            override_entry = self._gate(session).enforce(
                company_id=company_id,
                entity_type=EntityType.PAYROLL,
                result=result,
                override=override,
                entity_id=period,
                ref={"period": period},
            )

            payroll = PayrollCalculator(config).calculate(gross_salary=gross_salary)
            service = self._transactions(session)
            expense = service.create_from_template(
                company_id=company_id,
                template_code=PAYROLL_TEMPLATE,
                amount=payroll.total_employer_cost,
                transaction_date=payroll_date,
                description=label,
                actor_id=actor_id,
                custom_amounts=payroll_custom_amounts(payroll),
            )
            payment = None
            if create_payment:
                payment = service.create_from_template(
                    company_id=company_id,
                    template_code=SALARY_PAYMENT_TEMPLATE,
                    amount=payroll.net_salary,
                    transaction_date=payroll_date,
                    description=f"Salary payment {period}",
                    actor_id=actor_id,
                )
            return PayrollBooking(
                payroll=payroll,
                result=result,
                expense_transaction=expense,
                payment_transaction=payment,
                override_entry=override_entry,
            )

        with LogContext.bind(company_id=company_id, actor_id=actor_id, period=period):
            try:
                booking = run_unit_of_work(
                    self._session_factory,
                    "book_payroll",
                    f"{company_id}/{period}",
                    work,
                    self._policy,
                )
            except ValidationBlocked as exc:
                self._record_block(company_id, exc, entity_id=period, actor_id=actor_id,
                                   ref={"period": period})
                raise
            logger.info(
                "payroll_booked",
                extra={
                    "gross_salary": str(booking.payroll.gross_salary),
                    "net_salary": str(booking.payroll.net_salary),
                    "total_employer_cost": str(booking.payroll.total_employer_cost),
                },
            )
            return booking

    # ------------------------------------------------------------------
    # Bank pairing
    # ------------------------------------------------------------------

    def accept_pairing(
        self,
        company_id: str,
        match: PairingMatch,
        open_item_remaining: Decimal,
        actor_id: str,
        note: str | None = None,
        override: WarningOverride | None = None,
    ) -> PairingBooking:
        """
        Book the payment for an accepted pairing proposal.

        Income movements settle a receivable (UHRADA_ODBERATEL), expense
        movements settle a payable (UHRADA_DODAVATEL).  The booking is a
        DRAFT dated on the movement date.

        Raises:
            ValidationBlocked: BANK_OVERPAYMENT.
            ValidationWarned: BANK_PARTIAL_NO_NOTE, BANK_NO_PARTNER without
                an override.
        """
        movement = match.bank_movement
        entry = match.entry
        is_partial = movement.amount < open_item_remaining - BALANCE_TOLERANCE
        template_code = (
            CUSTOMER_PAYMENT_TEMPLATE if entry.entry_type == EntryType.INCOME else SUPPLIER_PAYMENT_TEMPLATE
        )
        ref = {"movement_id": movement.movement_id, "entry_id": entry.entry_id}

        def work(session: Session) -> PairingBooking:
            result = self._rules.validate(
                entity_type=EntityType.BANK_PAIRING,
                entity=BankPairingCandidate(
                    movement_amount=movement.amount,
                    open_item_amount=entry.amount,
                    open_item_remaining=open_item_remaining,
                    is_partial_payment=is_partial,
                    partner_id=entry.partner_id,
                    note=note,
                ),
                context=RuleContext(company_id=company_id, user_id=actor_id),
            )
            override_entry = self._gate(session).enforce(
                company_id=company_id,
                entity_type=EntityType.BANK_PAIRING,
                result=result,
                override=override,
                entity_id=entry.entry_id,
                ref=ref,
            )
            transaction = self._transactions(session).create_from_template(
                company_id=company_id,
                template_code=template_code,
                amount=movement.amount,
                transaction_date=movement.movement_date,
                description=note or f"Payment {entry.doc_number or entry.entry_id}",
                actor_id=actor_id,
                partner_id=entry.partner_id,
                partner_name=entry.partner_name,
                document_id=entry.entry_id,
            )
            return PairingBooking(
                match=match,
                result=result,
                transaction=transaction,
                is_partial_payment=is_partial,
                override_entry=override_entry,
            )

        try:
            return run_unit_of_work(
                self._session_factory,
                "accept_pairing",
                f"{company_id}/{entry.entry_id}",
                work,
                self._policy,
            )
        except ValidationBlocked as exc:
            self._record_block(company_id, exc, entity_id=entry.entry_id, actor_id=actor_id, ref=ref)
            raise
