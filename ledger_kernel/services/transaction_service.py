"""
TransactionService -- create, edit, delete and post ledger transactions.

Responsibility:
    Materializes template drafts and manual line sets into numbered DRAFT
    transactions, lets drafts be edited or deleted, and posts them through
    the TRANSACTION rule set and the validation gate.

Architecture position:
    Kernel > Services -- imperative shell.
    Uses TemplateEngine and RuleEngine (pure), SequenceService for
    numbering and PeriodService for the period check.

Invariants enforced:
    - Every persisted line has a positive amount and references an
      account in the company's chart.
    - Every persisted transaction balances within 0.01; an unbalanced
      draft is never materialized.
    - Transactions dated in a CLOSED or LOCKED period cannot be created,
      edited, deleted or posted.
    - Only DRAFT transactions can be edited, deleted or posted.
    - Numbers come from the per (company, prefix, period) counter; moving
      a draft to another period allocates a number in the new period.

Failure modes:
    - ImbalanceError, InvalidLineAmount, AccountNotFound on materialize.
    - PeriodNotOpen for a CLOSED/LOCKED period.
    - TransactionNotFound, TransactionImmutable.
    - TemplateNotFound from the template lookup.
    - ValidationBlocked / ValidationWarned from post.

Audit relevance:
    Posting past warnings writes one OVERRIDE_WARNING audit entry through
    the validation gate; ``posted_at/posted_by`` record who posted.
"""

from collections.abc import Mapping, Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_engines.rule_engine import RuleEngine
from ledger_engines.template_engine import TemplateEngine
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.ledger import (
    LineData,
    Side,
    TransactionData,
    TransactionStatus,
    derive_totals,
    is_within_tolerance,
    period_of,
)
from ledger_kernel.domain.rules import EntityType, RuleContext, RuleResult, TransactionCandidate
from ledger_kernel.exceptions import (
    AccountNotFound,
    ImbalanceError,
    InvalidLineAmount,
    TransactionImmutable,
    TransactionNotFound,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.transaction import LedgerTransaction, LedgerTransactionLine
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.audit_service import AuditService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.services.template_service import TemplateService
from ledger_kernel.services.validation_gate import ValidationGate, WarningOverride

logger = get_logger("services.transaction")

DEFAULT_PREFIX = "TRN"


class TransactionService(BaseService):
    """
    Service for the transaction lifecycle up to POSTED.

    Contract:
        All methods take an explicit ``company_id``; nothing is read from
        ambient state.  Returned values are ``TransactionData`` snapshots.

    Guarantees:
        - Balanced, positive, chart-valid lines on every persisted row.
        - Number allocation and row insert happen in the caller's
          transaction, so a rollback returns the number.

    Non-goals:
        - Does NOT call ``session.commit()``; caller controls boundaries.
        - Does NOT lock or unlock transactions (PeriodService does).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        template_service: TemplateService | None = None,
        rule_engine: RuleEngine | None = None,
        template_engine: TemplateEngine | None = None,
    ):
        super().__init__(session, clock)
        self._templates = template_service or TemplateService(session, clock=self.clock)
        self._rules = rule_engine or RuleEngine()
        self._engine = template_engine or TemplateEngine()
        self._periods = PeriodService(session, self.clock, self._rules)
        self._accounts = AccountService(session, self.clock)
        self._sequences = SequenceService(session)
        self._gate = ValidationGate(AuditService(session, self.clock))

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_from_template(
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
        """
        Apply a template and store the result as a numbered DRAFT.

        Raises:
            PeriodNotOpen: Period of ``transaction_date`` is CLOSED/LOCKED.
            TemplateNotFound: Unknown template code.
            ImbalanceError: The resolved draft does not balance.
        """
        self._periods.ensure_open_for_posting(company_id, transaction_date)
        template = self._templates.get_template(company_id, template_code)

        draft = self._engine.apply_template(
            template=template,
            amount=amount,
            transaction_date=transaction_date,
            description=description,
            partner_id=partner_id,
            partner_name=partner_name,
            custom_amounts=custom_amounts,
        )
        if not draft.is_balanced:
            raise ImbalanceError(draft.total_debit, draft.total_credit)

        return self._materialize(
            company_id=company_id,
            transaction_date=transaction_date,
            description=description,
            lines=draft.lines,
            actor_id=actor_id,
            prefix=draft.number_prefix,
            template_id=template.code,
            document_id=document_id,
        )

    def create_manual(
        self,
        company_id: str,
        transaction_date: date,
        description: str,
        lines: Sequence[LineData],
        actor_id: str,
        prefix: str = DEFAULT_PREFIX,
        document_id: str | None = None,
    ) -> TransactionData:
        """Store hand-entered lines as a numbered DRAFT."""
        self._periods.ensure_open_for_posting(company_id, transaction_date)
        return self._materialize(
            company_id=company_id,
            transaction_date=transaction_date,
            description=description,
            lines=lines,
            actor_id=actor_id,
            prefix=prefix,
            document_id=document_id,
        )

    def _check_lines(self, company_id: str, lines: Sequence[LineData]) -> None:
        for line in lines:
            if line.amount <= 0:
                raise InvalidLineAmount(line.account_code, line.amount)

        known = set(self._accounts.account_codes(company_id))
        for line in lines:
            if line.account_code not in known:
                raise AccountNotFound(company_id, line.account_code)

        total_debit, total_credit = derive_totals(lines)
        if not is_within_tolerance(total_debit, total_credit):
            raise ImbalanceError(total_debit, total_credit)

    def _build_lines(self, lines: Sequence[LineData], actor_id: str) -> list[LedgerTransactionLine]:
        return [
            LedgerTransactionLine(
                line_no=index,
                line_key=line.line_key or f"line-{index}",
                account_code=line.account_code,
                side=Side(line.side).value,
                amount=line.amount,
                partner_id=line.partner_id,
                partner_name=line.partner_name,
                description=line.description,
                created_by=actor_id,
            )
            for index, line in enumerate(lines, start=1)
        ]

    def _materialize(
        self,
        company_id: str,
        transaction_date: date,
        description: str,
        lines: Sequence[LineData],
        actor_id: str,
        prefix: str,
        template_id: str | None = None,
        document_id: str | None = None,
    ) -> TransactionData:
        self._check_lines(company_id, lines)

        period = period_of(transaction_date)
        total_debit, total_credit = derive_totals(lines)
        number = self._sequences.next_number(company_id, prefix, period)

        transaction = LedgerTransaction(
            company_id=company_id,
            number=number,
            transaction_date=transaction_date,
            period=period,
            description=description,
            status=TransactionStatus.DRAFT.value,
            total_debit=total_debit,
            total_credit=total_credit,
            template_id=template_id,
            document_id=document_id,
            created_by=actor_id,
            lines=self._build_lines(lines, actor_id),
        )
        self.session.add(transaction)
        self.session.flush()

        logger.info(
            "transaction_created",
            extra={
                "company_id": company_id,
                "transaction_number": number,
                "template_id": template_id,
                "total_debit": str(total_debit),
            },
        )
        return transaction.to_data()

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def _load(self, company_id: str, transaction_id: str, for_update: bool = False) -> LedgerTransaction:
        try:
            key = UUID(str(transaction_id))
        except ValueError:
            raise TransactionNotFound(str(transaction_id)) from None
        stmt = select(LedgerTransaction).where(
            LedgerTransaction.company_id == company_id,
            LedgerTransaction.id == key,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        transaction = self.session.execute(stmt).scalar_one_or_none()
        if transaction is None:
            raise TransactionNotFound(str(transaction_id))
        return transaction

    def get(self, company_id: str, transaction_id: str) -> TransactionData:
        return self._load(company_id, transaction_id).to_data()

    # ------------------------------------------------------------------
    # Draft edits
    # ------------------------------------------------------------------

    def _load_draft(self, company_id: str, transaction_id: str, action: str) -> LedgerTransaction:
        transaction = self._load(company_id, transaction_id, for_update=True)
        self._periods.ensure_open_for_posting(company_id, transaction.transaction_date)
        if transaction.status != TransactionStatus.DRAFT:
            raise TransactionImmutable(str(transaction.id), transaction.status, action)
        return transaction

    def update_draft(
        self,
        company_id: str,
        transaction_id: str,
        actor_id: str,
        transaction_date: date | None = None,
        description: str | None = None,
        lines: Sequence[LineData] | None = None,
    ) -> TransactionData:
        """
        Edit a DRAFT.  Omitted fields keep their value.

        Raises:
            PeriodNotOpen: Old or new date lies in a CLOSED/LOCKED period.
            TransactionImmutable: The transaction is not a DRAFT.
        """
        transaction = self._load_draft(company_id, transaction_id, "edit")

        if transaction_date is not None and transaction_date != transaction.transaction_date:
            self._periods.ensure_open_for_posting(company_id, transaction_date)
            new_period = period_of(transaction_date)
            if new_period != transaction.period:
                prefix = transaction.number.split("-", 1)[0]
                transaction.number = self._sequences.next_number(company_id, prefix, new_period)
                transaction.period = new_period
            transaction.transaction_date = transaction_date

        if description is not None:
            transaction.description = description

        if lines is not None:
            self._check_lines(company_id, lines)
            total_debit, total_credit = derive_totals(lines)
            transaction.lines = self._build_lines(lines, actor_id)
            transaction.total_debit = total_debit
            transaction.total_credit = total_credit

        self.session.flush()
        logger.info(
            "transaction_draft_updated",
            extra={"company_id": company_id, "transaction_number": transaction.number, "actor_id": actor_id},
        )
        return transaction.to_data()

    def delete_draft(self, company_id: str, transaction_id: str, actor_id: str) -> None:
        transaction = self._load_draft(company_id, transaction_id, "delete")
        number = transaction.number
        self.session.delete(transaction)
        self.session.flush()
        logger.info(
            "transaction_draft_deleted",
            extra={"company_id": company_id, "transaction_number": number, "actor_id": actor_id},
        )

    # ------------------------------------------------------------------
    # Post
    # ------------------------------------------------------------------

    def _candidate(self, company_id: str, transaction: LedgerTransaction) -> TransactionCandidate:
        status = self._periods.get_status(company_id, transaction.period)
        data = transaction.to_data()
        return TransactionCandidate(
            description=data.description,
            transaction_date=data.transaction_date,
            lines=data.lines,
            period_status=status.value,
            template_id=data.template_id,
            document_id=data.document_id,
            transaction_id=data.id,
        )

    def validate(self, company_id: str, transaction_id: str, actor_id: str | None = None) -> RuleResult:
        """Evaluate the TRANSACTION rules without enforcing them."""
        transaction = self._load(company_id, transaction_id)
        return self._rules.validate(
            entity_type=EntityType.TRANSACTION,
            entity=self._candidate(company_id, transaction),
            context=RuleContext(company_id=company_id, period=transaction.period, user_id=actor_id),
        )

    def post(
        self,
        company_id: str,
        transaction_id: str,
        actor_id: str,
        override: WarningOverride | None = None,
    ) -> TransactionData:
        """
        DRAFT -> POSTED after the TRANSACTION rules pass the gate.

        Raises:
            PeriodNotOpen, TransactionImmutable, ValidationBlocked,
            ValidationWarned.
        """
        with LogContext.bind(company_id=company_id, actor_id=actor_id):
            transaction = self._load_draft(company_id, transaction_id, "post")
            result = self._rules.validate(
                entity_type=EntityType.TRANSACTION,
                entity=self._candidate(company_id, transaction),
                context=RuleContext(company_id=company_id, period=transaction.period, user_id=actor_id),
            )
            self._gate.enforce(
                company_id=company_id,
                entity_type=EntityType.TRANSACTION,
                result=result,
                override=override,
                entity_id=str(transaction.id),
                ref={
                    "transaction_id": str(transaction.id),
                    "document_id": transaction.document_id,
                    "period": transaction.period,
                },
            )

            transaction.status = TransactionStatus.POSTED.value
            transaction.posted_at = self.clock.now()
            transaction.posted_by = actor_id
            self.session.flush()

            logger.info(
                "transaction_posted",
                extra={"transaction_number": transaction.number, "period_code": transaction.period},
            )
            return transaction.to_data()
