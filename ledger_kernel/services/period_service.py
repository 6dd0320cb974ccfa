"""
PeriodService -- accounting period state machine, closing checks and locking.

Responsibility:
    Manages the period lifecycle OPEN -> CLOSING -> CLOSED -> LOCKED for
    one company, gathers the closing-readiness figures the PERIOD_CLOSING
    rules evaluate, and performs lock/unlock as a single unit of work:
    period row, transaction statuses and audit entry change together.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by TransactionService before any write (``ensure_open_for_posting``)
    and by ledger_services.PeriodCloseOrchestrator, which owns the commit
    and the retry policy.

Invariants enforced:
    - A period exists OPEN from its first reference; the row is created on
      demand.
    - CLOSED and LOCKED periods refuse new or edited transactions
      (PeriodNotOpen).  CLOSING still accepts them.
    - lock re-runs the closing validation every time: any BLOCK refuses,
      WARN hits need an override that is audited exactly once.
    - lock flips every POSTED transaction of the period to LOCKED and
      writes one PERIOD_LOCK entry; unlock reverses both and writes one
      PERIOD_UNLOCK entry.  All of it flushes in the caller's transaction.
    - Concurrent writers on one period serialize on the row lock; the
      version column turns a lost race into StaleDataError instead of a
      silent overwrite.

Failure modes:
    - PeriodNotOpen: write into a CLOSED or LOCKED period.
    - InvalidPeriodTransition: requested edge is not in the state machine.
    - InvalidPeriodCode: malformed period code.
    - ValidationBlocked / ValidationWarned: from the closing checks.
    - sqlalchemy.orm.exc.StaleDataError: concurrent modification; retried
      by the orchestrator.

Audit relevance:
    Lock and unlock are the only ways transaction statuses move past
    POSTED; both leave an audit entry with the actor and the period.
"""

from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_engines.open_items import (
    PAYABLE_ACCOUNT,
    RECEIVABLE_ACCOUNT,
    compute_open_items,
    count_open_items,
)
from ledger_engines.rule_engine import RuleEngine
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.ledger import TransactionStatus, parse_period, period_of
from ledger_kernel.domain.rules import (
    EntityType,
    PeriodClosingCandidate,
    RuleContext,
    RuleResult,
)
from ledger_kernel.exceptions import (
    InvalidPeriodTransition,
    PeriodNotOpen,
    ValidationBlocked,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.audit import AuditEntryType
from ledger_kernel.models.period import AccountingPeriod, PeriodStatus
from ledger_kernel.models.transaction import LedgerTransaction
from ledger_kernel.selectors.transaction_selector import TransactionSelector
from ledger_kernel.services.audit_service import AuditRecord, AuditService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.validation_gate import ValidationGate, WarningOverride

logger = get_logger("services.period")


@dataclass(frozen=True)
class PeriodInfo:
    """Read-only view of a period row."""

    company_id: str
    period_code: str
    status: PeriodStatus
    version: int
    closed_at: datetime | None = None
    closed_by: str | None = None
    locked_at: datetime | None = None
    locked_by: str | None = None
    unlocked_at: datetime | None = None
    unlocked_by: str | None = None


@dataclass(frozen=True)
class LockOutcome:
    """What a successful lock or unlock did."""

    period: PeriodInfo
    transaction_count: int
    audit_entry: AuditRecord
    result: RuleResult | None = None
    override_entry: AuditRecord | None = None


def _to_info(period: AccountingPeriod) -> PeriodInfo:
    return PeriodInfo(
        company_id=period.company_id,
        period_code=period.period_code,
        status=PeriodStatus(period.status),
        version=period.version,
        closed_at=period.closed_at,
        closed_by=period.closed_by,
        locked_at=period.locked_at,
        locked_by=period.locked_by,
        unlocked_at=period.unlocked_at,
        unlocked_by=period.unlocked_by,
    )


class PeriodService(BaseService):
    """
    Service for the accounting period lifecycle.

    Contract:
        Lifecycle methods flush within the caller's transaction and return
        frozen ``PeriodInfo`` / ``LockOutcome`` values.

    Guarantees:
        - Concurrent mutations of one period serialize via
          ``SELECT ... FOR UPDATE`` on the period row.
        - ``request_close`` never raises for rule hits; it returns them.

    Non-goals:
        - Does NOT call ``session.commit()``; caller controls boundaries.
        - Does NOT retry; PeriodCloseOrchestrator does.
        - Does NOT count the document inbox; the caller passes the count.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        rule_engine: RuleEngine | None = None,
    ):
        super().__init__(session, clock)
        self._rules = rule_engine or RuleEngine()
        self._audit = AuditService(session, self.clock)
        self._gate = ValidationGate(self._audit)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _find(self, company_id: str, period_code: str, for_update: bool = False) -> AccountingPeriod | None:
        stmt = select(AccountingPeriod).where(
            AccountingPeriod.company_id == company_id,
            AccountingPeriod.period_code == period_code,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def _get_or_create(self, company_id: str, period_code: str, for_update: bool = False) -> AccountingPeriod:
        parse_period(period_code)
        period = self._find(company_id, period_code, for_update)
        if period is not None:
            return period

        savepoint = self.session.begin_nested()
        try:
            period = AccountingPeriod(
                company_id=company_id,
                period_code=period_code,
                status=PeriodStatus.OPEN.value,
            )
            self.session.add(period)
            self.session.flush()
            savepoint.commit()
            logger.info(
                "period_created",
                extra={"company_id": company_id, "period_code": period_code},
            )
            return period
        except IntegrityError:
            # Another writer created it first
            savepoint.rollback()
            period = self._find(company_id, period_code, for_update)
            if period is None:
                raise
            return period

    def _transactions_in(
        self, company_id: str, period_code: str, status: TransactionStatus
    ) -> list[LedgerTransaction]:
        return list(
            self.session.scalars(
                select(LedgerTransaction)
                .where(
                    LedgerTransaction.company_id == company_id,
                    LedgerTransaction.period == period_code,
                    LedgerTransaction.status == status.value,
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        )

    def get_or_create(self, company_id: str, period_code: str) -> PeriodInfo:
        return _to_info(self._get_or_create(company_id, period_code))

    def get_period(self, company_id: str, period_code: str) -> PeriodInfo | None:
        parse_period(period_code)
        period = self._find(company_id, period_code)
        return _to_info(period) if period else None

    def get_status(self, company_id: str, period_code: str) -> PeriodStatus:
        """Status without creating the row; an unseen period is OPEN."""
        parse_period(period_code)
        period = self._find(company_id, period_code)
        return PeriodStatus(period.status) if period else PeriodStatus.OPEN

    def ensure_open_for_posting(self, company_id: str, transaction_date: date) -> PeriodStatus:
        """
        Guard for every write that touches a period's transactions.

        Takes the period row FOR UPDATE (creating it OPEN on first use) and
        holds it until the caller's unit of work ends, so a booking and a
        lock of the same period never interleave: whichever commits second
        sees the other's result.

        Raises:
            PeriodNotOpen: If the period containing ``transaction_date`` is
                CLOSED or LOCKED.
        """
        period_code = period_of(transaction_date)
        status = PeriodStatus(self._get_or_create(company_id, period_code, for_update=True).status)
        if status in (PeriodStatus.CLOSED, PeriodStatus.LOCKED):
            logger.warning(
                "period_not_open",
                extra={"company_id": company_id, "period_code": period_code, "status": status.value},
            )
            raise PeriodNotOpen(company_id, period_code, status.value)
        return status

    # ------------------------------------------------------------------
    # Closing checks
    # ------------------------------------------------------------------

    def closing_candidate(
        self,
        company_id: str,
        period_code: str,
        inbox_pending_count: int = 0,
    ) -> PeriodClosingCandidate:
        """Gather the figures the PERIOD_CLOSING rules evaluate."""
        selector = TransactionSelector(self.session)
        drafts = selector.count(company_id, period_code, TransactionStatus.DRAFT)
        items = compute_open_items(
            selector.list_transactions(
                company_id, statuses=(TransactionStatus.POSTED, TransactionStatus.LOCKED)
            )
        )
        return PeriodClosingCandidate(
            period=period_code,
            draft_transaction_count=drafts,
            open_receivable_count=count_open_items(items, RECEIVABLE_ACCOUNT, period_code),
            open_payable_count=count_open_items(items, PAYABLE_ACCOUNT, period_code),
            inbox_pending_count=inbox_pending_count,
            is_already_locked=self.get_status(company_id, period_code) == PeriodStatus.LOCKED,
        )

    def check_closing(
        self,
        company_id: str,
        period_code: str,
        inbox_pending_count: int = 0,
        actor_id: str | None = None,
    ) -> RuleResult:
        candidate = self.closing_candidate(company_id, period_code, inbox_pending_count)
        return self._rules.validate(
            entity_type=EntityType.PERIOD_CLOSING,
            entity=candidate,
            context=RuleContext(company_id=company_id, period=period_code, user_id=actor_id),
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def request_close(
        self,
        company_id: str,
        period_code: str,
        actor_id: str,
        inbox_pending_count: int = 0,
    ) -> RuleResult:
        """
        Run the closing checks and move OPEN -> CLOSING when nothing blocks.

        Returns the RuleResult in every case; a CLOSING period is re-checked
        without a transition.

        Raises:
            InvalidPeriodTransition: If the period is CLOSED.
        """
        period = self._get_or_create(company_id, period_code, for_update=True)
        if period.status == PeriodStatus.CLOSED:
            raise InvalidPeriodTransition(period_code, period.status, PeriodStatus.CLOSING.value)

        result = self.check_closing(company_id, period_code, inbox_pending_count, actor_id)

        if result.is_valid and period.status == PeriodStatus.OPEN:
            period.status = PeriodStatus.CLOSING.value
            self.session.flush()
            logger.info(
                "period_closing_started",
                extra={"company_id": company_id, "period_code": period_code, "actor_id": actor_id},
            )
        return result

    def cancel_closing(self, company_id: str, period_code: str, actor_id: str) -> PeriodInfo:
        period = self._get_or_create(company_id, period_code, for_update=True)
        if period.status != PeriodStatus.CLOSING:
            raise InvalidPeriodTransition(period_code, period.status, PeriodStatus.OPEN.value)
        period.status = PeriodStatus.OPEN.value
        self.session.flush()
        logger.info(
            "period_closing_cancelled",
            extra={"company_id": company_id, "period_code": period_code, "actor_id": actor_id},
        )
        return _to_info(period)

    def close(
        self,
        company_id: str,
        period_code: str,
        actor_id: str,
        inbox_pending_count: int = 0,
    ) -> PeriodInfo:
        """
        CLOSING -> CLOSED.  The closing checks run again; BLOCK hits refuse.
        Warnings are acknowledged when the period is locked.
        """
        period = self._get_or_create(company_id, period_code, for_update=True)
        if period.status != PeriodStatus.CLOSING:
            raise InvalidPeriodTransition(period_code, period.status, PeriodStatus.CLOSED.value)

        result = self.check_closing(company_id, period_code, inbox_pending_count, actor_id)
        if result.blocks:
            raise ValidationBlocked(EntityType.PERIOD_CLOSING.value, result)

        period.status = PeriodStatus.CLOSED.value
        period.closed_at = self.clock.now()
        period.closed_by = actor_id
        self.session.flush()
        logger.info(
            "period_closed",
            extra={"company_id": company_id, "period_code": period_code, "actor_id": actor_id},
        )
        return _to_info(period)

    def lock(
        self,
        company_id: str,
        period_code: str,
        actor_id: str,
        override: WarningOverride | None = None,
        inbox_pending_count: int = 0,
    ) -> LockOutcome:
        """
        Lock the period and every POSTED transaction in it.

        Allowed from OPEN, CLOSING or CLOSED.  The closing checks run again
        first (a LOCKED period fails them with CLOSING_ALREADY_LOCKED).

        Raises:
            ValidationBlocked: BLOCK hits (drafts, inbox, already locked).
            ValidationWarned: WARN hits without a covering override.
        """
        with LogContext.bind(company_id=company_id, actor_id=actor_id, period=period_code):
            period = self._get_or_create(company_id, period_code, for_update=True)
            result = self.check_closing(company_id, period_code, inbox_pending_count, actor_id)

            ref = {"period": period_code}
            override_entry = self._gate.enforce(
                company_id=company_id,
                entity_type=EntityType.PERIOD_CLOSING,
                result=result,
                override=override,
                entity_id=period_code,
                ref=ref,
            )

            now = self.clock.now()
            period.status = PeriodStatus.LOCKED.value
            period.locked_at = now
            period.locked_by = actor_id

            locked = 0
            for transaction in self._transactions_in(company_id, period_code, TransactionStatus.POSTED):
                transaction.status = TransactionStatus.LOCKED.value
                transaction.locked_at = now
                locked += 1

            self.session.flush()

            entry = self._audit.log_entry(
                company_id=company_id,
                entry_type=AuditEntryType.PERIOD_LOCK,
                rule_codes=result.warning_codes,
                entity_type=EntityType.PERIOD_CLOSING,
                entity_id=period_code,
                ref=ref,
                actor_id=actor_id,
                notes=f"{locked} transaction(s) locked",
            )

            logger.info("period_locked", extra={"transaction_count": locked})
            return LockOutcome(
                period=_to_info(period),
                transaction_count=locked,
                audit_entry=entry,
                result=result,
                override_entry=override_entry,
            )

    def unlock(
        self,
        company_id: str,
        period_code: str,
        actor_id: str,
        reason: str | None = None,
    ) -> LockOutcome:
        """
        LOCKED -> OPEN; LOCKED transactions of the period return to POSTED.

        Raises:
            InvalidPeriodTransition: If the period is not LOCKED.
        """
        with LogContext.bind(company_id=company_id, actor_id=actor_id, period=period_code):
            period = self._get_or_create(company_id, period_code, for_update=True)
            if period.status != PeriodStatus.LOCKED:
                raise InvalidPeriodTransition(period_code, period.status, PeriodStatus.OPEN.value)

            period.status = PeriodStatus.OPEN.value
            period.unlocked_at = self.clock.now()
            period.unlocked_by = actor_id

            unlocked = 0
            for transaction in self._transactions_in(company_id, period_code, TransactionStatus.LOCKED):
                transaction.status = TransactionStatus.POSTED.value
                transaction.locked_at = None
                unlocked += 1

            self.session.flush()

            entry = self._audit.log_entry(
                company_id=company_id,
                entry_type=AuditEntryType.PERIOD_UNLOCK,
                rule_codes=(),
                entity_type=EntityType.PERIOD_CLOSING,
                entity_id=period_code,
                ref={"period": period_code},
                actor_id=actor_id,
                notes=reason,
            )

            logger.info("period_unlocked", extra={"transaction_count": unlocked})
            return LockOutcome(period=_to_info(period), transaction_count=unlocked, audit_entry=entry)
