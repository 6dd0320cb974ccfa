"""
ledger_services.period_close_orchestrator -- Period closing as retried units of work.

Responsibility:
    Drive the period state machine from outside a request: every call opens
    a fresh session, runs the PeriodService step, commits, and retries the
    whole step when a concurrent writer got there first.

Architecture position:
    Services -- stateful orchestration over the kernel.
    Composes PeriodService; owns commit and retry.

Invariants enforced:
    - Lock and unlock are atomic: period row, transaction statuses and the
      audit entry commit together or not at all.
    - Two concurrent lock requests for one period never both succeed; the
      loser sees the committed lock and is refused by the closing checks
      (CLOSING_ALREADY_LOCKED), or gets Conflict once retries run out.

Failure modes:
    - ValidationBlocked / ValidationWarned / InvalidPeriodTransition from
      PeriodService, on the first attempt (never retried).
    - Conflict when the retry policy is exhausted.

Audit relevance:
    PERIOD_LOCK / PERIOD_UNLOCK and override entries are written in the
    same transaction as the state change they document.  A refused lock
    is recorded as VALIDATION_BLOCK in a separate transaction.
"""

from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from ledger_engines.rule_engine import RuleEngine
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.rules import RuleResult
from ledger_kernel.exceptions import ValidationBlocked
from ledger_kernel.logging_config import get_logger
from ledger_kernel.services.audit_service import AuditService
from ledger_kernel.services.period_service import LockOutcome, PeriodInfo, PeriodService
from ledger_kernel.services.validation_gate import WarningOverride
from ledger_services.retry import RetryPolicy, run_unit_of_work

logger = get_logger("services.period_close")


class PeriodCloseOrchestrator:
    """
    Runs period lifecycle steps with commit and bounded retry.

    Contract:
        Each public method is one committed unit of work.

    Non-goals:
        - Does NOT decide policy; PeriodService and the rule engine do.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        rule_engine: RuleEngine | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._rules = rule_engine or RuleEngine()
        self._policy = retry_policy or RetryPolicy()

    def _service(self, session: Session) -> PeriodService:
        return PeriodService(session, self._clock, self._rules)

    def request_close(
        self,
        company_id: str,
        period_code: str,
        actor_id: str,
        inbox_pending_count: int = 0,
    ) -> RuleResult:
        return run_unit_of_work(
            self._session_factory,
            "period_request_close",
            f"{company_id}/{period_code}",
            lambda session: self._service(session).request_close(
                company_id, period_code, actor_id, inbox_pending_count
            ),
            self._policy,
        )

    def cancel_closing(self, company_id: str, period_code: str, actor_id: str) -> PeriodInfo:
        return run_unit_of_work(
            self._session_factory,
            "period_cancel_closing",
            f"{company_id}/{period_code}",
            lambda session: self._service(session).cancel_closing(company_id, period_code, actor_id),
            self._policy,
        )

    def close(
        self,
        company_id: str,
        period_code: str,
        actor_id: str,
        inbox_pending_count: int = 0,
    ) -> PeriodInfo:
        return run_unit_of_work(
            self._session_factory,
            "period_close",
            f"{company_id}/{period_code}",
            lambda session: self._service(session).close(
                company_id, period_code, actor_id, inbox_pending_count
            ),
            self._policy,
        )

    def lock(
        self,
        company_id: str,
        period_code: str,
        actor_id: str,
        override: WarningOverride | None = None,
        inbox_pending_count: int = 0,
    ) -> LockOutcome:
        try:
            outcome = run_unit_of_work(
                self._session_factory,
                "period_lock",
                f"{company_id}/{period_code}",
                lambda session: self._service(session).lock(
                    company_id,
                    period_code,
                    actor_id,
                    override=override,
                    inbox_pending_count=inbox_pending_count,
                ),
                self._policy,
            )
        except ValidationBlocked as exc:
            run_unit_of_work(
                self._session_factory,
                "record_block",
                f"{company_id}/{period_code}",
                lambda session: AuditService(session, self._clock).record_block(
                    company_id=company_id,
                    entity_type=exc.entity_type,
                    entity_id=period_code,
                    result=exc.result,
                    actor_id=actor_id,
                    ref={"period": period_code},
                ),
                self._policy,
            )
            raise
        logger.info(
            "period_lock_committed",
            extra={
                "company_id": company_id,
                "period_code": period_code,
                "transaction_count": outcome.transaction_count,
            },
        )
        return outcome

    def unlock(
        self,
        company_id: str,
        period_code: str,
        actor_id: str,
        reason: str | None = None,
    ) -> LockOutcome:
        outcome = run_unit_of_work(
            self._session_factory,
            "period_unlock",
            f"{company_id}/{period_code}",
            lambda session: self._service(session).unlock(
                company_id, period_code, actor_id, reason=reason
            ),
            self._policy,
        )
        logger.info(
            "period_unlock_committed",
            extra={
                "company_id": company_id,
                "period_code": period_code,
                "transaction_count": outcome.transaction_count,
            },
        )
        return outcome
