"""
ledger_services.bootstrap -- Wiring from settings and configuration.

Responsibility:
    Build a ready-to-use ledger runtime: structured logging at the
    configured level, an engine for the configured database, the active
    configuration set, and the two orchestrators sharing one session
    factory, clock, rule engine and retry policy.

Architecture position:
    Services -- composition root.  Scripts and tests call ``build_runtime``
    instead of assembling services by hand.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from ledger_config import LedgerConfiguration, LedgerSettings, get_active_config
from ledger_engines.rule_engine import RuleEngine
from ledger_kernel.db.engine import build_engine, build_session_factory, create_tables, session_scope
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.logging_config import configure_logging, get_logger
from ledger_kernel.services.account_service import AccountService
from ledger_services.booking_orchestrator import BookingOrchestrator
from ledger_services.period_close_orchestrator import PeriodCloseOrchestrator
from ledger_services.retry import RetryPolicy

logger = get_logger("services.bootstrap")


@dataclass
class LedgerRuntime:
    settings: LedgerSettings
    config: LedgerConfiguration
    engine: Engine
    session_factory: sessionmaker[Session]
    clock: Clock
    bookings: BookingOrchestrator
    periods: PeriodCloseOrchestrator

    def seed_company(self, company_id: str, actor_id: str | None = None) -> int:
        """Seed the configured chart of accounts for a company; idempotent."""
        with session_scope(self.session_factory) as session:
            created = AccountService(session, self.clock).seed_chart(
                company_id, self.config.accounts, actor_id
            )
        logger.info("company_seeded", extra={"company_id": company_id, "accounts_created": created})
        return created

    def dispose(self) -> None:
        self.engine.dispose()


def build_runtime(
    settings: LedgerSettings | None = None,
    clock: Clock | None = None,
    create_schema: bool = True,
) -> LedgerRuntime:
    """
    Build a LedgerRuntime.

    Args:
        settings: Defaults to ``LedgerSettings.from_env()``.
        clock: Defaults to SystemClock; tests pass a DeterministicClock.
        create_schema: Create missing tables on the target database.
    """
    settings = settings or LedgerSettings.from_env()
    configure_logging(level=settings.log_level)

    config = get_active_config(settings.config_dir)
    engine = build_engine(settings.database_url)
    if create_schema:
        create_tables(engine)
    session_factory = build_session_factory(engine)

    clock = clock or SystemClock()
    rule_engine = RuleEngine(config.thresholds)
    policy = RetryPolicy(attempts=settings.lock_retry_attempts)

    logger.info(
        "ledger_runtime_ready",
        extra={"config_set_id": config.config_id, "retry_attempts": policy.attempts},
    )
    return LedgerRuntime(
        settings=settings,
        config=config,
        engine=engine,
        session_factory=session_factory,
        clock=clock,
        bookings=BookingOrchestrator(
            session_factory,
            system_templates=config.templates,
            clock=clock,
            rule_engine=rule_engine,
            retry_policy=policy,
        ),
        periods=PeriodCloseOrchestrator(
            session_factory,
            clock=clock,
            rule_engine=rule_engine,
            retry_policy=policy,
        ),
    )
