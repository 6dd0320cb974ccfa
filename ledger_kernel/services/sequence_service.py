"""
SequenceService -- period-scoped transaction numbers via locked counter rows.

Responsibility:
    Allocates transaction numbers of the form ``PREFIX-YYYYMM-NNNN`` from
    a counter keyed by (company, prefix, period).  Uses a dedicated counter
    table with row-level locking (``SELECT ... FOR UPDATE``) to guarantee
    uniqueness and ordering under concurrent access.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by TransactionService when a transaction is created.

Invariants enforced:
    - Uniqueness: the locked counter row is the sole source of truth for
      the next value.  Deriving the number from a count of existing
      transactions is FORBIDDEN; it hands out duplicates under concurrent
      writers.
    - Transactional: the increment is only visible after the caller's
      transaction commits.  A rollback returns the value, so numbers stay
      gap-free under normal operation.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and re-read).
    - OperationalError (SQLite busy timeout) propagates to the caller's
      retry policy.

Audit relevance:
    Allocation is logged at DEBUG with the counter key and value.
"""

from sqlalchemy import Integer, String, UniqueConstraint, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from ledger_kernel.db.base import Base
from ledger_kernel.domain.ledger import compact_period, parse_period
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row is the last number handed out for one (company, prefix, period).
    """

    __tablename__ = "sequence_counters"

    __table_args__ = (
        UniqueConstraint("company_id", "prefix", "period", name="uq_sequence_key"),
    )

    company_id: Mapped[str] = mapped_column(String(64), nullable=False)

    prefix: Mapped[str] = mapped_column(String(10), nullable=False)

    period: Mapped[str] = mapped_column(String(7), nullable=False)

    current_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


def format_number(prefix: str, period: str, value: int) -> str:
    """``TRN``, ``2025-01``, 7 -> ``TRN-202501-0007``."""
    return f"{prefix}-{compact_period(period)}-{value:04d}"


class SequenceService:
    """
    Service for allocating transaction numbers.

    Contract:
        ``next_number`` returns the next number for (company, prefix,
        period).  The increment commits with the caller's transaction.

    Guarantees:
        - Concurrency safety: ``SELECT ... FOR UPDATE`` serializes
          concurrent allocations for the same key (on SQLite the engine's
          BEGIN IMMEDIATE serializes writers instead).
        - Numbers for one key are sequential starting at 0001.

    Non-goals:
        - Does NOT call ``session.commit()``; caller controls boundaries.

    Usage:
        number = SequenceService(session).next_number("acme", "TRN", "2025-01")
    """

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, company_id: str, prefix: str, period: str):
        return self._session.execute(
            select(SequenceCounter)
            .where(
                SequenceCounter.company_id == company_id,
                SequenceCounter.prefix == prefix,
                SequenceCounter.period == period,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, company_id: str, prefix: str, period: str) -> int:
        """
        Increment and return the counter for (company, prefix, period).

        Postconditions:
            - Returns an integer > 0 strictly greater than any value
              previously committed for this key.
            - The counter row stays locked until the transaction completes.
        """
        parse_period(period)

        counter = self._locked_counter(company_id, prefix, period)

        if counter is None:
            # First use of this key.  Another writer may create it at the
            # same time; the savepoint keeps the rest of the caller's work.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(
                    company_id=company_id, prefix=prefix, period=period, current_value=1
                )
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"company_id": company_id, "prefix": prefix, "period": period, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"company_id": company_id, "prefix": prefix, "period": period},
                )
                savepoint.rollback()
                counter = self._locked_counter(company_id, prefix, period)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={
                "company_id": company_id,
                "prefix": prefix,
                "period": period,
                "value": counter.current_value,
            },
        )
        return counter.current_value

    def next_number(self, company_id: str, prefix: str, period: str) -> str:
        """Allocate the next ``PREFIX-YYYYMM-NNNN`` number."""
        value = self.next_value(company_id, prefix, period)
        return format_number(prefix, period, value)

    def current_value(self, company_id: str, prefix: str, period: str) -> int | None:
        """Current value without incrementing, or None if never used."""
        counter = self._session.execute(
            select(SequenceCounter).where(
                SequenceCounter.company_id == company_id,
                SequenceCounter.prefix == prefix,
                SequenceCounter.period == period,
            )
        ).scalar_one_or_none()
        return counter.current_value if counter else None
