"""
Module: ledger_kernel.models.period
Responsibility: ORM persistence for the accounting period lifecycle.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (company_id, period_code) is unique; a period row is created OPEN on
      first reference.
    - Transitions are OPEN -> CLOSING -> CLOSED -> LOCKED, plus
      CLOSING -> OPEN (cancel), OPEN/CLOSING -> LOCKED (lock) and
      LOCKED -> OPEN (unlock).  PeriodService enforces the edges.
    - ``version`` is the SQLAlchemy version counter: every UPDATE checks
      and increments it, so two writers racing on the same period cannot
      both succeed (StaleDataError for the loser).

Audit relevance:
    closed/locked/unlocked timestamps and actors are recorded on the row;
    lock and unlock also write PERIOD_LOCK / PERIOD_UNLOCK audit entries.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UTCDateTime


class PeriodStatus(str, Enum):
    """Lifecycle status of an accounting period."""

    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"
    LOCKED = "locked"


class AccountingPeriod(TrackedBase):
    """
    One calendar month of one company.

    Guarantees:
        - period_code is YYYY-MM and unique per company.
        - Timestamps come from the injected clock, never datetime.now().
    """

    __tablename__ = "accounting_periods"

    __table_args__ = (
        UniqueConstraint("company_id", "period_code", name="uq_period_company_code"),
    )

    company_id: Mapped[str] = mapped_column(String(64), nullable=False)

    period_code: Mapped[str] = mapped_column(String(7), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=PeriodStatus.OPEN.value,
        nullable=False,
    )

    closed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    closed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    locked_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    locked_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    unlocked_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    unlocked_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<AccountingPeriod {self.company_id}/{self.period_code}: {self.status}>"

    @property
    def is_locked(self) -> bool:
        return self.status == PeriodStatus.LOCKED

    @property
    def accepts_postings(self) -> bool:
        """OPEN and CLOSING periods accept new and edited transactions."""
        return self.status in (PeriodStatus.OPEN, PeriodStatus.CLOSING)
