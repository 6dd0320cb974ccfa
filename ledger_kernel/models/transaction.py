"""
Module: ledger_kernel.models.transaction
Responsibility: ORM persistence for ledger transactions and their lines.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain value types only.

Invariants enforced:
    - (company_id, number) is unique: the allocated number is the
      business key of a transaction.
    - Lines are ordered by ``line_no`` and cascade with their transaction.
    - ``period`` is denormalized from ``transaction_date`` (YYYY-MM) so
      period lock/unlock can flip statuses with one indexed query.
    - Amounts are positive; the balance invariant holds past DRAFT.  Both
      are enforced by TransactionService before flush.

Audit relevance:
    ``posted_at/posted_by`` and ``locked_at`` record the lifecycle; the
    period lock audit entry references the transactions it froze by period.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import UUID, TrackedBase, UTCDateTime, UUIDString
from ledger_kernel.domain.ledger import (
    LineData,
    Side,
    TransactionData,
    TransactionStatus,
)


class LedgerTransaction(TrackedBase):
    """
    A numbered double-entry transaction.

    Contract:
        Mutable only while DRAFT.  POSTED by explicit post; LOCKED only by
        period lock; LOCKED -> POSTED only by period unlock.
    """

    __tablename__ = "ledger_transactions"

    __table_args__ = (
        UniqueConstraint("company_id", "number", name="uq_transaction_company_number"),
        Index("idx_transaction_company_period", "company_id", "period"),
        Index("idx_transaction_status", "status"),
    )

    company_id: Mapped[str] = mapped_column(String(64), nullable=False)

    number: Mapped[str] = mapped_column(String(40), nullable=False)

    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)

    period: Mapped[str] = mapped_column(String(7), nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=TransactionStatus.DRAFT.value,
    )

    total_debit: Mapped[Decimal] = mapped_column(nullable=False)

    total_credit: Mapped[Decimal] = mapped_column(nullable=False)

    document_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    template_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    posted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    posted_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    locked_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    lines: Mapped[list["LedgerTransactionLine"]] = relationship(
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="LedgerTransactionLine.line_no",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<LedgerTransaction {self.number}: {self.status}>"

    @property
    def is_draft(self) -> bool:
        return self.status == TransactionStatus.DRAFT

    def to_data(self) -> TransactionData:
        """Immutable snapshot for engines and callers."""
        return TransactionData(
            transaction_date=self.transaction_date,
            description=self.description,
            lines=tuple(line.to_data() for line in self.lines),
            status=TransactionStatus(self.status),
            number=self.number,
            id=str(self.id),
            document_id=self.document_id,
            template_id=self.template_id,
        )


class LedgerTransactionLine(TrackedBase):
    """One ledger line; direction is carried by ``side``, amount is positive."""

    __tablename__ = "ledger_transaction_lines"

    __table_args__ = (
        Index("idx_line_account", "account_code"),
        Index("idx_line_partner", "partner_id"),
    )

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_transactions.id", ondelete="CASCADE"),
        nullable=False,
    )

    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    line_key: Mapped[str] = mapped_column(String(20), nullable=False)

    account_code: Mapped[str] = mapped_column(String(20), nullable=False)

    side: Mapped[str] = mapped_column(String(10), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    partner_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    partner_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    transaction: Mapped[LedgerTransaction] = relationship(back_populates="lines")

    def to_data(self) -> LineData:
        return LineData(
            account_code=self.account_code,
            side=Side(self.side),
            amount=self.amount,
            partner_id=self.partner_id,
            partner_name=self.partner_name,
            description=self.description,
            line_key=self.line_key,
        )
