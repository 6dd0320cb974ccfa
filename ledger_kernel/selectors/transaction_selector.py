"""
Module: ledger_kernel.selectors.transaction_selector
Responsibility: Read-only access to ledger transactions as ``TransactionData``
    snapshots, plus the counts the period closing checks need.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Results are ordered by transaction number, lines by line number.
    - Returns None or an empty list on absence of data (never raises).
"""

from collections.abc import Iterable

from sqlalchemy import func, select

from ledger_kernel.db.base import UUID
from ledger_kernel.domain.ledger import TransactionData, TransactionStatus
from ledger_kernel.models.transaction import LedgerTransaction
from ledger_kernel.selectors.base import BaseSelector


class TransactionSelector(BaseSelector):
    """Queries over ledger transactions."""

    def get(self, company_id: str, transaction_id: str) -> TransactionData | None:
        row = self.session.execute(
            select(LedgerTransaction).where(
                LedgerTransaction.company_id == company_id,
                LedgerTransaction.id == UUID(str(transaction_id)),
            )
        ).scalar_one_or_none()
        return row.to_data() if row else None

    def get_by_number(self, company_id: str, number: str) -> TransactionData | None:
        row = self.session.execute(
            select(LedgerTransaction).where(
                LedgerTransaction.company_id == company_id,
                LedgerTransaction.number == number,
            )
        ).scalar_one_or_none()
        return row.to_data() if row else None

    def list_transactions(
        self,
        company_id: str,
        period: str | None = None,
        statuses: Iterable[TransactionStatus] | None = None,
    ) -> list[TransactionData]:
        stmt = select(LedgerTransaction).where(LedgerTransaction.company_id == company_id)
        if period is not None:
            stmt = stmt.where(LedgerTransaction.period == period)
        if statuses is not None:
            stmt = stmt.where(
                LedgerTransaction.status.in_([TransactionStatus(s).value for s in statuses])
            )
        stmt = stmt.order_by(LedgerTransaction.number)
        return [row.to_data() for row in self.session.scalars(stmt)]

    def count(
        self,
        company_id: str,
        period: str,
        status: TransactionStatus,
    ) -> int:
        return self.session.scalar(
            select(func.count())
            .select_from(LedgerTransaction)
            .where(
                LedgerTransaction.company_id == company_id,
                LedgerTransaction.period == period,
                LedgerTransaction.status == TransactionStatus(status).value,
            )
        ) or 0

    def status_counts(self, company_id: str, period: str) -> dict[TransactionStatus, int]:
        rows = self.session.execute(
            select(LedgerTransaction.status, func.count())
            .where(
                LedgerTransaction.company_id == company_id,
                LedgerTransaction.period == period,
            )
            .group_by(LedgerTransaction.status)
        ).all()
        counts = {status: 0 for status in TransactionStatus}
        for status, count in rows:
            counts[TransactionStatus(status)] = count
        return counts
