"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the company-scoped chart of accounts.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain value types only.

Invariants enforced:
    - (company_id, code) is unique.
    - System accounts (seeded from configuration) cannot be deleted; an
      account referenced by a POSTED or LOCKED line cannot be deleted or
      have its type changed.  Both are enforced by AccountService.
"""

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase
from ledger_kernel.domain.ledger import AccountInfo, AccountType, Side


class Account(TrackedBase):
    """
    Chart of accounts entry for one company.

    Guarantees:
        - code is unique per company (uq_account_company_code).
        - ``normal_side`` is the side on which increases are recorded.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_account_company_code"),
    )

    company_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    code: Mapped[str] = mapped_column(String(20), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    account_type: Mapped[str] = mapped_column(String(20), nullable=False)

    normal_side: Mapped[str] = mapped_column(String(10), nullable=False)

    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"

    def to_info(self) -> AccountInfo:
        return AccountInfo(
            code=self.code,
            name=self.name,
            account_type=AccountType(self.account_type),
            normal_side=Side(self.normal_side),
            is_system=self.is_system,
        )
