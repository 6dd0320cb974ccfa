"""
AccountService -- company chart of accounts.

Responsibility:
    Seeds the system chart from configuration, adds custom accounts and
    guards the accounts the ledger depends on.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - System accounts cannot be deleted.
    - An account referenced by a POSTED or LOCKED line cannot be deleted
      and cannot change type or normal side; its name may still change.
    - Seeding is idempotent: existing codes are left untouched.

Failure modes:
    - AccountNotFound for an unknown code.
    - AccountProtected for a forbidden delete or change.
"""

from collections.abc import Iterable

from sqlalchemy import exists, select

from ledger_kernel.domain.ledger import AccountInfo, AccountType, Side, TransactionStatus
from ledger_kernel.exceptions import AccountNotFound, AccountProtected
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.transaction import LedgerTransaction, LedgerTransactionLine
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account")

_FROZEN_STATUSES = (TransactionStatus.POSTED.value, TransactionStatus.LOCKED.value)


class AccountService(BaseService):
    """Chart of accounts maintenance for one session."""

    def seed_chart(self, company_id: str, accounts: Iterable[AccountInfo], actor_id: str | None = None) -> int:
        """Create missing accounts; returns the number created."""
        existing = set(self.account_codes(company_id))
        created = 0
        for info in accounts:
            if info.code in existing:
                continue
            self.session.add(self._new_account(company_id, info, actor_id))
            existing.add(info.code)
            created += 1
        self.session.flush()
        logger.info("chart_seeded", extra={"company_id": company_id, "accounts_created": created})
        return created

    def _new_account(self, company_id: str, info: AccountInfo, actor_id: str | None) -> Account:
        return Account(
            company_id=company_id,
            code=info.code,
            name=info.name,
            account_type=AccountType(info.account_type).value,
            normal_side=Side(info.normal_side).value,
            is_system=info.is_system,
            created_by=actor_id,
        )

    def create_account(self, company_id: str, info: AccountInfo, actor_id: str) -> AccountInfo:
        """Add a custom (non-system) account."""
        info = AccountInfo(
            code=info.code,
            name=info.name,
            account_type=info.account_type,
            normal_side=info.normal_side,
            is_system=False,
        )
        account = self._new_account(company_id, info, actor_id)
        self.session.add(account)
        self.session.flush()
        return account.to_info()

    def _get(self, company_id: str, code: str) -> Account:
        account = self.session.execute(
            select(Account).where(Account.company_id == company_id, Account.code == code)
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFound(company_id, code)
        return account

    def get_account(self, company_id: str, code: str) -> AccountInfo:
        return self._get(company_id, code).to_info()

    def list_accounts(self, company_id: str) -> list[AccountInfo]:
        rows = self.session.scalars(
            select(Account).where(Account.company_id == company_id).order_by(Account.code)
        )
        return [row.to_info() for row in rows]

    def account_codes(self, company_id: str) -> list[str]:
        return list(
            self.session.scalars(
                select(Account.code).where(Account.company_id == company_id)
            )
        )

    def is_referenced(self, company_id: str, code: str) -> bool:
        """True if a POSTED or LOCKED transaction has a line on ``code``."""
        stmt = select(
            exists().where(
                LedgerTransactionLine.transaction_id == LedgerTransaction.id,
                LedgerTransaction.company_id == company_id,
                LedgerTransaction.status.in_(_FROZEN_STATUSES),
                LedgerTransactionLine.account_code == code,
            )
        )
        return bool(self.session.scalar(stmt))

    def update_account(
        self,
        company_id: str,
        code: str,
        name: str | None = None,
        account_type: AccountType | None = None,
        normal_side: Side | None = None,
    ) -> AccountInfo:
        account = self._get(company_id, code)
        changes_kind = (account_type is not None and account_type != account.account_type) or (
            normal_side is not None and normal_side != account.normal_side
        )
        if changes_kind and (account.is_system or self.is_referenced(company_id, code)):
            raise AccountProtected(code, "type and normal side are fixed once in use")

        if name is not None:
            account.name = name
        if account_type is not None:
            account.account_type = AccountType(account_type).value
        if normal_side is not None:
            account.normal_side = Side(normal_side).value
        self.session.flush()
        return account.to_info()

    def delete_account(self, company_id: str, code: str) -> None:
        account = self._get(company_id, code)
        if account.is_system:
            raise AccountProtected(code, "system account")
        if self.is_referenced(company_id, code):
            raise AccountProtected(code, "referenced by posted transactions")
        self.session.delete(account)
        self.session.flush()
        logger.info("account_deleted", extra={"company_id": company_id, "account_code": code})
