"""ORM models for the ledger kernel."""

from ledger_kernel.models.account import Account
from ledger_kernel.models.audit import AuditEntryType, AuditLogEntry
from ledger_kernel.models.period import AccountingPeriod, PeriodStatus
from ledger_kernel.models.template import TemplateRecord
from ledger_kernel.models.transaction import LedgerTransaction, LedgerTransactionLine

__all__ = [
    "Account",
    "AccountingPeriod",
    "AuditEntryType",
    "AuditLogEntry",
    "LedgerTransaction",
    "LedgerTransactionLine",
    "PeriodStatus",
    "TemplateRecord",
]
