"""Kernel services: stateful operations over the ledger tables (flush only)."""

from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.audit_service import AuditRecord, AuditService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.period_service import LockOutcome, PeriodInfo, PeriodService
from ledger_kernel.services.sequence_service import SequenceCounter, SequenceService
from ledger_kernel.services.template_service import TemplateService
from ledger_kernel.services.transaction_service import TransactionService
from ledger_kernel.services.validation_gate import ValidationGate, WarningOverride

__all__ = [
    "AccountService",
    "AuditRecord",
    "AuditService",
    "BaseService",
    "LockOutcome",
    "PeriodInfo",
    "PeriodService",
    "SequenceCounter",
    "SequenceService",
    "TemplateService",
    "TransactionService",
    "ValidationGate",
    "WarningOverride",
]
