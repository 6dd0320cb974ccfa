"""
Module: ledger_services
Responsibility:
    Orchestration layer: each public operation is one committed unit of
    work over a fresh session, retried with backoff when it loses a
    concurrency race.

Architecture position:
    Services -- above ledger_kernel and ledger_engines; the only layer that
    commits.

Usage:
    from ledger_services import BookingOrchestrator, PeriodCloseOrchestrator
"""

from ledger_services.booking_orchestrator import (
    BookingOrchestrator,
    PairingBooking,
    PayrollBooking,
)
from ledger_services.bootstrap import LedgerRuntime, build_runtime
from ledger_services.period_close_orchestrator import PeriodCloseOrchestrator
from ledger_services.retry import RetryPolicy, is_retryable, run_unit_of_work

__all__ = [
    "BookingOrchestrator",
    "LedgerRuntime",
    "PairingBooking",
    "PayrollBooking",
    "PeriodCloseOrchestrator",
    "RetryPolicy",
    "build_runtime",
    "is_retryable",
    "run_unit_of_work",
]
