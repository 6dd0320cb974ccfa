"""
Pure domain layer.

This module contains immutable value types and pure functions with NO
dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (except the injectable Clock abstraction)
- I/O
"""

from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.ledger import (
    BALANCE_TOLERANCE,
    AccountInfo,
    AccountType,
    LineData,
    Side,
    TransactionData,
    TransactionStatus,
    derive_totals,
    period_bounds,
    period_of,
    round_money,
    validate_balance,
)
from ledger_kernel.domain.rules import (
    EntityType,
    RuleContext,
    RuleHit,
    RuleResult,
    Severity,
)
from ledger_kernel.domain.templates import (
    AmountSource,
    CustomAmount,
    PartnerSide,
    PercentAmount,
    Template,
    TemplateLine,
    TotalAmount,
    TransactionDraft,
    check_template_integrity,
)

__all__ = [
    "BALANCE_TOLERANCE",
    "AccountInfo",
    "AccountType",
    "AmountSource",
    "Clock",
    "CustomAmount",
    "DeterministicClock",
    "EntityType",
    "LineData",
    "PartnerSide",
    "PercentAmount",
    "RuleContext",
    "RuleHit",
    "RuleResult",
    "Severity",
    "Side",
    "SystemClock",
    "Template",
    "TemplateLine",
    "TotalAmount",
    "TransactionData",
    "TransactionDraft",
    "TransactionStatus",
    "check_template_integrity",
    "derive_totals",
    "period_bounds",
    "period_of",
    "round_money",
    "validate_balance",
]
