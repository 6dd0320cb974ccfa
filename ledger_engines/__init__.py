"""
Module: ledger_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the canonical import surface for higher
    layers (ledger_kernel.services, ledger_services).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import ledger_kernel.domain, ledger_kernel.logging_config and
    sibling engine modules.  MUST NOT import services or ORM models.

Invariants enforced:
    - Purity: engines never call ``datetime.now()`` or ``date.today()``.
      Dates are passed in as explicit parameters.
    - Decimal-only arithmetic: monetary amounts use ``Decimal``.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine invocations are traced via ``@traced_engine`` (see
    ``ledger_engines.tracer``), emitting LEDGER_ENGINE_TRACE log records.

Usage:
    from ledger_engines import TemplateEngine, RuleEngine, PairingMatcher
"""

from ledger_engines.aggregates import (
    AccountTurnover,
    PeriodSummary,
    QualityInputs,
    QualityScore,
    account_turnover,
    quality_score,
    summarize_period,
)
from ledger_engines.bank_statement import parse_bank_movement, parse_bank_movements
from ledger_engines.matching import (
    BankMovement,
    Direction,
    EntryType,
    OpenEntry,
    PairingMatch,
    PairingMatcher,
    PaymentStatus,
)
from ledger_engines.open_items import OpenItem, compute_open_items, count_open_items
from ledger_engines.payroll import (
    PayrollCalculator,
    PayrollConfig,
    PayrollResult,
    payroll_custom_amounts,
)
from ledger_engines.rule_engine import RuleEngine, RuleThresholds
from ledger_engines.template_engine import TemplateEngine, resolve_line_amount
from ledger_engines.tracer import traced_engine

__all__ = [
    "AccountTurnover",
    "BankMovement",
    "Direction",
    "EntryType",
    "OpenEntry",
    "OpenItem",
    "PairingMatch",
    "PairingMatcher",
    "PaymentStatus",
    "PayrollCalculator",
    "PayrollConfig",
    "PayrollResult",
    "PeriodSummary",
    "QualityInputs",
    "QualityScore",
    "RuleEngine",
    "RuleThresholds",
    "TemplateEngine",
    "account_turnover",
    "compute_open_items",
    "count_open_items",
    "parse_bank_movement",
    "parse_bank_movements",
    "payroll_custom_amounts",
    "quality_score",
    "resolve_line_amount",
    "summarize_period",
    "traced_engine",
]
