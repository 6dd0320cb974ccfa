"""
ledger_engines.payroll -- Monthly payroll calculation for a single employee.

Responsibility:
    Compute employee and employer contributions, the income tax advance and
    the net salary from a gross monthly salary, and map the result onto the
    custom-amount lines of the payroll expense template.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Output feeds TemplateEngine.apply_template(custom_amounts=...).

Invariants enforced:
    - Every component is rounded to 2 decimals, half away from zero.
    - taxable = max(0, gross - employee contributions - yearly tax-free / 12).
    - net = gross - employee contributions - tax advance.
    - The expense booking is balanced by construction:
      gross + employer = net + all contributions + tax.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.ledger import ZERO, round_money

_MONTHS = Decimal("12")


@dataclass(frozen=True)
class PayrollConfig:
    """Contribution and tax parameters (Slovak defaults)."""

    health_employee_rate: Decimal = Decimal("0.04")
    social_employee_rate: Decimal = Decimal("0.094")
    income_tax_rate: Decimal = Decimal("0.19")
    yearly_tax_free_amount: Decimal = Decimal("4922.82")
    health_employer_rate: Decimal = Decimal("0.10")
    social_employer_rate: Decimal = Decimal("0.252")


@dataclass(frozen=True)
class PayrollResult:
    gross_salary: Decimal
    health_employee: Decimal
    social_employee: Decimal
    taxable_amount: Decimal
    income_tax_advance: Decimal
    net_salary: Decimal
    health_employer: Decimal
    social_employer: Decimal

    @property
    def employee_contributions(self) -> Decimal:
        return self.health_employee + self.social_employee

    @property
    def employer_contributions(self) -> Decimal:
        return self.health_employer + self.social_employer

    @property
    def total_employer_cost(self) -> Decimal:
        return self.gross_salary + self.employer_contributions


class PayrollCalculator:
    """Pure payroll calculator."""

    def __init__(self, config: PayrollConfig | None = None):
        self._config = config or PayrollConfig()

    @traced_engine("payroll", "1.0", fingerprint_fields=("gross_salary",))
    def calculate(self, gross_salary: Decimal) -> PayrollResult:
        cfg = self._config
        gross = round_money(gross_salary)

        health_employee = round_money(gross * cfg.health_employee_rate)
        social_employee = round_money(gross * cfg.social_employee_rate)
        employee_total = health_employee + social_employee

        monthly_tax_free = cfg.yearly_tax_free_amount / _MONTHS
        taxable = max(ZERO, gross - employee_total - monthly_tax_free)
        tax_advance = round_money(taxable * cfg.income_tax_rate)

        return PayrollResult(
            gross_salary=gross,
            health_employee=health_employee,
            social_employee=social_employee,
            taxable_amount=round_money(taxable),
            income_tax_advance=tax_advance,
            net_salary=round_money(gross - employee_total - tax_advance),
            health_employer=round_money(gross * cfg.health_employer_rate),
            social_employer=round_money(gross * cfg.social_employer_rate),
        )


def payroll_custom_amounts(result: PayrollResult) -> dict[str, Decimal]:
    """
    Custom amounts for the payroll expense template, keyed by line id.

    Lines: 1 gross wage expense, 2 employer contributions expense,
    3 net wage payable, 4 contributions payable (employee + employer),
    5 income tax advance payable.
    """
    return {
        "1": result.gross_salary,
        "2": result.employer_contributions,
        "3": result.net_salary,
        "4": result.employee_contributions + result.employer_contributions,
        "5": result.income_tax_advance,
    }
