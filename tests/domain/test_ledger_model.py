"""Tests for the ledger value types and balance functions (ledger_kernel/domain/ledger.py)."""

from datetime import date
from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from ledger_kernel.domain.ledger import (
    LineData,
    Side,
    TransactionData,
    compact_period,
    derive_totals,
    parse_period,
    period_bounds,
    period_of,
    round_money,
    validate_balance,
)
from ledger_kernel.exceptions import InvalidPeriodCode


def _txn(*lines: LineData) -> TransactionData:
    return TransactionData(transaction_date=date(2025, 1, 10), description="Test", lines=lines)


class TestDeriveTotals:

    def test_sums_each_side(self):
        lines = (
            LineData("518", Side.DEBIT, Decimal("100.00")),
            LineData("518", Side.DEBIT, Decimal("20.50")),
            LineData("321", Side.CREDIT, Decimal("120.50")),
        )
        assert derive_totals(lines) == (Decimal("120.50"), Decimal("120.50"))

    def test_empty_lines_are_zero(self):
        assert derive_totals(()) == (Decimal("0.00"), Decimal("0.00"))

    def test_transaction_totals_are_derived(self):
        txn = _txn(
            LineData("311", Side.DEBIT, Decimal("120")),
            LineData("602", Side.CREDIT, Decimal("120")),
        )
        assert txn.total_debit == Decimal("120.00")
        assert txn.total_credit == Decimal("120.00")
        assert txn.period == "2025-01"

    def test_snapshot_is_hashable_and_frozen(self):
        lines = (
            LineData("311", Side.DEBIT, Decimal("120")),
            LineData("602", Side.CREDIT, Decimal("120")),
        )
        first, second = _txn(*lines), _txn(*lines)

        assert hash(first) == hash(second)
        assert len({first, second}) == 1
        with pytest.raises(AttributeError):
            first.description = "changed"


class TestValidateBalance:

    def test_balanced(self):
        assert validate_balance(
            _txn(LineData("311", Side.DEBIT, Decimal("10")), LineData("602", Side.CREDIT, Decimal("10")))
        )

    def test_difference_below_tolerance_is_balanced(self):
        assert validate_balance(
            _txn(
                LineData("311", Side.DEBIT, Decimal("10.004")),
                LineData("602", Side.CREDIT, Decimal("10.00")),
            )
        )

    def test_one_cent_difference_is_unbalanced(self):
        assert not validate_balance(
            _txn(
                LineData("311", Side.DEBIT, Decimal("10.01")),
                LineData("602", Side.CREDIT, Decimal("10.00")),
            )
        )

    @given(
        amounts=st.lists(
            st.decimals(min_value=Decimal("0.01"), max_value=Decimal("1000000"), places=2),
            min_size=1,
            max_size=8,
        )
    )
    def test_mirrored_lines_always_balance(self, amounts):
        lines = tuple(LineData("518", Side.DEBIT, a) for a in amounts) + (
            LineData("321", Side.CREDIT, sum(amounts, Decimal("0"))),
        )
        assert validate_balance(_txn(*lines))


class TestMoneyAndPeriods:

    @pytest.mark.parametrize(
        "raw, expected",
        [("0.005", "0.01"), ("-0.005", "-0.01"), ("2.345", "2.35"), ("2.344", "2.34"), (7, "7.00")],
    )
    def test_round_half_away_from_zero(self, raw, expected):
        assert round_money(raw) == Decimal(expected)

    def test_line_amount_coerced_to_decimal(self):
        assert LineData("518", Side.DEBIT, "12.5").amount == Decimal("12.5")

    def test_period_helpers(self):
        assert period_of(date(2025, 12, 31)) == "2025-12"
        assert parse_period("2025-02") == (2025, 2)
        assert period_bounds("2024-02") == (date(2024, 2, 1), date(2024, 2, 29))
        assert compact_period("2025-01") == "202501"

    @pytest.mark.parametrize("code", ["2025-13", "2025-1", "202501", "", "2025-00"])
    def test_invalid_period_code(self, code):
        with pytest.raises(InvalidPeriodCode):
            parse_period(code)
