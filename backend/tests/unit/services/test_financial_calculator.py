"""
Tests for the financial calculator.

WHY: total_amount is always derived, never trusted. These tests pin the
13% derivation, cent rounding, jurisdiction lookup and the deposit rule.
"""

from decimal import Decimal

import pytest

from homebid.core.exceptions import ValidationError
from homebid.services.financial_calculator import FinancialCalculator, to_money


@pytest.fixture
def calculator() -> FinancialCalculator:
    return FinancialCalculator(
        {"ON": Decimal("0.13"), "QC": Decimal("0.14975")},
        default_jurisdiction="ON",
    )


class TestToMoney:
    def test_quantizes_half_up(self):
        assert to_money("10.005") == Decimal("10.01")
        assert to_money("10.004") == Decimal("10.00")

    def test_float_goes_through_str(self):
        assert to_money(0.1) == Decimal("0.10")


class TestComputeTotals:
    def test_tax_added(self, calculator):
        """Subtotal 1000 without tax at 13% gives 1130.00."""
        totals = calculator.compute_totals(Decimal("1000"), tax_included=False)

        assert totals.total_amount == Decimal("1130.00")
        assert totals.tax_rate == Decimal("0.13")
        assert totals.tax_jurisdiction == "ON"

    def test_tax_included(self, calculator):
        totals = calculator.compute_totals(Decimal("1000"), tax_included=True)
        assert totals.total_amount == Decimal("1000.00")

    def test_rounding(self, calculator):
        # 99.99 * 1.13 = 112.9887
        assert calculator.compute_totals("99.99", False).total_amount == Decimal("112.99")

    def test_other_jurisdiction(self, calculator):
        # 1000 * 1.14975 = 1149.75
        totals = calculator.compute_totals(1000, False, jurisdiction="qc")
        assert totals.total_amount == Decimal("1149.75")
        assert totals.tax_jurisdiction == "QC"

    def test_deterministic(self, calculator):
        first = calculator.compute_totals("1234.56", False)
        second = calculator.compute_totals(Decimal("1234.56"), False)
        assert first == second

    def test_unknown_jurisdiction(self, calculator):
        with pytest.raises(ValidationError) as exc_info:
            calculator.compute_totals(1000, False, jurisdiction="ZZ")
        assert exc_info.value.violations[0]["rule"] == "known_jurisdiction"

    def test_defaults_from_settings(self):
        totals = FinancialCalculator().compute_totals(1000, False)
        assert totals.total_amount == Decimal("1130.00")


class TestValidateAmounts:
    def test_valid(self, calculator):
        assert calculator.validate_amounts(1000, 200, Decimal("1130.00")) == []

    def test_deposit_equal_to_total_allowed(self, calculator):
        assert calculator.validate_amounts(1000, "1130.00", "1130.00") == []

    def test_deposit_above_total(self, calculator):
        """Deposit 5000 against a computed total of 4000 is refused."""
        violations = calculator.validate_amounts(4000, 5000, 4000)

        assert [v.rule for v in violations] == ["deposit_not_above_total"]
        assert violations[0].field == "deposit_amount"

    def test_non_positive_amounts(self, calculator):
        violations = calculator.validate_amounts(0, 0, 0)
        assert [v.rule for v in violations] == ["subtotal_positive", "deposit_positive"]

    def test_negative_subtotal(self, calculator):
        violations = calculator.validate_amounts(-5, 1, 10)
        assert [v.rule for v in violations] == ["subtotal_positive"]
