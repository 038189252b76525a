"""
Financial calculator for proposal totals.

WHAT: Derives total_amount from subtotal_amount and the tax-inclusion
flag, and validates the deposit against the derived total.

WHY: total_amount is never trusted from a client. It is recomputed on
every change to the subtotal, the tax flag or the jurisdiction, so a
stored total always agrees with the inputs that produced it. The tax
rate comes from configuration keyed by jurisdiction because sales tax
differs by region.

HOW: Decimal arithmetic, quantized to cents with ROUND_HALF_UP, so the
same inputs produce the same total on every platform.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Mapping, Optional, Union

from homebid.core.config import settings
from homebid.core.exceptions import ValidationError
from homebid.services.temporal_validator import RuleViolation


CENTS = Decimal("0.01")

Amount = Union[Decimal, int, float, str]


def to_money(value: Amount) -> Decimal:
    """
    Convert a value to a cent-quantized Decimal.

    WHY: str() first so floats like 0.1 are not carried in binary form.
    """
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class ProposalTotals:
    """Result of a total derivation."""

    subtotal_amount: Decimal
    tax_included: bool
    tax_jurisdiction: str
    tax_rate: Decimal
    total_amount: Decimal


class FinancialCalculator:
    """
    Derives and validates proposal amounts.

    WHY: Instantiated with an explicit rate table so tests and other
    regions can use their own rates; the default reads Settings.

    Example:
        calc = FinancialCalculator({"ON": Decimal("0.13")}, "ON")
        calc.compute_totals(Decimal("1000"), tax_included=False).total_amount
        # Decimal("1130.00")
    """

    def __init__(
        self,
        tax_rates: Optional[Mapping[str, Decimal]] = None,
        default_jurisdiction: Optional[str] = None,
    ):
        rates = tax_rates if tax_rates is not None else settings.TAX_RATES
        self.tax_rates: Dict[str, Decimal] = {
            code.upper(): Decimal(str(rate)) for code, rate in rates.items()
        }
        self.default_jurisdiction = (
            default_jurisdiction or settings.DEFAULT_TAX_JURISDICTION
        ).upper()

    def rate_for(self, jurisdiction: Optional[str] = None) -> Decimal:
        """
        Look up the tax rate for a jurisdiction.

        Raises:
            ValidationError: If the jurisdiction has no configured rate
        """
        code = (jurisdiction or self.default_jurisdiction).upper()
        if code not in self.tax_rates:
            raise ValidationError(
                message=f"No tax rate configured for jurisdiction '{code}'",
                violations=[
                    RuleViolation(
                        field="tax_jurisdiction",
                        rule="known_jurisdiction",
                        message=f"Unknown tax jurisdiction '{code}'",
                    ).to_dict()
                ],
            )
        return self.tax_rates[code]

    def compute_totals(
        self,
        subtotal_amount: Amount,
        tax_included: bool,
        jurisdiction: Optional[str] = None,
    ) -> ProposalTotals:
        """
        Derive total_amount.

        - tax_included: total = subtotal
        - otherwise: total = subtotal * (1 + rate)

        Args:
            subtotal_amount: Price entered by the contractor
            tax_included: Whether subtotal already includes tax
            jurisdiction: Tax region code, default from settings

        Returns:
            ProposalTotals with the rate that was applied
        """
        code = (jurisdiction or self.default_jurisdiction).upper()
        rate = self.rate_for(code)
        subtotal = to_money(subtotal_amount)

        if tax_included:
            total = subtotal
        else:
            total = to_money(subtotal * (Decimal(1) + rate))

        return ProposalTotals(
            subtotal_amount=subtotal,
            tax_included=tax_included,
            tax_jurisdiction=code,
            tax_rate=rate,
            total_amount=total,
        )

    def validate_amounts(
        self,
        subtotal_amount: Amount,
        deposit_amount: Amount,
        total_amount: Amount,
    ) -> List[RuleViolation]:
        """
        Check subtotal and deposit against the derived total.

        Returns:
            Violations (subtotal > 0, deposit > 0, deposit <= total)
        """
        violations: List[RuleViolation] = []
        subtotal = to_money(subtotal_amount)
        deposit = to_money(deposit_amount)
        total = to_money(total_amount)

        if subtotal <= 0:
            violations.append(
                RuleViolation(
                    field="subtotal_amount",
                    rule="subtotal_positive",
                    message="Subtotal must be greater than zero",
                )
            )

        if deposit <= 0:
            violations.append(
                RuleViolation(
                    field="deposit_amount",
                    rule="deposit_positive",
                    message="Deposit must be greater than zero",
                )
            )
        elif deposit > total:
            violations.append(
                RuleViolation(
                    field="deposit_amount",
                    rule="deposit_not_above_total",
                    message=f"Deposit ({deposit}) cannot exceed the total amount ({total})",
                )
            )

        return violations
