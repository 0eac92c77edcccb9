"""
Amortization Module

Level-payment (equal installment) loan arithmetic: the fixed monthly
payment and the month-by-month split of each payment into principal and
interest.
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import List, Union

from .currency import Money, to_decimal
from .errors import ValidationError


MONTHS_PER_YEAR = Decimal('12')


@dataclass
class AmortizationEntry:
    """Single entry in amortization schedule"""
    payment_number: int
    payment_amount: Money
    principal_amount: Money
    interest_amount: Money
    remaining_balance: Money

    def __post_init__(self):
        calculated_payment = self.principal_amount + self.interest_amount
        if calculated_payment != self.payment_amount:
            raise ValueError(f"Payment amount {self.payment_amount.to_string()} does not equal "
                             f"principal {self.principal_amount.to_string()} + "
                             f"interest {self.interest_amount.to_string()}")


def _validate_terms(principal: Money, annual_rate: Decimal, term_months: int) -> None:
    if not principal.is_positive():
        raise ValidationError("Principal must be positive")
    if annual_rate < 0:
        raise ValidationError("Interest rate cannot be negative")
    if not isinstance(term_months, int) or term_months < 1:
        raise ValidationError("Term must be at least one month")


def amortized_payment(
    principal: Union[Money, Decimal, str],
    annual_rate: Union[Decimal, str],
    term_months: int
) -> Money:
    """
    Fixed monthly payment that pays off ``principal`` in ``term_months``

    Standard annuity formula P * r / (1 - (1 + r)^-n) with monthly rate
    r = annual_rate / 12, rounded half up to cents. A zero rate degenerates
    to P / n.

    Raises:
        ValidationError: For malformed or non-positive principal, malformed or
            negative rate, or term < 1
    """
    principal = Money.of(principal)
    annual_rate = to_decimal(annual_rate, "interest rate")
    _validate_terms(principal, annual_rate, term_months)

    n = Decimal(term_months)
    monthly_rate = annual_rate / MONTHS_PER_YEAR

    if monthly_rate == 0:
        return Money(principal.amount / n)

    discount = Decimal('1') - (Decimal('1') + monthly_rate) ** -term_months
    return Money(principal.amount * monthly_rate / discount)


def amortization_schedule(
    principal: Union[Money, Decimal, str],
    annual_rate: Union[Decimal, str],
    term_months: int
) -> List[AmortizationEntry]:
    """
    Month-by-month breakdown of a level-payment loan.

    Interest is charged on the outstanding balance each month; the final
    installment pays off exactly what is left, absorbing rounding drift.
    """
    principal = Money.of(principal)
    annual_rate = to_decimal(annual_rate, "interest rate")
    payment = amortized_payment(principal, annual_rate, term_months)
    monthly_rate = annual_rate / MONTHS_PER_YEAR

    schedule = []
    remaining_balance = principal

    for payment_number in range(1, term_months + 1):
        interest_amount = remaining_balance * monthly_rate
        principal_amount = payment - interest_amount
        payment_amount = payment

        if payment_number == term_months or principal_amount >= remaining_balance:
            principal_amount = remaining_balance
            payment_amount = principal_amount + interest_amount
            remaining_balance = Money.zero()
        else:
            remaining_balance = remaining_balance - principal_amount

        schedule.append(AmortizationEntry(
            payment_number=payment_number,
            payment_amount=payment_amount,
            principal_amount=principal_amount,
            interest_amount=interest_amount,
            remaining_balance=remaining_balance
        ))

        if remaining_balance.is_zero():
            break

    return schedule
