"""
Test suite for money module

Rounding, arithmetic and coercion of the single booking currency.
"""

import pytest
from decimal import Decimal

from aegis_banking.currency import Currency, Money, quantize, to_decimal
from aegis_banking.errors import ValidationError


class TestMoney:
    """Test Money value type"""

    def test_rounds_half_up_to_cents(self):
        assert Money(Decimal('10.005')).amount == Decimal('10.01')
        assert Money(Decimal('10.004')).amount == Decimal('10.00')
        assert Money(Decimal('-0.005')).amount == Decimal('-0.01')

    def test_default_currency_is_euro(self):
        money = Money(Decimal('1'))
        assert money.currency == Currency.EUR
        assert money.currency.precision == 2

    def test_arithmetic(self):
        a = Money(Decimal('100.50'))
        b = Money(Decimal('0.50'))

        assert (a + b).amount == Decimal('101.00')
        assert (a - b).amount == Decimal('100.00')
        assert (b * Decimal('3')).amount == Decimal('1.50')
        assert (-a).amount == Decimal('-100.50')

    def test_comparisons(self):
        small = Money(Decimal('1.00'))
        large = Money(Decimal('2.00'))

        assert small < large
        assert large >= small
        assert small <= Money(Decimal('1'))
        assert small == Money(Decimal('1.000'))

    def test_sign_predicates(self):
        assert Money.zero().is_zero()
        assert Money(Decimal('0.01')).is_positive()
        assert Money(Decimal('-0.01')).is_negative()

    def test_of_coerces_strings_and_decimals(self):
        assert Money.of("12.345").amount == Decimal('12.35')
        assert Money.of(Decimal('7')).amount == Decimal('7.00')
        assert Money.of(5).amount == Decimal('5.00')

        money = Money(Decimal('3.00'))
        assert Money.of(money) is money

    def test_of_rejects_float(self):
        with pytest.raises(TypeError):
            Money.of(0.1)

    @pytest.mark.parametrize("value", ["abc", "12,50", "", None, "NaN", "-Infinity", Decimal("NaN")])
    def test_of_rejects_malformed_values(self, value):
        with pytest.raises(ValidationError):
            Money.of(value)

    def test_to_decimal_strips_whitespace(self):
        assert to_decimal(" 0.05 ", "interest rate") == Decimal("0.05")

    def test_to_string(self):
        assert Money(Decimal('4899.5')).to_string() == "EUR 4,899.50"

    def test_quantize_helper(self):
        assert quantize(Decimal('1.255')) == Decimal('1.26')
