"""
Money Module

Single-currency money representation. The whole system books in one
currency with fixed precision; amounts are Decimal, NEVER float.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from dataclasses import dataclass
from enum import Enum
from typing import Union

from .errors import ValidationError

# Set global decimal context for financial precision
getcontext().prec = 28


class Currency(Enum):
    """ISO 4217 currency code with precision info"""
    EUR = ("EUR", 2)  # Euro, 2 decimal places

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision


DEFAULT_CURRENCY = Currency.EUR


def quantize(value: Decimal, currency: Currency = DEFAULT_CURRENCY) -> Decimal:
    """Round a Decimal to currency precision (round half up)"""
    return value.quantize(
        Decimal('0.1') ** currency.precision,
        rounding=ROUND_HALF_UP
    )


def to_decimal(value: Union[Decimal, str, int], field_name: str = "amount") -> Decimal:
    """
    Parse caller input into a finite Decimal

    Raises:
        ValidationError: For None, unparseable text, NaN or infinity
    """
    if isinstance(value, Decimal):
        parsed = value
    else:
        try:
            parsed = Decimal(str(value).strip()) if value is not None else None
        except (InvalidOperation, TypeError, ValueError):
            parsed = None
    if parsed is None or not parsed.is_finite():
        raise ValidationError(f"Invalid {field_name}: {value!r}")
    return parsed


@dataclass(frozen=True)
class Money:
    """
    Immutable money value rounded to currency precision.
    All monetary values MUST use this class.
    """
    amount: Decimal
    currency: Currency = DEFAULT_CURRENCY

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))
        object.__setattr__(self, 'amount', quantize(self.amount, self.currency))

    @classmethod
    def zero(cls, currency: Currency = DEFAULT_CURRENCY) -> 'Money':
        return cls(Decimal('0'), currency)

    @classmethod
    def of(cls, value: Union['Money', Decimal, str, int]) -> 'Money':
        """
        Coerce a Money, Decimal, str or int into Money

        Raises:
            TypeError: For float input
            ValidationError: For malformed or non-finite input
        """
        if isinstance(value, Money):
            return value
        if isinstance(value, float):
            raise TypeError("Monetary values must not be float")
        return cls(to_decimal(value))

    def _check_currency(self, other: 'Money') -> None:
        if self.currency != other.currency:
            raise ValueError(f"Currency mismatch: {self.currency.code} and {other.currency.code}")

    def __add__(self, other: 'Money') -> 'Money':
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        self._check_currency(other)
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, multiplier: Decimal) -> 'Money':
        if not isinstance(multiplier, Decimal):
            multiplier = Decimal(str(multiplier))
        return Money(self.amount * multiplier, self.currency)

    def __neg__(self) -> 'Money':
        return Money(-self.amount, self.currency)

    def __lt__(self, other: 'Money') -> bool:
        self._check_currency(other)
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        self._check_currency(other)
        return self.amount <= other.amount

    def __gt__(self, other: 'Money') -> bool:
        self._check_currency(other)
        return self.amount > other.amount

    def __ge__(self, other: 'Money') -> bool:
        self._check_currency(other)
        return self.amount >= other.amount

    def is_zero(self) -> bool:
        """Check if amount is exactly zero"""
        return self.amount == Decimal('0')

    def is_positive(self) -> bool:
        """Check if amount is positive"""
        return self.amount > Decimal('0')

    def is_negative(self) -> bool:
        """Check if amount is negative"""
        return self.amount < Decimal('0')

    def to_string(self) -> str:
        """Format for display"""
        return f"{self.currency.code} {self.amount:,.{self.currency.precision}f}"
