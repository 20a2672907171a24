"""
FILE: deposit_advise/core/money.py
Immutable Decimal-backed value types for currency amounts and interest rates.
"""

from decimal import Decimal
from typing import Any, Iterable, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

Numeric = Union[Decimal, int, str]

DEFAULT_CURRENCY = "GBP"


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


class Money(BaseModel):
    model_config = ConfigDict(frozen=True)

    amount: Decimal = Field(
        description="Monetary amount as decimal string/number.",
        examples=["85000.00"],
    )
    currency: str = Field(
        default=DEFAULT_CURRENCY,
        description="ISO currency code.",
        examples=["GBP"],
    )

    @model_validator(mode="before")
    @classmethod
    def _accept_bare_amount(cls, data: Any) -> Any:
        if isinstance(data, (Decimal, int, float, str)):
            return {"amount": _to_decimal(data)}
        return data

    @classmethod
    def of(cls, amount: Numeric, currency: str = DEFAULT_CURRENCY) -> "Money":
        return cls(amount=_to_decimal(amount), currency=currency)

    @classmethod
    def zero(cls, currency: str = DEFAULT_CURRENCY) -> "Money":
        return cls(amount=Decimal("0"), currency=currency)

    @staticmethod
    def sum_of(values: Iterable["Money"], currency: str = DEFAULT_CURRENCY) -> "Money":
        total = Money.zero(currency)
        for value in values:
            total = total + value
        return total

    @staticmethod
    def min_of(first: "Money", *others: "Money") -> "Money":
        result = first
        for other in others:
            if other < result:
                result = other
        return result

    @staticmethod
    def max_of(first: "Money", *others: "Money") -> "Money":
        result = first
        for other in others:
            if other > result:
                result = other
        return result

    def _same_currency(self, other: "Money") -> None:
        if self.currency != other.currency:
            raise ValueError(f"Currency mismatch: {self.currency} vs {other.currency}")

    def __add__(self, other: "Money") -> "Money":
        self._same_currency(other)
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._same_currency(other)
        return Money(amount=self.amount - other.amount, currency=self.currency)

    def __mul__(self, factor: Numeric) -> "Money":
        return Money(amount=self.amount * _to_decimal(factor), currency=self.currency)

    def __truediv__(self, divisor: Numeric) -> "Money":
        return Money(amount=self.amount / _to_decimal(divisor), currency=self.currency)

    def __lt__(self, other: "Money") -> bool:
        self._same_currency(other)
        return self.amount < other.amount

    def __le__(self, other: "Money") -> bool:
        self._same_currency(other)
        return self.amount <= other.amount

    def __gt__(self, other: "Money") -> bool:
        self._same_currency(other)
        return self.amount > other.amount

    def __ge__(self, other: "Money") -> bool:
        self._same_currency(other)
        return self.amount >= other.amount

    def is_positive(self) -> bool:
        return self.amount > Decimal("0")

    def clamp_non_negative(self) -> "Money":
        if self.amount < Decimal("0"):
            return Money.zero(self.currency)
        return self

    def rounded(self) -> "Money":
        return Money(amount=self.amount.quantize(Decimal("0.01")), currency=self.currency)


class Percentage(BaseModel):
    """Interest rate or rate delta in percent units (4.5 means 4.5%)."""

    model_config = ConfigDict(frozen=True)

    value: Decimal = Field(description="Percent value.", examples=["4.50"])

    @model_validator(mode="before")
    @classmethod
    def _accept_bare_value(cls, data: Any) -> Any:
        if isinstance(data, (Decimal, int, float, str)):
            return {"value": _to_decimal(data)}
        return data

    @classmethod
    def of(cls, value: Numeric) -> "Percentage":
        return cls(value=_to_decimal(value))

    def to_fraction(self) -> Decimal:
        return self.value / Decimal("100")

    def __add__(self, other: "Percentage") -> "Percentage":
        return Percentage(value=self.value + other.value)

    def __sub__(self, other: "Percentage") -> "Percentage":
        return Percentage(value=self.value - other.value)

    def __lt__(self, other: "Percentage") -> bool:
        return self.value < other.value

    def __le__(self, other: "Percentage") -> bool:
        return self.value <= other.value

    def __gt__(self, other: "Percentage") -> bool:
        return self.value > other.value

    def __ge__(self, other: "Percentage") -> bool:
        return self.value >= other.value


def annual_interest(amount: Money, rate: Percentage) -> Money:
    return amount * rate.to_fraction()
