"""
Values -- Immutable, self-validating domain value objects.

Responsibility:
    Money pairs a Decimal amount with its currency for proposal totals,
    contract prices, registration fees and escrow credits.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Amounts are Decimal, never float.
    - Currency codes validated at construction time.
    - Arithmetic never mixes currencies.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal, InvalidOperation

from procurement_kernel.db.types import CURRENCY_DECIMAL_PLACES, round_money, validate_currency


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount value object.

    Escrow balances are summed through Money so that a payment in
    another currency cannot be added to a contract's balance.  Nothing
    is rounded unless .round() is called.
    """

    amount: Decimal
    currency: str

    def __post_init__(self) -> None:
        if isinstance(self.amount, float):
            raise TypeError("Money amount must not be a float")
        if not isinstance(self.amount, Decimal):
            try:
                object.__setattr__(self, "amount", Decimal(str(self.amount)))
            except (InvalidOperation, ValueError) as e:
                raise ValueError(f"Invalid amount: {self.amount}") from e
        if not self.amount.is_finite():
            raise ValueError(f"Invalid amount: {self.amount}")
        object.__setattr__(self, "currency", validate_currency(self.currency))

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str) -> Money:
        """Factory method for creating Money."""
        if isinstance(amount, (str, int)):
            amount = Decimal(str(amount))
        return cls(amount=amount, currency=currency)

    @classmethod
    def zero(cls, currency: str) -> Money:
        """Create a zero amount in the given currency."""
        return cls(amount=Decimal("0"), currency=currency)

    @property
    def decimal_places(self) -> int:
        return CURRENCY_DECIMAL_PLACES[self.currency]

    @property
    def is_zero(self) -> bool:
        return self.amount == Decimal("0")

    @property
    def is_negative(self) -> bool:
        return self.amount < Decimal("0")

    def round(self, rounding: str = ROUND_HALF_UP) -> Money:
        """Round to the currency's minor units."""
        return Money(round_money(self.amount, self.decimal_places, rounding), self.currency)

    def _check_currency(self, other: Money, op: str) -> None:
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot {op} Money with different currencies: "
                f"{self.currency} and {other.currency}"
            )

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "add")
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "subtract")
        return Money(amount=self.amount - other.amount, currency=self.currency)

    def __mul__(self, factor: Decimal | int | str) -> Money:
        if isinstance(factor, (int, str)):
            factor = Decimal(str(factor))
        if not isinstance(factor, Decimal):
            return NotImplemented
        return Money(amount=self.amount * factor, currency=self.currency)

    def __rmul__(self, factor: Decimal | int | str) -> Money:
        return self.__mul__(factor)

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount < other.amount

    def __str__(self) -> str:
        return f"{self.amount} {self.currency}"

    def __repr__(self) -> str:
        return f"Money({self.amount!r}, {self.currency!r})"


def to_decimal(value: Decimal | int | str, field_name: str = "value") -> Decimal:
    """
    Coerce an external numeric value to Decimal.

    Floats are rejected; importers hand numbers over as str or int.

    Raises:
        ValueError: If the value is a float, not numeric, or not finite.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(f"{field_name} must be Decimal, int or str, got {type(value).__name__}")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"{field_name} is not a number: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"{field_name} is not finite: {value!r}")
    return result


def commission_due(total: Decimal, rate: Decimal, step: Decimal) -> Decimal:
    """
    Platform commission owed by the contractor before signing.

    ``total * rate`` rounded to whole units, then up to the next multiple
    of ``step``; never less than one ``step``.
    """
    raw = round_money(total * rate, 0)
    steps = (raw / step).to_integral_value(rounding=ROUND_CEILING)
    return max(step, steps * step)
