"""
Module: procurement_kernel.db.types
Responsibility: Column type aliases for prices, quantities and variance
    percentages, plus the rounding and currency checks applied before
    those values are stored.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and procurement_config.  MUST NOT import from any of them.

Invariants enforced:
    - No floats.  Prices, amounts and quantities are Decimal end to end.
    - Only currencies listed in CURRENCY_DECIMAL_PLACES are accepted.
    - Variance percentages are stored at PERCENT_DECIMAL_PLACES.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import Numeric, String

Money = Annotated[Decimal, Numeric(38, 9)]
Quantity = Annotated[Decimal, Numeric(38, 9)]
Percent = Annotated[Decimal, Numeric(20, 6)]
Currency = Annotated[str, String(3)]

PERCENT_DECIMAL_PLACES = 4
QUANTITY_DECIMAL_PLACES = 4

# ISO 4217 minor units for the currencies a contract may be priced in.
CURRENCY_DECIMAL_PLACES: dict[str, int] = {
    "VND": 0,
    "USD": 2,
    "EUR": 2,
    "GBP": 2,
    "JPY": 0,
    "KRW": 0,
    "SGD": 2,
    "THB": 2,
    "AUD": 2,
    "CAD": 2,
    "CNY": 2,
}


def round_money(value: Decimal, decimal_places: int = 2, rounding: str = ROUND_HALF_UP) -> Decimal:
    """Round half-up to ``decimal_places`` (0 gives whole units)."""
    return value.quantize(Decimal(1).scaleb(-decimal_places), rounding=rounding)


def round_percent(value: Decimal) -> Decimal:
    return round_money(value, PERCENT_DECIMAL_PLACES)


def round_quantity(value: Decimal) -> Decimal:
    return round_money(value, QUANTITY_DECIMAL_PLACES)


class InvalidCurrencyError(ValueError):
    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: '{currency}'")


def validate_currency(currency: str) -> str:
    """
    Return the upper-cased currency code.

    Raises:
        InvalidCurrencyError: If the code is empty, not a string, or not
            one of the supported currencies.
    """
    if not isinstance(currency, str) or not currency.strip():
        raise InvalidCurrencyError(str(currency))
    normalized = currency.strip().upper()
    if normalized not in CURRENCY_DECIMAL_PLACES:
        raise InvalidCurrencyError(currency)
    return normalized


def is_valid_currency(currency: str) -> bool:
    try:
        validate_currency(currency)
    except InvalidCurrencyError:
        return False
    return True
