"""
Variance -- actual vs. contract quantity deviation.

Pure functions, zero I/O.

Sign convention:
    positive variance  -> actual exceeds contract (over budget)
    negative variance  -> actual below contract (under budget)
    zero               -> on target

A contract quantity of zero has no meaningful percentage; the result is
``None`` rather than a division error.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from procurement_kernel.db.types import round_percent

_HUNDRED = Decimal("100")


class VarianceDirection(str, Enum):
    OVER = "over"
    UNDER = "under"
    ON_TARGET = "on_target"
    UNDEFINED = "undefined"


def variance_percent(
    contract_quantity: Decimal,
    actual_quantity: Decimal | None,
) -> Decimal | None:
    """
    Return (actual - contract) / contract * 100, rounded to 4 places.

    Returns None when no actual is recorded or the contract quantity is 0.
    """
    if actual_quantity is None:
        return None
    if contract_quantity == 0:
        return None
    raw = (actual_quantity - contract_quantity) / contract_quantity * _HUNDRED
    return round_percent(raw)


def variance_amount(
    unit_price: Decimal,
    contract_quantity: Decimal,
    actual_quantity: Decimal | None,
) -> Decimal | None:
    """Money deviation: (actual - contract) * unit_price, same sign as the percentage."""
    if actual_quantity is None:
        return None
    return (actual_quantity - contract_quantity) * unit_price


def variance_direction(percent: Decimal | None) -> VarianceDirection:
    if percent is None:
        return VarianceDirection.UNDEFINED
    if percent > 0:
        return VarianceDirection.OVER
    if percent < 0:
        return VarianceDirection.UNDER
    return VarianceDirection.ON_TARGET


@dataclass(frozen=True)
class VarianceResult:
    """Full variance picture for one material line."""

    contract_quantity: Decimal
    actual_quantity: Decimal | None
    percent: Decimal | None
    amount: Decimal | None
    direction: VarianceDirection


def compute_variance(
    unit_price: Decimal,
    contract_quantity: Decimal,
    actual_quantity: Decimal | None,
) -> VarianceResult:
    percent = variance_percent(contract_quantity, actual_quantity)
    return VarianceResult(
        contract_quantity=contract_quantity,
        actual_quantity=actual_quantity,
        percent=percent,
        amount=variance_amount(unit_price, contract_quantity, actual_quantity),
        direction=variance_direction(percent),
    )
