from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Union

from strategy_engine.core.exceptions import InvalidAmount

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    # floats go through str() so 0.1 stays 0.1 instead of its binary expansion
    try:
        amount = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise InvalidAmount(f"Invalid amount: {value!r}") from exc
    if not amount.is_finite():
        raise InvalidAmount(f"Invalid amount: {value!r}")
    return amount


def to_smallest_unit(amount: Number, decimals: int) -> int:
    if decimals < 0:
        raise InvalidAmount("decimals must be non-negative")
    value = to_decimal(amount)
    if value <= 0:
        raise InvalidAmount("amount must be positive")
    units = int((value.scaleb(decimals)).to_integral_value(rounding=ROUND_DOWN))
    if units <= 0:
        raise InvalidAmount(f"amount {value} is below the smallest unit at {decimals} decimals")
    return units


def from_smallest_unit(units: Union[int, str], decimals: int) -> Decimal:
    if decimals < 0:
        raise InvalidAmount("decimals must be non-negative")
    return Decimal(int(units)).scaleb(-decimals)


__all__ = ["from_smallest_unit", "to_decimal", "to_smallest_unit"]
