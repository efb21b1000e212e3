"""Scaled-integer helpers shared by the solver, pool, strategy and optimizer.

Every amount in the engine is an ``int`` scaled by ``WAD`` (``10**18``).
Fee and threshold parameters are basis points over ``FEE_DENOMINATOR``.
All helpers round down, which is the pool's favourable direction for every
payout computed with them.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_DOWN, getcontext
from typing import Union

getcontext().prec = 50

WAD = 10**18
FEE_DENOMINATOR = 10_000

Number = Union[int, float, str, Decimal]


def mul_div_down(a: int, b: int, denominator: int) -> int:
    """Return ``floor(a * b / denominator)`` for non-negative operands."""

    if denominator <= 0:
        raise ZeroDivisionError("mul_div_down denominator must be positive")
    return (a * b) // denominator


def mul_div_up(a: int, b: int, denominator: int) -> int:
    if denominator <= 0:
        raise ZeroDivisionError("mul_div_up denominator must be positive")
    return -((-a * b) // denominator)


def bps_of(amount: int, bps: int) -> int:
    """Portion of ``amount`` expressed by ``bps`` basis points, rounded down."""

    return mul_div_down(amount, bps, FEE_DENOMINATOR)


def to_wad(value: Number, decimals: int = 18) -> int:
    """Convert a human amount (``"1000.5"``) into a scaled integer.

    Conversion goes through :class:`Decimal` so config strings never pick up
    binary float noise.  Fractional dust below one unit is truncated.
    """

    if isinstance(value, int):
        return value * 10**decimals
    try:
        dec = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"not a numeric amount: {value!r}") from exc
    scaled = (dec * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_DOWN)
    return int(scaled)


def from_wad(amount: int, decimals: int = 18) -> Decimal:
    """Scaled integer back to a :class:`Decimal` for display."""

    return Decimal(amount) / (Decimal(10) ** decimals)


__all__ = [
    "WAD",
    "FEE_DENOMINATOR",
    "mul_div_down",
    "mul_div_up",
    "bps_of",
    "to_wad",
    "from_wad",
]
