"""
Exact conversion between major units (ether, coin) and minor units (wei, satoshi).

Rounding happens in exactly one place, ``to_minor_units``, using
ROUND_HALF_UP (half away from zero).
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, localcontext

# Enough digits for any uint256 wei amount
_PRECISION = 80


def to_decimal(value: Decimal | int | str | float) -> Decimal:
    """Coerce a number to Decimal. Floats go through str() so 0.1 stays 0.1."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def to_minor_units(amount: Decimal | int | str | float, decimals: int) -> int:
    """Convert a major-unit amount to an integer count of minor units."""
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        scaled = to_decimal(amount).scaleb(decimals)
        return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def to_major_units(value: int, decimals: int) -> Decimal:
    """Convert minor units to a major-unit Decimal, normalized without exponent noise."""
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        result = Decimal(int(value)).scaleb(-decimals)
        if result == 0:
            return Decimal(0)
        return result.quantize(Decimal(1).scaleb(-decimals)).normalize() + Decimal(0)


def format_amount(amount: Decimal) -> str:
    """Plain (non-scientific) string for an amount."""
    return format(amount, "f")
