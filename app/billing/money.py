"""
Money representation and minor-unit conversion.

Inside billing every amount is a Decimal with two places (rupees, dollars).
The gateway speaks integer minor units (paise, cents). Conversion happens
only here, and only the gateway adapter, the webhook handlers and the
checkout response call these functions.

Usage:
    from billing.money import from_minor_units, to_minor_units

    from_minor_units(49900)             # Decimal("499.00")
    to_minor_units(Decimal("499.00"))   # 49900
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

TWO_PLACES = Decimal("0.01")
MINOR_UNITS_PER_MAJOR = 100
ZERO = Decimal("0.00")


def to_money(value: Decimal | int | float | str | None) -> Decimal:
    """
    Coerce a value to a two-place Decimal, rounding half up.

    None becomes 0.00. Floats go through str() so 0.1 stays 0.10.
    """
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def from_minor_units(value: int | str | None) -> Decimal:
    """Convert gateway minor units (e.g. paise) to a two-place Decimal."""
    if value in (None, ""):
        return ZERO
    return to_money(Decimal(int(value)) / MINOR_UNITS_PER_MAJOR)


def to_minor_units(amount: Decimal | int | str) -> int:
    """Convert a two-place amount to integer minor units for the gateway."""
    return int(to_money(amount) * MINOR_UNITS_PER_MAJOR)


def percentage_of(amount: Decimal, rate: Decimal) -> Decimal:
    """Return amount * rate rounded to two places."""
    return to_money(Decimal(amount) * rate)
