"""
Integer-cents money helpers.

Amounts charged are whole cents; rates are basis points (1000 bps = 10%).
Configured per-unit flat taxes and rates may carry fractions (0.5 cents,
1012.5 bps) and are held as Decimal. Rounding is half-up to the cent and
happens once, on the aggregated line.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

BPS_DENOMINATOR = 10_000

# Scale of the Numeric columns holding fractional cents and basis points
FRACTION_QUANTUM = Decimal("0.0001")


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """Exact Decimal for a stored amount. Floats go through str() to avoid binary noise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def decimal_to_json(value: Decimal | int | float | str | None) -> int | str | None:
    """JSON-safe form of a fractional amount: an int when whole, else its exact string."""
    if value is None:
        return None
    value = to_decimal(value)
    if value == value.to_integral_value():
        return int(value)
    return str(value.normalize())


def round_half_up(value: Decimal | int | str) -> int:
    """Round a (possibly fractional) cents value half-up to whole cents."""
    return int(to_decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def apply_rate_bps(amount_cents: int, rate_bps: Decimal | int) -> int:
    """Percentage of an amount, rounded half-up to the cent."""
    if not amount_cents or not rate_bps:
        return 0
    return round_half_up(Decimal(amount_cents) * to_decimal(rate_bps) / Decimal(BPS_DENOMINATOR))


def percent_to_bps(percent: Decimal | int | float | str) -> Decimal:
    """10 (percent) -> 1000 bps; 10.125 -> 1012.5 bps."""
    bps = (to_decimal(percent) * 100).quantize(FRACTION_QUANTUM, rounding=ROUND_HALF_UP)
    return bps.normalize() if bps != bps.to_integral_value() else Decimal(int(bps))


def format_cents(cents: int | Decimal | None) -> str:
    if cents is None:
        return "-"
    fraction = to_decimal(cents) % 1
    sign = "-" if cents < 0 else ""
    whole = abs(int(cents))
    text = f"{sign}${whole // 100:,}.{whole % 100:02d}"
    if fraction:
        # Sub-cent digits of a configured per-unit amount
        text += str(abs(fraction).normalize())[2:]
    return text
