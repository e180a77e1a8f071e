"""Money helpers: percent to basis points, half-up rounding and display."""

from decimal import Decimal

import pytest

from wholesale.money import apply_rate_bps, decimal_to_json, format_cents, percent_to_bps, round_half_up


@pytest.mark.parametrize(
    "percent, expected",
    [
        (10, Decimal(1000)),
        (6.25, Decimal(625)),
        ("8.25", Decimal(825)),
        ("10.125", Decimal("1012.5")),
        (0, Decimal(0)),
    ],
)
def test_percent_to_bps(percent, expected):
    assert percent_to_bps(percent) == expected


def test_percent_to_bps_feeds_rate_math():
    assert apply_rate_bps(10000, percent_to_bps(10)) == 1000
    assert apply_rate_bps(10000, percent_to_bps("10.125")) == 1013


def test_half_cent_rounds_up():
    assert round_half_up(Decimal("1.5")) == 2
    assert round_half_up(Decimal("1.49")) == 1


def test_fractional_amounts_serialize_exactly():
    assert decimal_to_json(Decimal("60.0000")) == 60
    assert decimal_to_json(Decimal("0.5000")) == "0.5"
    assert decimal_to_json(None) is None


def test_format_cents_keeps_sub_cent_digits():
    assert format_cents(60) == "$0.60"
    assert format_cents(Decimal("60.5")) == "$0.605"
    assert format_cents(None) == "-"
