"""PriceResolver: tier lookup, fallback, clamping and price memory precedence."""

from datetime import datetime, timedelta

import pytest

from wholesale.services.price_resolver import PriceResolver, clamp_tier
from wholesale.services.snapshots import CustomerSnapshot, ProductSnapshot, PriceMemorySnapshot
from wholesale.validation import ValidationError

AS_OF = datetime(2026, 10, 1, 12, 0, 0)

FULL_TIERS = ProductSnapshot(
    id=1,
    name="Swisher Sweets",
    price_cents=1500,
    base_price_cents=1400,
    tier_prices=(1200, 1100, 1000, 900, 800),
)


def customer(level, customer_id=7):
    return CustomerSnapshot(id=customer_id, customer_level=level, apply_flat_tax=True)


def memory(price_cents, **overrides):
    fields = dict(id=99, customer_id=7, product_id=1, last_paid_price_cents=price_cents)
    fields.update(overrides)
    return PriceMemorySnapshot(**fields)


@pytest.mark.parametrize("tier", [1, 2, 3, 4, 5])
def test_each_tier_gets_its_own_price(tier):
    resolver = PriceResolver(as_of=AS_OF)
    assert resolver.resolve(customer(tier), FULL_TIERS) == FULL_TIERS.tier_prices[tier - 1]


def test_missing_tier_falls_back_to_next_lower_tier():
    product = ProductSnapshot(id=2, price_cents=1500, tier_prices=(1200, 1100, None, None, None))
    resolved = PriceResolver(as_of=AS_OF).resolve_detail(customer(4), product)

    assert resolved.unit_price_cents == 1100
    assert resolved.source == "tier"
    assert resolved.tier_used == 2


def test_no_tier_prices_falls_back_to_base_price():
    product = ProductSnapshot(id=3, price_cents=1500, base_price_cents=1400)
    resolved = PriceResolver(as_of=AS_OF).resolve_detail(customer(3), product)

    assert resolved.unit_price_cents == 1500
    assert resolved.source == "base"
    assert resolved.tier_used is None


def test_base_price_cents_is_last_resort():
    product = ProductSnapshot(id=4, price_cents=None, base_price_cents=1400)
    assert PriceResolver(as_of=AS_OF).resolve(customer(1), product) == 1400


def test_product_without_any_price_raises_validation_error():
    product = ProductSnapshot(id=5)
    with pytest.raises(ValidationError) as exc:
        PriceResolver(as_of=AS_OF).resolve(customer(2), product)
    assert exc.value.details["product_id"] == 5


@pytest.mark.parametrize("level,expected", [(0, 1), (-3, 1), (6, 5), (99, 5), (None, 1), (3, 3)])
def test_out_of_range_tiers_clamp(level, expected):
    assert clamp_tier(level) == expected


def test_tier_above_five_uses_price5():
    assert PriceResolver(as_of=AS_OF).resolve(customer(9), FULL_TIERS) == 800


@pytest.mark.parametrize("tier", [1, 2, 3, 4, 5])
def test_active_price_memory_beats_every_tier(tier):
    resolver = PriceResolver({1: memory(555)}, as_of=AS_OF)
    resolved = resolver.resolve_detail(customer(tier), FULL_TIERS)

    assert resolved.unit_price_cents == 555
    assert resolved.source == "price_memory"
    assert resolved.price_memory_id == 99


def test_expired_price_memory_is_ignored():
    expired = memory(555, expires_at=AS_OF - timedelta(seconds=1))
    resolver = PriceResolver({1: expired}, as_of=AS_OF)
    assert resolver.resolve(customer(2), FULL_TIERS) == 1100


def test_unexpired_price_memory_applies():
    future = memory(555, expires_at=AS_OF + timedelta(days=30))
    resolver = PriceResolver({1: future}, as_of=AS_OF)
    assert resolver.resolve(customer(2), FULL_TIERS) == 555


def test_inactive_price_memory_is_ignored():
    resolver = PriceResolver({1: memory(555, is_active=False)}, as_of=AS_OF)
    assert resolver.resolve(customer(2), FULL_TIERS) == 1100


def test_price_memory_for_another_customer_is_ignored():
    resolver = PriceResolver({1: memory(555, customer_id=8)}, as_of=AS_OF)
    assert resolver.resolve(customer(2, customer_id=7), FULL_TIERS) == 1100


def test_standard_price_ignores_price_memory():
    resolver = PriceResolver({1: memory(555)}, as_of=AS_OF)
    assert resolver.standard_price(customer(3), FULL_TIERS).unit_price_cents == 1000
