# Overview: Per-customer unit price resolution over a pricing snapshot.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Mapping

from ..validation import ValidationError
from .snapshots import CustomerSnapshot, ProductSnapshot, PriceMemorySnapshot
from wholesale.time_utils import utcnow

MIN_TIER = 1
MAX_TIER = 5

SOURCE_PRICE_MEMORY = "price_memory"
SOURCE_TIER = "tier"
SOURCE_BASE = "base"
SOURCE_OVERRIDE = "override"


def clamp_tier(level: int | None) -> int:
    """Out-of-range tiers clamp to the nearest valid bound; missing means tier 1."""
    if level is None:
        return MIN_TIER
    return max(MIN_TIER, min(MAX_TIER, int(level)))


@dataclass(frozen=True)
class ResolvedPrice:
    unit_price_cents: int
    source: str
    tier_used: int | None = None
    price_memory_id: int | None = None


class PriceResolver:
    """
    Resolve the unit price a customer currently pays for a product.

    Priority:
    1. active, unexpired price memory for (customer, product)
    2. price{tier} for the customer's (clamped) tier
    3. the next lower tier down to 1, then the product's base price

    Pure: reads only the price memories and clock value it was built with.
    """

    def __init__(
        self,
        price_memories: Mapping[int, PriceMemorySnapshot] | None = None,
        as_of: datetime | None = None,
    ):
        self._price_memories = dict(price_memories or {})
        self.as_of = as_of or utcnow()

    def price_memory_for(self, customer: CustomerSnapshot, product: ProductSnapshot) -> PriceMemorySnapshot | None:
        memory = self._price_memories.get(product.id)
        if memory is None or memory.customer_id != customer.id:
            return None
        if not memory.is_effective(self.as_of):
            return None
        return memory

    def standard_price(self, customer: CustomerSnapshot, product: ProductSnapshot) -> ResolvedPrice:
        """Tiered lookup with fallback, ignoring price memory."""
        tier = clamp_tier(customer.customer_level)
        for level in range(tier, MIN_TIER - 1, -1):
            price = product.tier_price(level)
            if price is not None:
                return ResolvedPrice(unit_price_cents=price, source=SOURCE_TIER, tier_used=level)

        for base in (product.price_cents, product.base_price_cents):
            if base is not None:
                return ResolvedPrice(unit_price_cents=base, source=SOURCE_BASE)

        raise ValidationError(
            "Product has no usable price",
            details={"product_id": product.id, "customer_level": customer.customer_level},
        )

    def resolve_detail(self, customer: CustomerSnapshot, product: ProductSnapshot) -> ResolvedPrice:
        memory = self.price_memory_for(customer, product)
        if memory is not None:
            return ResolvedPrice(
                unit_price_cents=memory.last_paid_price_cents,
                source=SOURCE_PRICE_MEMORY,
                price_memory_id=memory.id,
            )
        return self.standard_price(customer, product)

    def resolve(self, customer: CustomerSnapshot, product: ProductSnapshot) -> int:
        return self.resolve_detail(customer, product).unit_price_cents
