# Overview: Immutable read snapshots of everything one pricing run needs.

"""
Pricing snapshots.

A pricing run reads the customer, the products, the flat tax rules and the
customer's price memories once, up front, into frozen dataclasses. The
calculation stages then run over these values only, so rule or catalog edits
made while an order is being priced cannot leak into it, and the engine can
be exercised without a database.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from datetime import datetime
from types import MappingProxyType
from typing import Iterable, Mapping

from ..extensions import db
from ..models import Customer, Product, FlatTaxRule, CustomerPriceMemory
from ..money import to_decimal, decimal_to_json
from ..validation import NotFoundError
from wholesale.time_utils import utcnow, to_utc_z, to_naive_utc


@dataclass(frozen=True)
class CustomerSnapshot:
    id: int
    customer_level: int
    apply_flat_tax: bool = False
    tax_exempt: bool = False
    county: str | None = None
    postal_code: str | None = None

    @classmethod
    def from_model(cls, customer: Customer) -> "CustomerSnapshot":
        return cls(
            id=customer.id,
            customer_level=customer.customer_level,
            apply_flat_tax=bool(customer.apply_flat_tax),
            tax_exempt=bool(customer.tax_exempt),
            county=customer.county,
            postal_code=customer.postal_code,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_level": self.customer_level,
            "apply_flat_tax": self.apply_flat_tax,
            "tax_exempt": self.tax_exempt,
            "county": self.county,
            "postal_code": self.postal_code,
        }


@dataclass(frozen=True)
class ProductSnapshot:
    id: int
    name: str = ""
    price_cents: int | None = None
    base_price_cents: int | None = None
    tier_prices: tuple = (None, None, None, None, None)  # price1..price5 in cents
    tax_rate_bps: Decimal | int = 0
    flat_tax_ids: tuple = ()
    is_tobacco_product: bool = False
    tobacco_product_type: str | None = None

    @classmethod
    def from_model(cls, product: Product) -> "ProductSnapshot":
        return cls(
            id=product.id,
            name=product.name,
            price_cents=product.price_cents,
            base_price_cents=product.base_price_cents,
            tier_prices=tuple(product.tier_price_cents(level) for level in range(1, 6)),
            tax_rate_bps=to_decimal(product.tax_rate_bps or 0),
            flat_tax_ids=tuple(product.flat_tax_ids),
            is_tobacco_product=bool(product.is_tobacco_product),
            tobacco_product_type=product.tobacco_product_type,
        )

    def tier_price(self, level: int) -> int | None:
        if 1 <= level <= len(self.tier_prices):
            return self.tier_prices[level - 1]
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price_cents": self.price_cents,
            "base_price_cents": self.base_price_cents,
            "tier_prices": list(self.tier_prices),
            "tax_rate_bps": decimal_to_json(self.tax_rate_bps),
            "flat_tax_ids": list(self.flat_tax_ids),
            "is_tobacco_product": self.is_tobacco_product,
            "tobacco_product_type": self.tobacco_product_type,
        }


@dataclass(frozen=True)
class FlatTaxRuleSnapshot:
    id: int
    name: str
    tax_amount_cents: Decimal | int
    customer_tiers: frozenset = frozenset()
    county_restriction: str | None = None
    zip_code_restriction: str | None = None
    is_active: bool = True

    @classmethod
    def from_model(cls, rule: FlatTaxRule) -> "FlatTaxRuleSnapshot":
        return cls(
            id=rule.id,
            name=rule.name,
            tax_amount_cents=to_decimal(rule.tax_amount_cents),
            customer_tiers=frozenset(int(t) for t in (rule.customer_tiers or [])),
            county_restriction=rule.county_restriction or None,
            zip_code_restriction=rule.zip_code_restriction or None,
            is_active=bool(rule.is_active),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "tax_amount_cents": decimal_to_json(self.tax_amount_cents),
            "customer_tiers": sorted(self.customer_tiers),
            "county_restriction": self.county_restriction,
            "zip_code_restriction": self.zip_code_restriction,
            "is_active": self.is_active,
        }


@dataclass(frozen=True)
class PriceMemorySnapshot:
    id: int
    customer_id: int
    product_id: int
    last_paid_price_cents: int
    reason: str = "manual_adjustment"
    expires_at: datetime | None = None
    is_active: bool = True

    @classmethod
    def from_model(cls, memory: CustomerPriceMemory) -> "PriceMemorySnapshot":
        return cls(
            id=memory.id,
            customer_id=memory.customer_id,
            product_id=memory.product_id,
            last_paid_price_cents=memory.last_paid_price_cents,
            reason=memory.reason,
            expires_at=to_naive_utc(memory.expires_at),
            is_active=bool(memory.is_active),
        )

    def is_effective(self, as_of: datetime) -> bool:
        if not self.is_active:
            return False
        return self.expires_at is None or self.expires_at > as_of

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "product_id": self.product_id,
            "last_paid_price_cents": self.last_paid_price_cents,
            "reason": self.reason,
            "expires_at": to_utc_z(self.expires_at),
            "is_active": self.is_active,
        }


@dataclass(frozen=True)
class PricingSnapshot:
    """Everything one pricing run reads, captured at as_of."""
    customer: CustomerSnapshot
    products: Mapping[int, ProductSnapshot]
    rules: tuple
    price_memories: Mapping[int, PriceMemorySnapshot]
    as_of: datetime = field(default_factory=utcnow)

    def product(self, product_id: int) -> ProductSnapshot:
        try:
            return self.products[product_id]
        except KeyError:
            raise NotFoundError("Product not found", details={"product_id": product_id}) from None


def load_customer_snapshot(customer_id: int) -> CustomerSnapshot:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer not found", details={"customer_id": customer_id})
    return CustomerSnapshot.from_model(customer)


def load_product_snapshots(product_ids: Iterable[int]) -> dict[int, ProductSnapshot]:
    wanted = set(product_ids)
    if not wanted:
        return {}
    products = db.session.query(Product).filter(Product.id.in_(wanted)).all()
    found = {p.id: ProductSnapshot.from_model(p) for p in products}
    missing = sorted(wanted - set(found))
    if missing:
        raise NotFoundError("Product not found", details={"product_ids": missing})
    return found


def load_rule_snapshots(rule_ids: Iterable[int]) -> tuple:
    """
    Every rule referenced by the products, active or not.

    Inactive rules are kept in the snapshot so the calculator can tell an
    inactive reference apart from a missing one.
    """
    wanted = set(rule_ids)
    if not wanted:
        return ()
    rules = (
        db.session.query(FlatTaxRule)
        .filter(FlatTaxRule.id.in_(wanted))
        .order_by(FlatTaxRule.id.asc())
        .all()
    )
    return tuple(FlatTaxRuleSnapshot.from_model(r) for r in rules)


def load_price_memory_snapshots(customer_id: int, product_ids: Iterable[int]) -> dict[int, PriceMemorySnapshot]:
    wanted = set(product_ids)
    if not wanted:
        return {}
    rows = (
        db.session.query(CustomerPriceMemory)
        .filter(
            CustomerPriceMemory.customer_id == customer_id,
            CustomerPriceMemory.product_id.in_(wanted),
            CustomerPriceMemory.is_active.is_(True),
            CustomerPriceMemory.is_manually_set.is_(True),
        )
        .order_by(CustomerPriceMemory.created_at.asc(), CustomerPriceMemory.id.asc())
        .all()
    )
    # Newest active manual row per product wins; purchase history never prices
    memories: dict[int, PriceMemorySnapshot] = {}
    for row in rows:
        memories[row.product_id] = PriceMemorySnapshot.from_model(row)
    return memories


def load_pricing_snapshot(
    customer_id: int,
    product_ids: Iterable[int],
    as_of: datetime | None = None,
) -> PricingSnapshot:
    """Read-then-compute: fetch all pricing inputs for one run."""
    product_ids = list(product_ids)
    customer = load_customer_snapshot(customer_id)
    products = load_product_snapshots(product_ids)

    rule_ids = {rid for p in products.values() for rid in p.flat_tax_ids}
    rules = load_rule_snapshots(rule_ids)
    memories = load_price_memory_snapshots(customer_id, product_ids)

    return PricingSnapshot(
        customer=customer,
        products=MappingProxyType(products),
        rules=rules,
        price_memories=MappingProxyType(memories),
        as_of=to_naive_utc(as_of) or utcnow(),
    )
