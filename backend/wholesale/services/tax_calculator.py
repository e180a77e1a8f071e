# Overview: Per-line price and tax breakdown; pure function of its snapshot inputs.

"""
Line tax calculation.

    unit_price         = PriceResolver (or a staff override)
    line_base          = unit_price * quantity
    percentage_tax     = round_half_up(line_base * rate_bps / 10000)
    flat_tax[rule]     = round_half_up(rule.tax_amount_cents * quantity)  # fractional cents allowed
    total_tax          = percentage_tax + sum(flat_tax)

Rounding happens once per line, after multiplying by the full quantity.
Rounding per unit first drifts on large quantities.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from ..money import apply_rate_bps, decimal_to_json, round_half_up, to_decimal
from ..validation import ConfigurationError, require_cents, require_quantity
from .price_resolver import PriceResolver, ResolvedPrice, SOURCE_OVERRIDE
from .snapshots import CustomerSnapshot, ProductSnapshot
from .tax_rule_registry import TaxRuleRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppliedFlatTax:
    id: int
    name: str
    unit_amount_cents: Decimal | int
    amount_cents: int

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "unit_amount_cents": decimal_to_json(self.unit_amount_cents),
            "amount_cents": self.amount_cents,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AppliedFlatTax":
        return cls(
            id=int(data["id"]),
            name=data["name"],
            unit_amount_cents=to_decimal(data["unit_amount_cents"]),
            amount_cents=int(data["amount_cents"]),
        )


@dataclass(frozen=True)
class LineTaxResult:
    product_id: int
    quantity: int
    unit_price_cents: int
    price_source: str
    tier_used: int | None
    line_base_cents: int
    tax_rate_bps: Decimal | int
    percentage_tax_cents: int
    flat_tax_cents: int
    applied_flat_taxes: tuple
    total_tax_cents: int
    line_total_cents: int
    is_tobacco_product: bool = False
    tobacco_product_type: str | None = None
    tax_config_warning: bool = False
    warnings: tuple = ()

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "price_source": self.price_source,
            "tier_used": self.tier_used,
            "line_base_cents": self.line_base_cents,
            "tax_rate_bps": decimal_to_json(self.tax_rate_bps),
            "percentage_tax_cents": self.percentage_tax_cents,
            "flat_tax_cents": self.flat_tax_cents,
            "applied_flat_taxes": [t.to_dict() for t in self.applied_flat_taxes],
            "total_tax_cents": self.total_tax_cents,
            "line_total_cents": self.line_total_cents,
            "is_tobacco_product": self.is_tobacco_product,
            "tobacco_product_type": self.tobacco_product_type,
            "tax_config_warning": self.tax_config_warning,
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LineTaxResult":
        return cls(
            product_id=int(data["product_id"]),
            quantity=int(data["quantity"]),
            unit_price_cents=int(data["unit_price_cents"]),
            price_source=data["price_source"],
            tier_used=data.get("tier_used"),
            line_base_cents=int(data["line_base_cents"]),
            tax_rate_bps=to_decimal(data["tax_rate_bps"]),
            percentage_tax_cents=int(data["percentage_tax_cents"]),
            flat_tax_cents=int(data["flat_tax_cents"]),
            applied_flat_taxes=tuple(AppliedFlatTax.from_dict(t) for t in data.get("applied_flat_taxes", [])),
            total_tax_cents=int(data["total_tax_cents"]),
            line_total_cents=int(data["line_total_cents"]),
            is_tobacco_product=bool(data.get("is_tobacco_product", False)),
            tobacco_product_type=data.get("tobacco_product_type"),
            tax_config_warning=bool(data.get("tax_config_warning", False)),
            warnings=tuple(data.get("warnings", [])),
        )


class TaxCalculator:
    def __init__(self, resolver: PriceResolver, registry: TaxRuleRegistry):
        self.resolver = resolver
        self.registry = registry

    def resolve_price(
        self,
        customer: CustomerSnapshot,
        product: ProductSnapshot,
        unit_price_override_cents: int | None = None,
    ) -> ResolvedPrice:
        if unit_price_override_cents is not None:
            require_cents("unit_price_override_cents", unit_price_override_cents)
            return ResolvedPrice(unit_price_cents=unit_price_override_cents, source=SOURCE_OVERRIDE)
        return self.resolver.resolve_detail(customer, product)

    def check_rule_references(self, product: ProductSnapshot) -> None:
        """Raise ConfigurationError when the product points at missing or inactive rules."""
        missing = self.registry.missing_rule_ids(product)
        inactive = self.registry.inactive_rule_ids(product)
        if missing or inactive:
            raise ConfigurationError(
                "Product references unusable flat tax rules",
                details={
                    "product_id": product.id,
                    "missing_rule_ids": list(missing),
                    "inactive_rule_ids": list(inactive),
                },
            )

    def flat_taxes_for(self, customer: CustomerSnapshot, product: ProductSnapshot, quantity: int) -> tuple:
        applied = []
        for rule in self.registry.applicable_flat_taxes(product, customer):
            unit_amount = to_decimal(rule.tax_amount_cents)
            amount = round_half_up(unit_amount * quantity)
            applied.append(AppliedFlatTax(
                id=rule.id,
                name=rule.name,
                unit_amount_cents=unit_amount,
                amount_cents=max(0, amount),
            ))
        return tuple(applied)

    def compute_line(
        self,
        customer: CustomerSnapshot,
        product: ProductSnapshot,
        quantity: int,
        *,
        unit_price_override_cents: int | None = None,
    ) -> LineTaxResult:
        quantity = require_quantity(quantity)

        resolved = self.resolve_price(customer, product, unit_price_override_cents)
        line_base = resolved.unit_price_cents * quantity

        rate_bps = self.registry.percentage_tax_rate_bps(product, customer)
        percentage_tax = max(0, apply_rate_bps(line_base, rate_bps))

        warnings: list[str] = []
        try:
            self.check_rule_references(product)
        except ConfigurationError as exc:
            logger.warning(
                "Skipping flat tax rules for product %s: missing=%s inactive=%s",
                product.id,
                exc.details["missing_rule_ids"],
                exc.details["inactive_rule_ids"],
            )
            for rid in exc.details["missing_rule_ids"]:
                warnings.append(f"flat tax rule {rid} not found")
            for rid in exc.details["inactive_rule_ids"]:
                warnings.append(f"flat tax rule {rid} is inactive")

        applied = self.flat_taxes_for(customer, product, quantity)
        flat_tax = sum(t.amount_cents for t in applied)
        total_tax = percentage_tax + flat_tax

        return LineTaxResult(
            product_id=product.id,
            quantity=quantity,
            unit_price_cents=resolved.unit_price_cents,
            price_source=resolved.source,
            tier_used=resolved.tier_used,
            line_base_cents=line_base,
            tax_rate_bps=rate_bps,
            percentage_tax_cents=percentage_tax,
            flat_tax_cents=flat_tax,
            applied_flat_taxes=applied,
            total_tax_cents=total_tax,
            line_total_cents=line_base + total_tax,
            is_tobacco_product=product.is_tobacco_product,
            tobacco_product_type=product.tobacco_product_type,
            tax_config_warning=bool(warnings),
            warnings=tuple(warnings),
        )
