# Overview: Flat tax eligibility and percentage tax rate lookup over a rule snapshot.

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from .price_resolver import clamp_tier
from .snapshots import CustomerSnapshot, ProductSnapshot, FlatTaxRuleSnapshot


def _same_place(restriction: str | None, value: str | None) -> bool:
    """Empty restriction matches everyone; otherwise compare trimmed, case-insensitive."""
    if not restriction or not restriction.strip():
        return True
    if not value:
        return False
    return restriction.strip().casefold() == value.strip().casefold()


class TaxRuleRegistry:
    """
    Snapshot of flat tax rules plus the tier/jurisdiction eligibility predicate.

    Built once per pricing run; every query returns tuples so callers never
    hold a live reference into the registry.
    """

    def __init__(
        self,
        rules: Iterable[FlatTaxRuleSnapshot] = (),
        *,
        percentage_requires_flat_tax_flag: bool = True,
    ):
        self._rules = {rule.id: rule for rule in rules}
        self.percentage_requires_flat_tax_flag = percentage_requires_flat_tax_flag

    @property
    def rules(self) -> tuple:
        return tuple(self._rules[rid] for rid in sorted(self._rules))

    def get(self, rule_id: int) -> FlatTaxRuleSnapshot | None:
        return self._rules.get(rule_id)

    def missing_rule_ids(self, product: ProductSnapshot) -> tuple:
        return tuple(rid for rid in product.flat_tax_ids if rid not in self._rules)

    def inactive_rule_ids(self, product: ProductSnapshot) -> tuple:
        return tuple(
            rid for rid in product.flat_tax_ids
            if rid in self._rules and not self._rules[rid].is_active
        )

    def customer_receives_flat_tax(self, customer: CustomerSnapshot) -> bool:
        """apply_flat_tax alone gates flat tax; tax_exempt only zeroes the percentage tax."""
        return bool(customer.apply_flat_tax)

    def is_applicable(self, rule: FlatTaxRuleSnapshot, product: ProductSnapshot, customer: CustomerSnapshot) -> bool:
        if not rule.is_active:
            return False
        if rule.id not in product.flat_tax_ids:
            return False
        if not self.customer_receives_flat_tax(customer):
            return False
        if clamp_tier(customer.customer_level) not in rule.customer_tiers:
            return False
        if not _same_place(rule.county_restriction, customer.county):
            return False
        if not _same_place(rule.zip_code_restriction, customer.postal_code):
            return False
        return True

    def applicable_flat_taxes(self, product: ProductSnapshot, customer: CustomerSnapshot) -> tuple:
        """Rules that apply to this (product, customer) pair, in the product's assignment order."""
        applicable = []
        for rid in product.flat_tax_ids:
            rule = self._rules.get(rid)
            if rule is not None and self.is_applicable(rule, product, customer):
                applicable.append(rule)
        return tuple(applicable)

    def percentage_tax_rate_bps(self, product: ProductSnapshot, customer: CustomerSnapshot) -> Decimal | int:
        if customer.tax_exempt:
            return 0
        if self.percentage_requires_flat_tax_flag and not customer.apply_flat_tax:
            return 0
        return max(0, product.tax_rate_bps or 0)
