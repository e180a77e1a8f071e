# Overview: Flat tax rule administration and product assignment.

"""
Flat tax rules are deactivated, never deleted, so every audit can still be
traced to the rule it applied. Editing a rule changes future pricing runs
only; audits already written keep the amounts they froze.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import FlatTaxRule, Product, ProductFlatTax
from ..validation import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

FLAT_TAX_MUTABLE_FIELDS = {
    "name",
    "description",
    "tax_amount_cents",
    "tax_type",
    "customer_tiers",
    "county_restriction",
    "zip_code_restriction",
    "is_active",
}


def apply_flat_tax_patch(rule: FlatTaxRule, patch: dict) -> None:
    for k, v in patch.items():
        if k not in FLAT_TAX_MUTABLE_FIELDS:
            continue
        setattr(rule, k, v)


def _require_unique_name(name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(FlatTaxRule).filter(FlatTaxRule.name == name)
    if exclude_id is not None:
        query = query.filter(FlatTaxRule.id != exclude_id)
    if query.first() is not None:
        raise ConflictError("A flat tax with this name already exists.", details={"name": name})


def get_flat_tax(rule_id: int) -> FlatTaxRule:
    rule = db.session.get(FlatTaxRule, rule_id)
    if rule is None:
        raise NotFoundError("Flat tax not found", details={"flat_tax_id": rule_id})
    return rule


def list_flat_taxes(*, include_inactive: bool = False) -> list[FlatTaxRule]:
    query = db.session.query(FlatTaxRule)
    if not include_inactive:
        query = query.filter(FlatTaxRule.is_active.is_(True))
    return query.order_by(FlatTaxRule.name.asc(), FlatTaxRule.id.asc()).all()


def create_flat_tax(*, patch: dict) -> FlatTaxRule:
    """Create a rule from a validated patch (see enforce_rules_flat_tax)."""
    if not patch.get("customer_tiers"):
        raise ValidationError("customer_tiers must be a non-empty list of tier levels")
    _require_unique_name(patch["name"])

    rule = FlatTaxRule(is_active=True)
    apply_flat_tax_patch(rule, patch)
    db.session.add(rule)
    db.session.commit()

    logger.info("Flat tax %s created: %s (%s cents/unit)", rule.id, rule.name, rule.tax_amount_cents)
    return rule


def update_flat_tax(*, rule_id: int, patch: dict) -> FlatTaxRule:
    rule = get_flat_tax(rule_id)
    if "name" in patch and patch["name"] != rule.name:
        _require_unique_name(patch["name"], exclude_id=rule.id)
    if "customer_tiers" in patch and not patch["customer_tiers"]:
        raise ValidationError("customer_tiers must be a non-empty list of tier levels")

    apply_flat_tax_patch(rule, patch)
    db.session.commit()

    logger.info("Flat tax %s updated: %s", rule.id, ", ".join(sorted(patch.keys())))
    return rule


def deactivate_flat_tax(rule_id: int) -> FlatTaxRule:
    """
    Stop applying a rule. Products still pointing at it price with a
    tax configuration warning until they are reassigned.
    """
    rule = get_flat_tax(rule_id)
    if rule.is_active:
        rule.is_active = False
        db.session.commit()
        logger.info("Flat tax %s deactivated", rule.id)
    return rule


def assign_flat_taxes(product_id: int, rule_ids: list[int]) -> Product:
    """
    Replace a product's ordered flat tax list.

    Every id must name an existing rule; the list order is the order the
    taxes appear on a line.
    """
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})

    if not isinstance(rule_ids, (list, tuple)):
        raise ValidationError("flat_tax_ids must be a list of ids")
    for rid in rule_ids:
        if not isinstance(rid, int) or isinstance(rid, bool):
            raise ValidationError("flat_tax_ids entries must be integers", details={"flat_tax_id": rid})
    if len(set(rule_ids)) != len(rule_ids):
        raise ValidationError("flat_tax_ids contains duplicates")

    if rule_ids:
        found = {
            r.id for r in db.session.query(FlatTaxRule.id).filter(FlatTaxRule.id.in_(rule_ids)).all()
        }
        unknown = [rid for rid in rule_ids if rid not in found]
        if unknown:
            raise ValidationError("Unknown flat tax ids", details={"unknown_flat_tax_ids": unknown})

    product.flat_tax_links.clear()
    db.session.flush()
    for position, rid in enumerate(rule_ids):
        product.flat_tax_links.append(ProductFlatTax(flat_tax_id=rid, position=position))
    db.session.commit()

    logger.info("Product %s flat taxes set to %s", product_id, list(rule_ids))
    return product
