# Overview: Flask API routes for flat tax administration; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..models import FlatTaxRule
from ..services import flat_tax_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_flat_tax,
    ValidationError,
    ConflictError,
    NotFoundError,
)

FLAT_TAX_POLICY = ModelValidationPolicy(
    writable_fields=set(flat_tax_service.FLAT_TAX_MUTABLE_FIELDS),
    required_on_create={"name", "tax_amount_cents", "customer_tiers"},
)

flat_taxes_bp = Blueprint("flat_taxes", __name__, url_prefix="/api/flat-taxes")


@flat_taxes_bp.get("")
def list_flat_taxes_route():
    include_inactive = request.args.get("include_inactive", "false").lower() in {"1", "true", "yes"}
    rules = flat_tax_service.list_flat_taxes(include_inactive=include_inactive)
    return jsonify({"items": [r.to_dict() for r in rules], "count": len(rules)}), 200


@flat_taxes_bp.post("")
def create_flat_tax_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=FlatTaxRule, payload=payload, policy=FLAT_TAX_POLICY, partial=False)
        enforce_rules_flat_tax(patch)
        rule = flat_tax_service.create_flat_tax(patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    return jsonify(rule.to_dict()), 201


@flat_taxes_bp.put("/<int:rule_id>")
def update_flat_tax_route(rule_id: int):
    """
    Edit a rule. Affects future pricing runs only; existing audits keep the
    amounts they recorded.
    """
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=FlatTaxRule, payload=payload, policy=FLAT_TAX_POLICY, partial=True)
        enforce_rules_flat_tax(patch)
        rule = flat_tax_service.update_flat_tax(rule_id=rule_id, patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except NotFoundError:
        return jsonify({"error": "Flat tax not found"}), 404

    return jsonify(rule.to_dict()), 200


@flat_taxes_bp.delete("/<int:rule_id>")
def deactivate_flat_tax_route(rule_id: int):
    """Soft delete: rules are deactivated, never removed."""
    try:
        rule = flat_tax_service.deactivate_flat_tax(rule_id)
    except NotFoundError:
        return jsonify({"error": "Flat tax not found"}), 404
    return jsonify(rule.to_dict()), 200


@flat_taxes_bp.put("/products/<int:product_id>")
def assign_product_flat_taxes_route(product_id: int):
    """Body: {"flat_tax_ids": [ordered rule ids]}"""
    payload = request.get_json(silent=True) or {}
    try:
        product = flat_tax_service.assign_flat_taxes(product_id, payload.get("flat_tax_ids", []))
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError:
        return jsonify({"error": "Product not found"}), 404
    except Exception:
        current_app.logger.exception("Failed to assign flat taxes to product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"product_id": product.id, "flat_tax_ids": product.flat_tax_ids}), 200
