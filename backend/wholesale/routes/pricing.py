# Overview: Flask API routes for order pricing; parses input and returns JSON responses.

"""
Order pricing routes.

POST /line and /quote never write. POST /orders prices and persists an
order with its first audit version; /orders/<id>/reprice appends the next
version. Audits are read-only over HTTP.
"""

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..models import Order
from ..services import order_pricing_service, pricing_audit_service
from ..services.order_pricing_service import OrderRequest
from ..validation import ValidationError, NotFoundError, require_quantity

pricing_bp = Blueprint("pricing", __name__, url_prefix="/api/pricing")


def _error(exc, status: int):
    return jsonify({"error": str(exc), "details": getattr(exc, "details", {})}), status


@pricing_bp.post("/line")
def compute_line_route():
    """Price and tax a single line for checkout / POS entry."""
    data = request.get_json(silent=True) or {}
    try:
        customer_id = data.get("customer_id")
        product_id = data.get("product_id")
        if not isinstance(customer_id, int) or not isinstance(product_id, int):
            raise ValidationError("customer_id and product_id must be integers")
        quantity = require_quantity(data.get("quantity"))

        line = order_pricing_service.compute_line_for(
            customer_id,
            product_id,
            quantity,
            unit_price_override_cents=data.get("unit_price_override_cents"),
        )
        return jsonify({"line": line.to_dict()}), 200

    except ValidationError as e:
        return _error(e, 400)
    except NotFoundError as e:
        return _error(e, 404)
    except Exception:
        current_app.logger.exception("Failed to compute line")
        return jsonify({"error": "Internal server error"}), 500


@pricing_bp.post("/quote")
def quote_route():
    data = request.get_json(silent=True) or {}
    try:
        result = order_pricing_service.quote_order(OrderRequest.from_dict(data))
        return jsonify({"quote": result.to_dict()}), 200

    except ValidationError as e:
        return _error(e, 400)
    except NotFoundError as e:
        return _error(e, 404)
    except Exception:
        current_app.logger.exception("Failed to quote order")
        return jsonify({"error": "Internal server error"}), 500


@pricing_bp.post("/orders")
def create_order_route():
    """
    Create a priced order.

    Body: {customer_id, lines: [{product_id, quantity, unit_price_override_cents?,
    override_reason?, override_notes?}], delivery_fee_cents?, set_by?}
    """
    data = request.get_json(silent=True) or {}
    try:
        order, result, audit = order_pricing_service.create_priced_order(OrderRequest.from_dict(data))
        return jsonify({
            "order": order.to_dict(include_lines=True),
            "pricing": result.to_dict(),
            "audit": audit.to_dict(),
        }), 201

    except ValidationError as e:
        return _error(e, 400)
    except NotFoundError as e:
        return _error(e, 404)
    except Exception:
        current_app.logger.exception("Failed to create priced order")
        return jsonify({"error": "Internal server error"}), 500


@pricing_bp.get("/orders/<int:order_id>")
def get_order_route(order_id: int):
    order = db.session.get(Order, order_id)
    if order is None:
        return jsonify({"error": "Order not found"}), 404
    return jsonify({"order": order.to_dict(include_lines=True)}), 200


@pricing_bp.post("/orders/<int:order_id>/reprice")
def reprice_order_route(order_id: int):
    """Recalculate against current configuration; appends a new audit version."""
    try:
        order, result, audit = order_pricing_service.reprice_order(order_id)
        return jsonify({
            "order": order.to_dict(include_lines=True),
            "pricing": result.to_dict(),
            "audit": audit.to_dict(),
        }), 200

    except ValidationError as e:
        return _error(e, 400)
    except NotFoundError as e:
        return _error(e, 404)
    except Exception:
        current_app.logger.exception("Failed to reprice order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500


@pricing_bp.get("/orders/<int:order_id>/audits")
def list_audits_route(order_id: int):
    if db.session.get(Order, order_id) is None:
        return jsonify({"error": "Order not found"}), 404
    audits = pricing_audit_service.get_audit(order_id)
    return jsonify({
        "audits": [pricing_audit_service.audit_to_dict(a) for a in audits],
        "count": len(audits),
    }), 200
