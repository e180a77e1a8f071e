# Overview: Flask API routes for customer price memory; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify

from ..services import price_memory_service
from ..validation import ValidationError, NotFoundError
from wholesale.time_utils import parse_iso_datetime

price_memory_bp = Blueprint("price_memory", __name__, url_prefix="/api/price-memory")


@price_memory_bp.post("")
def record_price_memory_route():
    """
    Remember a customer's price for a product.

    Body: {customer_id, product_id, price_cents, reason?, notes?, expires_at?, set_by?}
    """
    data = request.get_json(silent=True) or {}
    try:
        try:
            expires_at = parse_iso_datetime(data.get("expires_at"))
        except (TypeError, ValueError, AttributeError):
            raise ValidationError("expires_at must be an ISO-8601 datetime")

        memory = price_memory_service.record_price_memory(
            customer_id=data.get("customer_id"),
            product_id=data.get("product_id"),
            price_cents=data.get("price_cents"),
            reason=data.get("reason"),
            notes=data.get("notes"),
            standard_price_cents=data.get("standard_price_cents"),
            set_by=data.get("set_by"),
            expires_at=expires_at,
            commit=True,
        )
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e), "details": e.details}), 404

    return jsonify(memory.to_dict()), 201


@price_memory_bp.get("/customers/<int:customer_id>")
def list_manual_prices_route(customer_id: int):
    rows = price_memory_service.list_manual_prices(customer_id)
    return jsonify({"items": [r.to_dict() for r in rows], "count": len(rows)}), 200


@price_memory_bp.get("/customers/<int:customer_id>/products/<int:product_id>")
def price_history_route(customer_id: int, product_id: int):
    active = price_memory_service.get_active_price_memory(customer_id, product_id)
    history = price_memory_service.get_price_history(customer_id, product_id)
    last = price_memory_service.get_last_purchase_price(customer_id, product_id)
    return jsonify({
        "active": active.to_dict() if active else None,
        "last_purchase": last.to_dict() if last else None,
        "history": [r.to_dict() for r in history],
    }), 200


@price_memory_bp.delete("/<int:memory_id>")
def deactivate_price_memory_route(memory_id: int):
    try:
        memory = price_memory_service.deactivate_price_memory(memory_id)
    except NotFoundError:
        return jsonify({"error": "Price memory not found"}), 404
    return jsonify(memory.to_dict()), 200
