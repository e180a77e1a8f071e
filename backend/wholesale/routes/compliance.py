# Overview: Flask API routes for IL-TP1 tobacco reporting; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify

from ..services import tobacco_compliance_service
from ..validation import ValidationError
from wholesale.time_utils import reporting_period

compliance_bp = Blueprint("compliance", __name__, url_prefix="/api/compliance/tobacco")


@compliance_bp.get("")
def list_tobacco_sales_route():
    """Query params: period=YYYY-MM (defaults to the current month), status?"""
    period = request.args.get("period") or reporting_period()
    status = request.args.get("status")
    try:
        records = tobacco_compliance_service.list_tobacco_sales(period, status=status)
        totals = tobacco_compliance_service.period_totals(period)
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400

    return jsonify({"items": [r.to_dict() for r in records], "totals": totals}), 200


@compliance_bp.post("/<period>/submit")
def submit_period_route(period: str):
    try:
        count = tobacco_compliance_service.mark_submitted(period)
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    return jsonify({"reporting_period": period, "submitted": count}), 200
