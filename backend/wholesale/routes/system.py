# backend/wholesale/routes/system.py
"""
System health endpoint.

Checks database connectivity and flags tax configuration problems
(products pointing at inactive flat tax rules) as "degraded".
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Customer, Product, FlatTaxRule, ProductFlatTax
from wholesale.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def _latency_ms(started: float) -> float:
    return round((time.time() - started) * 1000, 2)


def check_database_health() -> dict:
    """Row counts for the tables every pricing run reads."""
    started = time.time()
    try:
        counts = {
            "customers": db.session.query(Customer).count(),
            "products": db.session.query(Product).count(),
            "flat_tax_rules": db.session.query(FlatTaxRule).count(),
        }
    except Exception:
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": _latency_ms(started), "error": "Database error"}

    return {"status": "healthy", "latency_ms": _latency_ms(started), "details": counts}


def check_tax_configuration_health() -> dict:
    """Products still assigned to inactive flat tax rules price with warnings."""
    started = time.time()
    try:
        stale_links = (
            db.session.query(ProductFlatTax)
            .join(FlatTaxRule, FlatTaxRule.id == ProductFlatTax.flat_tax_id)
            .filter(FlatTaxRule.is_active.is_(False))
            .all()
        )
    except Exception:
        current_app.logger.exception("Tax configuration health check failed")
        return {"status": "unhealthy", "latency_ms": _latency_ms(started), "error": "Tax configuration error"}

    if not stale_links:
        return {"status": "healthy", "latency_ms": _latency_ms(started)}

    return {
        "status": "degraded",
        "latency_ms": _latency_ms(started),
        "warning": "Products reference inactive flat tax rules",
        "details": {
            "product_ids": sorted({link.product_id for link in stale_links}),
            "flat_tax_ids": sorted({link.flat_tax_id for link in stale_links}),
        },
    }


@system_bp.get("/api/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (degraded still prices orders)
    - 503: one or more checks unhealthy
    """
    started = time.time()
    checks = {
        "database": check_database_health(),
        "tax_configuration": check_tax_configuration_health(),
    }
    statuses = {check["status"] for check in checks.values()}

    if "unhealthy" in statuses:
        overall_status, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": _latency_ms(started),
        "checks": checks,
    }, http_status
