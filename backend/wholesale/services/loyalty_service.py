# Overview: Loyalty points accrual from a priced order.

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Customer
from ..money import BPS_DENOMINATOR
from ..validation import NotFoundError
from .concurrency import lock_for_update

logger = logging.getLogger(__name__)


def eligible_subtotal_cents(result, *, exclude_tobacco: bool = True) -> int:
    """Pre-tax merchandise value that earns points. Taxes and delivery never earn."""
    return sum(
        line.line_base_cents
        for line in result.lines
        if not (exclude_tobacco and line.is_tobacco_product)
    )


def calculate_points_earned(result, earn_bps: int, exclude_tobacco: bool = True) -> int:
    """
    Points for an order; 1 point is worth 1 cent.

    Example: 200 bps on a $50.00 non-tobacco subtotal -> 100 points.
    """
    if earn_bps <= 0:
        return 0
    eligible = eligible_subtotal_cents(result, exclude_tobacco=exclude_tobacco)
    return max(0, eligible * earn_bps // BPS_DENOMINATOR)


def credit_points(customer_id: int, points: int) -> int:
    """Add points to the customer's balance inside the caller's transaction."""
    customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
    if customer is None:
        raise NotFoundError("Customer not found", details={"customer_id": customer_id})
    if points:
        customer.loyalty_points_balance = (customer.loyalty_points_balance or 0) + points
        db.session.flush()
        logger.debug("Credited %s loyalty points to customer %s", points, customer_id)
    return customer.loyalty_points_balance
