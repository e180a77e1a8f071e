# Overview: Per-customer remembered prices; newest record supersedes, history is kept.

from __future__ import annotations

import logging
from datetime import datetime

from ..extensions import db
from ..models import Customer, Product, CustomerPriceMemory, PRICE_MEMORY_REASONS
from ..validation import ValidationError, NotFoundError, require_cents
from wholesale.time_utils import utcnow, to_naive_utc

logger = logging.getLogger(__name__)


def _check_reason(reason: str | None) -> str:
    reason = (reason or "manual_adjustment").strip()
    if reason not in PRICE_MEMORY_REASONS:
        raise ValidationError(
            f"reason must be one of: {', '.join(PRICE_MEMORY_REASONS)}",
            details={"reason": reason},
        )
    return reason


def _active_rows(customer_id: int, product_id: int):
    return (
        db.session.query(CustomerPriceMemory)
        .filter(
            CustomerPriceMemory.customer_id == customer_id,
            CustomerPriceMemory.product_id == product_id,
            CustomerPriceMemory.is_active.is_(True),
            CustomerPriceMemory.is_manually_set.is_(True),
        )
        .all()
    )


def record_price_memory(
    *,
    customer_id: int,
    product_id: int,
    price_cents: int,
    reason: str | None = "manual_adjustment",
    notes: str | None = None,
    standard_price_cents: int | None = None,
    order_id: int | None = None,
    set_by: str | None = None,
    expires_at: datetime | None = None,
    commit: bool = False,
) -> CustomerPriceMemory:
    """
    Remember the price a customer pays for a product.

    Previous active rows for the pair are deactivated (superseded), never
    deleted. Flushes only unless commit=True so the pipeline can write this
    in the order transaction.
    """
    for name, value in (("customer_id", customer_id), ("product_id", product_id)):
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValidationError(f"{name} must be an integer", details={name: value})
    require_cents("price_cents", price_cents)
    require_cents("standard_price_cents", standard_price_cents, allow_none=True)
    reason = _check_reason(reason)

    if db.session.get(Customer, customer_id) is None:
        raise NotFoundError("Customer not found", details={"customer_id": customer_id})
    if db.session.get(Product, product_id) is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})

    expires_at = to_naive_utc(expires_at)
    now = utcnow()
    if expires_at is not None and expires_at <= now:
        raise ValidationError("expires_at must be in the future", details={"expires_at": str(expires_at)})

    for row in _active_rows(customer_id, product_id):
        row.is_active = False
        row.superseded_at = now

    memory = CustomerPriceMemory(
        customer_id=customer_id,
        product_id=product_id,
        last_paid_price_cents=price_cents,
        standard_price_at_time_cents=standard_price_cents,
        reason=reason,
        notes=(notes or "").strip() or None,
        order_id=order_id,
        set_by=set_by,
        expires_at=expires_at,
        is_active=True,
        is_manually_set=True,
        created_at=now,
    )
    db.session.add(memory)
    db.session.flush()

    logger.info(
        "Price memory set: customer=%s product=%s price=%s reason=%s",
        customer_id, product_id, price_cents, reason,
    )
    if commit:
        db.session.commit()
    return memory


def record_purchase(
    *,
    customer_id: int,
    product_id: int,
    order_id: int,
    price_cents: int,
    standard_price_cents: int | None = None,
) -> CustomerPriceMemory:
    """
    Log what a customer paid on an order line.

    Purchase rows are history only: they never supersede a manual price and
    the resolver ignores them. Flushes only; the caller owns the transaction.
    """
    memory = CustomerPriceMemory(
        customer_id=customer_id,
        product_id=product_id,
        last_paid_price_cents=price_cents,
        standard_price_at_time_cents=standard_price_cents,
        reason="standard",
        order_id=order_id,
        is_active=True,
        is_manually_set=False,
        created_at=utcnow(),
    )
    db.session.add(memory)
    db.session.flush()
    logger.debug(
        "Purchase recorded: customer=%s product=%s price=%s order=%s",
        customer_id, product_id, price_cents, order_id,
    )
    return memory


def get_last_purchase_price(customer_id: int, product_id: int) -> CustomerPriceMemory | None:
    """Newest row of either kind: what the customer last paid or was quoted by staff."""
    return (
        db.session.query(CustomerPriceMemory)
        .filter_by(customer_id=customer_id, product_id=product_id)
        .order_by(CustomerPriceMemory.created_at.desc(), CustomerPriceMemory.id.desc())
        .first()
    )


def get_active_price_memory(customer_id: int, product_id: int, as_of: datetime | None = None) -> CustomerPriceMemory | None:
    """Newest active, unexpired manual record for the pair, or None."""
    as_of = to_naive_utc(as_of) or utcnow()
    rows = (
        db.session.query(CustomerPriceMemory)
        .filter(
            CustomerPriceMemory.customer_id == customer_id,
            CustomerPriceMemory.product_id == product_id,
            CustomerPriceMemory.is_active.is_(True),
            CustomerPriceMemory.is_manually_set.is_(True),
        )
        .order_by(CustomerPriceMemory.created_at.desc(), CustomerPriceMemory.id.desc())
        .all()
    )
    if not rows:
        return None
    newest = rows[0]
    expires_at = to_naive_utc(newest.expires_at)
    if expires_at is not None and expires_at <= as_of:
        return None
    return newest


def get_price_history(customer_id: int, product_id: int) -> list[CustomerPriceMemory]:
    return (
        db.session.query(CustomerPriceMemory)
        .filter_by(customer_id=customer_id, product_id=product_id)
        .order_by(CustomerPriceMemory.created_at.desc(), CustomerPriceMemory.id.desc())
        .all()
    )


def deactivate_price_memory(memory_id: int) -> CustomerPriceMemory:
    """Stop honoring a remembered price; the customer falls back to tier pricing."""
    memory = db.session.get(CustomerPriceMemory, memory_id)
    if memory is None:
        raise NotFoundError("Price memory not found", details={"memory_id": memory_id})
    if memory.is_active:
        memory.is_active = False
        memory.superseded_at = utcnow()
        db.session.commit()
        logger.info("Price memory %s deactivated", memory_id)
    return memory


def list_manual_prices(customer_id: int) -> list[CustomerPriceMemory]:
    """Active remembered prices for a customer, one per product."""
    return (
        db.session.query(CustomerPriceMemory)
        .filter(
            CustomerPriceMemory.customer_id == customer_id,
            CustomerPriceMemory.is_active.is_(True),
            CustomerPriceMemory.is_manually_set.is_(True),
        )
        .order_by(CustomerPriceMemory.product_id.asc(), CustomerPriceMemory.created_at.desc())
        .all()
    )
