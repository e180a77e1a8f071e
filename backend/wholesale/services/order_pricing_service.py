# Overview: Order pricing pipeline; snapshot, price lines, aggregate, then persist order + audit atomically.

"""
Order pricing pipeline.

Stages, in order and without branching:
    RESOLVE_PRICE -> COMPUTE_PERCENT_TAX -> COMPUTE_FLAT_TAX -> AGGREGATE -> AUDIT

The first four run over an immutable PricingSnapshot (see price_order, which
never touches the database). AUDIT and persistence run in one transaction:
order header, lines, audit row, price memories for staff overrides, the
tobacco sale record and loyalty points commit together or not at all.

Aggregation:
    subtotal  = sum(line_base)
    total_tax = sum(line total_tax)   # never recomputed at order level
    total     = subtotal + total_tax  # delivery fee is added by the order, not here
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Iterable

from flask import current_app

from ..extensions import db
from ..models import Order, OrderLine, PRICE_MEMORY_REASONS
from ..validation import ValidationError, NotFoundError, require_cents, require_quantity
from . import pricing_audit_service
from .concurrency import run_with_retry, lock_for_update
from .document_service import next_order_number
from .loyalty_service import calculate_points_earned, credit_points
from .price_memory_service import record_price_memory, record_purchase
from .price_resolver import PriceResolver, SOURCE_OVERRIDE
from .pricing_audit_service import AuditInput, AuditLineInput, AuditResult
from .snapshots import CustomerSnapshot, ProductSnapshot, PricingSnapshot, load_pricing_snapshot
from .tax_calculator import LineTaxResult, TaxCalculator
from .tax_rule_registry import TaxRuleRegistry
from .tobacco_compliance_service import TobaccoSummary, build_tobacco_summary, record_tobacco_sale
from wholesale.time_utils import utcnow, to_utc_z

logger = logging.getLogger(__name__)


# =============================================================================
# Requests
# =============================================================================

def _require_id(name: str, value) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ValidationError(f"{name} must be a positive integer", details={name: value})
    return value


@dataclass(frozen=True)
class OrderLineRequest:
    product_id: int
    quantity: int
    unit_price_override_cents: int | None = None
    override_reason: str | None = None
    override_notes: str | None = None

    @classmethod
    def from_dict(cls, data) -> "OrderLineRequest":
        if not isinstance(data, dict):
            raise ValidationError("Each line must be an object")
        override = require_cents(
            "unit_price_override_cents", data.get("unit_price_override_cents"), allow_none=True
        )
        reason = data.get("override_reason")
        if reason is not None and reason not in PRICE_MEMORY_REASONS:
            raise ValidationError(
                f"override_reason must be one of: {', '.join(PRICE_MEMORY_REASONS)}",
                details={"override_reason": reason},
            )
        return cls(
            product_id=_require_id("product_id", data.get("product_id")),
            quantity=require_quantity(data.get("quantity")),
            unit_price_override_cents=override,
            override_reason=reason,
            override_notes=data.get("override_notes"),
        )


@dataclass(frozen=True)
class OrderRequest:
    customer_id: int
    lines: tuple
    delivery_fee_cents: int = 0
    set_by: str | None = None

    @classmethod
    def from_dict(cls, payload) -> "OrderRequest":
        if not isinstance(payload, dict):
            raise ValidationError("Invalid JSON payload")
        raw_lines = payload.get("lines")
        if not isinstance(raw_lines, list) or not raw_lines:
            raise ValidationError("lines must be a non-empty list")
        return cls(
            customer_id=_require_id("customer_id", payload.get("customer_id")),
            lines=tuple(OrderLineRequest.from_dict(line) for line in raw_lines),
            delivery_fee_cents=require_cents("delivery_fee_cents", payload.get("delivery_fee_cents", 0)),
            set_by=payload.get("set_by"),
        )

    @property
    def product_ids(self) -> list[int]:
        return [line.product_id for line in self.lines]


@dataclass(frozen=True)
class PricingLine:
    """One line as the pure stages see it: a product snapshot, never a row."""
    product: ProductSnapshot
    quantity: int
    unit_price_override_cents: int | None = None


# =============================================================================
# Result
# =============================================================================

@dataclass(frozen=True)
class OrderPricingResult:
    customer_id: int
    lines: tuple
    subtotal_cents: int
    percentage_tax_cents: int
    flat_tax_cents: int
    total_tax_cents: int
    total_cents: int
    has_tax_config_warning: bool = False
    tobacco: TobaccoSummary = field(default_factory=lambda: TobaccoSummary((), 0, 0))

    @property
    def warnings(self) -> list[str]:
        return [w for line in self.lines for w in line.warnings]

    def flat_tax_totals(self) -> list[dict]:
        """Per-rule flat tax across the order, in first-seen order."""
        totals: dict[int, dict] = {}
        for line in self.lines:
            for tax in line.applied_flat_taxes:
                entry = totals.setdefault(tax.id, {"id": tax.id, "name": tax.name, "amount_cents": 0})
                entry["amount_cents"] += tax.amount_cents
        return list(totals.values())

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "lines": [line.to_dict() for line in self.lines],
            "subtotal_cents": self.subtotal_cents,
            "percentage_tax_cents": self.percentage_tax_cents,
            "flat_tax_cents": self.flat_tax_cents,
            "total_tax_cents": self.total_tax_cents,
            "total_cents": self.total_cents,
            "has_tax_config_warning": self.has_tax_config_warning,
            "warnings": self.warnings,
            "flat_taxes_applied": self.flat_tax_totals(),
            "tobacco": self.tobacco.to_dict(),
        }


# =============================================================================
# Pure stages
# =============================================================================

def aggregate(customer_id: int, line_results: Iterable[LineTaxResult]) -> OrderPricingResult:
    lines = tuple(line_results)
    subtotal = sum(line.line_base_cents for line in lines)
    total_tax = sum(line.total_tax_cents for line in lines)
    priced = OrderPricingResult(
        customer_id=customer_id,
        lines=lines,
        subtotal_cents=subtotal,
        percentage_tax_cents=sum(line.percentage_tax_cents for line in lines),
        flat_tax_cents=sum(line.flat_tax_cents for line in lines),
        total_tax_cents=total_tax,
        total_cents=subtotal + total_tax,
        has_tax_config_warning=any(line.tax_config_warning for line in lines),
    )
    return replace(priced, tobacco=build_tobacco_summary(priced))


def price_order(
    customer: CustomerSnapshot,
    lines: Iterable[PricingLine],
    registry: TaxRuleRegistry,
    resolver: PriceResolver,
) -> OrderPricingResult:
    """
    Price every line in caller order, then aggregate.

    Pure: reads only its arguments. Raises ValidationError (no usable price,
    bad quantity, empty order); rule reference problems become line warnings.
    """
    lines = list(lines)
    if not lines:
        raise ValidationError("An order needs at least one line")

    calculator = TaxCalculator(resolver, registry)
    results = [
        calculator.compute_line(
            customer,
            line.product,
            line.quantity,
            unit_price_override_cents=line.unit_price_override_cents,
        )
        for line in lines
    ]
    return aggregate(customer.id, results)


# =============================================================================
# Snapshot wiring
# =============================================================================

def _pricing_settings() -> dict:
    cfg = current_app.config
    return {
        "percentage_requires_flat_tax_flag": bool(cfg.get("PERCENTAGE_TAX_REQUIRES_FLAT_TAX_FLAG", True)),
        "loyalty_earn_bps": int(cfg.get("LOYALTY_EARN_BPS", 200)),
        "loyalty_exclude_tobacco": bool(cfg.get("LOYALTY_EXCLUDE_TOBACCO", True)),
        "attempts": int(cfg.get("PRICING_COMMIT_ATTEMPTS", 3)),
    }


def _engine_for(snapshot: PricingSnapshot, settings: dict) -> tuple[TaxRuleRegistry, PriceResolver]:
    registry = TaxRuleRegistry(
        snapshot.rules,
        percentage_requires_flat_tax_flag=settings["percentage_requires_flat_tax_flag"],
    )
    resolver = PriceResolver(snapshot.price_memories, as_of=snapshot.as_of)
    return registry, resolver


def _pricing_lines(snapshot: PricingSnapshot, requests: Iterable[OrderLineRequest]) -> list[PricingLine]:
    return [
        PricingLine(
            product=snapshot.product(req.product_id),
            quantity=req.quantity,
            unit_price_override_cents=req.unit_price_override_cents,
        )
        for req in requests
    ]


def _audit_input(
    snapshot: PricingSnapshot,
    lines: list[PricingLine],
    registry: TaxRuleRegistry,
    resolver: PriceResolver,
) -> AuditInput:
    audit_lines = []
    for number, line in enumerate(lines, start=1):
        memory = None
        if line.unit_price_override_cents is None:
            memory = resolver.price_memory_for(snapshot.customer, line.product)
        audit_lines.append(AuditLineInput(
            line_number=number,
            quantity=line.quantity,
            product=line.product.to_dict(),
            price_memory=memory.to_dict() if memory is not None else None,
            unit_price_override_cents=line.unit_price_override_cents,
        ))
    return AuditInput(
        customer=snapshot.customer.to_dict(),
        lines=tuple(audit_lines),
        rules=tuple(rule.to_dict() for rule in registry.rules),
        percentage_requires_flat_tax_flag=registry.percentage_requires_flat_tax_flag,
        as_of=to_utc_z(snapshot.as_of),
    )


def compute_line_for(
    customer_id: int,
    product_id: int,
    quantity: int,
    *,
    unit_price_override_cents: int | None = None,
) -> LineTaxResult:
    """Single-line price and tax, for checkout and POS entry. No writes."""
    require_quantity(quantity)
    snapshot = load_pricing_snapshot(customer_id, [product_id])
    registry, resolver = _engine_for(snapshot, _pricing_settings())
    return TaxCalculator(resolver, registry).compute_line(
        snapshot.customer,
        snapshot.product(product_id),
        quantity,
        unit_price_override_cents=unit_price_override_cents,
    )


def quote_order(request: OrderRequest) -> OrderPricingResult:
    """Price an order without persisting anything (checkout preview)."""
    snapshot = load_pricing_snapshot(request.customer_id, request.product_ids)
    registry, resolver = _engine_for(snapshot, _pricing_settings())
    return price_order(snapshot.customer, _pricing_lines(snapshot, request.lines), registry, resolver)


# =============================================================================
# Persistence
# =============================================================================

def _line_row(line_number: int, result: LineTaxResult) -> dict:
    return {
        "line_number": line_number,
        "product_id": result.product_id,
        "quantity": result.quantity,
        "unit_price_cents": result.unit_price_cents,
        "price_source": result.price_source,
        "tier_used": result.tier_used,
        "line_base_cents": result.line_base_cents,
        "tax_rate_bps": result.tax_rate_bps,
        "percentage_tax_cents": result.percentage_tax_cents,
        "flat_tax_cents": result.flat_tax_cents,
        "total_tax_cents": result.total_tax_cents,
        "line_total_cents": result.line_total_cents,
        "applied_flat_taxes": [t.to_dict() for t in result.applied_flat_taxes],
        "is_tobacco_product": result.is_tobacco_product,
        "tobacco_product_type": result.tobacco_product_type,
        "tax_config_warning": result.tax_config_warning,
    }


def _apply_totals(order: Order, result: OrderPricingResult, delivery_fee_cents: int, points: int) -> None:
    order.subtotal_cents = result.subtotal_cents
    order.percentage_tax_cents = result.percentage_tax_cents
    order.flat_tax_cents = result.flat_tax_cents
    order.total_tax_cents = result.total_tax_cents
    order.delivery_fee_cents = delivery_fee_cents
    order.total_cents = result.total_cents + delivery_fee_cents
    order.loyalty_points_earned = points
    order.has_tax_config_warning = result.has_tax_config_warning


def _remember_prices(
    order: Order,
    request: OrderRequest,
    snapshot: PricingSnapshot,
    resolver: PriceResolver,
    result: OrderPricingResult,
) -> None:
    """
    Staff-entered prices become the customer's remembered price for that
    product; every other line is logged as purchase history only.
    """
    for req, line_result in zip(request.lines, result.lines):
        product = snapshot.product(req.product_id)
        standard = resolver.standard_price(snapshot.customer, product)
        if req.unit_price_override_cents is None:
            record_purchase(
                customer_id=request.customer_id,
                product_id=req.product_id,
                order_id=order.id,
                price_cents=line_result.unit_price_cents,
                standard_price_cents=standard.unit_price_cents,
            )
            continue
        record_price_memory(
            customer_id=request.customer_id,
            product_id=req.product_id,
            price_cents=req.unit_price_override_cents,
            reason=req.override_reason or "manual_adjustment",
            notes=req.override_notes,
            standard_price_cents=standard.unit_price_cents,
            order_id=order.id,
            set_by=request.set_by,
        )


def create_priced_order(request: OrderRequest):
    """
    Price and persist an order.

    Returns (order, result, audit). Everything is written in one transaction;
    a ValidationError (or any other failure) leaves no order, lines, audit,
    price memory, tobacco record or loyalty change behind.
    """
    settings = _pricing_settings()

    def _op():
        snapshot = load_pricing_snapshot(request.customer_id, request.product_ids)
        registry, resolver = _engine_for(snapshot, settings)
        lines = _pricing_lines(snapshot, request.lines)
        result = price_order(snapshot.customer, lines, registry, resolver)
        points = calculate_points_earned(
            result, settings["loyalty_earn_bps"], settings["loyalty_exclude_tobacco"]
        )

        order = Order(
            order_number=next_order_number(),
            customer_id=request.customer_id,
            status="PRICED",
            created_by=request.set_by,
        )
        _apply_totals(order, result, request.delivery_fee_cents, points)
        for number, line_result in enumerate(result.lines, start=1):
            order.lines.append(OrderLine(**_line_row(number, line_result)))
        db.session.add(order)
        db.session.flush()

        audit = pricing_audit_service.record(
            order.id,
            _audit_input(snapshot, lines, registry, resolver),
            AuditResult.from_pricing(result),
        )
        _remember_prices(order, request, snapshot, resolver, result)
        record_tobacco_sale(
            order_id=order.id,
            audit_id=audit.id,
            customer_id=request.customer_id,
            summary=result.tobacco,
        )
        credit_points(request.customer_id, points)

        db.session.commit()
        return order, result, audit

    order, result, audit = run_with_retry(_op, attempts=settings["attempts"])
    logger.info(
        "Priced order %s for customer %s: subtotal=%s tax=%s total=%s audit=v%s",
        order.order_number, order.customer_id, order.subtotal_cents,
        order.total_tax_cents, order.total_cents, audit.version,
    )
    return order, result, audit


def reprice_order(order_id: int):
    """
    Recompute an existing order against the current catalog and tax rules.

    Writes the next audit version (a recalculation event) and updates the
    order header and lines in the same transaction. Earlier audit versions
    are never touched. Staff overrides stored on the order are kept.

    Returns (order, result, audit).
    """
    settings = _pricing_settings()

    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise NotFoundError("Order not found", details={"order_id": order_id})

        existing = list(order.lines)
        requests = [
            OrderLineRequest(
                product_id=row.product_id,
                quantity=row.quantity,
                unit_price_override_cents=row.unit_price_cents if row.price_source == SOURCE_OVERRIDE else None,
            )
            for row in existing
        ]

        snapshot = load_pricing_snapshot(order.customer_id, [r.product_id for r in requests])
        registry, resolver = _engine_for(snapshot, settings)
        lines = _pricing_lines(snapshot, requests)
        result = price_order(snapshot.customer, lines, registry, resolver)
        points = calculate_points_earned(
            result, settings["loyalty_earn_bps"], settings["loyalty_exclude_tobacco"]
        )

        points_delta = points - (order.loyalty_points_earned or 0)
        _apply_totals(order, result, order.delivery_fee_cents or 0, points)
        order.repriced_at = utcnow()
        for row, line_result in zip(existing, result.lines):
            for key, value in _line_row(row.line_number, line_result).items():
                setattr(row, key, value)
        db.session.flush()

        audit = pricing_audit_service.record(
            order.id,
            _audit_input(snapshot, lines, registry, resolver),
            AuditResult.from_pricing(result),
        )
        record_tobacco_sale(
            order_id=order.id,
            audit_id=audit.id,
            customer_id=order.customer_id,
            summary=result.tobacco,
        )
        credit_points(order.customer_id, points_delta)

        db.session.commit()
        return order, result, audit

    order, result, audit = run_with_retry(_op, attempts=settings["attempts"])
    logger.info(
        "Repriced order %s: total=%s audit=v%s inputs_changed=%s",
        order.order_number, order.total_cents, audit.version, audit.inputs_changed,
    )
    return order, result, audit
