# Overview: Append-only tax calculation audit records; versioned per order.

"""
Pricing audit recorder.

Invariants:
- One row per pricing run. Rows are inserted, never updated or deleted
  (enforced by ORM listeners on TaxCalculationAudit).
- Re-running pricing for an order writes version N+1. When the inputs differ
  from the previous version the new row is flagged inputs_changed; either
  way it is a recalculation event visible to staff.
- The audit row is written inside the caller's transaction (flush only), so
  order, lines and audit commit or roll back together.
- Once written, an audit is authoritative for its order regardless of later
  product or flat tax rule edits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func

from ..extensions import db
from ..models import TaxCalculationAudit
from ..models.audit import fingerprint_input
from .tax_calculator import LineTaxResult

logger = logging.getLogger(__name__)

AUDIT_SCHEMA_VERSION = 1


@dataclass(frozen=True)
class AuditLineInput:
    line_number: int
    quantity: int
    product: dict
    price_memory: dict | None = None
    unit_price_override_cents: int | None = None

    def to_dict(self) -> dict:
        return {
            "line_number": self.line_number,
            "quantity": self.quantity,
            "product": self.product,
            "price_memory": self.price_memory,
            "unit_price_override_cents": self.unit_price_override_cents,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AuditLineInput":
        return cls(
            line_number=int(data["line_number"]),
            quantity=int(data["quantity"]),
            product=dict(data["product"]),
            price_memory=data.get("price_memory"),
            unit_price_override_cents=data.get("unit_price_override_cents"),
        )


@dataclass(frozen=True)
class AuditInput:
    """Exact customer, product and flat tax rule state one run consumed."""
    customer: dict
    lines: tuple
    rules: tuple
    percentage_requires_flat_tax_flag: bool
    as_of: str | None = None

    def to_dict(self) -> dict:
        return {
            "kind": "tax_calculation_input",
            "schema_version": AUDIT_SCHEMA_VERSION,
            "customer": self.customer,
            "lines": [line.to_dict() for line in self.lines],
            "rules": list(self.rules),
            "percentage_requires_flat_tax_flag": self.percentage_requires_flat_tax_flag,
            "as_of": self.as_of,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AuditInput":
        if data.get("kind") != "tax_calculation_input":
            raise ValueError("Not a tax calculation input payload")
        return cls(
            customer=dict(data["customer"]),
            lines=tuple(AuditLineInput.from_dict(line) for line in data["lines"]),
            rules=tuple(data.get("rules", [])),
            percentage_requires_flat_tax_flag=bool(data["percentage_requires_flat_tax_flag"]),
            as_of=data.get("as_of"),
        )


@dataclass(frozen=True)
class AuditResult:
    """Every frozen amount the run produced."""
    lines: tuple
    subtotal_cents: int
    percentage_tax_cents: int
    flat_tax_cents: int
    total_tax_cents: int
    total_cents: int
    has_tax_config_warning: bool = False
    flat_taxes_applied: tuple = ()

    @classmethod
    def from_pricing(cls, result) -> "AuditResult":
        return cls(
            lines=tuple(result.lines),
            subtotal_cents=result.subtotal_cents,
            percentage_tax_cents=result.percentage_tax_cents,
            flat_tax_cents=result.flat_tax_cents,
            total_tax_cents=result.total_tax_cents,
            total_cents=result.total_cents,
            has_tax_config_warning=result.has_tax_config_warning,
            flat_taxes_applied=tuple(result.flat_tax_totals()),
        )

    def to_dict(self) -> dict:
        return {
            "kind": "tax_calculation_result",
            "schema_version": AUDIT_SCHEMA_VERSION,
            "lines": [line.to_dict() for line in self.lines],
            "subtotal_cents": self.subtotal_cents,
            "percentage_tax_cents": self.percentage_tax_cents,
            "flat_tax_cents": self.flat_tax_cents,
            "total_tax_cents": self.total_tax_cents,
            "total_cents": self.total_cents,
            "has_tax_config_warning": self.has_tax_config_warning,
            "flat_taxes_applied": list(self.flat_taxes_applied),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AuditResult":
        if data.get("kind") != "tax_calculation_result":
            raise ValueError("Not a tax calculation result payload")
        return cls(
            lines=tuple(LineTaxResult.from_dict(line) for line in data["lines"]),
            subtotal_cents=int(data["subtotal_cents"]),
            percentage_tax_cents=int(data["percentage_tax_cents"]),
            flat_tax_cents=int(data["flat_tax_cents"]),
            total_tax_cents=int(data["total_tax_cents"]),
            total_cents=int(data["total_cents"]),
            has_tax_config_warning=bool(data.get("has_tax_config_warning", False)),
            flat_taxes_applied=tuple(data.get("flat_taxes_applied", [])),
        )


def get_audit(order_id: int) -> list[TaxCalculationAudit]:
    """All audit versions for an order, oldest first. Read-only."""
    return (
        db.session.query(TaxCalculationAudit)
        .filter_by(order_id=order_id)
        .order_by(TaxCalculationAudit.version.asc())
        .all()
    )


def get_latest_audit(order_id: int) -> TaxCalculationAudit | None:
    return (
        db.session.query(TaxCalculationAudit)
        .filter_by(order_id=order_id)
        .order_by(TaxCalculationAudit.version.desc())
        .first()
    )


def _next_version(order_id: int) -> int:
    current = (
        db.session.query(func.max(TaxCalculationAudit.version))
        .filter(TaxCalculationAudit.order_id == order_id)
        .scalar()
    )
    return (current or 0) + 1


def record(
    order_id: int,
    audit_input: AuditInput,
    audit_result: AuditResult,
    *,
    commit: bool = False,
) -> TaxCalculationAudit:
    """
    Append one audit version for an order.

    Never overwrites: a second call for the same order creates version 2,
    linked to the version it supersedes.
    """
    input_payload = audit_input.to_dict()
    result_payload = audit_result.to_dict()

    previous = get_latest_audit(order_id)
    fingerprint = fingerprint_input(input_payload)

    customer = audit_input.customer
    audit = TaxCalculationAudit(
        order_id=order_id,
        version=_next_version(order_id),
        customer_id=customer["id"],
        customer_level=customer["customer_level"],
        apply_flat_tax=customer["apply_flat_tax"],
        tax_exempt=customer["tax_exempt"],
        calculation_input=input_payload,
        calculation_result=result_payload,
        input_fingerprint=fingerprint,
        subtotal_cents=audit_result.subtotal_cents,
        percentage_tax_cents=audit_result.percentage_tax_cents,
        flat_tax_cents=audit_result.flat_tax_cents,
        total_tax_cents=audit_result.total_tax_cents,
        total_cents=audit_result.total_cents,
        has_tax_config_warning=audit_result.has_tax_config_warning,
        is_recalculation=previous is not None,
        inputs_changed=previous is not None and previous.input_fingerprint != fingerprint,
        supersedes_audit_id=previous.id if previous is not None else None,
    )
    db.session.add(audit)
    db.session.flush()

    if audit.is_recalculation:
        logger.info(
            "Recalculated order %s: audit v%s supersedes v%s (inputs_changed=%s)",
            order_id, audit.version, previous.version, audit.inputs_changed,
        )
    if audit.has_tax_config_warning:
        logger.warning("Order %s priced with tax configuration warnings (audit %s)", order_id, audit.id)

    if commit:
        db.session.commit()
    return audit


def decode_audit(audit: TaxCalculationAudit) -> tuple[AuditInput, AuditResult]:
    """Typed view of a stored audit for admin review and compliance export."""
    return (
        AuditInput.from_dict(audit.calculation_input),
        AuditResult.from_dict(audit.calculation_result),
    )


def audit_to_dict(audit: TaxCalculationAudit) -> dict:
    """
    Review form of one audit version: the stored row plus, per line, what
    was consumed next to what was charged.
    """
    audit_input, audit_result = decode_audit(audit)
    data = audit.to_dict()
    data["lines"] = [
        {
            "line_number": line_input.line_number,
            "product_id": line_input.product.get("id"),
            "product_name": line_input.product.get("name"),
            "quantity": line_input.quantity,
            "unit_price_cents": line_result.unit_price_cents,
            "price_source": line_result.price_source,
            "percentage_tax_cents": line_result.percentage_tax_cents,
            "flat_tax_cents": line_result.flat_tax_cents,
            "total_tax_cents": line_result.total_tax_cents,
            "line_total_cents": line_result.line_total_cents,
            "warnings": list(line_result.warnings),
        }
        for line_input, line_result in zip(audit_input.lines, audit_result.lines)
    ]
    data["flat_taxes_applied"] = list(audit_result.flat_taxes_applied)
    return data
