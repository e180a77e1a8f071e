from __future__ import annotations

import hashlib
import json

from sqlalchemy import event

from ..extensions import db
from ..validation import ConsistencyError
from wholesale.time_utils import to_utc_z


def canonical_json(data) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def fingerprint_input(calculation_input: dict) -> str:
    """Hash of the pricing inputs, ignoring the clock value they were read at."""
    material = {k: v for k, v in (calculation_input or {}).items() if k != "as_of"}
    return sha256_hex(canonical_json(material))


class TaxCalculationAudit(db.Model):
    """
    Append-only snapshot of one order pricing run.

    IMMUTABLE: rows are inserted once and never updated or deleted. Repricing
    an order inserts the next version for the same order_id.

    calculation_input holds the exact customer, product and flat tax rule
    state the run saw; calculation_result holds every frozen amount. Both are
    serialized from typed dataclasses (see pricing_audit_service).
    """
    __tablename__ = "tax_calculation_audits"
    __table_args__ = (
        db.UniqueConstraint("order_id", "version", name="uq_tax_audits_order_version"),
        db.Index("ix_tax_audits_order_created", "order_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    version = db.Column(db.Integer, nullable=False, default=1)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    customer_level = db.Column(db.Integer, nullable=False)
    apply_flat_tax = db.Column(db.Boolean, nullable=False)
    tax_exempt = db.Column(db.Boolean, nullable=False)

    calculation_input = db.Column(db.JSON, nullable=False)
    calculation_result = db.Column(db.JSON, nullable=False)
    input_fingerprint = db.Column(db.String(64), nullable=False, index=True)
    content_hash = db.Column(db.String(64), nullable=False)

    # Denormalized totals for reporting (all in cents)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    percentage_tax_cents = db.Column(db.Integer, nullable=False)
    flat_tax_cents = db.Column(db.Integer, nullable=False)
    total_tax_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    has_tax_config_warning = db.Column(db.Boolean, nullable=False, default=False)
    is_recalculation = db.Column(db.Boolean, nullable=False, default=False)
    inputs_changed = db.Column(db.Boolean, nullable=False, default=False)
    supersedes_audit_id = db.Column(db.Integer, db.ForeignKey("tax_calculation_audits.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    order = db.relationship("Order", backref=db.backref("tax_audits", lazy=True, order_by="TaxCalculationAudit.version"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "version": self.version,
            "customer_id": self.customer_id,
            "customer_level": self.customer_level,
            "apply_flat_tax": self.apply_flat_tax,
            "tax_exempt": self.tax_exempt,
            "calculation_input": self.calculation_input,
            "calculation_result": self.calculation_result,
            "input_fingerprint": self.input_fingerprint,
            "content_hash": self.content_hash,
            "subtotal_cents": self.subtotal_cents,
            "percentage_tax_cents": self.percentage_tax_cents,
            "flat_tax_cents": self.flat_tax_cents,
            "total_tax_cents": self.total_tax_cents,
            "total_cents": self.total_cents,
            "has_tax_config_warning": self.has_tax_config_warning,
            "is_recalculation": self.is_recalculation,
            "inputs_changed": self.inputs_changed,
            "supersedes_audit_id": self.supersedes_audit_id,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(TaxCalculationAudit, "before_insert")
def _compute_audit_hashes(mapper, connection, target):
    """Fingerprint the input and seal input + result."""
    target.input_fingerprint = fingerprint_input(target.calculation_input)
    target.content_hash = sha256_hex(
        canonical_json({"input": target.calculation_input, "result": target.calculation_result})
    )


@event.listens_for(TaxCalculationAudit, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise ConsistencyError(
        "Tax calculation audits are immutable; reprice the order to record a new version",
        details={"audit_id": target.id, "order_id": target.order_id},
    )


@event.listens_for(TaxCalculationAudit, "before_delete")
def _reject_audit_delete(mapper, connection, target):
    raise ConsistencyError(
        "Tax calculation audits cannot be deleted",
        details={"audit_id": target.id, "order_id": target.order_id},
    )


class TobaccoSaleRecord(db.Model):
    """
    IL-TP1 tobacco sales tracking, one row per order pricing run with tobacco lines.

    Built only from the run's per-line applied flat taxes and tobacco flags.
    """
    __tablename__ = "tobacco_sale_records"
    __table_args__ = (
        db.Index("ix_tobacco_sales_period_status", "reporting_period", "reporting_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    audit_id = db.Column(db.Integer, db.ForeignKey("tax_calculation_audits.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    sale_date = db.Column(db.DateTime(timezone=True), nullable=False)
    reporting_period = db.Column(db.String(7), nullable=False)  # YYYY-MM

    tobacco_lines = db.Column(db.JSON, nullable=False)
    total_tobacco_value_cents = db.Column(db.Integer, nullable=False)
    total_tobacco_tax_cents = db.Column(db.Integer, nullable=False)

    reporting_status = db.Column(db.String(16), nullable=False, default="pending")  # pending, submitted, superseded
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "audit_id": self.audit_id,
            "customer_id": self.customer_id,
            "sale_date": to_utc_z(self.sale_date),
            "reporting_period": self.reporting_period,
            "tobacco_lines": self.tobacco_lines,
            "total_tobacco_value_cents": self.total_tobacco_value_cents,
            "total_tobacco_tax_cents": self.total_tobacco_tax_cents,
            "reporting_status": self.reporting_status,
            "submitted_at": to_utc_z(self.submitted_at) if self.submitted_at else None,
            "created_at": to_utc_z(self.created_at),
        }
