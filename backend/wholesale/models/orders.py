from __future__ import annotations

from ..extensions import db
from ..money import decimal_to_json
from wholesale.time_utils import to_utc_z


class Order(db.Model):
    """
    Priced order header.

    Totals are copied from the pricing run that created (or last repriced)
    the order. The authoritative record of how they were computed is the
    TaxCalculationAudit history, not this row.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.Index("ix_orders_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(64), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="PRICED", index=True)

    # All amounts in cents
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    percentage_tax_cents = db.Column(db.Integer, nullable=False, default=0)
    flat_tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_tax_cents = db.Column(db.Integer, nullable=False, default=0)
    # Applied by the caller, outside the pricing engine
    delivery_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    loyalty_points_earned = db.Column(db.Integer, nullable=False, default=0)
    has_tax_config_warning = db.Column(db.Boolean, nullable=False, default=False)

    created_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    repriced_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    lines = db.relationship(
        "OrderLine",
        back_populates="order",
        order_by="OrderLine.line_number",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "percentage_tax_cents": self.percentage_tax_cents,
            "flat_tax_cents": self.flat_tax_cents,
            "total_tax_cents": self.total_tax_cents,
            "delivery_fee_cents": self.delivery_fee_cents,
            "total_cents": self.total_cents,
            "loyalty_points_earned": self.loyalty_points_earned,
            "has_tax_config_warning": self.has_tax_config_warning,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "repriced_at": to_utc_z(self.repriced_at) if self.repriced_at else None,
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class OrderLine(db.Model):
    """Priced line item; line_number preserves the caller-supplied order."""
    __tablename__ = "order_lines"
    __table_args__ = (
        db.UniqueConstraint("order_id", "line_number", name="uq_order_lines_order_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    price_source = db.Column(db.String(16), nullable=False)  # price_memory, tier, base, override
    tier_used = db.Column(db.Integer, nullable=True)

    line_base_cents = db.Column(db.Integer, nullable=False)
    tax_rate_bps = db.Column(db.Numeric(10, 4), nullable=False, default=0)
    percentage_tax_cents = db.Column(db.Integer, nullable=False, default=0)
    flat_tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_tax_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    # Frozen [{id, name, unit_amount_cents, amount_cents}] at pricing time
    applied_flat_taxes = db.Column(db.JSON, nullable=False, default=list)

    is_tobacco_product = db.Column(db.Boolean, nullable=False, default=False)
    tobacco_product_type = db.Column(db.String(64), nullable=True)
    tax_config_warning = db.Column(db.Boolean, nullable=False, default=False)

    order = db.relationship("Order", back_populates="lines")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "line_number": self.line_number,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "price_source": self.price_source,
            "tier_used": self.tier_used,
            "line_base_cents": self.line_base_cents,
            "tax_rate_bps": decimal_to_json(self.tax_rate_bps),
            "percentage_tax_cents": self.percentage_tax_cents,
            "flat_tax_cents": self.flat_tax_cents,
            "total_tax_cents": self.total_tax_cents,
            "line_total_cents": self.line_total_cents,
            "applied_flat_taxes": list(self.applied_flat_taxes or []),
            "is_tobacco_product": self.is_tobacco_product,
            "tobacco_product_type": self.tobacco_product_type,
            "tax_config_warning": self.tax_config_warning,
        }


class DocumentSequence(db.Model):
    """
    Atomic per-type document sequences.

    One row per document type; next_number is bumped with a single UPDATE
    so concurrent orders never share a number.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", name="uq_doc_sequences_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
