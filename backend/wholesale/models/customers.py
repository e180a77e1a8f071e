from __future__ import annotations

from ..extensions import db
from wholesale.time_utils import to_utc_z


PRICE_MEMORY_REASONS = (
    "manual_adjustment",
    "loyalty_discount",
    "bulk_discount",
    "promotion",
    "standard",
)


class Customer(db.Model):
    """
    Wholesale customer account as seen by the pricing engine.

    customer_level (1-5) selects the tier price and flat tax eligibility.
    apply_flat_tax is the per-account eligibility gate (tier 2+ in practice).
    county / postal_code feed jurisdiction-restricted flat taxes.

    loyalty_points_balance is credited in the same transaction that prices an order.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_number = db.Column(db.String(64), nullable=False, unique=True)
    business_name = db.Column(db.String(255), nullable=False)

    customer_level = db.Column(db.Integer, nullable=False, default=1)
    apply_flat_tax = db.Column(db.Boolean, nullable=False, default=False)
    tax_exempt = db.Column(db.Boolean, nullable=False, default=False)
    tax_exemption_number = db.Column(db.String(64), nullable=True)

    county = db.Column(db.String(128), nullable=True)
    postal_code = db.Column(db.String(16), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    loyalty_points_balance = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Customer id={self.id} account={self.account_number!r} level={self.customer_level}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_number": self.account_number,
            "business_name": self.business_name,
            "customer_level": self.customer_level,
            "apply_flat_tax": self.apply_flat_tax,
            "tax_exempt": self.tax_exempt,
            "tax_exemption_number": self.tax_exemption_number,
            "county": self.county,
            "postal_code": self.postal_code,
            "is_active": self.is_active,
            "loyalty_points_balance": self.loyalty_points_balance,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class CustomerPriceMemory(db.Model):
    """
    Remembered per-customer price for a product.

    Two kinds of row share this table:
    - is_manually_set=True: a staff-set price. While active and unexpired it
      overrides tiered pricing; a newer manual row for the same (customer,
      product) pair supersedes the previous one.
    - is_manually_set=False: purchase history written for every ordinary
      order line. Never consulted by the price resolver.
    Rows are never deleted so price history stays reviewable.
    """
    __tablename__ = "customer_price_memory"
    __table_args__ = (
        db.Index("ix_price_memory_customer_product", "customer_id", "product_id"),
        db.Index("ix_price_memory_customer_product_active", "customer_id", "product_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    last_paid_price_cents = db.Column(db.Integer, nullable=False)
    # Standard (tier) price when this record was set, for comparison
    standard_price_at_time_cents = db.Column(db.Integer, nullable=True)

    reason = db.Column(db.String(32), nullable=False, default="manual_adjustment")
    notes = db.Column(db.Text, nullable=True)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    set_by = db.Column(db.String(128), nullable=True)

    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    is_manually_set = db.Column(db.Boolean, nullable=False, default=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    superseded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    customer = db.relationship("Customer", backref=db.backref("price_memories", lazy=True))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "product_id": self.product_id,
            "last_paid_price_cents": self.last_paid_price_cents,
            "standard_price_at_time_cents": self.standard_price_at_time_cents,
            "reason": self.reason,
            "notes": self.notes,
            "order_id": self.order_id,
            "set_by": self.set_by,
            "expires_at": to_utc_z(self.expires_at) if self.expires_at else None,
            "is_manually_set": self.is_manually_set,
            "is_active": self.is_active,
            "superseded_at": to_utc_z(self.superseded_at) if self.superseded_at else None,
            "created_at": to_utc_z(self.created_at),
        }
