from __future__ import annotations

from ..extensions import db
from ..money import decimal_to_json
from wholesale.time_utils import to_utc_z


class Product(db.Model):
    """
    Product pricing and tax configuration.

    Catalog browsing lives elsewhere; this row carries only what the pricing
    engine reads: five tier prices, the base retail fallback, the ad-valorem
    rate and the ordered flat tax assignments.

    PRICES: all in cents. price1..price5 are intended non-increasing by tier
    but this is not enforced.
    TAX: tax_rate_bps is basis points (4500 = 45% IL tobacco tax); fractional
    rates such as 1012.5 (10.125%) are kept exactly.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)

    # Standard retail price (shown to customers)
    price_cents = db.Column(db.Integer, nullable=True)
    # Internal base price, secondary fallback
    base_price_cents = db.Column(db.Integer, nullable=True)
    cost_cents = db.Column(db.Integer, nullable=True)

    price1_cents = db.Column(db.Integer, nullable=True)
    price2_cents = db.Column(db.Integer, nullable=True)
    price3_cents = db.Column(db.Integer, nullable=True)
    price4_cents = db.Column(db.Integer, nullable=True)
    price5_cents = db.Column(db.Integer, nullable=True)

    tax_rate_bps = db.Column(db.Numeric(10, 4), nullable=False, default=0)

    # IL-TP1 compliance flags (not used in the calculation itself)
    is_tobacco_product = db.Column(db.Boolean, nullable=False, default=False)
    tobacco_product_type = db.Column(db.String(64), nullable=True)  # cigarettes, cigars, pipe_tobacco, ...
    manufacturer_name = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    flat_tax_links = db.relationship(
        "ProductFlatTax",
        back_populates="product",
        order_by="ProductFlatTax.position",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def flat_tax_ids(self) -> list[int]:
        return [link.flat_tax_id for link in self.flat_tax_links]

    def tier_price_cents(self, level: int) -> int | None:
        return getattr(self, f"price{level}_cents", None)

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "price_cents": self.price_cents,
            "base_price_cents": self.base_price_cents,
            "cost_cents": self.cost_cents,
            "price1_cents": self.price1_cents,
            "price2_cents": self.price2_cents,
            "price3_cents": self.price3_cents,
            "price4_cents": self.price4_cents,
            "price5_cents": self.price5_cents,
            "tax_rate_bps": decimal_to_json(self.tax_rate_bps),
            "flat_tax_ids": self.flat_tax_ids,
            "is_tobacco_product": self.is_tobacco_product,
            "tobacco_product_type": self.tobacco_product_type,
            "manufacturer_name": self.manufacturer_name,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class FlatTaxRule(db.Model):
    """
    Per-unit flat tax (e.g. Cook County large cigar tax, $0.60 per cigar).

    STABLE IDENTITY: ids are never reused and rules are deactivated, not
    deleted, so audit records can always be traced back to a rule.
    ELIGIBILITY: customer_tiers (non-empty), optional county and zip code.
    """
    __tablename__ = "flat_tax_rules"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_flat_tax_rules_name"),
        db.CheckConstraint("tax_amount_cents >= 0", name="ck_flat_tax_rules_amount_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Per unit sold, in cents; fractions of a cent allowed (0.5 = $0.005)
    tax_amount_cents = db.Column(db.Numeric(12, 4), nullable=False)
    tax_type = db.Column(db.String(32), nullable=True)  # tobacco, county, state, federal

    # JSON array of tier levels (1-5)
    customer_tiers = db.Column(db.JSON, nullable=False, default=list)
    county_restriction = db.Column(db.String(128), nullable=True)
    zip_code_restriction = db.Column(db.String(16), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<FlatTaxRule id={self.id} name={self.name!r} amount={self.tax_amount_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "tax_amount_cents": decimal_to_json(self.tax_amount_cents),
            "tax_type": self.tax_type,
            "customer_tiers": list(self.customer_tiers or []),
            "county_restriction": self.county_restriction,
            "zip_code_restriction": self.zip_code_restriction,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductFlatTax(db.Model):
    """
    Ordered Product <-> FlatTaxRule assignment.

    Referential integrity makes a missing rule a detectable condition
    instead of a dangling id in a free-form list.
    """
    __tablename__ = "product_flat_taxes"

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), primary_key=True)
    flat_tax_id = db.Column(db.Integer, db.ForeignKey("flat_tax_rules.id"), primary_key=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    product = db.relationship("Product", back_populates="flat_tax_links")
    flat_tax = db.relationship("FlatTaxRule", backref=db.backref("product_links", lazy=True))

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "flat_tax_id": self.flat_tax_id,
            "position": self.position,
        }
