"""Pricing engine schema: catalog pricing, flat tax rules, orders, audits

Revision ID: 20261019_pricing_engine
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_pricing_engine"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
    ]


def upgrade():
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=True),
        sa.Column("base_price_cents", sa.Integer(), nullable=True),
        sa.Column("cost_cents", sa.Integer(), nullable=True),
        sa.Column("price1_cents", sa.Integer(), nullable=True),
        sa.Column("price2_cents", sa.Integer(), nullable=True),
        sa.Column("price3_cents", sa.Integer(), nullable=True),
        sa.Column("price4_cents", sa.Integer(), nullable=True),
        sa.Column("price5_cents", sa.Integer(), nullable=True),
        sa.Column("tax_rate_bps", sa.Numeric(10, 4), nullable=False, server_default=sa.text("0")),
        sa.Column("is_tobacco_product", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("tobacco_product_type", sa.String(64), nullable=True),
        sa.Column("manufacturer_name", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sku"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_active", ["is_active"], unique=False)

    op.create_table(
        "flat_tax_rules",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("tax_amount_cents", sa.Numeric(12, 4), nullable=False),
        sa.Column("tax_type", sa.String(32), nullable=True),
        sa.Column("customer_tiers", sa.JSON(), nullable=False),
        sa.Column("county_restriction", sa.String(128), nullable=True),
        sa.Column("zip_code_restriction", sa.String(16), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_flat_tax_rules_name"),
        sa.CheckConstraint("tax_amount_cents >= 0", name="ck_flat_tax_rules_amount_nonneg"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("flat_tax_rules", schema=None) as batch_op:
        batch_op.create_index("ix_flat_tax_rules_is_active", ["is_active"], unique=False)

    op.create_table(
        "product_flat_taxes",
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("flat_tax_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["flat_tax_id"], ["flat_tax_rules.id"]),
        sa.PrimaryKeyConstraint("product_id", "flat_tax_id"),
    )

    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("account_number", sa.String(64), nullable=False),
        sa.Column("business_name", sa.String(255), nullable=False),
        sa.Column("customer_level", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("apply_flat_tax", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("tax_exempt", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("tax_exemption_number", sa.String(64), nullable=True),
        sa.Column("county", sa.String(128), nullable=True),
        sa.Column("postal_code", sa.String(16), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("loyalty_points_balance", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("account_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("customers", schema=None) as batch_op:
        batch_op.create_index("ix_customers_active", ["is_active"], unique=False)

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.String(64), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="PRICED"),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("percentage_tax_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("flat_tax_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_tax_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("delivery_fee_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("loyalty_points_earned", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("has_tax_config_warning", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_by", sa.String(128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("repriced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_number", name="uq_orders_order_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("orders", schema=None) as batch_op:
        batch_op.create_index("ix_orders_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_orders_status", ["status"], unique=False)
        batch_op.create_index("ix_orders_customer_created", ["customer_id", "created_at"], unique=False)

    op.create_table(
        "order_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("line_number", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("price_source", sa.String(16), nullable=False),
        sa.Column("tier_used", sa.Integer(), nullable=True),
        sa.Column("line_base_cents", sa.Integer(), nullable=False),
        sa.Column("tax_rate_bps", sa.Numeric(10, 4), nullable=False, server_default=sa.text("0")),
        sa.Column("percentage_tax_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("flat_tax_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_tax_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("line_total_cents", sa.Integer(), nullable=False),
        sa.Column("applied_flat_taxes", sa.JSON(), nullable=False),
        sa.Column("is_tobacco_product", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("tobacco_product_type", sa.String(64), nullable=True),
        sa.Column("tax_config_warning", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_id", "line_number", name="uq_order_lines_order_line"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("order_lines", schema=None) as batch_op:
        batch_op.create_index("ix_order_lines_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_order_lines_product_id", ["product_id"], unique=False)

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(32), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_type", name="uq_doc_sequences_type"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "customer_price_memory",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("last_paid_price_cents", sa.Integer(), nullable=False),
        sa.Column("standard_price_at_time_cents", sa.Integer(), nullable=True),
        sa.Column("reason", sa.String(32), nullable=False, server_default="manual_adjustment"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("set_by", sa.String(128), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_manually_set", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("superseded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("customer_price_memory", schema=None) as batch_op:
        batch_op.create_index("ix_customer_price_memory_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_customer_price_memory_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_customer_price_memory_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_customer_price_memory_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_price_memory_customer_product", ["customer_id", "product_id"], unique=False)
        batch_op.create_index(
            "ix_price_memory_customer_product_active", ["customer_id", "product_id", "is_active"], unique=False
        )

    op.create_table(
        "tax_calculation_audits",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("customer_level", sa.Integer(), nullable=False),
        sa.Column("apply_flat_tax", sa.Boolean(), nullable=False),
        sa.Column("tax_exempt", sa.Boolean(), nullable=False),
        sa.Column("calculation_input", sa.JSON(), nullable=False),
        sa.Column("calculation_result", sa.JSON(), nullable=False),
        sa.Column("input_fingerprint", sa.String(64), nullable=False),
        sa.Column("content_hash", sa.String(64), nullable=False),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False),
        sa.Column("percentage_tax_cents", sa.Integer(), nullable=False),
        sa.Column("flat_tax_cents", sa.Integer(), nullable=False),
        sa.Column("total_tax_cents", sa.Integer(), nullable=False),
        sa.Column("total_cents", sa.Integer(), nullable=False),
        sa.Column("has_tax_config_warning", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_recalculation", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("inputs_changed", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("supersedes_audit_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.ForeignKeyConstraint(["supersedes_audit_id"], ["tax_calculation_audits.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_id", "version", name="uq_tax_audits_order_version"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("tax_calculation_audits", schema=None) as batch_op:
        batch_op.create_index("ix_tax_calculation_audits_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_tax_calculation_audits_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_tax_calculation_audits_input_fingerprint", ["input_fingerprint"], unique=False)
        batch_op.create_index("ix_tax_calculation_audits_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_tax_audits_order_created", ["order_id", "created_at"], unique=False)

    op.create_table(
        "tobacco_sale_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("audit_id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("sale_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reporting_period", sa.String(7), nullable=False),
        sa.Column("tobacco_lines", sa.JSON(), nullable=False),
        sa.Column("total_tobacco_value_cents", sa.Integer(), nullable=False),
        sa.Column("total_tobacco_tax_cents", sa.Integer(), nullable=False),
        sa.Column("reporting_status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.ForeignKeyConstraint(["audit_id"], ["tax_calculation_audits.id"]),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("tobacco_sale_records", schema=None) as batch_op:
        batch_op.create_index("ix_tobacco_sale_records_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_tobacco_sale_records_audit_id", ["audit_id"], unique=False)
        batch_op.create_index("ix_tobacco_sale_records_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_tobacco_sales_period_status", ["reporting_period", "reporting_status"], unique=False)


def downgrade():
    op.drop_table("tobacco_sale_records")
    op.drop_table("tax_calculation_audits")
    op.drop_table("customer_price_memory")
    op.drop_table("document_sequences")
    op.drop_table("order_lines")
    op.drop_table("orders")
    op.drop_table("customers")
    op.drop_table("product_flat_taxes")
    op.drop_table("flat_tax_rules")
    op.drop_table("products")
