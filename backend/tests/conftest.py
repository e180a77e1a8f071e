"""
Pytest fixtures for wholesale pricing tests.

Provides the in-memory test database, a test client, and small factories
for customers, products and flat tax rules.
"""

import pytest
from wholesale import create_app
from wholesale.extensions import db
from wholesale.models import Customer, Product, FlatTaxRule, ProductFlatTax
from wholesale.money import percent_to_bps


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PERCENTAGE_TAX_REQUIRES_FLAT_TAX_FLAG': True,
        'LOYALTY_EARN_BPS': 200,
        'LOYALTY_EXCLUDE_TOBACCO': True,
        'PRICING_COMMIT_ATTEMPTS': 1,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema (Core deletes skip the audit ORM guards)
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_customer(db_session):
    """Factory: make_customer(level=2, apply_flat_tax=True, ...)"""
    counter = {"n": 0}

    def _make(tax_percent=None, **overrides):
        counter["n"] += 1
        fields = {
            "account_number": f"ACCT-{counter['n']:04d}",
            "business_name": f"Corner Store {counter['n']}",
            "customer_level": 2,
            "apply_flat_tax": True,
            "tax_exempt": False,
            "county": "Cook",
            "postal_code": "60601",
        }
        fields.update(overrides)
        if tax_percent is not None:
            fields["tax_rate_bps"] = percent_to_bps(tax_percent)
        customer = Customer(**fields)
        db_session.add(customer)
        db_session.commit()
        return customer

    return _make


@pytest.fixture(scope='function')
def make_flat_tax(db_session):
    """Factory: make_flat_tax(name, tax_amount_cents, customer_tiers=[1..5], ...)"""
    def _make(name, tax_amount_cents, **overrides):
        fields = {
            "name": name,
            "tax_amount_cents": tax_amount_cents,
            "customer_tiers": [1, 2, 3, 4, 5],
            "is_active": True,
        }
        fields.update(overrides)
        rule = FlatTaxRule(**fields)
        db_session.add(rule)
        db_session.commit()
        return rule

    return _make


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(flat_taxes=[rule, ...], tax_percent=8.25, price1_cents=..., ...)"""
    counter = {"n": 0}

    def _make(flat_taxes=(), tax_percent=None, **overrides):
        counter["n"] += 1
        fields = {
            "sku": f"SKU-{counter['n']:04d}",
            "name": f"Product {counter['n']}",
            "price_cents": 1000,
            "tax_rate_bps": 0,
        }
        fields.update(overrides)
        if tax_percent is not None:
            fields["tax_rate_bps"] = percent_to_bps(tax_percent)
        product = Product(**fields)
        db_session.add(product)
        db_session.flush()
        for position, rule in enumerate(flat_taxes):
            db_session.add(ProductFlatTax(product_id=product.id, flat_tax_id=rule.id, position=position))
        db_session.commit()
        return product

    return _make
