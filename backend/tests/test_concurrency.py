"""Retry behavior of pricing writes when another writer wins a race."""

import pytest
from sqlalchemy.exc import IntegrityError

from wholesale.models import TaxCalculationAudit
from wholesale.services import order_pricing_service, pricing_audit_service
from wholesale.services.concurrency import run_with_retry
from wholesale.services.order_pricing_service import OrderRequest, OrderLineRequest


def test_reprice_retries_when_audit_version_was_taken(db_session, make_customer, make_product, monkeypatch):
    customer = make_customer()
    product = make_product(price_cents=500)
    order, _, _ = order_pricing_service.create_priced_order(
        OrderRequest(customer_id=customer.id, lines=(OrderLineRequest(product_id=product.id, quantity=2),))
    )

    real_next_version = pricing_audit_service._next_version
    calls = []

    def _next_version_seen_before_other_writer(order_id):
        # First pass reads the version a concurrent reprice has already committed
        calls.append(order_id)
        return 1 if len(calls) == 1 else real_next_version(order_id)

    monkeypatch.setattr(pricing_audit_service, "_next_version", _next_version_seen_before_other_writer)

    _, _, audit = order_pricing_service.reprice_order(order.id)

    assert len(calls) == 2
    assert audit.version == 2
    assert [a.version for a in db_session.query(TaxCalculationAudit).order_by(TaxCalculationAudit.version)] == [1, 2]


def test_unrelated_integrity_error_is_not_retried(db_session):
    calls = []

    def _duplicate_rule_name():
        calls.append(1)
        raise IntegrityError("INSERT INTO flat_tax_rules", {}, Exception("UNIQUE constraint failed: flat_tax_rules.name"))

    with pytest.raises(IntegrityError):
        run_with_retry(_duplicate_rule_name, attempts=3, backoff_base=0)

    assert len(calls) == 1


def test_audit_version_conflict_gives_up_after_attempts(db_session):
    calls = []

    def _always_taken():
        calls.append(1)
        raise IntegrityError(
            "INSERT INTO tax_calculation_audits", {},
            Exception("duplicate key value violates unique constraint \"uq_tax_audits_order_version\""),
        )

    with pytest.raises(IntegrityError):
        run_with_retry(_always_taken, attempts=2, backoff_base=0)

    assert len(calls) == 2
