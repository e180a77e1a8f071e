"""Downstream consumers of a pricing result: loyalty accrual and IL-TP1 tobacco records."""

import pytest

from wholesale.models import Customer, TobaccoSaleRecord
from wholesale.services import order_pricing_service, tobacco_compliance_service
from wholesale.services.loyalty_service import calculate_points_earned, eligible_subtotal_cents
from wholesale.services.order_pricing_service import OrderRequest, OrderLineRequest, aggregate
from wholesale.services.tax_calculator import AppliedFlatTax, LineTaxResult
from wholesale.time_utils import reporting_period
from wholesale.validation import ValidationError


def line(base, *, tobacco=False, flat=0, product_id=1):
    applied = (AppliedFlatTax(id=1, name="Cigar Tax", unit_amount_cents=flat, amount_cents=flat),) if flat else ()
    return LineTaxResult(
        product_id=product_id,
        quantity=1,
        unit_price_cents=base,
        price_source="base",
        tier_used=None,
        line_base_cents=base,
        tax_rate_bps=0,
        percentage_tax_cents=0,
        flat_tax_cents=flat,
        applied_flat_taxes=applied,
        total_tax_cents=flat,
        line_total_cents=base + flat,
        is_tobacco_product=tobacco,
        tobacco_product_type="cigars" if tobacco else None,
    )


def test_points_are_two_percent_of_non_tobacco_subtotal():
    result = aggregate(1, [line(5000), line(3000, tobacco=True, flat=60)])
    assert eligible_subtotal_cents(result) == 5000
    assert calculate_points_earned(result, 200) == 100


def test_points_round_down():
    result = aggregate(1, [line(4999)])
    assert calculate_points_earned(result, 200) == 99


def test_tobacco_can_be_included_by_config():
    result = aggregate(1, [line(5000), line(5000, tobacco=True)])
    assert calculate_points_earned(result, 200, exclude_tobacco=False) == 200


def test_zero_rate_earns_nothing():
    assert calculate_points_earned(aggregate(1, [line(5000)]), 0) == 0


def test_tobacco_summary_uses_line_results_only():
    result = aggregate(1, [line(100), line(2000, tobacco=True, flat=120, product_id=9)])
    summary = result.tobacco

    assert summary.has_tobacco
    assert summary.total_value_cents == 2000
    assert summary.total_tax_cents == 120
    assert summary.lines[0]["line_number"] == 2
    assert summary.lines[0]["product_id"] == 9
    assert summary.lines[0]["applied_flat_taxes"][0]["amount_cents"] == 120


@pytest.mark.parametrize("period", ["2026-13", "2026-1", "26-10", "October", ""])
def test_bad_reporting_period_rejected(db_session, period):
    with pytest.raises(ValidationError):
        tobacco_compliance_service.list_tobacco_sales(period)


def test_mark_submitted_only_touches_pending_records_of_period(db_session, make_customer, make_product):
    customer = make_customer()
    cigars = make_product(price_cents=1000, is_tobacco_product=True, tobacco_product_type="cigars")
    for _ in range(2):
        order_pricing_service.create_priced_order(
            OrderRequest(customer_id=customer.id, lines=(OrderLineRequest(product_id=cigars.id, quantity=1),))
        )

    period = reporting_period()
    assert tobacco_compliance_service.period_totals(period)["record_count"] == 2
    assert tobacco_compliance_service.mark_submitted(period) == 2
    assert tobacco_compliance_service.mark_submitted(period) == 0
    assert {r.reporting_status for r in db_session.query(TobaccoSaleRecord).all()} == {"submitted"}


def test_priced_order_moves_loyalty_balance_only(db_session, make_customer, make_product):
    customer = make_customer()
    product = make_product(price_cents=5000)

    order_pricing_service.create_priced_order(
        OrderRequest(customer_id=customer.id, lines=(OrderLineRequest(product_id=product.id, quantity=1),))
    )

    data = db_session.get(Customer, customer.id).to_dict()
    assert data["loyalty_points_balance"] == 100
    assert "credit_limit_cents" not in data
    assert "current_balance_cents" not in data
    assert not hasattr(Customer, "current_balance_cents")
