"""HTTP surface: pricing, flat tax admin, price memory, compliance and health."""

from wholesale.models import Order, TaxCalculationAudit
from wholesale.time_utils import reporting_period


def seed(make_customer, make_product, make_flat_tax):
    customer = make_customer(customer_level=2)
    rule = make_flat_tax("Cook County Cigar Tax", 60, customer_tiers=[2, 3])
    product = make_product(
        flat_taxes=[rule], price_cents=1000, tax_rate_bps=1000,
        is_tobacco_product=True, tobacco_product_type="cigars",
    )
    return customer, product, rule


def test_line_endpoint(client, db_session, make_customer, make_product, make_flat_tax):
    customer, product, _ = seed(make_customer, make_product, make_flat_tax)

    resp = client.post("/api/pricing/line", json={"customer_id": customer.id, "product_id": product.id, "quantity": 5})

    assert resp.status_code == 200
    line = resp.get_json()["line"]
    assert (line["line_base_cents"], line["total_tax_cents"], line["line_total_cents"]) == (5000, 800, 5800)


def test_line_endpoint_rejects_bad_quantity(client, db_session, make_customer, make_product, make_flat_tax):
    customer, product, _ = seed(make_customer, make_product, make_flat_tax)
    resp = client.post("/api/pricing/line", json={"customer_id": customer.id, "product_id": product.id, "quantity": 0})
    assert resp.status_code == 400


def test_quote_does_not_persist(client, db_session, make_customer, make_product, make_flat_tax):
    customer, product, _ = seed(make_customer, make_product, make_flat_tax)

    resp = client.post("/api/pricing/quote", json={
        "customer_id": customer.id,
        "lines": [{"product_id": product.id, "quantity": 2}],
    })

    assert resp.status_code == 200
    assert resp.get_json()["quote"]["total_cents"] == 2320
    assert db_session.query(Order).count() == 0


def test_create_order_then_reprice_and_list_audits(client, db_session, make_customer, make_product, make_flat_tax):
    customer, product, rule = seed(make_customer, make_product, make_flat_tax)

    resp = client.post("/api/pricing/orders", json={
        "customer_id": customer.id,
        "lines": [{"product_id": product.id, "quantity": 5}],
        "delivery_fee_cents": 500,
    })
    assert resp.status_code == 201
    body = resp.get_json()
    order_id = body["order"]["id"]
    assert body["order"]["total_cents"] == 6300
    assert body["audit"]["version"] == 1

    resp = client.put(f"/api/flat-taxes/{rule.id}", json={"tax_amount_cents": 80})
    assert resp.status_code == 200

    resp = client.post(f"/api/pricing/orders/{order_id}/reprice")
    assert resp.status_code == 200
    assert resp.get_json()["audit"]["inputs_changed"] is True

    resp = client.get(f"/api/pricing/orders/{order_id}/audits")
    audits = resp.get_json()["audits"]
    assert [a["version"] for a in audits] == [1, 2]
    assert [a["flat_tax_cents"] for a in audits] == [300, 400]
    assert [line["flat_tax_cents"] for line in audits[1]["lines"]] == [400]
    assert audits[1]["lines"][0]["product_id"] == product.id


def test_create_order_validation_error_writes_nothing(client, db_session, make_customer, make_product, make_flat_tax):
    customer, product, _ = seed(make_customer, make_product, make_flat_tax)
    resp = client.post("/api/pricing/orders", json={
        "customer_id": customer.id,
        "lines": [{"product_id": product.id, "quantity": -2}],
    })
    assert resp.status_code == 400
    assert db_session.query(Order).count() == 0
    assert db_session.query(TaxCalculationAudit).count() == 0


def test_create_order_unknown_product_is_404(client, db_session, make_customer):
    customer = make_customer()
    resp = client.post("/api/pricing/orders", json={
        "customer_id": customer.id,
        "lines": [{"product_id": 999, "quantity": 1}],
    })
    assert resp.status_code == 404


def test_audits_for_unknown_order_is_404(client, db_session):
    assert client.get("/api/pricing/orders/999/audits").status_code == 404


def test_flat_tax_crud_and_assignment(client, db_session, make_product):
    resp = client.post("/api/flat-taxes", json={
        "name": "IL Little Cigar", "tax_amount_cents": 45, "customer_tiers": [2, 3, 4, 5],
    })
    assert resp.status_code == 201
    rule_id = resp.get_json()["id"]

    dup = client.post("/api/flat-taxes", json={"name": "IL Little Cigar", "tax_amount_cents": 1, "customer_tiers": [1]})
    assert dup.status_code == 409

    bad = client.post("/api/flat-taxes", json={"name": "Bad", "tax_amount_cents": -5, "customer_tiers": [1]})
    assert bad.status_code == 400

    product = make_product()
    resp = client.put(f"/api/flat-taxes/products/{product.id}", json={"flat_tax_ids": [rule_id]})
    assert resp.status_code == 200
    assert resp.get_json()["flat_tax_ids"] == [rule_id]

    resp = client.delete(f"/api/flat-taxes/{rule_id}")
    assert resp.get_json()["is_active"] is False
    assert client.get("/api/flat-taxes").get_json()["count"] == 0


def test_price_memory_endpoints(client, db_session, make_customer, make_product):
    customer = make_customer()
    product = make_product()

    resp = client.post("/api/price-memory", json={
        "customer_id": customer.id, "product_id": product.id, "price_cents": 875, "reason": "promotion",
    })
    assert resp.status_code == 201
    memory_id = resp.get_json()["id"]

    resp = client.get(f"/api/price-memory/customers/{customer.id}/products/{product.id}")
    assert resp.get_json()["active"]["last_paid_price_cents"] == 875

    bad = client.post("/api/price-memory", json={
        "customer_id": customer.id, "product_id": product.id, "price_cents": 875, "reason": "whim",
    })
    assert bad.status_code == 400

    resp = client.delete(f"/api/price-memory/{memory_id}")
    assert resp.get_json()["is_active"] is False
    assert client.get(f"/api/price-memory/customers/{customer.id}").get_json()["count"] == 0


def test_tobacco_compliance_endpoints(client, db_session, make_customer, make_product, make_flat_tax):
    customer, product, _ = seed(make_customer, make_product, make_flat_tax)
    client.post("/api/pricing/orders", json={
        "customer_id": customer.id,
        "lines": [{"product_id": product.id, "quantity": 5}],
    })
    period = reporting_period()

    resp = client.get(f"/api/compliance/tobacco?period={period}")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["totals"]["total_tobacco_tax_cents"] == 300

    resp = client.post(f"/api/compliance/tobacco/{period}/submit")
    assert resp.get_json()["submitted"] == 1

    assert client.get("/api/compliance/tobacco?period=2026-99").status_code == 400


def test_health_reports_inactive_rule_assignments(client, db_session, make_customer, make_product, make_flat_tax):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "healthy"

    _, _, rule = seed(make_customer, make_product, make_flat_tax)
    client.delete(f"/api/flat-taxes/{rule.id}")

    body = client.get("/api/health").get_json()
    assert body["status"] == "degraded"
    assert body["checks"]["tax_configuration"]["details"]["flat_tax_ids"] == [rule.id]
