import logging
from decimal import Decimal

import pytest

from checkout.api.errors import http_error
from checkout.domain.errors import IllegalTransition
from tests.conftest import ADDRESS


@pytest.fixture
def shop(client):
    for product_id, sku, qty in [("P-1", "JEANS-SLIM", 10), ("P-2", "SOCKS-3PK", 5)]:
        resp = client.post("/inventory/", json={"product_id": product_id, "sku": sku, "quantity_available": qty})
        assert resp.status_code == 201
    return client


def _checkout(client, customer_id="cust-1", lines=(("P-1", 2),)):
    for product_id, qty in lines:
        assert client.post(f"/carts/{customer_id}/items", json={"product_id": product_id, "quantity": qty}).status_code == 200
    resp = client.post("/orders/", json={"customer_id": customer_id, "shipping_address": ADDRESS, "payment_method": "CARD"})
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_cart_endpoints(shop):
    assert shop.get("/carts/cust-1").status_code == 404

    resp = shop.post("/carts/cust-1/items", json={"product_id": "P-1", "quantity": 2, "size": "32"})
    assert resp.status_code == 200
    cart = resp.json()
    assert cart["items"][0]["variants"] == {"size": "32"}
    assert Decimal(cart["totals"]["total"]) == Decimal("6608.00")

    resp = shop.put("/carts/cust-1/items/P-1", json={"quantity": 1})
    assert resp.json()["items"][0]["quantity"] == 1

    assert shop.post("/carts/cust-1/items", json={"product_id": "P-1", "quantity": 0}).status_code == 422
    assert shop.put("/carts/cust-1/items/P-9", json={"quantity": 1}).status_code == 404
    assert shop.post("/carts/cust-1/items", json={"product_id": "P-3", "quantity": 1}).status_code == 400

    assert shop.delete("/carts/cust-1").json()["items"] == []


def test_checkout_and_pay(shop, notifier):
    order = _checkout(shop)
    assert order["status"] == "awaiting_payment"

    payment = shop.post(f"/payments/order/{order['id']}/initiate").json()
    assert payment["status"] == "initiated"

    callback = {"correlation_id": payment["correlation_id"], "status": "success", "amount": payment["amount"]}
    result = shop.post(f"/payments/{payment['payment_id']}/verify", json=callback).json()
    assert result["order_status"] == "paid"

    repeat = shop.post(f"/payments/{payment['payment_id']}/verify", json=callback)
    assert repeat.status_code == 200
    assert repeat.json()["order_status"] == "paid"

    assert shop.get(f"/orders/{order['id']}").json()["status"] == "paid"
    stock = shop.get("/inventory/P-1").json()
    assert (stock["quantity_available"], stock["quantity_reserved"]) == (8, 0)

    attempts = shop.get(f"/payments/{payment['payment_id']}/attempts").json()
    assert [a["kind"] for a in attempts] == ["initiate", "verify"]

    assert shop.post(f"/orders/{order['id']}/fulfill").json()["status"] == "fulfilled"
    assert [e[0] for e in notifier.events] == ["order_created", "payment_succeeded"]


def test_checkout_errors(shop):
    shop.post("/carts/empty")
    resp = shop.post("/orders/", json={"customer_id": "empty", "shipping_address": ADDRESS, "payment_method": "CARD"})
    assert resp.status_code == 400

    shop.post("/carts/cust-1/items", json={"product_id": "P-2", "quantity": 9})
    resp = shop.post("/orders/", json={"customer_id": "cust-1", "shipping_address": ADDRESS, "payment_method": "CARD"})
    assert resp.status_code == 409
    assert resp.json()["detail"]["shortfalls"][0]["product_id"] == "P-2"

    assert shop.get("/carts/cust-1/validation").json()[0]["available"] == 5


def test_cancel_and_payment_errors(shop, gateway):
    order = _checkout(shop)
    payment = shop.get(f"/payments/order/{order['id']}").json()

    bogus = {"correlation_id": "nope", "status": "success", "amount": "1.00"}
    assert shop.post(f"/payments/{payment['payment_id']}/verify", json=bogus).status_code == 409

    gateway.configure(available=False)
    resp = shop.post(f"/payments/order/{order['id']}/initiate")
    assert resp.status_code == 502
    assert resp.json()["detail"]["retryable"] is True

    resp = shop.post(f"/orders/{order['id']}/cancel", json={"reason": "changed my mind"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"
    assert shop.post(f"/orders/{order['id']}/cancel", json={"reason": "again"}).status_code == 409
    assert shop.get("/payments/PAY-missing").status_code == 404


def test_simulated_payment(shop):
    order = _checkout(shop)
    payment = shop.get(f"/payments/order/{order['id']}").json()

    result = shop.post(f"/payments/{payment['payment_id']}/simulate/failure").json()

    assert result["order_status"] == "payment_failed"
    assert result["retryable"] is True


def test_inventory_endpoints(shop):
    assert shop.post("/inventory/P-2/lock", json={"quantity": 2}).json()["quantity_locked"] == 2
    assert shop.post("/inventory/P-2/unlock", json={"quantity": 2}).json()["quantity_locked"] == 0
    assert shop.post("/inventory/P-2/adjust", json={"delta": -6, "reason": "shrinkage"}).status_code == 400
    assert shop.get("/inventory/stats").json()["total_records"] == 2
    assert [a["product_id"] for a in shop.get("/inventory/low-stock").json()] == ["P-2", "P-1"]
    assert shop.get("/inventory/NOPE").status_code == 404
    assert shop.post("/inventory/", json={"product_id": "P-1", "sku": "DUP-1"}).status_code == 409


def test_audit_endpoints(shop):
    _checkout(shop)
    assert shop.post("/inventory/audit/scan").json() == []
    assert shop.post("/inventory/audit/findings/1/repair").status_code == 404


def test_rejected_state_change_is_logged(caplog):
    with caplog.at_level(logging.WARNING, logger="checkout.api.errors"):
        exc = http_error(IllegalTransition("Order cannot move from cancelled to paid"))

    assert exc.status_code == 409
    assert any(
        r.levelno == logging.WARNING and "cancelled to paid" in r.getMessage() for r in caplog.records
    )
