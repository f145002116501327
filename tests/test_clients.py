from decimal import Decimal

import pytest
import requests

from checkout.domain.errors import NotFoundError, GatewayError
from checkout.services import gateway_client, product_client
from checkout.services.gateway_client import HttpPaymentGateway, SimulatedGateway, generate_reference
from checkout.services.product_client import ProductClient


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self.payload = payload or {}

    def json(self):
        return self.payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code}", response=self)


def test_product_client_maps_catalog_fields(monkeypatch):
    monkeypatch.setattr(
        product_client.requests,
        "get",
        lambda url, timeout: FakeResponse(payload={"id": "P-1", "sku": "JEANS-SLIM", "name": "Jeans", "price": "2800.00"}),
    )

    product = ProductClient("http://catalog").fetch_product("P-1")

    assert product == {"id": "P-1", "sku": "JEANS-SLIM", "name": "Jeans", "price": "2800.00", "is_active": True}


def test_product_client_does_not_retry_missing_products(monkeypatch):
    calls = []

    def fake_get(url, timeout):
        calls.append(url)
        return FakeResponse(404)

    monkeypatch.setattr(product_client.requests, "get", fake_get)

    with pytest.raises(NotFoundError):
        ProductClient("http://catalog").fetch_product("P-404")
    assert calls == ["http://catalog/products/P-404"]


def test_product_client_retries_server_errors(monkeypatch):
    responses = [FakeResponse(503), FakeResponse(payload={"sku": "S", "name": "N", "price": "1"})]
    monkeypatch.setattr(product_client.requests, "get", lambda url, timeout: responses.pop(0))

    assert ProductClient("http://catalog").fetch_product("P-1")["sku"] == "S"


def test_http_gateway_calls(monkeypatch):
    seen = []

    def fake_request(method, url, json=None, timeout=None):
        seen.append((method, url, json))
        if url.endswith("/refunds"):
            return FakeResponse(payload={"refund_id": "REF1"})
        if method == "GET":
            return FakeResponse(payload={"status": "success", "amount": "10.50"})
        return FakeResponse(payload={"correlation_id": "ch_1"})

    monkeypatch.setattr(gateway_client.requests, "request", fake_request)
    gw = HttpPaymentGateway("http://gw/")

    assert gw.create_charge(Decimal("10.50"), "INR", "CARD", "PAY1") == "ch_1"
    assert gw.get_charge_status("ch_1") == {"status": "success", "amount": Decimal("10.50")}
    assert gw.create_refund("ch_1", Decimal("10.50"), "customer request") == "REF1"
    assert seen[0] == (
        "POST",
        "http://gw/charges",
        {"amount": "10.50", "currency": "INR", "method": "CARD", "idempotency_key": "PAY1"},
    )


def test_http_gateway_gives_up_with_retryable_error(monkeypatch):
    calls = []

    def fake_request(method, url, json=None, timeout=None):
        calls.append(url)
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(gateway_client.requests, "request", fake_request)

    with pytest.raises(GatewayError) as exc:
        HttpPaymentGateway("http://gw").create_charge(Decimal("1"), "INR", "CARD", "PAY1")
    assert exc.value.retryable
    assert len(calls) == 3


def test_simulated_gateway_reuses_idempotency_key():
    gw = SimulatedGateway()

    first = gw.create_charge(Decimal("5"), "INR", "CARD", "PAY1")

    assert gw.create_charge(Decimal("5"), "INR", "CARD", "PAY1") == first
    assert gw.create_charge(Decimal("5"), "INR", "CARD", "PAY2") != first
    assert gw.get_charge_status("unknown")["status"] == "failure"


def test_generate_reference_shape():
    ref = generate_reference("PAY")

    assert ref.startswith("PAY")
    assert len(ref) == 15
    assert ref[3:11].isdigit()
