# checkout/services/gateway_client.py
"""
Payment gateway adapters.

PaymentGateway is the contract the orchestrator depends on. HttpPaymentGateway
talks to a real provider over HTTP, SimulatedGateway answers in-process for
development and tests. get_gateway() / set_gateway() swap the active one.
"""
import random
import string
import time
from abc import ABC, abstractmethod
from decimal import Decimal
from uuid import uuid4

import requests

from checkout.domain.errors import GatewayError
from checkout.utils.retry import http_retry
from checkout.utils.settings import (
    PAYMENT_GATEWAY_URL,
    PAYMENT_GATEWAY_MODE,
    GATEWAY_TIMEOUT_SECONDS,
)
from checkout.utils.logging import get_logger

logger = get_logger(__name__)


def generate_reference(prefix: str) -> str:
    """PAY12345678ABCD style ids: prefix, last 8 digits of epoch millis, 4 random chars."""
    millis = str(int(time.time() * 1000))[-8:]
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=4))
    return f"{prefix}{millis}{suffix}"


class PaymentGateway(ABC):
    @abstractmethod
    def create_charge(self, amount: Decimal, currency: str, method: str, idempotency_key: str) -> str:
        """Open a charge and return the gateway correlation id."""

    @abstractmethod
    def get_charge_status(self, correlation_id: str) -> dict:
        """Return {"status": "success" | "failure" | "pending", "amount": Decimal}."""

    @abstractmethod
    def create_refund(self, correlation_id: str, amount: Decimal, reason: str) -> str:
        """Refund a captured charge and return the refund id."""


class HttpPaymentGateway(PaymentGateway):
    def __init__(self, base_url: str | None = None, timeout: float = GATEWAY_TIMEOUT_SECONDS):
        self.base_url = (base_url or PAYMENT_GATEWAY_URL).rstrip("/")
        self.timeout = timeout

    @http_retry()
    def _request(self, method: str, path: str, payload: dict | None = None) -> dict:
        url = f"{self.base_url}{path}"
        logger.info(f"PaymentGateway {method} {url}")
        resp = requests.request(method, url, json=payload, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def _call(self, method: str, path: str, payload: dict | None = None) -> dict:
        try:
            return self._request(method, path, payload)
        except requests.RequestException as e:
            logger.warning(f"Payment gateway call {method} {path} failed after retries: {e}")
            raise GatewayError(f"Payment gateway unavailable: {e}", retryable=True) from e

    def create_charge(self, amount: Decimal, currency: str, method: str, idempotency_key: str) -> str:
        data = self._call(
            "POST",
            "/charges",
            {
                "amount": str(amount),
                "currency": currency,
                "method": method,
                "idempotency_key": idempotency_key,
            },
        )
        return data["correlation_id"]

    def get_charge_status(self, correlation_id: str) -> dict:
        data = self._call("GET", f"/charges/{correlation_id}")
        return {"status": data["status"], "amount": Decimal(str(data["amount"]))}

    def create_refund(self, correlation_id: str, amount: Decimal, reason: str) -> str:
        data = self._call(
            "POST",
            f"/charges/{correlation_id}/refunds",
            {"amount": str(amount), "reason": reason},
        )
        return data["refund_id"]


class SimulatedGateway(PaymentGateway):
    """In-process gateway with switchable outcomes."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.available: bool = True
        self.failure_reason: str = "Card declined"
        self.charges: dict[str, dict] = {}
        self.calls: list[dict] = []

    def configure(self, should_succeed: bool = True, available: bool = True, failure_reason: str = "Card declined") -> None:
        self.should_succeed = should_succeed
        self.available = available
        self.failure_reason = failure_reason

    def _check_available(self, method: str) -> None:
        if not self.available:
            raise GatewayError(f"Simulated gateway timed out on {method}", retryable=True)

    def create_charge(self, amount: Decimal, currency: str, method: str, idempotency_key: str) -> str:
        self.calls.append({"method": "create_charge", "amount": amount, "idempotency_key": idempotency_key})
        self._check_available("create_charge")

        for correlation_id, charge in self.charges.items():
            if charge["idempotency_key"] == idempotency_key:
                return correlation_id

        correlation_id = f"sim_{uuid4().hex[:16]}"
        self.charges[correlation_id] = {
            "amount": Decimal(str(amount)),
            "currency": currency,
            "idempotency_key": idempotency_key,
            "status": "success" if self.should_succeed else "failure",
        }
        return correlation_id

    def get_charge_status(self, correlation_id: str) -> dict:
        self.calls.append({"method": "get_charge_status", "correlation_id": correlation_id})
        self._check_available("get_charge_status")
        charge = self.charges.get(correlation_id)
        if charge is None:
            return {"status": "failure", "amount": Decimal("0")}
        return {"status": charge["status"], "amount": charge["amount"]}

    def create_refund(self, correlation_id: str, amount: Decimal, reason: str) -> str:
        self.calls.append({"method": "create_refund", "correlation_id": correlation_id, "amount": amount})
        self._check_available("create_refund")
        return generate_reference("REF")


_current_gateway: PaymentGateway | None = None


def get_gateway() -> PaymentGateway:
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = HttpPaymentGateway() if PAYMENT_GATEWAY_MODE == "http" else SimulatedGateway()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    global _current_gateway
    _current_gateway = None
