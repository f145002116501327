# checkout/api/deps.py
from checkout.services.gateway_client import PaymentGateway, get_gateway as _current_gateway
from checkout.services.notification_service import NotificationService
from checkout.services.product_client import ProductClient


def get_product_client() -> ProductClient:
    return ProductClient()


def get_gateway() -> PaymentGateway:
    return _current_gateway()


def get_notifier() -> NotificationService:
    return NotificationService()
