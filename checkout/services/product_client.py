# checkout/services/product_client.py
import requests

from checkout.domain.errors import NotFoundError
from checkout.utils.retry import http_retry
from checkout.utils.settings import PRODUCT_SERVICE_URL
from checkout.utils.logging import get_logger

logger = get_logger(__name__)


class ProductClient:
    """
    Catalog lookups. Prices and names are read once, when an item enters a
    cart, and never re-read for an order.
    """

    def __init__(self, base_url: str | None = None, timeout: int = 2):
        self.base_url = (base_url or PRODUCT_SERVICE_URL).rstrip("/")
        self.timeout = timeout

    @http_retry()
    def fetch_product(self, product_id: str) -> dict:
        url = f"{self.base_url}/products/{product_id}"
        logger.info(f"ProductClient GET {url}")

        resp = requests.get(url, timeout=self.timeout)
        if resp.status_code == 404:
            raise NotFoundError(f"Product {product_id} not found")
        resp.raise_for_status()
        data = resp.json()
        return {
            "id": str(data.get("id", product_id)),
            "sku": data["sku"],
            "name": data["name"],
            "price": data["price"],
            "is_active": data.get("is_active", True),
        }
