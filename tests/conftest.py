import os

# settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["PAYMENT_GATEWAY_MODE"] = "simulator"
os.environ["PAYMENT_SIMULATION_ENABLED"] = "true"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import checkout.data.models  # noqa: F401
from checkout.api import create_app
from checkout.api.deps import get_product_client, get_gateway, get_notifier
from checkout.data.database import Base, get_db, make_engine
from checkout.domain.errors import NotFoundError
from checkout.services.cart_service import CartService
from checkout.services.gateway_client import SimulatedGateway
from checkout.services.inventory_service import InventoryService
from checkout.services.order_service import OrderService
from checkout.services.payment_service import PaymentService

ADDRESS = {
    "street": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "pincode": "560001",
    "country": "India",
    "phone": "9876543210",
}


class FakeCatalog:
    def __init__(self):
        self.products = {
            "P-1": {"id": "P-1", "sku": "JEANS-SLIM", "name": "Slim Jeans", "price": Decimal("2800.00"), "is_active": True},
            "P-2": {"id": "P-2", "sku": "SOCKS-3PK", "name": "Socks", "price": Decimal("100.00"), "is_active": True},
            "P-3": {"id": "P-3", "sku": "CAP-RED", "name": "Cap", "price": Decimal("399.00"), "is_active": False},
        }
        self.calls = []

    def fetch_product(self, product_id):
        self.calls.append(product_id)
        if product_id not in self.products:
            raise NotFoundError(f"Product {product_id} not found")
        return dict(self.products[product_id])


class FakeNotifier:
    def __init__(self):
        self.events = []

    def publish(self, event, order_id, customer_id, **details):
        self.events.append((event, order_id, customer_id, details))
        return True

    def names(self):
        return [e[0] for e in self.events]


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(
        f"sqlite:///{tmp_path / 'checkout.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def gateway():
    return SimulatedGateway()


@pytest.fixture
def inventory(db):
    return InventoryService(db)


@pytest.fixture
def stock(inventory):
    inventory.register("P-1", "JEANS-SLIM", quantity_available=10)
    inventory.register("P-2", "SOCKS-3PK", quantity_available=5)
    inventory.register("P-3", "CAP-RED", quantity_available=5)
    return inventory


@pytest.fixture
def carts(db, catalog):
    return CartService(db, product_client=catalog)


@pytest.fixture
def orders(db, notifier, gateway):
    return OrderService(db, notification_service=notifier, gateway=gateway)


@pytest.fixture
def payments(db, notifier, gateway, orders):
    return PaymentService(db, gateway=gateway, notification_service=notifier, order_service=orders)


@pytest.fixture
def place_order(carts, orders, stock):
    def _place(customer_id="cust-1", lines=(("P-1", 2),)):
        for product_id, qty in lines:
            carts.add_item(customer_id, product_id, qty)
        return orders.create(customer_id, ADDRESS)

    return _place


@pytest.fixture
def client(session_factory, catalog, gateway, notifier):
    app = create_app()

    def _db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_product_client] = lambda: catalog
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as c:
        yield c
