# checkout/api/__init__.py
from fastapi import FastAPI

from checkout.api.routers import carts, orders, payments, inventory, health


def create_app(**kwargs) -> FastAPI:
    app = FastAPI(title="Checkout Service", version="1.0.0", **kwargs)
    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(orders.router)
    app.include_router(payments.router)
    app.include_router(inventory.router)
    return app
