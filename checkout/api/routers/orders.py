# checkout/api/routers/orders.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from checkout.api.deps import get_gateway, get_notifier
from checkout.api.errors import http_error
from checkout.data.database import get_db
from checkout.domain.errors import CheckoutError
from checkout.domain.schemas import CheckoutIn, CancelIn, OrderOut
from checkout.services.gateway_client import PaymentGateway
from checkout.services.notification_service import NotificationService
from checkout.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


def get_service(
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
    notifier: NotificationService = Depends(get_notifier),
):
    return OrderService(db, notification_service=notifier, gateway=gateway)


@router.post("/", response_model=OrderOut, status_code=201)
def create_order(payload: CheckoutIn, svc: OrderService = Depends(get_service)):
    """
    Places an order from the customer's cart: stock is reserved, the cart
    cleared and a pending payment opened. Notification goes out async.
    """
    try:
        return svc.create(
            payload.customer_id,
            payload.shipping_address,
            payload.billing_address,
            payload.payment_method.value,
        )
    except CheckoutError as e:
        raise http_error(e)


@router.get("/", response_model=list[OrderOut])
def list_orders(customer_id: str = Query(...), svc: OrderService = Depends(get_service)):
    return svc.list_orders(customer_id)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: str, customer_id: str | None = Query(None), svc: OrderService = Depends(get_service)):
    try:
        return svc.get_order(order_id, customer_id)
    except CheckoutError as e:
        raise http_error(e)


@router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(order_id: str, payload: CancelIn, svc: OrderService = Depends(get_service)):
    try:
        return svc.cancel(order_id, payload.reason)
    except CheckoutError as e:
        raise http_error(e)


@router.post("/{order_id}/fulfill", response_model=OrderOut)
def fulfill_order(order_id: str, svc: OrderService = Depends(get_service)):
    try:
        return svc.fulfill(order_id)
    except CheckoutError as e:
        raise http_error(e)
