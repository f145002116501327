# checkout/api/routers/payments.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from checkout.api.deps import get_gateway, get_notifier
from checkout.api.errors import http_error
from checkout.data.database import get_db
from checkout.domain.errors import CheckoutError
from checkout.domain.schemas import (
    PaymentOut,
    PaymentAttemptOut,
    PaymentResult,
    InitiateIn,
    GatewayResponseIn,
    RefundIn,
)
from checkout.services.gateway_client import PaymentGateway
from checkout.services.notification_service import NotificationService
from checkout.services.payment_service import PaymentService

router = APIRouter(prefix="/payments", tags=["payments"])


def get_service(
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
    notifier: NotificationService = Depends(get_notifier),
):
    return PaymentService(db, gateway=gateway, notification_service=notifier)


@router.get("/order/{order_id}", response_model=PaymentOut)
def get_order_payment(order_id: str, svc: PaymentService = Depends(get_service)):
    try:
        return svc.get_for_order(order_id)
    except CheckoutError as e:
        raise http_error(e)


@router.post("/order/{order_id}/initiate", response_model=PaymentOut)
def initiate_payment(order_id: str, payload: InitiateIn | None = None, svc: PaymentService = Depends(get_service)):
    method = payload.method.value if payload and payload.method else None
    try:
        return svc.initiate(order_id, method)
    except CheckoutError as e:
        raise http_error(e)


@router.get("/{payment_id}", response_model=PaymentOut)
def get_payment(payment_id: str, svc: PaymentService = Depends(get_service)):
    try:
        return svc.get_payment(payment_id)
    except CheckoutError as e:
        raise http_error(e)


@router.get("/{payment_id}/attempts", response_model=list[PaymentAttemptOut])
def list_attempts(payment_id: str, svc: PaymentService = Depends(get_service)):
    try:
        return svc.list_attempts(payment_id)
    except CheckoutError as e:
        raise http_error(e)


@router.post("/{payment_id}/verify", response_model=PaymentResult)
def verify_payment(payment_id: str, payload: GatewayResponseIn, svc: PaymentService = Depends(get_service)):
    """Gateway callback. Delivered at least once, repeats are answered from stored state."""
    try:
        return svc.verify(payment_id, payload)
    except CheckoutError as e:
        raise http_error(e)


@router.post("/{payment_id}/reconcile", response_model=PaymentResult)
def reconcile_payment(payment_id: str, svc: PaymentService = Depends(get_service)):
    try:
        return svc.reconcile(payment_id)
    except CheckoutError as e:
        raise http_error(e)


@router.post("/{payment_id}/refund", response_model=PaymentOut)
def refund_payment(payment_id: str, payload: RefundIn, svc: PaymentService = Depends(get_service)):
    try:
        return svc.refund(payment_id, payload.reason)
    except CheckoutError as e:
        raise http_error(e)


@router.post("/{payment_id}/simulate/success", response_model=PaymentResult)
def simulate_success(payment_id: str, svc: PaymentService = Depends(get_service)):
    try:
        return svc.simulate_success(payment_id)
    except CheckoutError as e:
        raise http_error(e)


@router.post("/{payment_id}/simulate/failure", response_model=PaymentResult)
def simulate_failure(payment_id: str, svc: PaymentService = Depends(get_service)):
    try:
        return svc.simulate_failure(payment_id)
    except CheckoutError as e:
        raise http_error(e)
