# checkout/domain/states.py
from enum import Enum

from checkout.domain.errors import IllegalTransition


class OrderStatus(str, Enum):
    CREATED = "created"
    AWAITING_PAYMENT = "awaiting_payment"
    PAID = "paid"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    PAYMENT_FAILED = "payment_failed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    INITIATED = "initiated"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    CARD = "CARD"
    UPI = "UPI"
    NET_BANKING = "NET_BANKING"
    WALLET = "WALLET"


class AttemptKind(str, Enum):
    INITIATE = "initiate"
    VERIFY = "verify"
    REFUND = "refund"
    VOID = "void"


ORDER_TRANSITIONS = {
    OrderStatus.CREATED: {OrderStatus.AWAITING_PAYMENT, OrderStatus.CANCELLED},
    OrderStatus.AWAITING_PAYMENT: {
        OrderStatus.PAID,
        OrderStatus.PAYMENT_FAILED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.PAID: {OrderStatus.FULFILLED, OrderStatus.CANCELLED},
    OrderStatus.FULFILLED: set(),
    OrderStatus.CANCELLED: set(),
    OrderStatus.PAYMENT_FAILED: set(),
}

# orders in these states still hold reservations
LIVE_ORDER_STATES = (OrderStatus.CREATED.value, OrderStatus.AWAITING_PAYMENT.value)
CANCELLABLE_STATES = (
    OrderStatus.CREATED.value,
    OrderStatus.AWAITING_PAYMENT.value,
    OrderStatus.PAID.value,
)


def ensure_transition(current: str, target: OrderStatus) -> None:
    if target not in ORDER_TRANSITIONS[OrderStatus(current)]:
        raise IllegalTransition(f"Order cannot move from {current} to {target.value}")
