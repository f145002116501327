import re
from decimal import Decimal

import pytest

from checkout.data.models.payment import PaymentAttemptModel
from checkout.domain.errors import (
    ValidationError,
    InsufficientStock,
    IllegalTransition,
    NotFoundError,
    GatewayError,
    ConflictError,
)
from checkout.repos.payment_repo import PaymentRepo
from checkout.services.order_service import OrderService
from checkout.services.notification_service import ORDER_CREATED, ORDER_CANCELLED
from tests.conftest import ADDRESS


def _payment(db, order_id):
    return PaymentRepo(db).latest_for_order(order_id)


def test_create_reserves_stock_and_clears_cart(db, place_order, carts, stock, notifier):
    order = place_order(lines=[("P-1", 2), ("P-2", 1)])

    assert re.fullmatch(r"ORD-\d{8}-\d{4}", order.order_number)
    assert order.status == "awaiting_payment"
    assert order.payment_status == "pending"
    assert [h.status for h in order.history] == ["created", "awaiting_payment"]
    assert order.subtotal == Decimal("5700.00")
    assert order.total == order.subtotal + order.tax + order.shipping
    assert order.billing_address == order.shipping_address

    a1 = stock.get_availability("P-1")
    assert (a1.quantity_available, a1.quantity_reserved) == (8, 2)
    assert carts.get_cart("cust-1").items == []

    payment = _payment(db, order.id)
    assert payment.status == "pending"
    assert payment.payment_id.startswith("PAY")
    assert payment.amount == order.total
    assert notifier.names() == [ORDER_CREATED]


def test_prices_are_frozen_when_added(orders, carts, catalog, stock):
    carts.add_item("cust-1", "P-1", 1)
    catalog.products["P-1"]["price"] = Decimal("1.00")

    order = orders.create("cust-1", ADDRESS)

    assert order.items[0].unit_price == Decimal("2800.00")


def test_empty_cart_cannot_be_ordered(orders, carts, stock):
    carts.find_or_create("cust-1")

    with pytest.raises(ValidationError):
        orders.create("cust-1", ADDRESS)


def test_shortfall_leaves_everything_untouched(orders, carts, stock, notifier):
    carts.add_item("cust-1", "P-1", 2)
    carts.add_item("cust-1", "P-2", 6)

    with pytest.raises(InsufficientStock) as exc:
        orders.create("cust-1", ADDRESS)

    assert [s["product_id"] for s in exc.value.shortfalls] == ["P-2"]
    assert stock.get_availability("P-1").quantity_available == 10
    assert len(carts.get_cart("cust-1").items) == 2
    assert orders.list_orders("cust-1") == []
    assert notifier.events == []


def test_cart_submitted_twice_becomes_one_order(session_factory, orders, carts, stock, notifier, gateway):
    carts.add_item("cust-1", "P-1", 2)
    other_session = session_factory()
    first = OrderService(other_session, notification_service=notifier, gateway=gateway)
    reserve_many = orders.inventory.reserve_many

    def reserve_after_first_submission(lines):
        # the other request commits between this one reading the cart and reserving
        first.create("cust-1", ADDRESS)
        return reserve_many(lines)

    orders.inventory.reserve_many = reserve_after_first_submission
    try:
        with pytest.raises(ConflictError):
            orders.create("cust-1", ADDRESS)
    finally:
        other_session.close()

    assert len(orders.list_orders("cust-1")) == 1
    a = stock.get_availability("P-1")
    assert (a.quantity_available, a.quantity_reserved) == (8, 2)
    assert carts.get_cart("cust-1").items == []
    assert notifier.names() == [ORDER_CREATED]


def test_bad_address_and_method(orders, carts, stock):
    carts.add_item("cust-1", "P-1", 1)

    with pytest.raises(ValidationError):
        orders.create("cust-1", {**ADDRESS, "pincode": "12"})
    with pytest.raises(ValidationError):
        orders.create("cust-1", ADDRESS, payment_method="CASH")


def test_cancel_before_payment_returns_stock(db, place_order, orders, stock, notifier):
    order = place_order()

    cancelled = orders.cancel(order.id, "changed my mind")

    assert cancelled.status == "cancelled"
    assert cancelled.payment_status == "cancelled"
    assert cancelled.cancellation_reason == "changed my mind"
    assert cancelled.cancelled_at is not None
    a = stock.get_availability("P-1")
    assert (a.quantity_available, a.quantity_reserved) == (10, 0)

    payment = _payment(db, order.id)
    assert payment.status == "cancelled"
    assert [x.kind for x in payment.attempts] == ["void"]
    assert notifier.names() == [ORDER_CREATED, ORDER_CANCELLED]


def test_cancel_needs_reason_and_live_order(place_order, orders):
    order = place_order()

    with pytest.raises(ValidationError):
        orders.cancel(order.id, "  ")

    orders.cancel(order.id, "duplicate order")
    with pytest.raises(IllegalTransition):
        orders.cancel(order.id, "again")


def test_cancel_paid_order_refunds_and_restocks(db, place_order, orders, payments, stock, gateway):
    order = place_order()
    payment_id = _payment(db, order.id).payment_id
    payments.simulate_success(payment_id)
    assert stock.get_availability("P-1").quantity_reserved == 0

    cancelled = orders.cancel(order.id, "damaged in transit")

    assert cancelled.status == "cancelled"
    assert cancelled.payment_status == "refunded"
    payment = _payment(db, order.id)
    assert payment.status == "refunded"
    assert payment.refund_id.startswith("REF")
    assert [c["method"] for c in gateway.calls] == ["create_refund"]
    a = stock.get_availability("P-1")
    assert (a.quantity_available, a.quantity_reserved) == (10, 0)


def test_cancel_paid_order_stays_paid_when_refund_fails(db, place_order, orders, payments, gateway):
    order = place_order()
    payments.simulate_success(_payment(db, order.id).payment_id)
    gateway.configure(available=False)

    with pytest.raises(GatewayError):
        orders.cancel(order.id, "damaged in transit")

    assert orders.get_order(order.id).status == "paid"


def test_fulfill_only_after_payment(db, place_order, orders, payments):
    order = place_order()

    with pytest.raises(IllegalTransition):
        orders.fulfill(order.id)

    payments.simulate_success(_payment(db, order.id).payment_id)
    assert orders.fulfill(order.id).status == "fulfilled"

    with pytest.raises(IllegalTransition):
        orders.cancel(order.id, "too late")


def test_mark_paid_requires_a_verified_attempt(place_order, orders):
    order = place_order()

    with pytest.raises(IllegalTransition):
        orders.mark_paid(order.id, PaymentAttemptModel(kind="verify", status="success"))

    assert orders.get_order(order.id).status == "awaiting_payment"


def test_orders_are_scoped_to_customer(place_order, orders):
    order = place_order()

    assert orders.get_order(order.id, "cust-1").id == order.id
    with pytest.raises(NotFoundError):
        orders.get_order(order.id, "someone-else")
    assert [o.id for o in orders.list_orders("cust-1")] == [order.id]
