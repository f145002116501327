from datetime import timedelta

from checkout.data.database import utcnow
from checkout.domain.errors import NotFoundError
from checkout.repos.payment_repo import PaymentRepo
from checkout.services.inventory_service import InventoryService
from checkout.tasks import expire
from checkout.tasks.expire import expire_stale_orders, clean_expired_carts


class FakeLock:
    def __init__(self, free=True):
        self.free = free
        self.released = []

    def acquire_task_lock(self, name, owner, ttl):
        return self.free

    def release_task_lock(self, name, owner):
        self.released.append(name)
        return True


def test_unpaid_orders_past_ttl_are_cancelled(db, place_order, orders, stock, notifier, gateway):
    order = place_order()

    assert expire_stale_orders(db, now=utcnow(), notification_service=notifier, gateway=gateway) == []

    cancelled = expire_stale_orders(
        db, now=utcnow() + timedelta(seconds=901), notification_service=notifier, gateway=gateway
    )

    assert cancelled == [order.id]
    expired = orders.get_order(order.id)
    assert expired.status == "cancelled"
    assert expired.cancellation_reason == expire.EXPIRY_REASON
    assert PaymentRepo(db).latest_for_order(order.id).status == "cancelled"
    a = stock.get_availability("P-1")
    assert (a.quantity_available, a.quantity_reserved) == (10, 0)


def test_one_failing_order_does_not_stop_the_sweep(monkeypatch, db, place_order, orders, stock, notifier, gateway):
    first = place_order("cust-1")
    second = place_order("cust-2")
    release = InventoryService.release
    calls = []

    def release_failing_once(self, product_id, qty, committed=False):
        calls.append(product_id)
        if len(calls) == 1:
            raise NotFoundError(f"No inventory record for {product_id}")
        return release(self, product_id, qty, committed=committed)

    monkeypatch.setattr(InventoryService, "release", release_failing_once)

    cancelled = expire_stale_orders(
        db, now=utcnow() + timedelta(seconds=901), notification_service=notifier, gateway=gateway
    )

    assert len(cancelled) == 1
    statuses = {o.id: orders.get_order(o.id).status for o in (first, second)}
    assert sorted(statuses.values()) == ["awaiting_payment", "cancelled"]
    assert statuses[cancelled[0]] == "cancelled"
    a = stock.get_availability("P-1")
    assert (a.quantity_available, a.quantity_reserved) == (8, 2)


def test_paid_orders_are_left_alone(db, place_order, payments, orders, notifier, gateway):
    order = place_order()
    payments.simulate_success(PaymentRepo(db).latest_for_order(order.id).payment_id)

    later = utcnow() + timedelta(hours=2)
    assert expire_stale_orders(db, now=later, notification_service=notifier, gateway=gateway) == []
    assert orders.get_order(order.id).status == "paid"


def test_clean_expired_carts(db, carts, stock):
    carts.find_or_create("idle")

    assert clean_expired_carts(db, now=utcnow() + timedelta(days=31)) == 1


def test_sweep_skips_when_lock_is_held(monkeypatch):
    lock = FakeLock(free=False)
    monkeypatch.setattr(expire, "lock_service", lock)

    assert expire.expire_orders_task() == {"cancelled": []}
    assert lock.released == []


def test_sweep_runs_under_lock(monkeypatch, session_factory):
    lock = FakeLock()
    monkeypatch.setattr(expire, "lock_service", lock)
    monkeypatch.setattr(expire, "SessionLocal", session_factory)

    assert expire.clean_carts_task() == {"deleted": 0}
    assert lock.released == ["clean_carts"]


def test_notification_dispatch_runs_eagerly():
    from checkout.services.notification_service import NotificationService, send_checkout_notification_task

    assert NotificationService().publish("order_created", "o-1", "cust-1", total="10.00")
    assert send_checkout_notification_task("order_created", "o-1", "cust-1")["status"] == "sent"


def test_notification_failure_is_dropped(monkeypatch):
    from checkout.services import notification_service

    def broken(*args, **kwargs):
        raise ConnectionError("broker down")

    monkeypatch.setattr(notification_service.send_checkout_notification_task, "delay", broken)

    assert notification_service.NotificationService().publish("order_created", "o-1", "cust-1") is False
