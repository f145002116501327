# checkout/tasks/expire.py
from datetime import datetime, timedelta
from uuid import uuid4

from sqlalchemy.orm import Session

from checkout.celery_worker import celery_app
from checkout.data.database import SessionLocal, utcnow
from checkout.domain.errors import IllegalTransition, ConflictError
from checkout.domain.states import OrderStatus
from checkout.repos.order_repo import OrderRepo
from checkout.services.cart_service import CartService
from checkout.services.lock_service import LockService
from checkout.services.order_service import OrderService
from checkout.utils.settings import PAYMENT_TTL_SECONDS, CART_RETENTION_DAYS, EXPIRE_SWEEP_INTERVAL_SECONDS
from checkout.utils.logging import get_logger

logger = get_logger(__name__)
lock_service = LockService()

EXPIRY_REASON = "Payment window expired"


def expire_stale_orders(
    db: Session,
    now: datetime | None = None,
    ttl_seconds: int = PAYMENT_TTL_SECONDS,
    notification_service=None,
    gateway=None,
) -> list[str]:
    """
    Cancel orders still awaiting payment after the TTL. Goes through
    OrderService.cancel so reservations are released and the payment voided
    the same way a customer cancel does it.
    """
    cutoff = (now or utcnow()) - timedelta(seconds=ttl_seconds)
    stale = OrderRepo(db).list_stale((OrderStatus.AWAITING_PAYMENT.value,), cutoff)
    logger.info(f"Found {len(stale)} order(s) awaiting payment since before {cutoff.isoformat()}")

    orders = OrderService(db, notification_service=notification_service, gateway=gateway)
    cancelled = []
    for order_id in [o.id for o in stale]:
        try:
            orders.cancel(order_id, EXPIRY_REASON)
            cancelled.append(order_id)
        except (IllegalTransition, ConflictError) as e:
            # a payment callback got there first
            logger.info(f"Skipping order {order_id}: {e}")
        except Exception as e:
            # cancel has rolled back, the next run retries this order
            logger.warning(f"Could not expire order {order_id}: {e}")
    return cancelled


def clean_expired_carts(db: Session, now: datetime | None = None, older_than_days: int = CART_RETENTION_DAYS) -> int:
    return CartService(db).clean_expired_carts(older_than_days=older_than_days, now=now)


def _run_locked(name: str, ttl: int, job):
    owner = uuid4().hex
    if not lock_service.acquire_task_lock(name, owner, ttl):
        logger.info(f"Task {name} already running elsewhere, skipping")
        return None

    db = SessionLocal()
    try:
        return job(db)
    finally:
        db.close()
        lock_service.release_task_lock(name, owner)


@celery_app.task(name="checkout.tasks.expire.expire_orders_task")
def expire_orders_task():
    logger.info("Expire orders task started")
    cancelled = _run_locked("expire_orders", int(EXPIRE_SWEEP_INTERVAL_SECONDS) * 5, expire_stale_orders)
    return {"cancelled": cancelled or []}


@celery_app.task(name="checkout.tasks.expire.clean_carts_task")
def clean_carts_task():
    logger.info("Clean carts task started")
    deleted = _run_locked("clean_carts", 15 * 60, clean_expired_carts)
    return {"deleted": deleted or 0}
