# checkout/celery_worker.py
from celery import Celery

from checkout.utils.settings import (
    CELERY_BROKER_URL,
    CELERY_RESULT_BACKEND,
    CELERY_TASK_ALWAYS_EAGER,
    EXPIRE_SWEEP_INTERVAL_SECONDS,
    CART_CLEANUP_INTERVAL_SECONDS,
    AUDIT_INTERVAL_SECONDS,
)

celery_app = Celery(
    "checkout",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# tasks have to be imported explicitly for the worker to register them
celery_app.conf.imports = (
    "checkout.tasks.expire",
    "checkout.tasks.audit",
    "checkout.services.notification_service",
)

celery_app.conf.task_always_eager = CELERY_TASK_ALWAYS_EAGER

celery_app.conf.beat_schedule = {
    "expire-unpaid-orders": {
        "task": "checkout.tasks.expire.expire_orders_task",
        "schedule": EXPIRE_SWEEP_INTERVAL_SECONDS,
    },
    "clean-expired-carts": {
        "task": "checkout.tasks.expire.clean_carts_task",
        "schedule": CART_CLEANUP_INTERVAL_SECONDS,
    },
    "audit-inventory": {
        "task": "checkout.tasks.audit.audit_inventory_task",
        "schedule": AUDIT_INTERVAL_SECONDS,
    },
}

celery_app.conf.timezone = "UTC"
