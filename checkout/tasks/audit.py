# checkout/tasks/audit.py
from checkout.celery_worker import celery_app
from checkout.services.auditor import ConsistencyAuditor
from checkout.tasks.expire import _run_locked
from checkout.utils.logging import get_logger

logger = get_logger(__name__)


@celery_app.task(name="checkout.tasks.audit.audit_inventory_task")
def audit_inventory_task():
    logger.info("Inventory audit task started")
    warnings = _run_locked("audit_inventory", 15 * 60, lambda db: ConsistencyAuditor(db).scan())
    return {"findings": [w.kind for w in warnings or []]}
