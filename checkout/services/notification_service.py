# checkout/services/notification_service.py
from checkout.celery_worker import celery_app
from checkout.utils.logging import get_logger

logger = get_logger(__name__)

ORDER_CREATED = "order_created"
PAYMENT_SUCCEEDED = "payment_succeeded"
PAYMENT_FAILED = "payment_failed"
ORDER_CANCELLED = "order_cancelled"


class NotificationService:
    """
    Fire-and-forget checkout events, delivered by a Celery task.
    A failed dispatch is logged and dropped, it never fails the transition
    that produced it.
    """

    def publish(self, event: str, order_id: str, customer_id: str, **details) -> bool:
        try:
            send_checkout_notification_task.delay(event, order_id, customer_id, details)
            return True
        except Exception as e:
            logger.warning(f"[NOTIFICATION] dropping {event} for order {order_id}: {e}")
            return False


@celery_app.task(name="checkout.services.notification_service.send_checkout_notification_task")
def send_checkout_notification_task(event: str, order_id: str, customer_id: str, details: dict | None = None):
    """
    Hands the event to the outbound channel (email/SMS/push live outside this
    service). Here the event is only logged.
    """
    logger.info(f"[NOTIFICATION] Customer {customer_id}: {event} for order {order_id} {details or {}}")

    return {"event": event, "customer_id": customer_id, "order_id": order_id, "status": "sent"}
