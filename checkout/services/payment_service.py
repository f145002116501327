# checkout/services/payment_service.py
from uuid import uuid4

from pydantic import ValidationError as SchemaError
from sqlalchemy.orm import Session

from checkout.data.database import utcnow
from checkout.data.models.payment import PaymentModel, PaymentAttemptModel
from checkout.domain.errors import ValidationError, NotFoundError, IllegalTransition, GatewayError, ConflictError
from checkout.domain.schemas import PaymentOut, PaymentAttemptOut, PaymentResult, GatewayResponseIn
from checkout.domain.states import OrderStatus, PaymentStatus, PaymentMethod, AttemptKind
from checkout.domain.totals import to_money
from checkout.repos.order_repo import OrderRepo
from checkout.repos.payment_repo import PaymentRepo
from checkout.services.gateway_client import PaymentGateway, get_gateway
from checkout.services.notification_service import (
    NotificationService,
    PAYMENT_SUCCEEDED,
    PAYMENT_FAILED,
)
from checkout.utils.settings import PAYMENT_SIMULATION_ENABLED
from checkout.utils.logging import get_logger

logger = get_logger(__name__)

RESOLVED = (
    PaymentStatus.SUCCESS.value,
    PaymentStatus.FAILED.value,
    PaymentStatus.CANCELLED.value,
    PaymentStatus.REFUNDED.value,
)


class PaymentService:
    """
    Payment orchestrator between orders and the gateway.

    Gateway callbacks arrive at least once. verify() resolves a payment with
    a conditional UPDATE on status='initiated', so only the first delivery
    for a correlation id changes anything. Later deliveries read the stored
    outcome back.
    """

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway | None = None,
        notification_service: NotificationService | None = None,
        order_service=None,
        simulation_enabled: bool = PAYMENT_SIMULATION_ENABLED,
    ):
        from checkout.services.order_service import OrderService

        self.db = db
        self.repo = PaymentRepo(db)
        self.orders_repo = OrderRepo(db)
        self.gateway = gateway or get_gateway()
        self.notification_service = notification_service or NotificationService()
        self.orders = order_service or OrderService(
            db, notification_service=self.notification_service, gateway=self.gateway
        )
        self.simulation_enabled = simulation_enabled

    # query
    def get_payment(self, payment_id: str) -> PaymentOut:
        return PaymentOut.model_validate(self._get(payment_id))

    def get_for_order(self, order_id: str) -> PaymentOut:
        payment = self.repo.latest_for_order(order_id)
        if not payment:
            raise NotFoundError(f"No payment for order {order_id}")
        return PaymentOut.model_validate(payment)

    def list_attempts(self, payment_id: str) -> list[PaymentAttemptOut]:
        payment = self._get(payment_id)
        return [PaymentAttemptOut.model_validate(a) for a in self.repo.list_attempts(payment.id)]

    # commands
    def initiate(self, order_id: str, method: str | None = None) -> PaymentOut:
        """
        Open a charge at the gateway for an order awaiting payment.
        The order status does not change. A second call once the charge is
        open returns it again instead of charging twice.
        """
        order = self.orders_repo.get_order(order_id)
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        if order.status != OrderStatus.AWAITING_PAYMENT.value:
            raise IllegalTransition(f"Payment can only be initiated for orders awaiting payment, not {order.status}")

        payment = self.repo.latest_for_order(order.id)
        if not payment:
            raise NotFoundError(f"No payment for order {order_id}")
        if to_money(payment.amount) != to_money(order.total):
            raise ValidationError(
                f"Payment amount {payment.amount} does not match order total {order.total}"
            )
        if payment.status == PaymentStatus.INITIATED.value:
            logger.info(f"Payment {payment.payment_id} already initiated ({payment.correlation_id})")
            return PaymentOut.model_validate(payment)
        if payment.status != PaymentStatus.PENDING.value:
            raise IllegalTransition(f"Payment {payment.payment_id} is already {payment.status}")

        chosen = self._method(method) if method else payment.method
        payment_ref, public_id, amount, currency = payment.id, payment.payment_id, payment.amount, payment.currency
        # no transaction stays open across the gateway call
        self.repo.commit()

        try:
            correlation_id = self.gateway.create_charge(amount, currency, chosen, idempotency_key=public_id)
        except GatewayError as e:
            self.repo.add_attempt(
                PaymentAttemptModel(
                    payment_ref=payment_ref,
                    kind=AttemptKind.INITIATE.value,
                    status=PaymentStatus.FAILED.value,
                    amount=amount,
                    detail=str(e)[:500],
                )
            )
            self.repo.commit()
            logger.warning(f"Initiating payment {public_id} failed, order {order_id} stays awaiting payment: {e}")
            raise

        try:
            rowcount = self.repo.update_status(
                payment_ref,
                (PaymentStatus.PENDING.value,),
                {"status": PaymentStatus.INITIATED.value, "correlation_id": correlation_id, "method": chosen},
            )
            if rowcount == 0:
                raise ConflictError(f"Payment {public_id} changed while the charge was opened")
            self.repo.add_attempt(
                PaymentAttemptModel(
                    payment_ref=payment_ref,
                    kind=AttemptKind.INITIATE.value,
                    status=PaymentStatus.INITIATED.value,
                    correlation_id=correlation_id,
                    amount=amount,
                )
            )
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Payment {public_id} initiated, correlation {correlation_id}")
        return self.get_payment(public_id)

    def verify(self, payment_id: str, gateway_response: GatewayResponseIn | dict) -> PaymentResult:
        """
        Apply a gateway outcome. Matching correlation id and amount with a
        success status pays the order, anything else fails it. Safe to call
        again with the same response.
        """
        response = self._response(gateway_response)
        payment = self._get(payment_id)

        if payment.status in RESOLVED:
            return self._already_resolved(payment, response)
        if payment.status != PaymentStatus.INITIATED.value or not payment.correlation_id:
            raise IllegalTransition(f"Payment {payment_id} has not been initiated")

        matches = (
            response.correlation_id == payment.correlation_id
            and to_money(response.amount) == to_money(payment.amount)
        )
        succeeded = matches and response.status == "success"
        target = PaymentStatus.SUCCESS if succeeded else PaymentStatus.FAILED
        if not matches:
            detail = (
                f"Verification mismatch: correlation {response.correlation_id}, amount {response.amount}"
            )
        elif succeeded:
            detail = "Payment verified successfully"
        else:
            detail = "Payment declined by gateway"

        try:
            rowcount = self.repo.update_status(
                payment.id,
                (PaymentStatus.INITIATED.value,),
                {"status": target.value},
            )
            if rowcount == 0:
                # a concurrent delivery resolved it first
                self.repo.rollback()
                return self._already_resolved(self._get(payment_id), response)

            attempt = self.repo.add_attempt(
                PaymentAttemptModel(
                    payment_ref=payment.id,
                    kind=AttemptKind.VERIFY.value,
                    status=target.value,
                    correlation_id=response.correlation_id,
                    amount=to_money(response.amount),
                    detail=detail,
                )
            )
            if succeeded:
                self.orders.mark_paid(payment.order_id, attempt)
            else:
                self.orders.mark_failed(payment.order_id, attempt)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        order = self.orders_repo.get_order(payment.order_id)
        logger.info(f"Payment {payment_id} verified as {target.value}: {detail}")
        self.notification_service.publish(
            PAYMENT_SUCCEEDED if succeeded else PAYMENT_FAILED,
            order.id,
            order.customer_id,
            payment_id=payment_id,
            amount=str(payment.amount),
        )

        refreshed = self._get(payment_id)
        return PaymentResult(
            payment=PaymentOut.model_validate(refreshed),
            order_status=order.status,
            retryable=not succeeded and matches,
            message=detail if succeeded or matches else "Payment could not be verified, contact support",
        )

    def reconcile(self, payment_id: str) -> PaymentResult:
        """
        Ask the gateway for the charge status and verify it. If the gateway
        stays unreachable after retries the payment is verified as failed.
        """
        payment = self._get(payment_id)
        if payment.status != PaymentStatus.INITIATED.value:
            return self._already_resolved(payment, None)

        correlation_id, amount = payment.correlation_id, payment.amount
        self.repo.commit()
        try:
            charge = self.gateway.get_charge_status(correlation_id)
        except GatewayError as e:
            logger.warning(f"Charge status for {payment_id} unavailable, failing payment: {e}")
            charge = {"status": "failure", "amount": amount}

        if charge["status"] == "pending":
            logger.info(f"Charge {correlation_id} still pending")
            return self._already_resolved(self._get(payment_id), None)

        return self.verify(
            payment_id,
            GatewayResponseIn(correlation_id=correlation_id, status=charge["status"], amount=charge["amount"]),
        )

    def refund(self, payment_id: str, reason: str = "customer request") -> PaymentOut:
        """
        Refund a captured payment. Inventory is not touched here, cancelling
        the order is what puts stock back.
        """
        payment = self._get(payment_id)
        order = self.orders_repo.get_order(payment.order_id)
        if payment.status != PaymentStatus.SUCCESS.value:
            raise IllegalTransition(f"Payment {payment_id} cannot be refunded, status {payment.status}")
        if order.status not in (OrderStatus.PAID.value, OrderStatus.CANCELLED.value):
            raise IllegalTransition(f"Order {order.id} is {order.status}, refund not allowed")

        payment_ref, correlation_id, amount = payment.id, payment.correlation_id, payment.amount
        self.repo.commit()

        try:
            refund_id = self.gateway.create_refund(correlation_id, amount, reason)
        except GatewayError as e:
            self.repo.add_attempt(
                PaymentAttemptModel(
                    payment_ref=payment_ref,
                    kind=AttemptKind.REFUND.value,
                    status=PaymentStatus.FAILED.value,
                    correlation_id=correlation_id,
                    amount=amount,
                    detail=str(e)[:500],
                )
            )
            self.repo.commit()
            logger.warning(f"Refund of {payment_id} failed: {e}")
            raise

        try:
            rowcount = self.repo.update_status(
                payment_ref,
                (PaymentStatus.SUCCESS.value,),
                {
                    "status": PaymentStatus.REFUNDED.value,
                    "refund_id": refund_id,
                    "refund_reason": reason[:500],
                    "refunded_at": utcnow(),
                },
            )
            if rowcount == 0:
                raise ConflictError(f"Payment {payment_id} was refunded concurrently")
            self.repo.add_attempt(
                PaymentAttemptModel(
                    payment_ref=payment_ref,
                    kind=AttemptKind.REFUND.value,
                    status=PaymentStatus.REFUNDED.value,
                    correlation_id=correlation_id,
                    amount=amount,
                    detail=reason[:500],
                )
            )
            self.orders_repo.set_payment_status(order.id, PaymentStatus.REFUNDED.value)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Payment {payment_id} refunded ({refund_id}): {reason}")
        return self.get_payment(payment_id)

    def simulate_success(self, payment_id: str) -> PaymentResult:
        return self._simulate(payment_id, "success")

    def simulate_failure(self, payment_id: str) -> PaymentResult:
        return self._simulate(payment_id, "failure")

    # helpers
    def _simulate(self, payment_id: str, status: str) -> PaymentResult:
        """Skip the gateway but resolve through verify() like a real callback."""
        if not self.simulation_enabled:
            raise IllegalTransition("Payment simulation is disabled")

        payment = self._get(payment_id)
        if payment.status == PaymentStatus.PENDING.value:
            order = self.orders_repo.get_order(payment.order_id)
            if order.status != OrderStatus.AWAITING_PAYMENT.value:
                raise IllegalTransition(f"Order {order.id} is {order.status}, nothing to pay")
            correlation_id = f"sim_{uuid4().hex[:16]}"
            try:
                rowcount = self.repo.update_status(
                    payment.id,
                    (PaymentStatus.PENDING.value,),
                    {"status": PaymentStatus.INITIATED.value, "correlation_id": correlation_id},
                )
                if rowcount == 0:
                    raise ConflictError(f"Payment {payment_id} changed concurrently")
                self.repo.add_attempt(
                    PaymentAttemptModel(
                        payment_ref=payment.id,
                        kind=AttemptKind.INITIATE.value,
                        status=PaymentStatus.INITIATED.value,
                        correlation_id=correlation_id,
                        amount=payment.amount,
                        detail="simulated",
                    )
                )
                self.repo.commit()
            except Exception:
                self.repo.rollback()
                raise
            payment = self._get(payment_id)

        return self.verify(
            payment_id,
            GatewayResponseIn(
                correlation_id=payment.correlation_id or "",
                status=status,
                amount=payment.amount,
            ),
        )

    def _already_resolved(self, payment: PaymentModel, response: GatewayResponseIn | None) -> PaymentResult:
        order = self.orders_repo.get_order(payment.order_id)
        late_capture = (
            response is not None
            and response.status == "success"
            and payment.status == PaymentStatus.CANCELLED.value
        )
        if late_capture:
            # money captured for an order that was already cancelled
            self.repo.add_attempt(
                PaymentAttemptModel(
                    payment_ref=payment.id,
                    kind=AttemptKind.VERIFY.value,
                    status="late_capture",
                    correlation_id=response.correlation_id,
                    amount=to_money(response.amount),
                    detail="Success callback after cancellation, manual refund needed",
                )
            )
            self.repo.commit()
            logger.warning(f"Late capture on cancelled payment {payment.payment_id}, correlation {response.correlation_id}")
        else:
            logger.info(f"Payment {payment.payment_id} already {payment.status}, callback ignored")

        if late_capture:
            message = "Payment received after cancellation, contact support"
        elif payment.status == PaymentStatus.SUCCESS.value:
            message = "Payment verified successfully"
        else:
            message = f"Payment already {payment.status}"
        return PaymentResult(
            payment=PaymentOut.model_validate(payment),
            order_status=order.status,
            retryable=payment.status == PaymentStatus.FAILED.value and not late_capture,
            message=message,
        )

    def _get(self, payment_id: str) -> PaymentModel:
        payment = self.repo.get_payment(payment_id)
        if not payment:
            raise NotFoundError(f"Payment {payment_id} not found")
        return payment

    @staticmethod
    def _response(value) -> GatewayResponseIn:
        if isinstance(value, GatewayResponseIn):
            return value
        try:
            return GatewayResponseIn(**(value or {}))
        except SchemaError as e:
            raise ValidationError(f"Malformed gateway response: {e}")

    @staticmethod
    def _method(value) -> str:
        try:
            return PaymentMethod(value).value
        except ValueError:
            raise ValidationError(f"Unsupported payment method: {value}")
