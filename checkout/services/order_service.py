# checkout/services/order_service.py
import random
from typing import Dict

from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from checkout.data.database import utcnow
from checkout.data.models.order import OrderModel, OrderItemModel
from checkout.data.models.payment import PaymentModel, PaymentAttemptModel
from checkout.domain.errors import ValidationError, NotFoundError, InsufficientStock, IllegalTransition, ConflictError
from checkout.domain.schemas import OrderOut, AddressIn
from checkout.domain.states import (
    OrderStatus,
    PaymentStatus,
    PaymentMethod,
    AttemptKind,
    CANCELLABLE_STATES,
    ensure_transition,
)
from checkout.domain.totals import calculate_totals, to_money
from checkout.repos.order_repo import OrderRepo
from checkout.repos.payment_repo import PaymentRepo
from checkout.services.cart_service import CartService
from checkout.services.gateway_client import PaymentGateway, generate_reference, get_gateway
from checkout.services.inventory_service import InventoryService
from checkout.services.notification_service import (
    NotificationService,
    ORDER_CREATED,
    ORDER_CANCELLED,
)
from checkout.utils.settings import CURRENCY
from checkout.utils.logging import get_logger

logger = get_logger(__name__)


class OrderService:
    """
    Order state machine.

    created -> awaiting_payment -> paid -> fulfilled
    created | awaiting_payment | paid -> cancelled
    awaiting_payment -> payment_failed

    Every status change is a conditional UPDATE on the current status, so a
    cancel racing a payment callback leaves exactly one winner.
    """

    def __init__(
        self,
        db: Session,
        notification_service: NotificationService | None = None,
        gateway: PaymentGateway | None = None,
    ):
        self.db = db
        self.repo = OrderRepo(db)
        self.payments = PaymentRepo(db)
        # ledger calls join this service's transaction
        self.inventory = InventoryService(db, autocommit=False)
        self.carts = CartService(db, inventory=self.inventory)
        self.notification_service = notification_service or NotificationService()
        self.gateway = gateway

    # query
    def get_order(self, order_id: str, customer_id: str | None = None) -> OrderOut:
        return OrderOut.model_validate(self._get(order_id, customer_id))

    def list_orders(self, customer_id: str) -> list[OrderOut]:
        return [OrderOut.model_validate(o) for o in self.repo.list_by_customer(customer_id)]

    # commands
    def create(
        self,
        customer_id: str,
        shipping_address: AddressIn | Dict[str, str],
        billing_address: AddressIn | Dict[str, str] | None = None,
        payment_method: str = PaymentMethod.CARD.value,
    ) -> OrderOut:
        """
        Materialize the customer's cart as an order.

        1. validate the cart against live stock (read only)
        2. reserve every line, all or nothing
        3. freeze items and totals, persist the order and a pending payment
        4. clear the cart, provided it is still the version read in step 1
        All of it commits in one transaction or none of it does.
        """
        method = self._payment_method(payment_method)
        shipping = self._address(shipping_address)
        billing = self._address(billing_address) if billing_address else dict(shipping)

        cart = self.carts.repo.get_by_customer(customer_id)
        items = self.carts.repo.get_cart_items(cart.id) if cart else []
        if not items:
            raise ValidationError("Cannot place an order from an empty cart")
        cart_id, cart_version = cart.id, cart.version

        shortfalls = self.carts.validate_against_stock(customer_id)
        if shortfalls:
            names = ", ".join(s.product_id for s in shortfalls)
            raise InsufficientStock(
                f"Insufficient stock for: {names}",
                shortfalls=[s.model_dump() for s in shortfalls],
            )

        try:
            self.inventory.reserve_many((i.product_id, i.quantity) for i in items)

            totals = calculate_totals((i.unit_price, i.quantity) for i in items)
            order = OrderModel(
                order_number=self._order_number(),
                customer_id=customer_id,
                shipping_address=shipping,
                billing_address=billing,
                total_items=totals.total_items,
                subtotal=totals.subtotal,
                tax=totals.tax,
                shipping=totals.shipping,
                total=totals.total,
                payment_method=method,
                status=OrderStatus.CREATED.value,
                payment_status=PaymentStatus.PENDING.value,
                items=[
                    OrderItemModel(
                        product_id=i.product_id,
                        name=i.name,
                        sku=i.sku,
                        unit_price=i.unit_price,
                        quantity=i.quantity,
                        variants=dict(i.variants or {}),
                        line_total=to_money(i.unit_price * i.quantity),
                    )
                    for i in items
                ],
            )
            self.repo.create_order(order)
            self.repo.add_history(order.id, OrderStatus.CREATED.value, "Order created")
            self._transition(order, OrderStatus.AWAITING_PAYMENT, "Stock reserved, awaiting payment")

            self.payments.create_payment(
                PaymentModel(
                    payment_id=self._payment_id(),
                    order_id=order.id,
                    amount=totals.total,
                    currency=CURRENCY,
                    method=method,
                    status=PaymentStatus.PENDING.value,
                )
            )

            self.carts.consume_for_order(cart_id, cart_version)
            self.repo.commit()
        except Exception as e:
            logger.warning(f"Order creation for customer {customer_id} rolled back: {e}")
            self.repo.rollback()
            raise

        logger.info(f"Order {order.order_number} ({order.id}) created for customer {customer_id}, total {totals.total}")
        self.notification_service.publish(
            ORDER_CREATED, order.id, customer_id, order_number=order.order_number, total=str(totals.total)
        )
        return self.get_order(order.id)

    def cancel(self, order_id: str, reason: str) -> OrderOut:
        """
        Cancel an order that is not yet fulfilled or failed.
        A paid order is refunded first and its sold units go back on sale,
        an unpaid one releases its reservations and voids the payment.
        """
        if not reason or not reason.strip():
            raise ValidationError("Cancellation reason is required")

        order = self._get(order_id)
        if order.status not in CANCELLABLE_STATES:
            raise IllegalTransition(f"Order cannot be cancelled. Current status: {order.status}")

        payment = self.payments.latest_for_order(order.id)
        was_paid = order.status == OrderStatus.PAID.value

        if was_paid and payment and payment.status == PaymentStatus.SUCCESS.value:
            # refund commits on its own, the order stays paid if the gateway refuses
            self._payment_service().refund(payment.payment_id, reason=f"Order cancelled: {reason}")
            order = self._get(order_id)

        try:
            now = utcnow()
            self._transition(
                order,
                OrderStatus.CANCELLED,
                reason,
                cancellation_reason=reason,
                cancelled_at=now,
                payment_status=PaymentStatus.REFUNDED.value if was_paid else PaymentStatus.CANCELLED.value,
            )

            for item in order.items:
                self.inventory.release(item.product_id, item.quantity, committed=was_paid)

            if payment and not was_paid:
                voided = self.payments.update_status(
                    payment.id,
                    (PaymentStatus.PENDING.value, PaymentStatus.INITIATED.value),
                    {"status": PaymentStatus.CANCELLED.value},
                )
                if voided:
                    self.payments.add_attempt(
                        PaymentAttemptModel(
                            payment_ref=payment.id,
                            kind=AttemptKind.VOID.value,
                            status=PaymentStatus.CANCELLED.value,
                            correlation_id=payment.correlation_id,
                            amount=payment.amount,
                            detail=reason[:500],
                        )
                    )

            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Order {order.order_number} cancelled: {reason}")
        self.notification_service.publish(ORDER_CANCELLED, order.id, order.customer_id, reason=reason)
        return self.get_order(order.id)

    def fulfill(self, order_id: str) -> OrderOut:
        order = self._get(order_id)
        try:
            self._transition(order, OrderStatus.FULFILLED, "Order fulfilled", fulfilled_at=utcnow())
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise
        logger.info(f"Order {order.order_number} fulfilled")
        return self.get_order(order.id)

    def mark_paid(self, order_id: str, attempt: PaymentAttemptModel) -> bool:
        """
        Payment verification callback. Only a successful verify attempt on
        this order's payment is accepted. Commits every reserved line.
        Runs inside the caller's transaction. Returns False on a repeat.
        """
        order = self._get(order_id)
        self._check_attempt(order, attempt, PaymentStatus.SUCCESS)
        if order.resolved_attempt_id == attempt.id:
            logger.info(f"Order {order.id} already resolved by attempt {attempt.id}")
            return False

        self._transition(
            order,
            OrderStatus.PAID,
            "Payment verified successfully",
            payment_status=PaymentStatus.SUCCESS.value,
            paid_at=utcnow(),
            resolved_attempt_id=attempt.id,
        )
        for item in order.items:
            self.inventory.commit(item.product_id, item.quantity)
        logger.info(f"Order {order.order_number} paid, {len(order.items)} line(s) committed")
        return True

    def mark_failed(self, order_id: str, attempt: PaymentAttemptModel) -> bool:
        order = self._get(order_id)
        self._check_attempt(order, attempt, PaymentStatus.FAILED)
        if order.resolved_attempt_id == attempt.id:
            logger.info(f"Order {order.id} already resolved by attempt {attempt.id}")
            return False

        self._transition(
            order,
            OrderStatus.PAYMENT_FAILED,
            attempt.detail or "Payment failed",
            payment_status=PaymentStatus.FAILED.value,
            failed_at=utcnow(),
            resolved_attempt_id=attempt.id,
        )
        for item in order.items:
            self.inventory.release(item.product_id, item.quantity)
        logger.info(f"Order {order.order_number} payment failed, {len(order.items)} line(s) released")
        return True

    # helpers
    def _get(self, order_id: str, customer_id: str | None = None) -> OrderModel:
        order = self.repo.get_order(order_id)
        if not order or (customer_id is not None and order.customer_id != customer_id):
            raise NotFoundError(f"Order {order_id} not found")
        return order

    def _transition(self, order: OrderModel, target: OrderStatus, note: str | None = None, **values) -> None:
        ensure_transition(order.status, target)
        rowcount = self.repo.update_status(
            order.id,
            order.status,
            {"status": target.value, "updated_at": utcnow(), **values},
        )
        if rowcount == 0:
            raise ConflictError(f"Order {order.id} was modified concurrently")
        self.repo.add_history(order.id, target.value, note)
        logger.info(f"Order {order.id}: {order.status} -> {target.value}")
        set_committed_value(order, "status", target.value)

    def _check_attempt(self, order: OrderModel, attempt: PaymentAttemptModel, expected: PaymentStatus) -> None:
        stored = self.payments.get_attempt(attempt.id) if isinstance(attempt, PaymentAttemptModel) and attempt.id else None
        payment = self.payments.latest_for_order(order.id)
        if (
            stored is None
            or payment is None
            or stored.payment_ref != payment.id
            or stored.kind != AttemptKind.VERIFY.value
            or stored.status != expected.value
        ):
            raise IllegalTransition(
                f"Order {order.id} can only be marked {expected.value} by a verified payment callback"
            )

    def _payment_service(self):
        from checkout.services.payment_service import PaymentService

        return PaymentService(
            self.db,
            gateway=self.gateway or get_gateway(),
            notification_service=self.notification_service,
            order_service=self,
        )

    def _order_number(self) -> str:
        date_part = utcnow().strftime("%Y%m%d")
        for _ in range(20):
            candidate = f"ORD-{date_part}-{random.randint(0, 9999):04d}"
            if not self.repo.order_number_taken(candidate):
                return candidate
        raise ConflictError("Could not allocate an order number, retry")

    def _payment_id(self) -> str:
        for _ in range(20):
            candidate = generate_reference("PAY")
            if not self.payments.payment_id_taken(candidate):
                return candidate
        raise ConflictError("Could not allocate a payment id, retry")

    @staticmethod
    def _payment_method(value) -> str:
        try:
            return PaymentMethod(value).value
        except ValueError:
            raise ValidationError(f"Unsupported payment method: {value}")

    @staticmethod
    def _address(value) -> dict:
        if isinstance(value, AddressIn):
            return value.model_dump()
        try:
            return AddressIn(**(value or {})).model_dump()
        except ValueError as e:
            raise ValidationError(f"Invalid address: {e}")
