# checkout/repos/order_repo.py
from datetime import datetime

from sqlalchemy import select, update, func, exists
from sqlalchemy.orm import Session

from checkout.data.models.order import OrderModel, OrderItemModel, OrderStatusHistoryModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: str) -> OrderModel | None:
        return self.db.get(OrderModel, order_id, populate_existing=True)

    def order_number_taken(self, order_number: str) -> bool:
        return self.db.execute(
            select(exists().where(OrderModel.order_number == order_number))
        ).scalar()

    def list_by_customer(self, customer_id: str) -> list[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel)
                .where(OrderModel.customer_id == customer_id)
                .order_by(OrderModel.created_at.desc())
            ).scalars().all()
        )

    def list_stale(self, statuses, cutoff: datetime) -> list[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel)
                .where(OrderModel.status.in_(list(statuses)), OrderModel.created_at < cutoff)
                .order_by(OrderModel.created_at)
            ).scalars().all()
        )

    def reserved_by_product(self, statuses) -> dict[str, int]:
        """Sum of ordered quantities per product across orders in `statuses`."""
        rows = self.db.execute(
            select(OrderItemModel.product_id, func.sum(OrderItemModel.quantity))
            .join(OrderModel, OrderModel.id == OrderItemModel.order_id)
            .where(OrderModel.status.in_(list(statuses)))
            .group_by(OrderItemModel.product_id)
        ).all()
        return {product_id: int(qty) for product_id, qty in rows}

    def update_status(self, order_id: str, old_status: str, new_data: dict) -> int:
        # UPDATE orders SET ... WHERE id = :id AND status = :old
        result = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.status == old_status)
            .values(**new_data)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def set_payment_status(self, order_id: str, payment_status: str) -> None:
        self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id)
            .values(payment_status=payment_status)
            .execution_options(synchronize_session=False)
        )

    def add_history(self, order_id: str, status: str, note: str | None = None) -> None:
        self.db.add(OrderStatusHistoryModel(order_id=order_id, status=status, note=note))
        self.db.flush()

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
