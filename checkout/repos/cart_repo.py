# checkout/repos/cart_repo.py
from datetime import datetime

from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from checkout.data.database import utcnow
from checkout.data.models.cart import CartModel
from checkout.data.models.cart_item import CartItemModel


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_cart(self, cart_id: int) -> CartModel | None:
        return self.db.get(CartModel, cart_id, populate_existing=True)

    def get_by_customer(self, customer_id: str) -> CartModel | None:
        return self.db.execute(
            select(CartModel)
            .where(CartModel.customer_id == customer_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def upsert_cart(self, customer_id: str) -> None:
        """INSERT ... ON CONFLICT DO NOTHING on the unique customer_id."""
        now = utcnow()
        values = {"customer_id": customer_id, "version": 1, "last_activity": now, "created_at": now}
        dialect = self.db.get_bind().dialect.name

        if dialect in ("postgresql", "sqlite"):
            if dialect == "postgresql":
                from sqlalchemy.dialects.postgresql import insert
            else:
                from sqlalchemy.dialects.sqlite import insert
            stmt = insert(CartModel).values(**values).on_conflict_do_nothing(
                index_elements=[CartModel.customer_id]
            )
            self.db.execute(stmt)
            return

        # other backends: savepoint + unique violation
        try:
            with self.db.begin_nested():
                self.db.execute(CartModel.__table__.insert().values(**values))
        except IntegrityError:
            pass

    def get_cart_items(self, cart_id: int) -> list[CartItemModel]:
        return list(
            self.db.execute(
                select(CartItemModel)
                .where(CartItemModel.cart_id == cart_id)
                .order_by(CartItemModel.position, CartItemModel.id)
            ).scalars().all()
        )

    def get_cart_item(self, cart_id: int, product_id: str, variant_key: str) -> CartItemModel | None:
        return self.db.execute(
            select(CartItemModel).where(
                CartItemModel.cart_id == cart_id,
                CartItemModel.product_id == product_id,
                CartItemModel.variant_key == variant_key,
            )
        ).scalar_one_or_none()

    def get_product_items(self, cart_id: int, product_id: str) -> list[CartItemModel]:
        return list(
            self.db.execute(
                select(CartItemModel)
                .where(CartItemModel.cart_id == cart_id, CartItemModel.product_id == product_id)
                .order_by(CartItemModel.position, CartItemModel.id)
            ).scalars().all()
        )

    def next_position(self, cart_id: int) -> int:
        current = self.db.execute(
            select(func.max(CartItemModel.position)).where(CartItemModel.cart_id == cart_id)
        ).scalar()
        return 0 if current is None else current + 1

    def add_cart_item(self, item: CartItemModel) -> CartItemModel:
        self.db.add(item)
        self.db.flush()
        return item

    def delete_cart_item(self, item: CartItemModel) -> None:
        self.db.delete(item)
        self.db.flush()

    def clear_cart_items(self, cart_id: int) -> int:
        result = self.db.execute(
            delete(CartItemModel)
            .where(CartItemModel.cart_id == cart_id)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def update_cart_version(self, cart_id: int, old_version: int, new_data: dict) -> int:
        # UPDATE carts SET ... WHERE id = :id AND version = :old
        result = self.db.execute(
            update(CartModel)
            .where(CartModel.id == cart_id, CartModel.version == old_version)
            .values(**new_data)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def delete_inactive_empty(self, cutoff: datetime) -> int:
        result = self.db.execute(
            delete(CartModel)
            .where(CartModel.last_activity < cutoff, CartModel.total_items == 0)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
