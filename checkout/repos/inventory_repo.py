# checkout/repos/inventory_repo.py
from sqlalchemy import select, update, func, case
from sqlalchemy.orm import Session

from checkout.data.database import utcnow
from checkout.data.models.inventory import InventoryModel

inv = InventoryModel


def _floored_minus(column, qty: int):
    return case((column >= qty, column - qty), else_=0)


class InventoryRepo:
    """
    Every mutation here is a single UPDATE with its precondition in the WHERE
    clause. The caller reads rowcount: 0 means the precondition did not hold
    at the store.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, product_id: str) -> InventoryModel | None:
        return self.db.get(InventoryModel, product_id, populate_existing=True)

    def get_by_sku(self, sku: str) -> InventoryModel | None:
        return self.db.execute(select(inv).where(inv.sku == sku)).scalar_one_or_none()

    def create(self, record: InventoryModel) -> InventoryModel:
        self.db.add(record)
        self.db.flush()
        return record

    def list_all(self) -> list[InventoryModel]:
        return list(
            self.db.execute(
                select(inv).order_by(inv.product_id).execution_options(populate_existing=True)
            ).scalars().all()
        )

    def list_low_stock(self, threshold: int | None = None) -> list[InventoryModel]:
        limit = inv.reorder_level if threshold is None else threshold
        return list(
            self.db.execute(
                select(inv)
                .where(inv.is_active.is_(True), inv.quantity_available <= limit)
                .order_by(inv.quantity_available, inv.product_id)
                .execution_options(populate_existing=True)
            ).scalars().all()
        )

    def _execute(self, product_id: str, conditions: tuple, values: dict) -> int:
        values["updated_at"] = utcnow()
        result = self.db.execute(
            update(inv)
            .where(inv.product_id == product_id, *conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def reserve(self, product_id: str, qty: int) -> int:
        return self._execute(
            product_id,
            (inv.is_active.is_(True), inv.quantity_available >= qty),
            {
                "quantity_available": inv.quantity_available - qty,
                "quantity_reserved": inv.quantity_reserved + qty,
            },
        )

    def release(self, product_id: str, qty: int) -> int:
        return self._execute(
            product_id,
            (),
            {
                "quantity_available": inv.quantity_available + qty,
                "quantity_reserved": _floored_minus(inv.quantity_reserved, qty),
            },
        )

    def restore(self, product_id: str, qty: int) -> int:
        """Put sold units back on sale, reservations untouched."""
        return self._execute(
            product_id,
            (),
            {"quantity_available": inv.quantity_available + qty},
        )

    def commit_reserved(self, product_id: str, qty: int) -> int:
        return self._execute(
            product_id,
            (),
            {"quantity_reserved": _floored_minus(inv.quantity_reserved, qty)},
        )

    def adjust(self, product_id: str, delta: int) -> int:
        total = inv.quantity_available + inv.quantity_reserved + inv.quantity_locked
        values = {"quantity_available": inv.quantity_available + delta}
        if delta > 0:
            values["last_restocked"] = utcnow()
        return self._execute(
            product_id,
            (inv.quantity_available + delta >= 0, total + delta <= inv.max_stock_level),
            values,
        )

    def lock(self, product_id: str, qty: int) -> int:
        return self._execute(
            product_id,
            (inv.quantity_available >= qty,),
            {
                "quantity_available": inv.quantity_available - qty,
                "quantity_locked": inv.quantity_locked + qty,
            },
        )

    def unlock(self, product_id: str, qty: int) -> int:
        return self._execute(
            product_id,
            (inv.quantity_locked >= qty,),
            {
                "quantity_available": inv.quantity_available + qty,
                "quantity_locked": inv.quantity_locked - qty,
            },
        )

    def stats(self) -> dict:
        row = self.db.execute(
            select(
                func.count(inv.product_id),
                func.coalesce(func.sum(case((inv.quantity_available <= inv.reorder_level, 1), else_=0)), 0),
                func.coalesce(func.sum(case((inv.quantity_available == 0, 1), else_=0)), 0),
                func.coalesce(func.sum(inv.quantity_available), 0),
                func.coalesce(func.sum(inv.quantity_reserved), 0),
                func.coalesce(func.sum(inv.quantity_locked), 0),
            ).where(inv.is_active.is_(True))
        ).one()
        return {
            "total_records": row[0],
            "low_stock": row[1],
            "out_of_stock": row[2],
            "units_available": row[3],
            "units_reserved": row[4],
            "units_locked": row[5],
        }

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
