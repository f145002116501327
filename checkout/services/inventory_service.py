# checkout/services/inventory_service.py
from typing import Iterable, Tuple

from sqlalchemy.orm import Session

from checkout.data.models.inventory import InventoryModel
from checkout.domain.errors import ValidationError, NotFoundError, InsufficientStock, ConflictError
from checkout.domain.schemas import AvailabilityOut, InventoryStats
from checkout.repos.inventory_repo import InventoryRepo
from checkout.utils.logging import get_logger

logger = get_logger(__name__)


class InventoryService:
    """
    Inventory ledger, the only authority on stock.

    reserve/release/commit are conditional updates evaluated by the database,
    so two checkouts racing for the same product are ordered by the store.
    With autocommit=False the service joins the caller's transaction
    (order creation, payment verification) and never commits or rolls back.
    """

    def __init__(self, db: Session, autocommit: bool = True):
        self.repo = InventoryRepo(db)
        self.autocommit = autocommit

    # query
    def get_availability(self, product_id: str) -> AvailabilityOut:
        return AvailabilityOut.model_validate(self._get(product_id))

    def list_low_stock(self, threshold: int | None = None) -> list[AvailabilityOut]:
        if threshold is not None and threshold < 0:
            raise ValidationError("Threshold cannot be negative")
        return [AvailabilityOut.model_validate(r) for r in self.repo.list_low_stock(threshold)]

    def stats(self) -> InventoryStats:
        return InventoryStats(**self.repo.stats())

    def available_for_sale(self, product_id: str) -> int:
        record = self.repo.get(product_id)
        if not record or not record.is_active:
            return 0
        return record.available_for_sale

    # commands
    def register(
        self,
        product_id: str,
        sku: str,
        quantity_available: int = 0,
        reorder_level: int = 10,
        max_stock_level: int = 1000,
    ) -> AvailabilityOut:
        if quantity_available < 0 or reorder_level < 0:
            raise ValidationError("Quantities cannot be negative")
        if max_stock_level <= reorder_level:
            raise ValidationError("Max stock level must be greater than reorder level")
        if quantity_available > max_stock_level:
            raise ValidationError("Total stock cannot exceed max stock level")
        if self.repo.get(product_id) or self.repo.get_by_sku(sku.upper()):
            raise ConflictError(f"Inventory record for {product_id} / {sku} already exists")

        record = self.repo.create(
            InventoryModel(
                product_id=product_id,
                sku=sku.upper(),
                quantity_available=quantity_available,
                quantity_reserved=0,
                quantity_locked=0,
                reorder_level=reorder_level,
                max_stock_level=max_stock_level,
            )
        )
        self._done()
        logger.info(f"Inventory record {product_id} ({record.sku}) registered with {quantity_available} units")
        return self.get_availability(product_id)

    def reserve(self, product_id: str, qty: int) -> None:
        self._check_qty(qty)
        if self.repo.reserve(product_id, qty) == 0:
            record = self.repo.get(product_id)
            self._abort()
            if not record:
                raise NotFoundError(f"No inventory record for {product_id}")
            available = record.available_for_sale if record.is_active else 0
            raise InsufficientStock(
                f"Insufficient stock for {product_id}: requested {qty}, available {available}",
                shortfalls=[{"product_id": product_id, "requested": qty, "available": available}],
            )
        self._done()
        logger.info(f"Reserved {qty} of {product_id}")

    def reserve_many(self, lines: Iterable[Tuple[str, int]]) -> None:
        """
        Reserve every line or none of them. Lines for the same product are
        summed first. When any line fails, everything reserved in this call is
        released before InsufficientStock names all failing products.
        """
        wanted: dict[str, int] = {}
        for product_id, qty in lines:
            self._check_qty(qty)
            wanted[product_id] = wanted.get(product_id, 0) + qty

        reserved: list[Tuple[str, int]] = []
        shortfalls: list[dict] = []

        for product_id, qty in wanted.items():
            if self.repo.reserve(product_id, qty) == 1:
                reserved.append((product_id, qty))
                continue
            record = self.repo.get(product_id)
            available = record.available_for_sale if record and record.is_active else 0
            shortfalls.append({"product_id": product_id, "requested": qty, "available": available})

        if shortfalls:
            for product_id, qty in reserved:
                self.repo.release(product_id, qty)
                logger.info(f"Compensating release of {qty} x {product_id}")
            self._done()
            names = ", ".join(s["product_id"] for s in shortfalls)
            raise InsufficientStock(f"Insufficient stock for: {names}", shortfalls=shortfalls)

        self._done()
        logger.info(f"Reserved {len(reserved)} product(s): {reserved}")

    def release(self, product_id: str, qty: int, committed: bool = False) -> None:
        """
        Return stock to sale. For a reservation both counters move; for units
        already committed (sold) only available grows.
        """
        self._check_qty(qty)
        rowcount = self.repo.restore(product_id, qty) if committed else self.repo.release(product_id, qty)
        if rowcount == 0:
            self._abort()
            raise NotFoundError(f"No inventory record for {product_id}")
        self._done()
        logger.info(f"Released {qty} of {product_id}{' (committed)' if committed else ''}")

    def commit(self, product_id: str, qty: int) -> None:
        self._check_qty(qty)
        if self.repo.commit_reserved(product_id, qty) == 0:
            self._abort()
            raise NotFoundError(f"No inventory record for {product_id}")
        self._done()
        logger.info(f"Committed {qty} of {product_id}")

    def adjust(self, product_id: str, delta: int, reason: str) -> AvailabilityOut:
        if delta == 0:
            raise ValidationError("Adjustment cannot be zero")
        if self.repo.adjust(product_id, delta) == 0:
            record = self._get(product_id)
            self._abort()
            raise ValidationError(
                f"Adjustment {delta:+d} for {product_id} rejected: available {record.quantity_available}, "
                f"total {record.total_stock}, max {record.max_stock_level}"
            )
        self._done()
        logger.info(f"Stock adjusted for {product_id}: {delta:+d} units. Reason: {reason}")
        return self.get_availability(product_id)

    def lock(self, product_id: str, qty: int) -> AvailabilityOut:
        """Move units out of sale (damaged or held)."""
        self._check_qty(qty)
        if self.repo.lock(product_id, qty) == 0:
            record = self._get(product_id)
            self._abort()
            raise InsufficientStock(
                f"Cannot lock {qty} of {product_id}, available {record.quantity_available}",
                shortfalls=[{"product_id": product_id, "requested": qty, "available": record.quantity_available}],
            )
        self._done()
        logger.info(f"Locked {qty} of {product_id}")
        return self.get_availability(product_id)

    def unlock(self, product_id: str, qty: int) -> AvailabilityOut:
        self._check_qty(qty)
        if self.repo.unlock(product_id, qty) == 0:
            record = self._get(product_id)
            self._abort()
            raise ValidationError(f"Cannot unlock {qty} of {product_id}, locked {record.quantity_locked}")
        self._done()
        logger.info(f"Unlocked {qty} of {product_id}")
        return self.get_availability(product_id)

    # helpers
    def _get(self, product_id: str) -> InventoryModel:
        record = self.repo.get(product_id)
        if not record:
            raise NotFoundError(f"No inventory record for {product_id}")
        return record

    @staticmethod
    def _check_qty(qty: int) -> None:
        if not isinstance(qty, int) or qty < 1:
            raise ValidationError("Quantity must be a positive integer")

    def _done(self) -> None:
        if self.autocommit:
            self.repo.commit()

    def _abort(self) -> None:
        if self.autocommit:
            self.repo.rollback()
