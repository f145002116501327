import json
from datetime import datetime, timedelta
from typing import Dict

from sqlalchemy.orm import Session

from checkout.data.database import utcnow
from checkout.data.models.cart import CartModel
from checkout.data.models.cart_item import CartItemModel
from checkout.domain.errors import ValidationError, QuantityExceeded, ItemNotFound, ConflictError
from checkout.domain.schemas import CartOut, CartItemOut, TotalsOut, StockShortfall
from checkout.domain.totals import calculate_totals, to_money
from checkout.repos.cart_repo import CartRepo
from checkout.services.inventory_service import InventoryService
from checkout.services.product_client import ProductClient
from checkout.utils.settings import MAX_ITEM_QUANTITY, CART_RETENTION_DAYS
from checkout.utils.logging import get_logger

logger = get_logger(__name__)


def normalize_variant(variant: Dict[str, str] | None) -> Dict[str, str]:
    return {str(k).strip(): str(v).strip() for k, v in (variant or {}).items() if v is not None}


def variant_key(variant: Dict[str, str] | None) -> str:
    """Canonical form of a variant map, equal for equal maps whatever the key order."""
    return json.dumps(normalize_variant(variant), sort_keys=True, separators=(",", ":"))


class CartService:
    """
    Cart aggregate, one cart per customer.
    commands (add, update, remove, clear) modify state and bump the cart
    version with an optimistic lock, queries (get, validate) only read.
    Totals are recomputed from the items on every command.
    """

    def __init__(
        self,
        db: Session,
        product_client: ProductClient | None = None,
        inventory: InventoryService | None = None,
    ):
        self.repo = CartRepo(db)
        self.product_client = product_client
        self.inventory = inventory or InventoryService(db)

    # query
    def get_cart(self, customer_id: str) -> CartOut | None:
        cart = self.repo.get_by_customer(customer_id)
        if not cart:
            return None
        return self._to_out(cart)

    def validate_against_stock(self, customer_id: str) -> list[StockShortfall]:
        """Read-only pre-check, nothing is reserved."""
        cart = self.repo.get_by_customer(customer_id)
        if not cart:
            return []

        shortfalls = []
        claimed: dict[str, int] = {}
        for index, item in enumerate(self.repo.get_cart_items(cart.id)):
            available = self.inventory.available_for_sale(item.product_id)
            # earlier lines of the same product already claim part of the stock
            left = max(0, available - claimed.get(item.product_id, 0))
            claimed[item.product_id] = claimed.get(item.product_id, 0) + item.quantity
            if item.quantity > left:
                shortfalls.append(
                    StockShortfall(
                        item_index=index,
                        product_id=item.product_id,
                        requested=item.quantity,
                        available=left,
                    )
                )
        return shortfalls

    #commands
    def find_or_create(self, customer_id: str) -> CartOut:
        cart = self._load(customer_id)
        self.repo.commit()
        return self._to_out(cart)

    def add_item(
        self,
        customer_id: str,
        product_id: str,
        quantity: int,
        variant: Dict[str, str] | None = None,
    ) -> CartOut:
        self._check_quantity(quantity)
        attrs = normalize_variant(variant)
        key = variant_key(attrs)

        try:
            cart = self._load(customer_id)
            existing_item = self.repo.get_cart_item(cart.id, product_id, key)
            now = utcnow()

            if existing_item:
                new_quantity = existing_item.quantity + quantity
                if new_quantity > MAX_ITEM_QUANTITY:
                    raise QuantityExceeded(
                        f"Maximum quantity per item is {MAX_ITEM_QUANTITY} "
                        f"({existing_item.quantity} already in cart)"
                    )
                logger.info(
                    f"Product {product_id} {key} already in cart {cart.id}, quantity "
                    f"{existing_item.quantity} -> {new_quantity}"
                )
                existing_item.quantity = new_quantity
                existing_item.updated_at = now
            else:
                product = self._fetch_product(product_id)
                logger.info(f"Adding product {product_id} {key} to cart {cart.id}")
                self.repo.add_cart_item(
                    CartItemModel(
                        cart_id=cart.id,
                        position=self.repo.next_position(cart.id),
                        product_id=product_id,
                        name=product["name"],
                        sku=product["sku"],
                        unit_price=to_money(product["price"]),
                        quantity=quantity,
                        variants=attrs,
                        variant_key=key,
                        added_at=now,
                        updated_at=now,
                    )
                )

            self._save(cart)
        except Exception:
            self.repo.rollback()
            raise

        return self.get_cart(customer_id)

    def update_item_quantity(
        self,
        customer_id: str,
        product_id: str,
        quantity: int,
        variant: Dict[str, str] | None = None,
    ) -> CartOut:
        """quantity <= 0 removes the item. Without a variant the earliest line of the product is used."""
        if quantity > MAX_ITEM_QUANTITY:
            raise QuantityExceeded(f"Maximum quantity per item is {MAX_ITEM_QUANTITY}")

        try:
            cart = self._load(customer_id)
            if variant is None:
                matches = self.repo.get_product_items(cart.id, product_id)
                item = matches[0] if matches else None
            else:
                item = self.repo.get_cart_item(cart.id, product_id, variant_key(variant))

            if not item:
                raise ItemNotFound(f"Item {product_id} not found in cart")

            if quantity <= 0:
                logger.info(f"Quantity {quantity} for {product_id}, removing it from cart {cart.id}")
                self.repo.delete_cart_item(item)
            else:
                item.quantity = quantity
                item.updated_at = utcnow()

            self._save(cart)
        except Exception:
            self.repo.rollback()
            raise

        return self.get_cart(customer_id)

    def remove_item(
        self,
        customer_id: str,
        product_id: str,
        variant: Dict[str, str] | None = None,
    ) -> CartOut:
        try:
            cart = self._load(customer_id)
            if variant is None:
                items = self.repo.get_product_items(cart.id, product_id)
            else:
                item = self.repo.get_cart_item(cart.id, product_id, variant_key(variant))
                items = [item] if item else []

            for item in items:
                self.repo.delete_cart_item(item)
            logger.info(f"Removed {len(items)} line(s) of {product_id} from cart {cart.id}")

            self._save(cart)
        except Exception:
            self.repo.rollback()
            raise

        return self.get_cart(customer_id)

    def clear_cart(self, customer_id: str) -> CartOut:
        try:
            cart = self._load(customer_id)
            removed = self.repo.clear_cart_items(cart.id)
            logger.info(f"Cleared {removed} line(s) from cart {cart.id}")
            self._save(cart)
        except Exception:
            self.repo.rollback()
            raise

        return self.get_cart(customer_id)

    def consume_for_order(self, cart_id: int, version: int) -> None:
        """
        Empty a cart that has just become an order. `version` is the one read
        when the order started; a cart changed since then raises ConflictError.
        Never commits, order placement owns the transaction.
        """
        empty = calculate_totals(())
        rowcount = self.repo.update_cart_version(
            cart_id=cart_id,
            old_version=version,
            new_data={
                "version": version + 1,
                "total_items": empty.total_items,
                "subtotal": empty.subtotal,
                "tax": empty.tax,
                "shipping": empty.shipping,
                "total": empty.total,
                "last_activity": utcnow(),
            },
        )
        if rowcount == 0:
            raise ConflictError("Cart changed while the order was being placed, retry")
        removed = self.repo.clear_cart_items(cart_id)
        logger.info(f"Cart {cart_id} consumed by order, {removed} line(s) removed, version {version + 1}")

    def clean_expired_carts(self, older_than_days: int = CART_RETENTION_DAYS, now: datetime | None = None) -> int:
        """Delete empty carts nobody touched for `older_than_days`."""
        cutoff = (now or utcnow()) - timedelta(days=older_than_days)
        deleted = self.repo.delete_inactive_empty(cutoff)
        self.repo.commit()
        logger.info(f"Deleted {deleted} empty cart(s) inactive since {cutoff.isoformat()}")
        return deleted

    # helpers
    def _load(self, customer_id: str) -> CartModel:
        if not customer_id:
            raise ValidationError("Customer id is required")
        self.repo.upsert_cart(customer_id)
        return self.repo.get_by_customer(customer_id)

    def _fetch_product(self, product_id: str) -> dict:
        if self.product_client is None:
            raise ValidationError("Product catalog is not configured")
        product = self.product_client.fetch_product(product_id)
        if not product.get("is_active", True):
            raise ValidationError(f"Product {product_id} is not available")
        return product

    @staticmethod
    def _check_quantity(quantity: int) -> None:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        if quantity > MAX_ITEM_QUANTITY:
            raise ValidationError(f"Maximum quantity per item is {MAX_ITEM_QUANTITY}")

    def _save(self, cart: CartModel, commit: bool = True) -> None:
        self.repo.db.flush()
        items = self.repo.get_cart_items(cart.id)
        totals = calculate_totals((i.unit_price, i.quantity) for i in items)

        # optimistic locking on the cart version
        rowcount = self.repo.update_cart_version(
            cart_id=cart.id,
            old_version=cart.version,
            new_data={
                "version": cart.version + 1,
                "total_items": totals.total_items,
                "subtotal": totals.subtotal,
                "tax": totals.tax,
                "shipping": totals.shipping,
                "total": totals.total,
                "last_activity": utcnow(),
            },
        )
        if rowcount == 0:
            raise ConflictError("Cart was modified by another request, retry")

        if commit:
            self.repo.commit()
        logger.info(f"Cart {cart.id} saved, version {cart.version + 1}, total {totals.total}")

    def _to_out(self, cart: CartModel) -> CartOut:
        items = self.repo.get_cart_items(cart.id)
        totals = calculate_totals((i.unit_price, i.quantity) for i in items)
        return CartOut(
            cart_id=cart.id,
            customer_id=cart.customer_id,
            items=[CartItemOut.model_validate(i) for i in items],
            totals=TotalsOut(
                total_items=totals.total_items,
                subtotal=totals.subtotal,
                tax=totals.tax,
                shipping=totals.shipping,
                total=totals.total,
            ),
            last_activity=cart.last_activity,
        )
