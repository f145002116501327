# checkout/data/seed.py
from checkout.data.database import SessionLocal
from checkout.data.models.inventory import InventoryModel
from checkout.product_service.main import PRODUCTS
from checkout.utils.logging import get_logger

logger = get_logger(__name__)

STOCK = {
    "P-1001": 120,
    "P-1002": 40,
    "P-1003": 300,
    "P-1004": 0,
}


def seed(session_factory=SessionLocal) -> int:
    """Create inventory records for the mock catalog. Existing records are left alone."""
    db = session_factory()
    created = 0
    try:
        for product_id, product in PRODUCTS.items():
            if db.get(InventoryModel, product_id):
                continue
            db.add(
                InventoryModel(
                    product_id=product_id,
                    sku=product["sku"],
                    quantity_available=STOCK.get(product_id, 0),
                    quantity_reserved=0,
                    quantity_locked=0,
                    reorder_level=10,
                    max_stock_level=1000,
                    is_active=product["is_active"],
                )
            )
            created += 1
        db.commit()
    finally:
        db.close()
    logger.info(f"Seeded {created} inventory record(s)")
    return created


if __name__ == "__main__":
    seed()
