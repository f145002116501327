from sqlalchemy import Column, Integer, String, DateTime, Boolean, CheckConstraint

from checkout.data.database import Base, utcnow


class InventoryModel(Base):
    __tablename__ = "inventory"

    product_id = Column(String(64), primary_key=True)
    sku = Column(String(64), nullable=False, unique=True)

    quantity_available = Column(Integer, nullable=False, default=0)
    quantity_reserved = Column(Integer, nullable=False, default=0)
    quantity_locked = Column(Integer, nullable=False, default=0)

    reorder_level = Column(Integer, nullable=False, default=10)
    max_stock_level = Column(Integer, nullable=False, default=1000)

    is_active = Column(Boolean, nullable=False, default=True)
    last_restocked = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("quantity_available >= 0", name="ck_inventory_available"),
        CheckConstraint("quantity_reserved >= 0", name="ck_inventory_reserved"),
        CheckConstraint("quantity_locked >= 0", name="ck_inventory_locked"),
    )

    @property
    def available_for_sale(self) -> int:
        return self.quantity_available

    @property
    def total_stock(self) -> int:
        return self.quantity_available + self.quantity_reserved + self.quantity_locked

    @property
    def is_low_stock(self) -> bool:
        return self.quantity_available <= self.reorder_level

    @property
    def is_out_of_stock(self) -> bool:
        return self.quantity_available == 0
