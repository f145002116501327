from sqlalchemy import Column, Integer, ForeignKey, Numeric, String, DateTime, JSON, UniqueConstraint
from sqlalchemy.orm import relationship

from checkout.data.database import Base, utcnow


class CartItemModel(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    product_id = Column(String(64), nullable=False)
    # name, sku and price are captured when the item is added
    name = Column(String(255), nullable=False)
    sku = Column(String(64), nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Integer, nullable=False)

    variants = Column(JSON, nullable=False, default=dict)
    variant_key = Column(String(512), nullable=False, default="{}")

    added_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    cart = relationship("CartModel", back_populates="items")

    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", "variant_key", name="u_cart_product_variant"),
    )
