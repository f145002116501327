import uuid

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric
from sqlalchemy.orm import relationship

from checkout.data.database import Base, utcnow


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    payment_id = Column(String(32), nullable=False, unique=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)

    # equals the order total, never updated
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    method = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    correlation_id = Column(String(64), nullable=True, unique=True)

    refund_id = Column(String(32), nullable=True)
    refund_reason = Column(String(500), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    attempts = relationship(
        "PaymentAttemptModel",
        back_populates="payment",
        cascade="all, delete-orphan",
        order_by="PaymentAttemptModel.id",
    )


class PaymentAttemptModel(Base):
    __tablename__ = "payment_attempts"

    id = Column(Integer, primary_key=True)
    payment_ref = Column(String(36), ForeignKey("payments.id", ondelete="CASCADE"), nullable=False, index=True)
    kind = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False)
    correlation_id = Column(String(64), nullable=True)
    amount = Column(Numeric(12, 2), nullable=True)
    detail = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    payment = relationship("PaymentModel", back_populates="attempts")
