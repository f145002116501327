from sqlalchemy import Column, Integer, String, DateTime

from checkout.data.database import Base, utcnow


class AuditFindingModel(Base):
    __tablename__ = "audit_findings"

    id = Column(Integer, primary_key=True)
    kind = Column(String(40), nullable=False)  # orphan_reservation | stale_order
    product_id = Column(String(64), nullable=True, index=True)
    order_id = Column(String(36), nullable=True, index=True)
    expected = Column(Integer, nullable=True)
    actual = Column(Integer, nullable=True)
    detail = Column(String(500), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
