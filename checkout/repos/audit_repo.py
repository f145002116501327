# checkout/repos/audit_repo.py
from sqlalchemy import select
from sqlalchemy.orm import Session

from checkout.data.models.audit_finding import AuditFindingModel


class AuditRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_finding(self, finding: AuditFindingModel) -> AuditFindingModel:
        self.db.add(finding)
        self.db.flush()
        return finding

    def get_finding(self, finding_id: int) -> AuditFindingModel | None:
        return self.db.get(AuditFindingModel, finding_id)

    def find_open(self, kind: str, product_id: str | None, order_id: str | None) -> AuditFindingModel | None:
        return self.db.execute(
            select(AuditFindingModel).where(
                AuditFindingModel.kind == kind,
                AuditFindingModel.product_id.is_(None) if product_id is None else AuditFindingModel.product_id == product_id,
                AuditFindingModel.order_id.is_(None) if order_id is None else AuditFindingModel.order_id == order_id,
                AuditFindingModel.resolved_at.is_(None),
            )
        ).scalars().first()

    def list_open(self) -> list[AuditFindingModel]:
        return list(
            self.db.execute(
                select(AuditFindingModel)
                .where(AuditFindingModel.resolved_at.is_(None))
                .order_by(AuditFindingModel.id)
            ).scalars().all()
        )

    def commit(self):
        self.db.commit()
