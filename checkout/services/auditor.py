# checkout/services/auditor.py
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from checkout.data.database import utcnow
from checkout.data.models.audit_finding import AuditFindingModel
from checkout.domain.errors import ConsistencyWarning, NotFoundError, IllegalTransition
from checkout.domain.schemas import FindingOut
from checkout.domain.states import LIVE_ORDER_STATES
from checkout.repos.audit_repo import AuditRepo
from checkout.repos.inventory_repo import InventoryRepo
from checkout.repos.order_repo import OrderRepo
from checkout.services.inventory_service import InventoryService
from checkout.utils.settings import AUDIT_THRESHOLD_SECONDS
from checkout.utils.logging import get_logger

logger = get_logger(__name__)

ORPHAN_RESERVATION = "orphan_reservation"
MISSING_RESERVATION = "missing_reservation"
STALE_ORDER = "stale_order"


class ConsistencyAuditor:
    """
    Compares the ledger with the orders that should explain it.

    reserved units of a product == sum of that product's quantities over
    orders still in created / awaiting_payment

    scan() never touches stock. Findings are stored once per open problem so
    a recurring sweep does not pile up duplicates.
    """

    def __init__(self, db: Session):
        self.repo = AuditRepo(db)
        self.inventory_repo = InventoryRepo(db)
        self.orders_repo = OrderRepo(db)
        self.inventory = InventoryService(db, autocommit=False)

    def scan(self, now: datetime | None = None, threshold_seconds: int = AUDIT_THRESHOLD_SECONDS) -> list[ConsistencyWarning]:
        now = now or utcnow()
        expected_by_product = self.orders_repo.reserved_by_product(LIVE_ORDER_STATES)
        warnings: list[ConsistencyWarning] = []

        for record in self.inventory_repo.list_all():
            expected = expected_by_product.get(record.product_id, 0)
            actual = record.quantity_reserved
            if actual > expected:
                warnings.append(
                    ConsistencyWarning(
                        ORPHAN_RESERVATION,
                        f"{record.product_id}: {actual} reserved but live orders hold {expected}",
                        product_id=record.product_id,
                        expected=expected,
                        actual=actual,
                    )
                )
            elif actual < expected:
                warnings.append(
                    ConsistencyWarning(
                        MISSING_RESERVATION,
                        f"{record.product_id}: live orders hold {expected} but only {actual} reserved",
                        product_id=record.product_id,
                        expected=expected,
                        actual=actual,
                    )
                )

        cutoff = now - timedelta(seconds=threshold_seconds)
        for order in self.orders_repo.list_stale(LIVE_ORDER_STATES, cutoff):
            warnings.append(
                ConsistencyWarning(
                    STALE_ORDER,
                    f"Order {order.order_number} still {order.status}, created {order.created_at}",
                    order_id=order.id,
                )
            )

        for w in warnings:
            logger.warning(f"[AUDIT] {w.kind}: {w.message}")
            if self.repo.find_open(w.kind, w.product_id, w.order_id) is None:
                self.repo.add_finding(
                    AuditFindingModel(
                        kind=w.kind,
                        product_id=w.product_id,
                        order_id=w.order_id,
                        expected=w.expected,
                        actual=w.actual,
                        detail=w.message[:500],
                    )
                )
        self.repo.commit()

        logger.info(f"Audit finished with {len(warnings)} finding(s)")
        return warnings

    def open_findings(self) -> list[FindingOut]:
        return [FindingOut.model_validate(f) for f in self.repo.list_open()]

    def repair_orphan_reservation(self, finding_id: int) -> FindingOut:
        """
        Release the surplus that is still there now, through the ledger's
        public release(), and close the finding.
        """
        finding = self.repo.get_finding(finding_id)
        if not finding:
            raise NotFoundError(f"Finding {finding_id} not found")
        if finding.kind != ORPHAN_RESERVATION or finding.resolved_at is not None:
            raise IllegalTransition(f"Finding {finding_id} is not an open orphan reservation")

        try:
            record = self.inventory_repo.get(finding.product_id)
            if not record:
                raise NotFoundError(f"No inventory record for {finding.product_id}")
            expected = self.orders_repo.reserved_by_product(LIVE_ORDER_STATES).get(finding.product_id, 0)
            surplus = record.quantity_reserved - expected

            if surplus > 0:
                self.inventory.release(finding.product_id, surplus)
                logger.info(f"Released orphan reservation of {surplus} x {finding.product_id}")
            else:
                logger.info(f"No surplus left on {finding.product_id}, closing finding {finding_id}")

            finding.resolved_at = utcnow()
            self.repo.commit()
        except Exception:
            self.repo.db.rollback()
            raise

        return FindingOut.model_validate(finding)
