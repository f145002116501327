# checkout/repos/payment_repo.py
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from checkout.data.models.payment import PaymentModel, PaymentAttemptModel


class PaymentRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_payment(self, payment: PaymentModel) -> PaymentModel:
        self.db.add(payment)
        self.db.flush()
        return payment

    def get_payment(self, payment_id: str) -> PaymentModel | None:
        """Lookup by the shareable PAY... identifier."""
        return self.db.execute(
            select(PaymentModel)
            .where(PaymentModel.payment_id == payment_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_by_correlation(self, correlation_id: str) -> PaymentModel | None:
        return self.db.execute(
            select(PaymentModel).where(PaymentModel.correlation_id == correlation_id)
        ).scalar_one_or_none()

    def latest_for_order(self, order_id: str) -> PaymentModel | None:
        return self.db.execute(
            select(PaymentModel)
            .where(PaymentModel.order_id == order_id)
            .order_by(PaymentModel.created_at.desc(), PaymentModel.id)
            .limit(1)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def payment_id_taken(self, payment_id: str) -> bool:
        return self.get_payment(payment_id) is not None

    def update_status(self, payment_ref: str, old_statuses, new_data: dict) -> int:
        # UPDATE payments SET ... WHERE id = :id AND status IN (:old)
        result = self.db.execute(
            update(PaymentModel)
            .where(PaymentModel.id == payment_ref, PaymentModel.status.in_(list(old_statuses)))
            .values(**new_data)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def add_attempt(self, attempt: PaymentAttemptModel) -> PaymentAttemptModel:
        self.db.add(attempt)
        self.db.flush()
        return attempt

    def get_attempt(self, attempt_id: int) -> PaymentAttemptModel | None:
        return self.db.get(PaymentAttemptModel, attempt_id)

    def list_attempts(self, payment_ref: str) -> list[PaymentAttemptModel]:
        return list(
            self.db.execute(
                select(PaymentAttemptModel)
                .where(PaymentAttemptModel.payment_ref == payment_ref)
                .order_by(PaymentAttemptModel.id)
            ).scalars().all()
        )

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
