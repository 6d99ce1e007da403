# cart_recovery/repos/order_repo.py
from sqlalchemy import select, or_, func
from sqlalchemy.orm import Session

from cart_recovery.data.models.order import OrderModel, NON_PURCHASE_STATUSES


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def has_ever_purchased(self, user_id: str | None, email: str | None) -> bool:
        """True when any non-cancelled, non-failed order matches the user or the email."""
        conditions = []
        if user_id:
            conditions.append(OrderModel.user_id == user_id)
        if email:
            conditions.append(func.lower(OrderModel.customer_email) == email.strip().lower())
        if not conditions:
            return False

        stmt = (
            select(func.count(OrderModel.id))
            .where(or_(*conditions))
            .where(OrderModel.status.not_in(NON_PURCHASE_STATUSES))
        )
        return self.db.execute(stmt).scalar_one() > 0
