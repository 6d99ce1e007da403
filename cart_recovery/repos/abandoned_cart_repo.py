# cart_recovery/repos/abandoned_cart_repo.py
from datetime import datetime
from typing import List

from sqlalchemy import select, update, delete
from sqlalchemy.orm import Session

from cart_recovery.data.models.abandoned_cart import (
    AbandonedCartModel,
    CartSnapshotModel,
    STATUS_ACTIVE,
    STATUS_EXPIRED,
)
from cart_recovery.domain.schemas import IdentityKind


class AbandonedCartRepo:
    def __init__(self, db: Session):
        self.db = db

    def get(self, cart_id: str) -> AbandonedCartModel | None:
        return self.db.get(AbandonedCartModel, cart_id)

    def find_by_identity(
        self,
        kind: IdentityKind,
        key: str,
        active_only: bool = False,
    ) -> AbandonedCartModel | None:
        """Most recent record for the session or user, if any."""
        identity_col = AbandonedCartModel.session_id if kind == IdentityKind.SESSION else AbandonedCartModel.user_id

        stmt = select(AbandonedCartModel).where(identity_col == key)
        if active_only:
            stmt = stmt.where(AbandonedCartModel.status == STATUS_ACTIVE)
        stmt = stmt.order_by(AbandonedCartModel.abandoned_at.desc()).limit(1)

        return self.db.execute(stmt).scalar_one_or_none()

    def create(self, cart: AbandonedCartModel) -> AbandonedCartModel:
        self.db.add(cart)
        self.db.commit()
        return cart

    def link_promotion_code(self, cart: AbandonedCartModel, promotion_code_id: str) -> None:
        # commits together with the pending promotion code row
        cart.promotion_code_id = promotion_code_id
        self.db.add(cart)
        self.db.commit()

    def create_snapshot(self, snapshot: CartSnapshotModel) -> CartSnapshotModel:
        self.db.add(snapshot)
        self.db.commit()
        return snapshot

    def get_snapshots(self, cart_id: str) -> List[CartSnapshotModel]:
        stmt = (
            select(CartSnapshotModel)
            .where(CartSnapshotModel.abandoned_cart_id == cart_id)
            .order_by(CartSnapshotModel.created_at, CartSnapshotModel.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def mark_expired(self, cutoff: datetime, now: datetime) -> int:
        result = self.db.execute(
            update(AbandonedCartModel)
            .where(
                AbandonedCartModel.status == STATUS_ACTIVE,
                AbandonedCartModel.abandoned_at < cutoff,
            )
            .values(status=STATUS_EXPIRED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount

    def delete_older_than(self, cutoff: datetime) -> int:
        old_ids = select(AbandonedCartModel.id).where(AbandonedCartModel.abandoned_at < cutoff)

        #snapshots first, not every driver enforces ON DELETE CASCADE
        self.db.execute(
            delete(CartSnapshotModel)
            .where(CartSnapshotModel.abandoned_cart_id.in_(old_ids))
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(
            delete(AbandonedCartModel)
            .where(AbandonedCartModel.abandoned_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
