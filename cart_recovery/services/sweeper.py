# cart_recovery/services/sweeper.py
from datetime import datetime, timezone, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cart_recovery.domain.schemas import SweepSummary
from cart_recovery.repos.abandoned_cart_repo import AbandonedCartRepo
from cart_recovery.utils.settings import ABANDONED_CART_EXPIRE_DAYS, ABANDONED_CART_DELETE_DAYS
from cart_recovery.utils.logging import get_logger

logger = get_logger(__name__)


class LifecycleSweeper:
    """Ages out abandoned cart records. Both steps are idempotent bulk statements."""

    def __init__(
        self,
        db: Session,
        expire_after: timedelta = timedelta(days=ABANDONED_CART_EXPIRE_DAYS),
        delete_after: timedelta = timedelta(days=ABANDONED_CART_DELETE_DAYS),
    ):
        self.repo = AbandonedCartRepo(db)
        self.expire_after = expire_after
        self.delete_after = delete_after

    def expire(self, now: datetime | None = None) -> int:
        now = now or datetime.now(timezone.utc)
        try:
            count = self.repo.mark_expired(now - self.expire_after, now)
        except SQLAlchemyError as e:
            self.repo.rollback()
            logger.error(f"Failed to mark expired abandoned carts: {e}")
            return 0

        if count:
            logger.info(f"Marked {count} abandoned carts as expired")
        return count

    def purge(self, now: datetime | None = None) -> int:
        # promotion codes are left alone, they expire on their own
        now = now or datetime.now(timezone.utc)
        try:
            count = self.repo.delete_older_than(now - self.delete_after)
        except SQLAlchemyError as e:
            self.repo.rollback()
            logger.error(f"Failed to delete old abandoned carts: {e}")
            return 0

        if count:
            logger.info(f"Deleted {count} old abandoned carts")
        return count

    def sweep(self, now: datetime | None = None) -> SweepSummary:
        now = now or datetime.now(timezone.utc)
        logger.debug("Running abandoned cart cleanup")
        return SweepSummary(expired=self.expire(now), deleted=self.purge(now))
