# cart_recovery/services/scanner.py
from datetime import datetime, timezone, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cart_recovery.data.models.abandoned_cart import STATUS_ACTIVE
from cart_recovery.domain.schemas import CartAggregate, DetectionSummary, ReflagPolicy, as_utc
from cart_recovery.repos.abandoned_cart_repo import AbandonedCartRepo
from cart_recovery.repos.cart_repo import CartRepo
from cart_recovery.services.recorder import AbandonmentRecorder
from cart_recovery.utils.settings import (
    ABANDONMENT_THRESHOLD_SECONDS,
    ABANDONED_CART_DELETE_DAYS,
    ABANDONED_CART_REFLAG_POLICY,
)
from cart_recovery.utils.logging import get_logger

logger = get_logger(__name__)


class CartScanner:
    """
    Finds carts nobody touched for longer than the threshold and hands every
    identity that has no abandoned cart record yet to the recorder.
    Aggregates are processed one by one in query order; no error leaves scan().
    """

    def __init__(
        self,
        db: Session,
        recorder: AbandonmentRecorder,
        threshold: timedelta = timedelta(seconds=ABANDONMENT_THRESHOLD_SECONDS),
        reflag_policy: ReflagPolicy | str = ABANDONED_CART_REFLAG_POLICY,
        delete_after: timedelta = timedelta(days=ABANDONED_CART_DELETE_DAYS),
    ):
        self.db = db
        self.cart_lines = CartRepo(db)
        self.carts = AbandonedCartRepo(db)
        self.recorder = recorder
        self.threshold = threshold
        self.reflag_policy = ReflagPolicy(reflag_policy)
        self.delete_after = delete_after

    def scan(self, now: datetime | None = None) -> DetectionSummary:
        now = now or datetime.now(timezone.utc)
        cutoff = now - self.threshold
        # anything past the delete window is purged by the next sweep, never record it
        purge_cutoff = now - self.delete_after
        summary = DetectionSummary()

        logger.debug(f"Running abandoned cart detection, cutoff={cutoff.isoformat()}")

        try:
            aggregates = self.cart_lines.find_stale_cart_aggregates(cutoff)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to query potentially abandoned carts: {e}")
            summary.aborted = True
            return summary

        for aggregate in aggregates:
            summary.processed += 1
            if aggregate.last_modified_at < purge_cutoff:
                logger.debug(
                    f"Cart for {aggregate.identity_kind.value} {aggregate.identity_key} "
                    f"is older than the retention window, skipping"
                )
                summary.skipped += 1
                continue

            try:
                if self._already_recorded(aggregate):
                    summary.skipped += 1
                    continue

                cart = self.recorder.record(aggregate)
            except Exception:
                self.db.rollback()
                logger.exception(
                    f"Failed to record abandoned cart for "
                    f"{aggregate.identity_kind.value} {aggregate.identity_key}"
                )
                summary.failed += 1
                continue

            if cart is None:
                summary.skipped += 1
                continue

            summary.recorded += 1
            if cart.promotion_code_id:
                summary.promotions_issued += 1

        if summary.recorded:
            logger.info(
                f"Abandoned cart detection complete: processed={summary.processed} "
                f"new={summary.recorded} promos={summary.promotions_issued} failed={summary.failed}"
            )
        else:
            logger.debug(f"Abandoned cart detection complete: processed={summary.processed} new=0")
        return summary

    def _already_recorded(self, aggregate: CartAggregate) -> bool:
        existing = self.carts.find_by_identity(aggregate.identity_kind, aggregate.identity_key)
        if existing is None:
            return False

        if self.reflag_policy == ReflagPolicy.NEVER or existing.status == STATUS_ACTIVE:
            return True

        # after_expiry: only a cart changed since the last record counts as a new abandonment
        return aggregate.last_modified_at <= as_utc(existing.abandoned_at)
