# cart_recovery/services/detector.py
from datetime import datetime

from cart_recovery.data import database
from cart_recovery.domain.schemas import DetectionSummary, SweepSummary
from cart_recovery.services.discount_provider import StripeDiscountProvider
from cart_recovery.services.promotion_service import PromotionService
from cart_recovery.services.recorder import AbandonmentRecorder
from cart_recovery.services.scanner import CartScanner
from cart_recovery.services.scheduler import PeriodicTask
from cart_recovery.services.sweeper import LifecycleSweeper
from cart_recovery.utils.settings import DETECTION_INTERVAL_SECONDS
from cart_recovery.utils.logging import get_logger

logger = get_logger(__name__)


def run_detection_cycle(
    session_factory=None,
    discount_provider: StripeDiscountProvider | None = None,
    now: datetime | None = None,
) -> DetectionSummary:
    db = (session_factory or database.SessionLocal)()
    try:
        promotions = PromotionService(db, discount_provider) if discount_provider else None
        scanner = CartScanner(db, AbandonmentRecorder(db, promotions))
        return scanner.scan(now)
    finally:
        db.close()


def run_cleanup_cycle(session_factory=None, now: datetime | None = None) -> SweepSummary:
    db = (session_factory or database.SessionLocal)()
    try:
        return LifecycleSweeper(db).sweep(now)
    finally:
        db.close()


class AbandonedCartDetector:
    """Background detection loop hosted by the web process."""

    def __init__(
        self,
        session_factory=None,
        discount_provider: StripeDiscountProvider | None = None,
        interval: float = DETECTION_INTERVAL_SECONDS,
    ):
        self.session_factory = session_factory
        self.discount_provider = discount_provider
        self.interval = interval
        self._task = PeriodicTask("abandoned-cart-detector")

    @property
    def running(self) -> bool:
        return self._task.running

    def run_once(self) -> DetectionSummary:
        return run_detection_cycle(self.session_factory, self.discount_provider)

    def start(self) -> None:
        logger.info(
            f"Starting abandoned cart detector (interval={self.interval}s, "
            f"promotions={'on' if self.discount_provider else 'off'})"
        )
        self._task.start(self.interval, self.run_once)

    def stop(self, timeout: float | None = None) -> None:
        self._task.stop(timeout)
