# cart_recovery/tasks/abandoned_carts.py
from cart_recovery.celery_worker import celery_app
from cart_recovery.services import detector
from cart_recovery.services.discount_provider import get_discount_provider
from cart_recovery.utils.logging import get_logger

logger = get_logger(__name__)


@celery_app.task(name="cart_recovery.tasks.abandoned_carts.detect_abandoned_carts_task")
def detect_abandoned_carts_task():
    logger.info("Detect abandoned carts task started")
    summary = detector.run_detection_cycle(discount_provider=get_discount_provider())
    return summary.model_dump()


@celery_app.task(name="cart_recovery.tasks.abandoned_carts.cleanup_abandoned_carts_task")
def cleanup_abandoned_carts_task():
    logger.info("Cleanup abandoned carts task started")
    summary = detector.run_cleanup_cycle()
    logger.info(f"Cleanup finished: expired={summary.expired} deleted={summary.deleted}")
    return summary.model_dump()
