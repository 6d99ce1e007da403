# cart_recovery/celery_worker.py
from celery import Celery

from cart_recovery.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND, CLEANUP_INTERVAL_SECONDS

celery_app = Celery(
    "cart_recovery",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# tasks must be imported explicitly or the worker won't register them
celery_app.conf.imports = (
    "cart_recovery.tasks.abandoned_carts",
)

celery_app.conf.beat_schedule = {
    "cleanup-abandoned-carts": {
        "task": "cart_recovery.tasks.abandoned_carts.cleanup_abandoned_carts_task",
        "schedule": float(CLEANUP_INTERVAL_SECONDS),
    },
}

celery_app.conf.timezone = "UTC"
