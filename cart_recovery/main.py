# cart_recovery/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI
import uvicorn

from cart_recovery.api.routers import health
from cart_recovery.data.database import init_db
from cart_recovery.services.detector import AbandonedCartDetector
from cart_recovery.services.discount_provider import get_discount_provider
from cart_recovery.utils.settings import ABANDONED_CART_DETECTOR_ENABLED
from cart_recovery.utils.logging import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()

    detector = None
    if ABANDONED_CART_DETECTOR_ENABLED:
        detector = AbandonedCartDetector(discount_provider=get_discount_provider())
        detector.start()
    else:
        logger.info("Abandoned cart detector disabled")
    app.state.detector = detector

    try:
        yield
    finally:
        if detector is not None:
            # lets an in-flight scan finish
            detector.stop()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Cart Recovery Service",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(health.router)
    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
