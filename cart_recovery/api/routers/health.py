# cart_recovery/api/routers/health.py
from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cart_recovery.data.database import get_db
from cart_recovery.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request, db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        logger.error(f"Health check database probe failed: {e}")
        database = "unavailable"

    detector = getattr(request.app.state, "detector", None)
    return {
        "status": "ok",
        "database": database,
        "detector_running": bool(detector is not None and detector.running),
    }
