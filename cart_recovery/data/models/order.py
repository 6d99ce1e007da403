import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime

from cart_recovery.data.database import Base

# orders in these states never count as a purchase
NON_PURCHASE_STATUSES = ("cancelled", "failed")


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=True, index=True)
    customer_email = Column(String, nullable=False, index=True)

    status = Column(String, nullable=False, default="received")  # received, processing, shipped, delivered, cancelled, failed
    total_cents = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
