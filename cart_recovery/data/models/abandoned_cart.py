import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, CheckConstraint, Index, text
from sqlalchemy.orm import relationship

from cart_recovery.data.database import Base

STATUS_ACTIVE = "active"
STATUS_EXPIRED = "expired"


def _utcnow():
    return datetime.now(timezone.utc)


class AbandonedCartModel(Base):
    """
    Record of a cart that stopped changing for longer than the abandonment threshold.

    At most one active record per session and per user, enforced by partial unique
    indexes so that two racing scanners cannot both insert one.
    """

    __tablename__ = "abandoned_carts"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id = Column(String, nullable=True, index=True)
    user_id = Column(String, nullable=True, index=True)

    # resolved once when the record is created
    customer_email = Column(String, nullable=True, index=True)
    customer_name = Column(String, nullable=True)

    cart_value_cents = Column(Integer, nullable=False, default=0)
    item_count = Column(Integer, nullable=False, default=0)
    abandoned_at = Column(DateTime(timezone=True), nullable=False, index=True)
    status = Column(String, nullable=False, default=STATUS_ACTIVE, index=True)

    promotion_code_id = Column(
        String,
        ForeignKey("promotion_codes.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    snapshots = relationship(
        "CartSnapshotModel",
        back_populates="abandoned_cart",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="CartSnapshotModel.created_at",
    )
    promotion_code = relationship("PromotionCodeModel")

    __table_args__ = (
        CheckConstraint("(session_id IS NULL) <> (user_id IS NULL)", name="ck_abandoned_carts_one_identity"),
        Index(
            "ux_abandoned_carts_active_session",
            "session_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index(
            "ux_abandoned_carts_active_user",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )


class CartSnapshotModel(Base):
    """Write-once copy of one cart line at the moment of abandonment."""

    __tablename__ = "cart_snapshots"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    abandoned_cart_id = Column(
        String,
        ForeignKey("abandoned_carts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = Column(String, nullable=False, index=True)
    product_name = Column(String, nullable=False)
    product_sku = Column(String, nullable=True)
    product_image_url = Column(String, nullable=True)

    quantity = Column(Integer, nullable=False)
    unit_price_cents = Column(Integer, nullable=False)
    total_price_cents = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    abandoned_cart = relationship("AbandonedCartModel", back_populates="snapshots")
