from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Boolean
from sqlalchemy.orm import relationship

from cart_recovery.data.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class PromotionCampaignModel(Base):
    __tablename__ = "promotion_campaigns"

    id = Column(String, primary_key=True)
    # unique so concurrent get-or-create calls converge on one row
    name = Column(String, nullable=False, unique=True)
    description = Column(String, nullable=True)

    discount_type = Column(String, nullable=False)  # percentage, fixed_amount
    discount_value = Column(Integer, nullable=False)
    stripe_coupon_id = Column(String, nullable=True)

    start_date = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    end_date = Column(DateTime(timezone=True), nullable=True)
    active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    codes = relationship("PromotionCodeModel", back_populates="campaign")


class PromotionCodeModel(Base):
    __tablename__ = "promotion_codes"

    id = Column(String, primary_key=True)
    campaign_id = Column(String, ForeignKey("promotion_campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    code = Column(String, nullable=False, unique=True)
    stripe_promotion_code_id = Column(String, nullable=True, unique=True)

    email = Column(String, nullable=True, index=True)
    user_id = Column(String, nullable=True)

    max_uses = Column(Integer, nullable=False, default=1)
    current_uses = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    campaign = relationship("PromotionCampaignModel", back_populates="codes")
