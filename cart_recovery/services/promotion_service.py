# cart_recovery/services/promotion_service.py
from datetime import datetime, timezone, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from ulid import ULID

from cart_recovery.data.models.promotion import PromotionCampaignModel, PromotionCodeModel
from cart_recovery.repos.promotion_repo import PromotionRepo
from cart_recovery.services.discount_provider import (
    StripeDiscountProvider,
    DuplicatePromotionCodeError,
    DISCOUNT_PERCENTAGE,
)
from cart_recovery.utils.retry import code_collision_retry
from cart_recovery.utils.settings import (
    RECOVERY_CAMPAIGN_NAME,
    RECOVERY_DISCOUNT_PERCENT,
    RECOVERY_CODE_PREFIX,
    RECOVERY_CODE_EXPIRES_DAYS,
)
from cart_recovery.utils.logging import get_logger

logger = get_logger(__name__)


class PromotionError(RuntimeError):
    pass


def generate_promo_code(prefix: str = RECOVERY_CODE_PREFIX) -> str:
    # the leading ULID characters are the millisecond timestamp, take the random tail
    return f"{prefix}-{str(ULID())[-8:]}"


class PromotionService:
    """Issues single-use recovery codes under one shared percentage campaign."""

    def __init__(
        self,
        db: Session,
        provider: StripeDiscountProvider,
        campaign_name: str = RECOVERY_CAMPAIGN_NAME,
        discount_percent: int = RECOVERY_DISCOUNT_PERCENT,
        code_prefix: str = RECOVERY_CODE_PREFIX,
        expires_in_days: int = RECOVERY_CODE_EXPIRES_DAYS,
    ):
        self.repo = PromotionRepo(db)
        self.provider = provider
        self.campaign_name = campaign_name
        self.discount_percent = discount_percent
        self.code_prefix = code_prefix
        self.expires_in_days = expires_in_days

    def get_or_create_campaign(self) -> PromotionCampaignModel:
        for campaign in self.repo.list_active_campaigns():
            if campaign.name == self.campaign_name:
                return campaign

        existing = self.repo.get_campaign_by_name(self.campaign_name)
        if existing is not None and not existing.active:
            raise PromotionError(f"Campaign '{self.campaign_name}' is disabled")

        coupon_id = self.provider.create_campaign(self.campaign_name, DISCOUNT_PERCENTAGE, self.discount_percent)

        campaign = PromotionCampaignModel(
            id=str(ULID()),
            name=self.campaign_name,
            description=f"{self.discount_percent}% discount for first-time customers who abandoned their cart",
            discount_type=DISCOUNT_PERCENTAGE,
            discount_value=self.discount_percent,
            stripe_coupon_id=coupon_id,
            start_date=datetime.now(timezone.utc),
            active=True,
        )

        try:
            self.repo.create_campaign(campaign)
        except IntegrityError:
            # lost the insert race against another scanner
            self.repo.rollback()
            existing = self.repo.get_campaign_by_name(self.campaign_name)
            if existing is None:
                raise
            if not existing.active:
                raise PromotionError(f"Campaign '{self.campaign_name}' is disabled")
            logger.warning(
                f"Campaign '{self.campaign_name}' already exists, Stripe coupon {coupon_id} left unused"
            )
            return existing

        logger.info(f"Created campaign {campaign.id} '{campaign.name}' (coupon {coupon_id})")
        return campaign

    def issue_code(self, email: str, user_id: str | None = None) -> PromotionCodeModel:
        """
        Create a one-time code restricted to first-time buyers and stage it in the session.
        The caller commits it together with whatever references it.
        """
        campaign = self.get_or_create_campaign()
        code, external_id = self._create_external_code(campaign.stripe_coupon_id, email)

        promo = PromotionCodeModel(
            id=str(ULID()),
            campaign_id=campaign.id,
            code=code,
            stripe_promotion_code_id=external_id,
            email=email,
            user_id=user_id,
            max_uses=1,
            current_uses=0,
            expires_at=datetime.now(timezone.utc) + timedelta(days=self.expires_in_days),
        )
        self.repo.create_code(promo)

        logger.info(f"Issued promotion code {code} for {email}")
        return promo

    @code_collision_retry(DuplicatePromotionCodeError)
    def _create_external_code(self, coupon_id: str, email: str) -> tuple[str, str]:
        code = generate_promo_code(self.code_prefix)
        try:
            external_id = self.provider.create_restricted_code(coupon_id, code, email, self.expires_in_days)
        except DuplicatePromotionCodeError:
            logger.warning(f"Promotion code {code} collided, generating a new one")
            raise
        return code, external_id
