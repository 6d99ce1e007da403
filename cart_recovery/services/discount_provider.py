# cart_recovery/services/discount_provider.py
from datetime import datetime, timezone, timedelta

import stripe

from cart_recovery.utils.retry import stripe_retry
from cart_recovery.utils.settings import STRIPE_SECRET_KEY
from cart_recovery.utils.logging import get_logger

logger = get_logger(__name__)

DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FIXED_AMOUNT = "fixed_amount"


class DiscountProviderError(RuntimeError):
    pass


class DuplicatePromotionCodeError(DiscountProviderError):
    """The human-readable code is already taken on the provider side."""


def _is_duplicate_code(err: stripe.StripeError) -> bool:
    if not isinstance(err, stripe.InvalidRequestError):
        return False
    return err.code == "resource_already_exists" or "already exists" in str(err).lower()


class StripeDiscountProvider:
    """
    Coupons and promotion codes on Stripe.
    A coupon backs a campaign, a promotion code is a single customer's redeemable instance of it.
    """

    def __init__(self, api_key: str):
        if not api_key:
            raise ValueError("Stripe API key is required")
        self.api_key = api_key

    def create_campaign(self, name: str, discount_type: str, value: int) -> str:
        params = {"name": name, "duration": "once"}

        if discount_type == DISCOUNT_PERCENTAGE:
            params["percent_off"] = float(value)
        elif discount_type == DISCOUNT_FIXED_AMOUNT:
            params["amount_off"] = int(value)
            params["currency"] = "usd"
        else:
            raise ValueError(f"Invalid discount type: {discount_type}")

        logger.info(f"Creating Stripe coupon '{name}' ({discount_type} {value})")
        try:
            coupon = self._create_coupon(params)
        except stripe.StripeError as e:
            raise DiscountProviderError(f"Failed to create coupon '{name}': {e}") from e
        return coupon.id

    def create_restricted_code(self, campaign_id: str, code: str, email: str, expires_in_days: int) -> str:
        params = {
            "coupon": campaign_id,
            "code": code,
            "max_redemptions": 1,
            "restrictions": {"first_time_transaction": True},
            "metadata": {"email": email},
        }
        if expires_in_days > 0:
            expires_at = datetime.now(timezone.utc) + timedelta(days=expires_in_days)
            params["expires_at"] = int(expires_at.timestamp())

        logger.info(f"Creating Stripe promotion code {code} on coupon {campaign_id}")
        try:
            promotion_code = self._create_promotion_code(params)
        except stripe.StripeError as e:
            if _is_duplicate_code(e):
                raise DuplicatePromotionCodeError(f"Promotion code {code} already exists") from e
            raise DiscountProviderError(f"Failed to create promotion code {code}: {e}") from e
        return promotion_code.id

    @stripe_retry()
    def _create_coupon(self, params: dict):
        return stripe.Coupon.create(api_key=self.api_key, **params)

    @stripe_retry()
    def _create_promotion_code(self, params: dict):
        return stripe.PromotionCode.create(api_key=self.api_key, **params)


def get_discount_provider() -> StripeDiscountProvider | None:
    """None when Stripe is not configured; recovery codes are simply not issued then."""
    if not STRIPE_SECRET_KEY:
        logger.info("STRIPE_SECRET_KEY not set, abandoned cart promotion codes disabled")
        return None
    return StripeDiscountProvider(STRIPE_SECRET_KEY)
