# cart_recovery/services/recovery_service.py
from sqlalchemy.orm import Session

from cart_recovery.domain.schemas import RecoveryCart, RecoveryItemOut, RecoveryPromotionOut, as_utc
from cart_recovery.repos.abandoned_cart_repo import AbandonedCartRepo
from cart_recovery.repos.promotion_repo import PromotionRepo


class RecoveryService:
    """Read side for whatever sends the "you left something in your cart" message."""

    def __init__(self, db: Session):
        self.carts = AbandonedCartRepo(db)
        self.promotions = PromotionRepo(db)

    def get_recovery_details(self, abandoned_cart_id: str) -> RecoveryCart | None:
        cart = self.carts.get(abandoned_cart_id)
        if cart is None:
            return None

        items = [RecoveryItemOut.model_validate(s) for s in self.carts.get_snapshots(cart.id)]

        promotion = None
        if cart.promotion_code_id:
            code = self.promotions.get_code(cart.promotion_code_id)
            if code is not None:
                promotion = RecoveryPromotionOut(
                    code=code.code,
                    expires_at=as_utc(code.expires_at),
                    discount_type=code.campaign.discount_type,
                    discount_value=code.campaign.discount_value,
                )

        return RecoveryCart(
            id=cart.id,
            session_id=cart.session_id,
            user_id=cart.user_id,
            customer_email=cart.customer_email,
            customer_name=cart.customer_name,
            status=cart.status,
            cart_value_cents=cart.cart_value_cents,
            item_count=cart.item_count,
            abandoned_at=as_utc(cart.abandoned_at),
            items=items,
            promotion=promotion,
        )
