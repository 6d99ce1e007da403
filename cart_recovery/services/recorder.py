# cart_recovery/services/recorder.py
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from cart_recovery.data.models.abandoned_cart import AbandonedCartModel, CartSnapshotModel, STATUS_ACTIVE
from cart_recovery.domain.schemas import CartAggregate
from cart_recovery.repos.abandoned_cart_repo import AbandonedCartRepo
from cart_recovery.repos.cart_repo import CartRepo
from cart_recovery.repos.order_repo import OrderRepo
from cart_recovery.repos.user_repo import UserRepo
from cart_recovery.services.discount_provider import DiscountProviderError
from cart_recovery.services.promotion_service import PromotionService, PromotionError
from cart_recovery.utils.logging import get_logger

logger = get_logger(__name__)


class AbandonmentRecorder:
    """
    Persists one newly abandoned cart and its side effects:

    1. resolve the customer (user carts only)
    2. insert the abandoned cart record
    3. first-time buyers with an email get a one-time discount code
    4. snapshot the current cart lines

    Only a failure in step 2 fails the recording. Steps 3 and 4 log and move on.
    """

    def __init__(self, db: Session, promotions: PromotionService | None = None):
        self.carts = AbandonedCartRepo(db)
        self.cart_lines = CartRepo(db)
        self.users = UserRepo(db)
        self.orders = OrderRepo(db)
        self.promotions = promotions

    def record(self, aggregate: CartAggregate) -> AbandonedCartModel | None:
        """Returns the new record, or None when the identity turned out to be recorded already."""
        email, name = self._resolve_customer(aggregate)

        cart = AbandonedCartModel(
            session_id=aggregate.session_id,
            user_id=aggregate.user_id,
            customer_email=email,
            customer_name=name,
            cart_value_cents=aggregate.cart_value_cents,
            item_count=aggregate.item_count,
            abandoned_at=aggregate.last_modified_at,
            status=STATUS_ACTIVE,
        )

        try:
            self.carts.create(cart)
        except IntegrityError:
            self.carts.rollback()
            logger.warning(
                f"Abandoned cart for {aggregate.identity_kind.value} {aggregate.identity_key} "
                f"was recorded concurrently, skipping"
            )
            return None

        if email:
            self._issue_promotion(cart, aggregate, email)

        created = self._snapshot(cart, aggregate)
        logger.info(
            f"Recorded abandoned cart {cart.id} ({aggregate.identity_kind.value} {aggregate.identity_key}), "
            f"value={aggregate.cart_value_cents} items={aggregate.item_count} snapshots={created}"
        )
        return cart

    def _resolve_customer(self, aggregate: CartAggregate) -> tuple[str | None, str | None]:
        if aggregate.user_id is None:
            return None, None

        user = self.users.get_user(aggregate.user_id)
        if user is None:
            logger.debug(f"User {aggregate.user_id} not found, abandoned cart stays anonymous")
            return None, None

        return (user.email or None), (user.full_name or None)

    def _issue_promotion(self, cart: AbandonedCartModel, aggregate: CartAggregate, email: str) -> None:
        if self.promotions is None:
            return

        try:
            if self.orders.has_ever_purchased(aggregate.user_id, email):
                logger.debug(f"{email} has purchased before, no recovery code")
                return

            promo = self.promotions.issue_code(email=email, user_id=aggregate.user_id)
            self.carts.link_promotion_code(cart, promo.id)
        except (SQLAlchemyError, DiscountProviderError, PromotionError) as e:
            self.carts.rollback()
            logger.error(f"Failed to issue promotion code for abandoned cart {cart.id} ({email}): {e}")
            return
        except Exception:
            # the cart row is committed already, snapshots must still be taken
            self.carts.rollback()
            logger.exception(f"Unexpected error issuing promotion code for abandoned cart {cart.id} ({email})")
            return

        logger.info(f"Linked promotion code {promo.code} to abandoned cart {cart.id}")

    def _snapshot(self, cart: AbandonedCartModel, aggregate: CartAggregate) -> int:
        try:
            lines = self.cart_lines.get_cart_lines(aggregate.identity_kind, aggregate.identity_key)
        except SQLAlchemyError as e:
            self.carts.rollback()
            logger.error(f"Failed to load cart lines for abandoned cart {cart.id}: {e}")
            return 0

        created = 0
        for line in lines:
            try:
                self.carts.create_snapshot(
                    CartSnapshotModel(
                        abandoned_cart_id=cart.id,
                        product_id=line.product_id,
                        product_name=line.display_name,
                        product_sku=line.sku,
                        product_image_url=line.image_url,
                        quantity=line.quantity,
                        unit_price_cents=line.unit_price_cents,
                        total_price_cents=line.line_total_cents,
                    )
                )
                created += 1
            except SQLAlchemyError as e:
                self.carts.rollback()
                logger.error(f"Failed to snapshot product {line.product_id} for abandoned cart {cart.id}: {e}")

        return created
