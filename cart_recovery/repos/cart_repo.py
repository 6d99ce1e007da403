# cart_recovery/repos/cart_repo.py
from datetime import datetime
from typing import List

from pydantic import ValidationError
from sqlalchemy import select, func
from sqlalchemy.orm import Session

from cart_recovery.data.models.cart_item import CartItemModel
from cart_recovery.data.models.product import ProductModel, ProductVariantModel, ProductImageModel
from cart_recovery.domain.schemas import CartAggregate, CartLine, IdentityKind
from cart_recovery.utils.logging import get_logger

logger = get_logger(__name__)


def _unit_price():
    return ProductModel.price_cents + func.coalesce(ProductVariantModel.price_adjustment_cents, 0)


class CartRepo:
    """Read-only access to live cart lines."""

    def __init__(self, db: Session):
        self.db = db

    def find_stale_cart_aggregates(self, cutoff: datetime) -> List[CartAggregate]:
        """
        One aggregate per identity whose newest line is older than cutoff.
        Session carts come first (by session id), then user carts (by user id).
        Rows that fail validation are logged and skipped.
        """
        last_modified = func.max(CartItemModel.updated_at)
        item_count = func.count(CartItemModel.id)

        stmt = (
            select(
                CartItemModel.session_id,
                CartItemModel.user_id,
                last_modified.label("last_modified_at"),
                item_count.label("item_count"),
                func.coalesce(func.sum(_unit_price() * CartItemModel.quantity), 0).label("cart_value_cents"),
            )
            .join(ProductModel, CartItemModel.product_id == ProductModel.id)
            .outerjoin(ProductVariantModel, CartItemModel.product_variant_id == ProductVariantModel.id)
            .where(CartItemModel.quantity > 0)
            .group_by(CartItemModel.session_id, CartItemModel.user_id)
            .having(item_count > 0)
            .having(last_modified < cutoff)
            .order_by(
                CartItemModel.session_id.is_(None),
                CartItemModel.session_id,
                CartItemModel.user_id,
            )
        )

        aggregates = []
        for row in self.db.execute(stmt).mappings():
            try:
                aggregates.append(CartAggregate.model_validate(dict(row)))
            except ValidationError as e:
                logger.warning(
                    f"Skipping cart aggregate session={row['session_id']} user={row['user_id']}: {e}"
                )
        return aggregates

    def get_cart_lines(self, kind: IdentityKind, key: str) -> List[CartLine]:
        image_url = (
            select(ProductImageModel.image_url)
            .where(ProductImageModel.product_id == ProductModel.id)
            .order_by(ProductImageModel.is_primary.desc(), ProductImageModel.display_order)
            .limit(1)
            .correlate(ProductModel)
            .scalar_subquery()
        )

        identity_col = CartItemModel.session_id if kind == IdentityKind.SESSION else CartItemModel.user_id

        stmt = (
            select(
                CartItemModel.product_id,
                ProductModel.name.label("product_name"),
                ProductVariantModel.name.label("variant_name"),
                func.coalesce(ProductVariantModel.sku, ProductModel.sku).label("sku"),
                image_url.label("image_url"),
                CartItemModel.quantity,
                _unit_price().label("unit_price_cents"),
            )
            .join(ProductModel, CartItemModel.product_id == ProductModel.id)
            .outerjoin(ProductVariantModel, CartItemModel.product_variant_id == ProductVariantModel.id)
            .where(identity_col == key, CartItemModel.quantity > 0)
            .order_by(CartItemModel.created_at, CartItemModel.id)
        )

        return [CartLine.model_validate(dict(row)) for row in self.db.execute(stmt).mappings()]
