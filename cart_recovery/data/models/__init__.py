#import all models so SQLAlchemy registers them on Base.metadata

from cart_recovery.data.models.user import UserModel
from cart_recovery.data.models.product import ProductModel, ProductVariantModel, ProductImageModel
from cart_recovery.data.models.cart_item import CartItemModel
from cart_recovery.data.models.order import OrderModel
from cart_recovery.data.models.promotion import PromotionCampaignModel, PromotionCodeModel
from cart_recovery.data.models.abandoned_cart import AbandonedCartModel, CartSnapshotModel

__all__ = [
    "UserModel",
    "ProductModel",
    "ProductVariantModel",
    "ProductImageModel",
    "CartItemModel",
    "OrderModel",
    "PromotionCampaignModel",
    "PromotionCodeModel",
    "AbandonedCartModel",
    "CartSnapshotModel",
]
