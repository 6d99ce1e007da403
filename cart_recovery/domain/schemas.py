# cart_recovery/domain/schemas.py
from datetime import datetime, timezone
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class IdentityKind(str, Enum):
    SESSION = "session"
    USER = "user"


class ReflagPolicy(str, Enum):
    NEVER = "never"
    AFTER_EXPIRY = "after_expiry"


class CartAggregate(BaseModel):
    """One identity's stale cart, recomputed on every scan and never persisted."""

    session_id: str | None = None
    user_id: str | None = None
    last_modified_at: datetime
    item_count: int = Field(..., gt=0)
    cart_value_cents: int = Field(..., ge=0)

    @field_validator("session_id", "user_id", mode="before")
    @classmethod
    def _blank_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("last_modified_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @model_validator(mode="after")
    def _exactly_one_identity(self):
        if (self.session_id is None) == (self.user_id is None):
            raise ValueError("cart aggregate needs exactly one of session_id or user_id")
        return self

    @property
    def identity_kind(self) -> IdentityKind:
        return IdentityKind.SESSION if self.session_id is not None else IdentityKind.USER

    @property
    def identity_key(self) -> str:
        return self.session_id if self.session_id is not None else self.user_id


class CartLine(BaseModel):
    """Current cart line joined with its product, used to build snapshots."""

    product_id: str
    product_name: str
    variant_name: str | None = None
    sku: str | None = None
    image_url: str | None = None
    quantity: int
    unit_price_cents: int

    @property
    def display_name(self) -> str:
        if self.variant_name:
            return f"{self.product_name} ({self.variant_name})"
        return self.product_name

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity


class DetectionSummary(BaseModel):
    processed: int = 0
    recorded: int = 0
    skipped: int = 0
    failed: int = 0
    promotions_issued: int = 0
    aborted: bool = False


class SweepSummary(BaseModel):
    expired: int = 0
    deleted: int = 0


class RecoveryItemOut(BaseModel):
    product_id: str
    product_name: str
    product_sku: str | None = None
    product_image_url: str | None = None
    quantity: int
    unit_price_cents: int
    total_price_cents: int

    model_config = ConfigDict(from_attributes=True)


class RecoveryPromotionOut(BaseModel):
    code: str
    expires_at: datetime | None = None
    discount_type: str
    discount_value: int


class RecoveryCart(BaseModel):
    """Everything a "recover your cart" message needs about one abandoned cart."""

    id: str
    session_id: str | None = None
    user_id: str | None = None
    customer_email: str | None = None
    customer_name: str | None = None
    status: str
    cart_value_cents: int
    item_count: int
    abandoned_at: datetime
    items: List[RecoveryItemOut]
    promotion: RecoveryPromotionOut | None = None
