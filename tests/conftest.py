import os

# must be set before cart_recovery.utils.settings is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["ABANDONED_CART_DETECTOR_ENABLED"] = "false"

import uuid
from datetime import datetime, timezone, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import cart_recovery.data.models  # noqa: F401
from cart_recovery.data.database import Base
from cart_recovery.data.models import (
    UserModel,
    ProductModel,
    ProductVariantModel,
    ProductImageModel,
    CartItemModel,
    OrderModel,
)
from cart_recovery.services.discount_provider import DiscountProviderError, DuplicatePromotionCodeError


@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(name="session_factory")
def session_factory_fixture(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture(name="db")
def db_fixture(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


class FakeDiscountProvider:
    """Records calls instead of talking to Stripe."""

    def __init__(self, fail_codes=False, duplicates=0):
        self.campaigns = []
        self.codes = []
        self.fail_codes = fail_codes
        self.duplicates = duplicates

    def create_campaign(self, name, discount_type, value):
        self.campaigns.append((name, discount_type, value))
        return f"coupon_{len(self.campaigns)}"

    def create_restricted_code(self, campaign_id, code, email, expires_in_days):
        if self.fail_codes:
            raise DiscountProviderError("stripe is down")
        if self.duplicates > 0:
            self.duplicates -= 1
            raise DuplicatePromotionCodeError(f"Promotion code {code} already exists")
        self.codes.append({"coupon": campaign_id, "code": code, "email": email, "days": expires_in_days})
        return f"promo_{len(self.codes)}"


@pytest.fixture
def provider():
    return FakeDiscountProvider()


@pytest.fixture
def make_user(db):
    def _make(email="first@buyer.com", full_name="First Buyer", user_id=None):
        user = UserModel(id=user_id or f"user_{uuid.uuid4().hex[:8]}", email=email, full_name=full_name)
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def make_product(db):
    def _make(name="Mug", price_cents=1000, sku=None, image_url=None):
        product = ProductModel(id=f"prod_{uuid.uuid4().hex[:8]}", name=name, sku=sku, price_cents=price_cents)
        db.add(product)
        if image_url:
            db.add(ProductImageModel(
                id=str(uuid.uuid4()),
                product_id=product.id,
                image_url=image_url,
                is_primary=True,
            ))
        db.commit()
        return product

    return _make


@pytest.fixture
def make_variant(db):
    def _make(product, name="Large", price_adjustment_cents=0, sku=None):
        variant = ProductVariantModel(
            id=f"var_{uuid.uuid4().hex[:8]}",
            product_id=product.id,
            name=name,
            sku=sku,
            price_adjustment_cents=price_adjustment_cents,
        )
        db.add(variant)
        db.commit()
        return variant

    return _make


@pytest.fixture
def add_line(db, now):
    def _add(product, quantity=1, session_id=None, user_id=None, variant=None, age=timedelta(minutes=40)):
        stamp = now - age
        line = CartItemModel(
            session_id=session_id,
            user_id=user_id,
            product_id=product.id,
            product_variant_id=variant.id if variant else None,
            quantity=quantity,
            created_at=stamp,
            updated_at=stamp,
        )
        db.add(line)
        db.commit()
        return line

    return _add


@pytest.fixture
def make_order(db):
    def _make(user_id=None, email="first@buyer.com", status="delivered", total_cents=1000):
        order = OrderModel(user_id=user_id, customer_email=email, status=status, total_cents=total_cents)
        db.add(order)
        db.commit()
        return order

    return _make


@pytest.fixture
def fake_provider_cls():
    return FakeDiscountProvider
