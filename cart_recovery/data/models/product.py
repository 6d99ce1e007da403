from sqlalchemy import Column, Integer, ForeignKey, String, Boolean
from sqlalchemy.orm import relationship

from cart_recovery.data.database import Base


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    sku = Column(String, nullable=True)
    price_cents = Column(Integer, nullable=False)

    variants = relationship("ProductVariantModel", back_populates="product", cascade="all, delete-orphan")
    images = relationship("ProductImageModel", back_populates="product", cascade="all, delete-orphan")


class ProductVariantModel(Base):
    __tablename__ = "product_variants"

    id = Column(String, primary_key=True)
    product_id = Column(String, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    sku = Column(String, nullable=True)
    price_adjustment_cents = Column(Integer, nullable=False, default=0)

    product = relationship("ProductModel", back_populates="variants")


class ProductImageModel(Base):
    __tablename__ = "product_images"

    id = Column(String, primary_key=True)
    product_id = Column(String, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    image_url = Column(String, nullable=False)
    is_primary = Column(Boolean, nullable=False, default=False)
    display_order = Column(Integer, nullable=False, default=0)

    product = relationship("ProductModel", back_populates="images")
