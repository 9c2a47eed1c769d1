"""Модели каталога: товар, вариант, размеры, изображения."""
import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import String, Text, Numeric, Boolean, Integer, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.database import Base

if TYPE_CHECKING:
    from storefront.models.user import User
    from storefront.models.discount import Discount
    from storefront.models.like import Like
    from storefront.models.comment import Comment


class Season(str, enum.Enum):
    """Сезон товара."""

    SUMMER = "SUMMER"
    WINTER = "WINTER"
    ALL_SEASON = "ALL_SEASON"


class Product(Base):
    """Модель товара."""

    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)  # Базовая цена без скидок
    sex: Mapped[str | None] = mapped_column(String, nullable=True)
    model: Mapped[str | None] = mapped_column(String, nullable=True)
    age: Mapped[str | None] = mapped_column(String, nullable=True)
    season: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # SUMMER / WINTER / ALL_SEASON
    visible: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user: Mapped["User"] = relationship("User")
    variants: Mapped[list["ProductVariant"]] = relationship(
        "ProductVariant", back_populates="product", order_by="ProductVariant.created_at"
    )
    discounts: Mapped[list["Discount"]] = relationship("Discount", back_populates="product")
    likes: Mapped[list["Like"]] = relationship("Like", back_populates="product")
    comments: Mapped[list["Comment"]] = relationship("Comment", back_populates="product")


class ProductVariant(Base):
    """Вариант товара (цвет) со своими размерами и изображениями."""

    __tablename__ = "product_variants"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("products.id"), nullable=False, index=True)
    color: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)

    # Relationships
    product: Mapped["Product"] = relationship("Product", back_populates="variants")
    sizes: Mapped[list["VariantSize"]] = relationship(
        "VariantSize", back_populates="variant", order_by="VariantSize.position"
    )
    images: Mapped[list["ProductImage"]] = relationship("ProductImage", back_populates="variant")
    discounts: Mapped[list["Discount"]] = relationship("Discount", back_populates="variant")

    def find_size(self, size: str) -> "VariantSize | None":
        """Найти запись размера по метке."""
        for entry in self.sizes:
            if entry.size == size:
                return entry
        return None


class VariantSize(Base):
    """
    Остаток варианта по размеру.

    Отдельная строка на каждый размер: списание делается условным UPDATE
    (quantity >= n), поэтому остаток не может уйти в минус.
    """

    __tablename__ = "variant_sizes"
    __table_args__ = (
        UniqueConstraint("variant_id", "size", name="uq_variant_sizes_variant_size"),
        CheckConstraint("quantity >= 0", name="ck_variant_sizes_quantity_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    variant_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("product_variants.id"), nullable=False, index=True)
    size: Mapped[str] = mapped_column(String(20), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # Порядок в списке размеров

    # Relationships
    variant: Mapped["ProductVariant"] = relationship("ProductVariant", back_populates="sizes")


class ProductImage(Base):
    """Изображение варианта товара."""

    __tablename__ = "product_images"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    variant_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("product_variants.id"), nullable=False, index=True)
    url: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)

    # Relationships
    variant: Mapped["ProductVariant"] = relationship("ProductVariant", back_populates="images")
