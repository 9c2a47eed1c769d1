"""Модель скидки."""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import String, Numeric, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.database import Base

if TYPE_CHECKING:
    from storefront.models.product import Product, ProductVariant
    from storefront.models.user import User


class Discount(Base):
    """
    Модель скидки.

    Привязана ровно к одному объекту: товару или варианту. Сезонная скидка
    создаётся как набор строк по товарам сезона, сезон сохраняется в каждой.
    """

    __tablename__ = "discounts"
    __table_args__ = (
        CheckConstraint(
            "(product_id IS NULL) <> (variant_id IS NULL)",
            name="ck_discounts_single_target",
        ),
        CheckConstraint("percentage > 0 AND percentage <= 100", name="ck_discounts_percentage_range"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)  # Процент скидки (0-100]
    starts_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    ends_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    season: Mapped[str | None] = mapped_column(String(20), nullable=True)
    product_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("products.id"), nullable=True, index=True)
    variant_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("product_variants.id"), nullable=True, index=True)
    created_by_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)

    # Relationships
    product: Mapped["Product | None"] = relationship("Product", back_populates="discounts")
    variant: Mapped["ProductVariant | None"] = relationship("ProductVariant", back_populates="discounts")
    created_by: Mapped["User"] = relationship("User")
