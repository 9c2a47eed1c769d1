"""Модель оценки товара."""
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Integer, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.database import Base

if TYPE_CHECKING:
    from storefront.models.product import Product


class Like(Base):
    """Оценка товара пользователем (1-5), одна на пару товар-пользователь."""

    __tablename__ = "likes"
    __table_args__ = (
        UniqueConstraint("product_id", "user_id", name="uq_likes_product_user"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_likes_rating_range"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("products.id"), nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    product: Mapped["Product"] = relationship("Product", back_populates="likes")
