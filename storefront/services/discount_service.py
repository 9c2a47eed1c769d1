"""Сервис для работы со скидками."""
import logging
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.exceptions import ValidationError, NotFoundError
from storefront.models.discount import Discount
from storefront.models.product import Product, ProductVariant, Season
from storefront.services.pricing_service import to_naive_utc

logger = logging.getLogger(__name__)


class DiscountService:
    """Сервис для работы со скидками."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_discount(
        self,
        created_by_id: UUID,
        percentage: Decimal | None,
        starts_at: datetime | None,
        ends_at: datetime | None,
        season: str | None = None,
        product_id: UUID | None = None,
        variant_id: UUID | None = None,
    ) -> list[Discount]:
        """
        Создать скидку.

        Цель выбирается по первому совпадению: сезон (по одной скидке на
        каждый товар сезона), затем товар, затем вариант.

        Returns:
            Список созданных скидок
        """
        if not starts_at or not ends_at:
            raise ValidationError("Нужно указать даты начала и конца скидки")

        starts_at = to_naive_utc(starts_at)
        ends_at = to_naive_utc(ends_at)
        if ends_at < starts_at:
            raise ValidationError("Дата окончания скидки раньше даты начала")

        if percentage is None or percentage <= 0 or percentage > 100:
            raise ValidationError("Неверный процент скидки (от 0 до 100)")

        common = {
            "percentage": percentage,
            "starts_at": starts_at,
            "ends_at": ends_at,
            "created_by_id": created_by_id,
        }

        if season:
            if season not in {s.value for s in Season}:
                raise ValidationError(
                    "Неверное значение сезона, допустимые значения: SUMMER, WINTER, ALL_SEASON"
                )
            result = await self.db.execute(select(Product.id).where(Product.season == season))
            discounts = [
                Discount(season=season, product_id=pid, **common)
                for pid in result.scalars().all()
            ]
        elif product_id:
            if not await self.db.get(Product, product_id):
                raise NotFoundError("Товар не найден")
            discounts = [Discount(product_id=product_id, **common)]
        elif variant_id:
            if not await self.db.get(ProductVariant, variant_id):
                raise NotFoundError("Вариант товара не найден")
            discounts = [Discount(variant_id=variant_id, **common)]
        else:
            raise ValidationError("Укажите либо сезон, либо товар/вариант")

        self.db.add_all(discounts)
        await self.db.commit()

        logger.info(
            f"Создано скидок: {len(discounts)} ({percentage}%, "
            f"{starts_at.isoformat()} - {ends_at.isoformat()})"
        )
        return discounts

    async def get_active(self, now: datetime | None = None) -> list[Discount]:
        """Получить скидки, действующие в момент now."""
        now = now or datetime.utcnow()
        stmt = (
            select(Discount)
            .options(selectinload(Discount.product), selectinload(Discount.variant))
            .where(Discount.starts_at <= now, Discount.ends_at >= now)
            .order_by(Discount.created_at.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_all(self) -> list[Discount]:
        """Получить все скидки."""
        stmt = (
            select(Discount)
            .options(selectinload(Discount.product), selectinload(Discount.variant))
            .order_by(Discount.created_at.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def delete_discount(self, discount_id: UUID) -> bool:
        """Удалить скидку."""
        discount = await self.db.get(Discount, discount_id)
        if not discount:
            return False

        await self.db.delete(discount)
        await self.db.commit()
        return True
