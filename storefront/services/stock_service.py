"""Сервис для работы с остатками вариантов по размерам."""
import logging
from collections import defaultdict
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.exceptions import StockError
from storefront.models.product import ProductVariant, VariantSize

logger = logging.getLogger(__name__)


class StockService:
    """Сервис для работы с остатками."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_available(self, variant_id: UUID, size: str) -> int | None:
        """Текущий остаток размера (None, если размера у варианта нет)."""
        stmt = select(VariantSize.quantity).where(
            VariantSize.variant_id == variant_id,
            VariantSize.size == size,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def decrement(self, variant_id: UUID, size: str, quantity: int) -> None:
        """
        Атомарно списать quantity единиц размера.

        Списание выполняется одним условным UPDATE, поэтому параллельные
        заказы не могут увести остаток в минус: если товара уже не хватает,
        ни одна строка не обновится и будет выброшен StockError.
        """
        stmt = (
            update(VariantSize)
            .where(
                VariantSize.variant_id == variant_id,
                VariantSize.size == size,
                VariantSize.quantity >= quantity,
            )
            .values(quantity=VariantSize.quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount != 1:
            available = await self.get_available(variant_id, size)
            raise StockError(
                f"Недостаточно товара размера {size}. "
                f"Доступно: {available or 0}, запрошено: {quantity}"
            )
        logger.info(f"Списано {quantity} шт. размера {size} варианта {variant_id}")

    async def increment(self, variant_id: UUID, size: str, quantity: int) -> bool:
        """
        Вернуть quantity единиц размера на склад.

        Returns:
            False, если вариант или размер уже удалены
        """
        stmt = (
            update(VariantSize)
            .where(
                VariantSize.variant_id == variant_id,
                VariantSize.size == size,
            )
            .values(quantity=VariantSize.quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount != 1:
            logger.warning(f"Не удалось вернуть на склад размер {size} варианта {variant_id}: не найден")
            return False
        logger.info(f"Возвращено {quantity} шт. размера {size} варианта {variant_id} на склад")
        return True

    async def check_availability(self, items: list[dict]) -> dict:
        """
        Проверить наличие товаров без изменения остатков.

        Останавливается на первой проблемной позиции и возвращает её описание.
        Количества для повторяющихся пар вариант/размер суммируются.

        Returns:
            {"available": True} или {"available": False, "missing_item": {...}}
        """
        requested: dict[tuple[UUID, str], int] = defaultdict(int)

        for item in items:
            variant_id = item["variant_id"]
            size = item["size"]
            quantity = int(item["quantity"])

            stmt = (
                select(ProductVariant)
                .options(
                    selectinload(ProductVariant.product),
                    selectinload(ProductVariant.sizes),
                )
                .where(ProductVariant.id == variant_id)
                .execution_options(populate_existing=True)
            )
            result = await self.db.execute(stmt)
            variant = result.scalar_one_or_none()

            if not variant:
                return {
                    "available": False,
                    "missing_item": {
                        "variant_id": variant_id,
                        "reason": "Вариант товара не найден",
                    },
                }

            size_entry = variant.find_size(size)
            if not size_entry:
                return {
                    "available": False,
                    "missing_item": {
                        "variant_id": variant_id,
                        "product_title": variant.product.title,
                        "size": size,
                        "reason": "Размер не найден",
                    },
                }

            requested[(variant_id, size)] += quantity
            if size_entry.quantity < requested[(variant_id, size)]:
                return {
                    "available": False,
                    "missing_item": {
                        "variant_id": variant_id,
                        "product_title": variant.product.title,
                        "size": size,
                        "requested_quantity": requested[(variant_id, size)],
                        "available_quantity": size_entry.quantity,
                        "reason": "Недостаточно товара",
                    },
                }

        return {"available": True}
