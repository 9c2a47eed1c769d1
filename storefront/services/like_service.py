"""Сервис для работы с оценками товаров."""
from uuid import UUID

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.exceptions import ValidationError, NotFoundError, ForbiddenError
from storefront.models.like import Like
from storefront.models.product import Product
from storefront.services.order_service import OrderService


class LikeService:
    """Сервис для работы с оценками товаров."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def rate_product(self, user_id: UUID, product_id: UUID, rating: int) -> Like:
        """
        Оценить товар (1-5).

        Оценить можно только товар, который пользователь заказывал.
        Повторная оценка обновляет существующую.
        """
        if rating is None or rating < 1 or rating > 5:
            raise ValidationError("Необходимо указать productId и рейтинг от 1 до 5")

        if not await self.db.get(Product, product_id):
            raise NotFoundError("Товар не найден")

        if not await OrderService(self.db).has_purchased(user_id, product_id):
            raise ForbiddenError("Вы можете оценить только купленные товары")

        like = await self._get(user_id, product_id)
        if like:
            like.rating = rating
        else:
            like = Like(product_id=product_id, user_id=user_id, rating=rating)
            self.db.add(like)

        await self.db.commit()
        return like

    async def unlike_product(self, user_id: UUID, product_id: UUID) -> int:
        """Снять лайк с товара."""
        if not await self._get(user_id, product_id):
            raise ValidationError("Лайк не найден")

        result = await self.db.execute(
            delete(Like).where(Like.product_id == product_id, Like.user_id == user_id)
        )
        await self.db.commit()
        return result.rowcount

    async def delete_rating(self, user_id: UUID, product_id: UUID) -> None:
        """Удалить оценку товара."""
        like = await self._get(user_id, product_id)
        if not like:
            raise NotFoundError("Рейтинг не найден")

        await self.db.delete(like)
        await self.db.commit()

    async def _get(self, user_id: UUID, product_id: UUID) -> Like | None:
        stmt = select(Like).where(Like.product_id == product_id, Like.user_id == user_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
