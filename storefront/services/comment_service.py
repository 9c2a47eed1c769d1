"""Сервис для работы с комментариями."""
from uuid import UUID

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.exceptions import ValidationError, NotFoundError, ForbiddenError
from storefront.models.comment import Comment
from storefront.models.product import Product
from storefront.services.order_service import OrderService


class CommentService:
    """Сервис для работы с комментариями."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_for_product(self, product_id: UUID, viewer_id: UUID | None = None) -> list[Comment]:
        """
        Комментарии к товару.

        Видны всем только одобренные; автор видит и свои неодобренные.
        """
        stmt = (
            select(Comment)
            .options(selectinload(Comment.user))
            .where(Comment.product_id == product_id)
            .order_by(Comment.created_at.desc())
        )
        if viewer_id:
            stmt = stmt.where(or_(Comment.visible == True, Comment.user_id == viewer_id))  # noqa: E712
        else:
            stmt = stmt.where(Comment.visible == True)  # noqa: E712

        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_pending(self) -> list[Comment]:
        """Комментарии, ожидающие модерации."""
        stmt = (
            select(Comment)
            .options(selectinload(Comment.user))
            .where(Comment.is_moderated == False)  # noqa: E712
            .order_by(Comment.created_at.asc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def create(self, user_id: UUID, product_id: UUID, content: str) -> Comment:
        """Оставить комментарий. Доступно только купившим товар."""
        if not content or not content.strip():
            raise ValidationError("Текст комментария не может быть пустым")

        if not await self.db.get(Product, product_id):
            raise NotFoundError("Товар не найден")

        if not await OrderService(self.db).has_purchased(user_id, product_id):
            raise ForbiddenError("Комментировать можно только купленные товары")

        comment = Comment(product_id=product_id, user_id=user_id, content=content.strip())
        self.db.add(comment)
        await self.db.commit()
        return await self._get(comment.id)

    async def update(self, user_id: UUID, comment_id: UUID, content: str) -> Comment:
        """Изменить свой комментарий. После изменения он снова уходит на модерацию."""
        if not content or not content.strip():
            raise ValidationError("Текст комментария не может быть пустым")

        comment = await self._get_owned(user_id, comment_id)
        comment.content = content.strip()
        comment.visible = False
        comment.is_moderated = False
        await self.db.commit()
        return await self._get(comment_id)

    async def delete(self, user_id: UUID, comment_id: UUID) -> None:
        """Удалить свой комментарий."""
        comment = await self._get_owned(user_id, comment_id)
        await self.db.delete(comment)
        await self.db.commit()

    async def admin_delete(self, comment_id: UUID) -> None:
        """Удалить любой комментарий (модератор)."""
        comment = await self._get(comment_id)
        if not comment:
            raise NotFoundError("Комментарий не найден")
        await self.db.delete(comment)
        await self.db.commit()

    async def moderate(self, comment_id: UUID, approve: bool) -> Comment:
        """Одобрить или отклонить комментарий."""
        comment = await self._get(comment_id)
        if not comment:
            raise NotFoundError("Комментарий не найден")

        comment.visible = approve
        comment.is_moderated = True
        await self.db.commit()
        return await self._get(comment_id)

    async def set_hidden(self, comment_id: UUID, hidden: bool) -> Comment:
        """Скрыть или показать комментарий."""
        comment = await self._get(comment_id)
        if not comment:
            raise NotFoundError("Комментарий не найден")

        comment.visible = not hidden
        comment.is_moderated = True
        await self.db.commit()
        return await self._get(comment_id)

    async def _get(self, comment_id: UUID) -> Comment | None:
        stmt = (
            select(Comment)
            .options(selectinload(Comment.user))
            .where(Comment.id == comment_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _get_owned(self, user_id: UUID, comment_id: UUID) -> Comment:
        comment = await self._get(comment_id)
        if not comment:
            raise NotFoundError("Комментарий не найден")
        if comment.user_id != user_id:
            raise ForbiddenError("Нельзя изменять чужой комментарий")
        return comment
