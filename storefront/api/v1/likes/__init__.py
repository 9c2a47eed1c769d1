"""Likes API."""
import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database import get_db
from storefront.core.auth import get_current_user
from storefront.core.cache import invalidate_catalog_cache
from storefront.models.user import User
from storefront.services.like_service import LikeService

router = APIRouter()


class RateProductRequest(BaseModel):
    """Запрос на оценку товара."""

    product_id: uuid.UUID
    rating: int | None = None  # 1-5, проверяется в сервисе


class ProductIdRequest(BaseModel):
    product_id: uuid.UUID


class LikeResponse(BaseModel):
    """Оценка товара."""

    id: uuid.UUID
    product_id: uuid.UUID
    user_id: uuid.UUID
    rating: int


@router.post("/likes/rate", response_model=LikeResponse)
async def rate_product(
    request: RateProductRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Оценить купленный товар. Повторная оценка заменяет прежнюю."""
    service = LikeService(db)
    like = await service.rate_product(user.id, request.product_id, request.rating)
    await invalidate_catalog_cache()
    return LikeResponse(id=like.id, product_id=like.product_id, user_id=like.user_id, rating=like.rating)


@router.delete("/likes")
async def unlike_product(
    request: ProductIdRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Снять лайк с товара."""
    service = LikeService(db)
    deleted = await service.unlike_product(user.id, request.product_id)
    await invalidate_catalog_cache()
    return {"message": "Лайк удалён", "deleted": deleted}


@router.delete("/likes/rating")
async def delete_rating(
    request: ProductIdRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Удалить свою оценку товара."""
    service = LikeService(db)
    await service.delete_rating(user.id, request.product_id)
    await invalidate_catalog_cache()
    return {"message": "Рейтинг удалён"}
