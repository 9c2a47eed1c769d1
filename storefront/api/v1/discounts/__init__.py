"""Discounts API."""
from datetime import datetime
from decimal import Decimal
from typing import List
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database import get_db
from storefront.core.auth import require_roles
from storefront.core.cache import cache_service, ACTIVE_DISCOUNTS_CACHE_KEY, invalidate_catalog_cache
from storefront.models.discount import Discount
from storefront.models.user import User, UserRole
from storefront.services.discount_service import DiscountService

router = APIRouter()

discount_managers = require_roles(UserRole.ADMIN, UserRole.MANAGER)


class CreateDiscountRequest(BaseModel):
    """
    Запрос на создание скидки.

    Указывается одна цель: season, product_id или variant_id.
    """

    percentage: Decimal | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    season: str | None = None
    product_id: uuid.UUID | None = None
    variant_id: uuid.UUID | None = None


class DiscountResponse(BaseModel):
    """Ответ с информацией о скидке."""

    id: uuid.UUID
    percentage: float
    starts_at: str
    ends_at: str
    season: str | None = None
    product_id: uuid.UUID | None = None
    product_title: str | None = None
    variant_id: uuid.UUID | None = None
    variant_color: str | None = None
    created_by_id: uuid.UUID
    created_at: str


class CreateDiscountResponse(BaseModel):
    """Ответ на создание скидки."""

    message: str
    discounts: List[DiscountResponse]


def build_discount_response(discount: Discount, with_targets: bool = True) -> DiscountResponse:
    return DiscountResponse(
        id=discount.id,
        percentage=float(discount.percentage),
        starts_at=discount.starts_at.isoformat(),
        ends_at=discount.ends_at.isoformat(),
        season=discount.season,
        product_id=discount.product_id,
        product_title=discount.product.title if with_targets and discount.product else None,
        variant_id=discount.variant_id,
        variant_color=discount.variant.color if with_targets and discount.variant else None,
        created_by_id=discount.created_by_id,
        created_at=discount.created_at.isoformat(),
    )


@router.post("/discount", response_model=CreateDiscountResponse, status_code=status.HTTP_201_CREATED)
async def create_discount(
    request: CreateDiscountRequest,
    user: User = Depends(discount_managers),
    db: AsyncSession = Depends(get_db),
):
    """
    Создать скидку (админ или менеджер).

    Скидка на сезон создаётся отдельной записью для каждого товара сезона.
    """
    service = DiscountService(db)
    discounts = await service.create_discount(
        created_by_id=user.id,
        percentage=request.percentage,
        starts_at=request.starts_at,
        ends_at=request.ends_at,
        season=request.season,
        product_id=request.product_id,
        variant_id=request.variant_id,
    )
    await invalidate_catalog_cache()

    return CreateDiscountResponse(
        message=f"Создано скидок: {len(discounts)}",
        discounts=[build_discount_response(d, with_targets=False) for d in discounts],
    )


@router.get("/discounts/active", response_model=List[DiscountResponse])
async def get_active_discounts(db: AsyncSession = Depends(get_db)):
    """Получить действующие сейчас скидки."""
    cached_result = await cache_service.get(ACTIVE_DISCOUNTS_CACHE_KEY)
    if cached_result is not None:
        return [DiscountResponse(**item) for item in cached_result]

    service = DiscountService(db)
    discounts = await service.get_active()
    result = [build_discount_response(d) for d in discounts]

    # Короткий TTL: скидка может начаться или закончиться без изменений в базе
    await cache_service.set(
        ACTIVE_DISCOUNTS_CACHE_KEY,
        [item.model_dump(mode="json") for item in result],
        ttl=60,
    )
    return result


@router.get("/discounts/all", response_model=List[DiscountResponse])
async def get_all_discounts(
    user: User = Depends(discount_managers),
    db: AsyncSession = Depends(get_db),
):
    """Получить все скидки (админ или менеджер)."""
    service = DiscountService(db)
    discounts = await service.get_all()
    return [build_discount_response(d) for d in discounts]


@router.delete("/discount/{discount_id}")
async def delete_discount(
    discount_id: uuid.UUID,
    user: User = Depends(discount_managers),
    db: AsyncSession = Depends(get_db),
):
    """Удалить скидку."""
    service = DiscountService(db)
    deleted = await service.delete_discount(discount_id)

    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Скидка не найдена",
        )

    await invalidate_catalog_cache()
    return {"message": "Скидка удалена"}
