"""Products API."""
from datetime import datetime
from decimal import Decimal
from typing import List
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database import get_db
from storefront.core.auth import get_optional_user, require_roles
from storefront.core.cache import cache_service, get_cache_key_products, invalidate_catalog_cache
from storefront.models.discount import Discount
from storefront.models.product import Product, ProductVariant, Season
from storefront.models.user import User, UserRole
from storefront.services.comment_service import CommentService
from storefront.services.pricing_service import (
    active_discounts,
    best_discount_percentage,
    effective_price,
    seconds_until_price_change,
)
from storefront.services.product_service import ProductService

router = APIRouter()

catalog_managers = require_roles(UserRole.ADMIN, UserRole.MANAGER)

PRODUCT_LIST_CACHE_TTL = 60


class DiscountShortResponse(BaseModel):
    """Скидка в составе товара или варианта."""

    id: uuid.UUID
    percentage: float
    starts_at: str
    ends_at: str
    season: str | None = None


class SizeResponse(BaseModel):
    """Размер и остаток."""

    size: str
    quantity: int


class ImageResponse(BaseModel):
    """Изображение варианта."""

    id: uuid.UUID
    url: str


class VariantResponse(BaseModel):
    """Вариант товара."""

    id: uuid.UUID
    color: str
    sizes: List[SizeResponse]
    images: List[ImageResponse]
    discounts: List[DiscountShortResponse]
    active_discount_percentage: float  # Лучшая активная скидка товара и варианта
    effective_price: float  # Цена со скидкой


class CommentResponse(BaseModel):
    """Комментарий к товару."""

    id: uuid.UUID
    product_id: uuid.UUID
    user_id: uuid.UUID
    user_name: str | None = None
    content: str
    visible: bool
    is_moderated: bool
    created_at: str
    updated_at: str


class ProductResponse(BaseModel):
    """Ответ с информацией о товаре."""

    id: uuid.UUID
    title: str
    description: str | None = None
    price: float
    sex: str | None = None
    model: str | None = None
    age: str | None = None
    season: str
    visible: bool
    user_id: uuid.UUID
    created_at: str
    discounts: List[DiscountShortResponse]
    active_discount: DiscountShortResponse | None = None  # Активная скидка на сам товар
    variants: List[VariantResponse]
    rating: float | None = None  # Средняя оценка
    liked_by_user: bool = False
    comments: List[CommentResponse] | None = None


def build_discount_response(discount: Discount) -> DiscountShortResponse:
    return DiscountShortResponse(
        id=discount.id,
        percentage=float(discount.percentage),
        starts_at=discount.starts_at.isoformat(),
        ends_at=discount.ends_at.isoformat(),
        season=discount.season,
    )


def build_variant_response(product: Product, variant: ProductVariant, now: datetime) -> VariantResponse:
    """Вариант с ценой на момент now. Скидки товара и варианта должны быть загружены."""
    percentage = best_discount_percentage(product.discounts, variant.discounts, now)
    return VariantResponse(
        id=variant.id,
        color=variant.color,
        sizes=[SizeResponse(size=entry.size, quantity=entry.quantity) for entry in variant.sizes],
        images=[ImageResponse(id=image.id, url=image.url) for image in variant.images],
        discounts=[build_discount_response(d) for d in variant.discounts],
        active_discount_percentage=float(percentage),
        effective_price=float(effective_price(product.price, percentage)),
    )


def build_product_response(
    product: Product,
    now: datetime,
    user: User | None = None,
    color: str | None = None,
) -> ProductResponse:
    """Собрать ответ по товару. Если указан color, остаются только варианты этого цвета."""
    variants = [v for v in product.variants if not color or v.color == color]
    product_active = active_discounts(product.discounts, now)
    best_product_discount = max(product_active, key=lambda d: d.percentage, default=None)
    ratings = [like.rating for like in product.likes]

    return ProductResponse(
        id=product.id,
        title=product.title,
        description=product.description,
        price=float(product.price),
        sex=product.sex,
        model=product.model,
        age=product.age,
        season=product.season,
        visible=product.visible,
        user_id=product.user_id,
        created_at=product.created_at.isoformat(),
        discounts=[build_discount_response(d) for d in product.discounts],
        active_discount=build_discount_response(best_product_discount) if best_product_discount else None,
        variants=[build_variant_response(product, v, now) for v in variants],
        rating=round(sum(ratings) / len(ratings), 2) if ratings else None,
        liked_by_user=bool(user) and any(like.user_id == user.id for like in product.likes),
    )


def build_comment_response(comment) -> CommentResponse:
    return CommentResponse(
        id=comment.id,
        product_id=comment.product_id,
        user_id=comment.user_id,
        user_name=comment.user.name if comment.user else None,
        content=comment.content,
        visible=comment.visible,
        is_moderated=comment.is_moderated,
        created_at=comment.created_at.isoformat(),
        updated_at=comment.updated_at.isoformat(),
    )


@router.get("/product", response_model=List[ProductResponse])
async def get_products(
    season: Season | None = None,
    sex: str | None = None,
    model: str | None = None,
    age: str | None = None,
    color: str | None = None,
    size: str | None = None,
    search: str | None = None,
    min_price: float | None = None,
    max_price: float | None = None,
    sort: str | None = None,  # priceAsc / priceDesc / old / new
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Получить список видимых товаров.

    Возвращаются только варианты, подходящие под фильтр цвета; товары без
    подходящих вариантов отбрасываются.
    """
    # Кешируем только анонимные запросы, у авторизованных есть liked_by_user
    cache_key = None
    if user is None:
        cache_key = get_cache_key_products(
            season.value if season else None,
            sex,
            model,
            age,
            color,
            size,
            search,
            str(min_price) if min_price is not None else None,
            str(max_price) if max_price is not None else None,
            sort,
        )
        cached_result = await cache_service.get(cache_key)
        if cached_result is not None:
            return [ProductResponse(**item) for item in cached_result]

    service = ProductService(db)
    products = await service.get_visible(
        season=season.value if season else None,
        sex=sex,
        model=model,
        age=age,
        color=color,
        size=size,
        search_query=search,
        min_price=Decimal(str(min_price)) if min_price is not None else None,
        max_price=Decimal(str(max_price)) if max_price is not None else None,
        sort=sort,
    )

    now = datetime.utcnow()
    result = [build_product_response(product, now, user=user, color=color) for product in products]
    result = [item for item in result if item.variants]

    if cache_key:
        # Кэш не должен пережить начало или конец скидки
        ttl = PRODUCT_LIST_CACHE_TTL
        discounts = []
        for product in products:
            discounts.extend(product.discounts)
            for variant in product.variants:
                discounts.extend(variant.discounts)
        boundary = seconds_until_price_change(discounts, now)
        if boundary is not None:
            ttl = min(ttl, boundary)
        await cache_service.set(cache_key, [item.model_dump(mode="json") for item in result], ttl=ttl)

    return result


@router.get("/productAll", response_model=List[ProductResponse])
async def get_products_for_admin(
    user: User = Depends(catalog_managers),
    db: AsyncSession = Depends(get_db),
):
    """Получить все товары, включая скрытые (для админки)."""
    service = ProductService(db)
    products = await service.get_all_for_admin()
    now = datetime.utcnow()
    return [build_product_response(product, now, user=user) for product in products]


@router.get("/product/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: uuid.UUID,
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Получить товар по ID.

    Комментарии: одобренные и собственные комментарии пользователя.
    """
    service = ProductService(db)
    product = await service.get_by_id(product_id)

    if not product:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Товар не найден",
        )

    comments = await CommentService(db).get_for_product(product_id, viewer_id=user.id if user else None)

    response = build_product_response(product, datetime.utcnow(), user=user)
    response.comments = [build_comment_response(comment) for comment in comments]
    return response


class SizeRequest(BaseModel):
    """Размер варианта в запросе."""

    size: str = Field(min_length=1)
    quantity: int = Field(ge=0)


class CreateVariantRequest(BaseModel):
    """Вариант товара в запросе на создание."""

    color: str = Field(min_length=1)
    sizes: List[SizeRequest] = Field(min_length=1)
    images: List[str] = []  # URL изображений


class CreateProductRequest(BaseModel):
    """Запрос на создание товара."""

    title: str = Field(min_length=1)
    description: str | None = None
    price: Decimal = Field(ge=0)
    sex: str | None = None
    model: str | None = None
    age: str | None = None
    season: Season
    variants: List[CreateVariantRequest] = Field(min_length=1)


class CreateProductResponse(BaseModel):
    """Ответ на создание товара."""

    message: str
    product_id: uuid.UUID


@router.post("/product", response_model=CreateProductResponse)
async def create_product(
    request: CreateProductRequest,
    user: User = Depends(catalog_managers),
    db: AsyncSession = Depends(get_db),
):
    """Создать товар с вариантами (админ или менеджер)."""
    service = ProductService(db)
    product_id = await service.create(
        user_id=user.id,
        title=request.title,
        description=request.description,
        price=request.price,
        sex=request.sex,
        model=request.model,
        age=request.age,
        season=request.season.value,
        variants=[variant.model_dump() for variant in request.variants],
    )
    await invalidate_catalog_cache()

    return CreateProductResponse(message="Товар создан", product_id=product_id)


class UpdateVariantRequest(BaseModel):
    """Вариант товара в запросе на обновление."""

    id: uuid.UUID | None = None  # Без id создаётся новый вариант
    color: str = Field(min_length=1)
    sizes: List[SizeRequest] = Field(min_length=1)
    existing_images: List[uuid.UUID] = []  # ID изображений, которые нужно оставить
    images: List[str] = []  # Новые URL изображений


class UpdateProductRequest(BaseModel):
    """Запрос на обновление товара."""

    title: str | None = None
    description: str | None = None
    price: Decimal | None = Field(default=None, ge=0)
    sex: str | None = None
    model: str | None = None
    age: str | None = None
    season: Season | None = None
    visible: bool | None = None
    variants: List[UpdateVariantRequest] = []


class UpdateProductResponse(BaseModel):
    """Ответ на обновление товара."""

    message: str
    product: ProductResponse


@router.put("/product/{product_id}", response_model=UpdateProductResponse)
async def update_product(
    product_id: uuid.UUID,
    request: UpdateProductRequest,
    user: User = Depends(catalog_managers),
    db: AsyncSession = Depends(get_db),
):
    """Обновить товар (админ или менеджер)."""
    service = ProductService(db)
    product = await service.update(
        product_id=product_id,
        title=request.title,
        description=request.description,
        price=request.price,
        sex=request.sex,
        model=request.model,
        age=request.age,
        season=request.season.value if request.season else None,
        visible=request.visible,
        variants=[variant.model_dump() for variant in request.variants],
    )
    await invalidate_catalog_cache()

    return UpdateProductResponse(
        message="Товар обновлён",
        product=build_product_response(product, datetime.utcnow(), user=user),
    )


@router.delete("/product/{product_id}")
async def delete_product(
    product_id: uuid.UUID,
    user: User = Depends(catalog_managers),
    db: AsyncSession = Depends(get_db),
):
    """Удалить товар вместе с вариантами, скидками, комментариями и оценками."""
    service = ProductService(db)
    deleted = await service.delete(product_id)

    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Товар не найден",
        )

    await invalidate_catalog_cache()
    return {"success": True, "product_id": str(product_id)}
