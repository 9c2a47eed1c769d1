"""Cart API."""
from datetime import datetime
from decimal import Decimal
from typing import List, Literal
import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database import get_db
from storefront.core.auth import get_current_user
from storefront.models.cart import Cart
from storefront.models.user import User
from storefront.services.cart_service import CartService
from storefront.services.pricing_service import resolve_unit_price
from storefront.api.v1.products import (
    DiscountShortResponse,
    VariantResponse,
    build_discount_response,
    build_variant_response,
)

router = APIRouter()


class CartProductResponse(BaseModel):
    """Товар в позиции корзины."""

    id: uuid.UUID
    title: str
    model: str | None = None
    price: float
    discounts: List[DiscountShortResponse]


class CartItemResponse(BaseModel):
    """Позиция корзины. Цены считаются на текущий момент."""

    id: uuid.UUID
    size: str
    quantity: int
    product: CartProductResponse
    variant: VariantResponse
    discount_percentage: float
    unit_price: float
    total_price: float


class CartResponse(BaseModel):
    """Корзина пользователя."""

    id: uuid.UUID
    user_id: uuid.UUID
    items: List[CartItemResponse]
    total_price: float


def build_cart_response(cart: Cart) -> CartResponse:
    now = datetime.utcnow()
    items = []
    total = Decimal("0")

    for item in cart.items:
        unit_price, percentage = resolve_unit_price(item.product, item.variant, now)
        line_total = unit_price * item.quantity
        total += line_total

        items.append(
            CartItemResponse(
                id=item.id,
                size=item.size,
                quantity=item.quantity,
                product=CartProductResponse(
                    id=item.product.id,
                    title=item.product.title,
                    model=item.product.model,
                    price=float(item.product.price),
                    discounts=[build_discount_response(d) for d in item.product.discounts],
                ),
                variant=build_variant_response(item.product, item.variant, now),
                discount_percentage=float(percentage),
                unit_price=float(unit_price),
                total_price=float(line_total),
            )
        )

    return CartResponse(id=cart.id, user_id=cart.user_id, items=items, total_price=float(total))


class AddToCartRequest(BaseModel):
    """Запрос на добавление в корзину."""

    product_id: uuid.UUID
    variant_id: uuid.UUID
    size: str = Field(min_length=1)
    quantity: int | None = None  # По умолчанию 1


class RemoveFromCartRequest(BaseModel):
    """Запрос на удаление позиции из корзины."""

    item_id: uuid.UUID


class UpdateQuantityRequest(BaseModel):
    """Запрос на изменение количества."""

    item_id: uuid.UUID
    action: Literal["increment", "decrement"]


@router.put("/cart", response_model=CartResponse)
async def add_to_cart(
    request: AddToCartRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Добавить товар в корзину.

    Если запрошено больше, чем есть на складе, количество ограничивается остатком.
    """
    service = CartService(db)
    cart = await service.add_to_cart(
        user_id=user.id,
        product_id=request.product_id,
        variant_id=request.variant_id,
        size=request.size,
        quantity=request.quantity,
    )
    return build_cart_response(cart)


@router.get("/cart", response_model=CartResponse)
async def get_cart(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Получить корзину текущего пользователя."""
    service = CartService(db)
    cart = await service.get_cart(user.id)
    return build_cart_response(cart)


@router.delete("/cart")
async def remove_from_cart(
    request: RemoveFromCartRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Удалить позицию из корзины."""
    service = CartService(db)
    await service.remove_from_cart(user.id, request.item_id)
    return {"message": "Товар удалён из корзины"}


@router.put("/cart/update-quantity", response_model=CartResponse)
async def update_quantity(
    request: UpdateQuantityRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Увеличить или уменьшить количество позиции на единицу."""
    service = CartService(db)
    cart = await service.update_quantity(user.id, request.item_id, request.action)
    return build_cart_response(cart)
