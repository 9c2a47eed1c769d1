"""Orders API."""
from typing import List
import uuid

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database import get_db
from storefront.core.auth import get_current_user, require_roles
from storefront.core.cache import invalidate_catalog_cache
from storefront.models.order import Order
from storefront.models.user import User, UserRole
from storefront.services.order_service import OrderService

router = APIRouter()

admins = require_roles(UserRole.ADMIN)
staff = require_roles(UserRole.ADMIN, UserRole.MANAGER)


class OrderItemRequest(BaseModel):
    """Позиция заказа в запросе."""

    product_id: uuid.UUID
    variant_id: uuid.UUID
    size: str = Field(min_length=1)
    quantity: int = Field(ge=1)


class CreateOrderRequest(BaseModel):
    """Запрос на создание заказа."""

    items: List[OrderItemRequest]
    delivery_method: str
    delivery_address: str | None = None


class CheckItemsRequest(BaseModel):
    """Запрос на проверку наличия."""

    items: List[OrderItemRequest]


class OrderItemResponse(BaseModel):
    """Позиция заказа (снимок на момент покупки)."""

    id: uuid.UUID
    product_id: uuid.UUID | None = None  # None, если товар удалён
    variant_id: uuid.UUID | None = None
    title: str
    model: str | None = None
    color: str
    size: str
    quantity: int
    base_price: float
    discount_percentage: float
    unit_price: float
    total_price: float


class OrderResponse(BaseModel):
    """Ответ с информацией о заказе."""

    id: uuid.UUID
    user_id: uuid.UUID
    total_price: float
    status: str
    delivery_method: str
    delivery_address: str | None = None
    is_ready: bool
    is_given_to_client: bool
    created_at: str
    updated_at: str
    items: List[OrderItemResponse]
    user_email: str | None = None  # Заполняется в админских списках


class CreateOrderResponse(BaseModel):
    """Ответ на создание заказа."""

    message: str
    order: OrderResponse


class MissingItemResponse(BaseModel):
    """Первая позиция, которой не хватает."""

    variant_id: uuid.UUID
    product_title: str | None = None
    size: str | None = None
    requested_quantity: int | None = None
    available_quantity: int | None = None
    reason: str


class CheckItemsResponse(BaseModel):
    """Результат проверки наличия."""

    available: bool
    missing_item: MissingItemResponse | None = None


def build_order_response(order: Order, include_user: bool = False) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        user_id=order.user_id,
        total_price=float(order.total_price),
        status=order.status,
        delivery_method=order.delivery_method,
        delivery_address=order.delivery_address,
        is_ready=order.is_ready,
        is_given_to_client=order.is_given_to_client,
        created_at=order.created_at.isoformat(),
        updated_at=order.updated_at.isoformat(),
        items=[
            OrderItemResponse(
                id=item.id,
                product_id=item.product_id,
                variant_id=item.variant_id,
                title=item.title_snapshot,
                model=item.model_snapshot,
                color=item.color_snapshot,
                size=item.size,
                quantity=item.quantity,
                base_price=float(item.base_price),
                discount_percentage=float(item.discount_percentage),
                unit_price=float(item.unit_price),
                total_price=float(item.total_price),
            )
            for item in order.items
        ],
        user_email=order.user.email if include_user and order.user else None,
    )


@router.post("/orders", response_model=CreateOrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    request: CreateOrderRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Оформить заказ.

    Списывает остатки и удаляет купленные позиции из корзины.
    Если хотя бы одной позиции не хватает, заказ не создаётся.
    """
    service = OrderService(db)
    order = await service.create_order(
        user_id=user.id,
        items=[item.model_dump() for item in request.items],
        delivery_method=request.delivery_method,
        delivery_address=request.delivery_address,
    )
    # Остатки изменились, публичный каталог в кэше устарел
    await invalidate_catalog_cache()
    return CreateOrderResponse(message="Заказ успешно создан", order=build_order_response(order))


@router.post("/orders/check", response_model=CheckItemsResponse)
async def check_items(
    request: CheckItemsRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Проверить наличие товаров перед оформлением заказа."""
    service = OrderService(db)
    return await service.check_availability([item.model_dump() for item in request.items])


@router.get("/orders", response_model=List[OrderResponse])
async def get_my_orders(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Получить заказы текущего пользователя."""
    service = OrderService(db)
    orders = await service.get_by_user_id(user.id)
    return [build_order_response(order) for order in orders]


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Получить свой заказ по ID."""
    service = OrderService(db)
    order = await service.get_for_user(order_id, user.id)
    return build_order_response(order)


@router.delete("/orders/{order_id}")
async def delete_order(
    order_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Удалить свой заказ. Остатки возвращаются на склад."""
    service = OrderService(db)
    await service.delete_order(order_id, user.id)
    await invalidate_catalog_cache()
    return {"message": "Заказ успешно удалён"}


@router.get("/admin/orders", response_model=List[OrderResponse])
async def get_all_orders(
    user: User = Depends(admins),
    db: AsyncSession = Depends(get_db),
):
    """Получить все заказы (только админ)."""
    service = OrderService(db)
    orders = await service.get_all()
    return [build_order_response(order, include_user=True) for order in orders]


@router.get("/admin/orders/user/{user_id}", response_model=List[OrderResponse])
async def get_orders_by_user(
    user_id: uuid.UUID,
    user: User = Depends(admins),
    db: AsyncSession = Depends(get_db),
):
    """Получить заказы конкретного пользователя (только админ)."""
    service = OrderService(db)
    orders = await service.get_by_user_id(user_id)
    return [build_order_response(order) for order in orders]


@router.patch("/orders/{order_id}/ready", response_model=OrderResponse)
@router.patch("/{order_id}/ready", response_model=OrderResponse, include_in_schema=False)
async def mark_order_ready(
    order_id: uuid.UUID,
    user: User = Depends(staff),
    db: AsyncSession = Depends(get_db),
):
    """Отметить заказ как собранный."""
    service = OrderService(db)
    order = await service.mark_ready(order_id)
    return build_order_response(order)


@router.patch("/orders/{order_id}/given", response_model=OrderResponse)
@router.patch("/{order_id}/given", response_model=OrderResponse, include_in_schema=False)
async def mark_order_given(
    order_id: uuid.UUID,
    user: User = Depends(staff),
    db: AsyncSession = Depends(get_db),
):
    """Отметить заказ как выданный клиенту."""
    service = OrderService(db)
    order = await service.mark_given(order_id)
    return build_order_response(order)
