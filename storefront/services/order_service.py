"""Сервис для работы с заказами."""
import logging
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, delete, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.exceptions import ValidationError, NotFoundError, ForbiddenError, StockError
from storefront.models.cart import Cart, CartItem
from storefront.models.order import Order, OrderItem
from storefront.models.product import Product, ProductVariant
from storefront.services.pricing_service import resolve_unit_price
from storefront.services.stock_service import StockService

logger = logging.getLogger(__name__)

DELIVERY_METHODS = ("pickup", "courier")


class OrderService:
    """Сервис для работы с заказами."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.stock = StockService(db)

    async def create_order(
        self,
        user_id: UUID,
        items: list[dict],
        delivery_method: str,
        delivery_address: str | None = None,
        now: datetime | None = None,
    ) -> Order:
        """
        Создать заказ.

        Проверяет наличие, считает цены со скидками на момент now, сохраняет
        заказ со снимком позиций, списывает остатки и удаляет купленные
        позиции из корзины. Всё выполняется в одной транзакции: при любой
        ошибке заказ не создаётся, остатки и корзина не меняются.
        """
        if not items:
            raise ValidationError("Неверные данные для заказа: список товаров пуст")
        if delivery_method not in DELIVERY_METHODS:
            raise ValidationError(
                f"Недопустимый способ доставки: {delivery_method}. "
                f"Допустимые: {', '.join(DELIVERY_METHODS)}"
            )
        if delivery_method == "courier" and not (delivery_address and delivery_address.strip()):
            raise ValidationError("Для курьерской доставки нужно указать адрес")

        now = now or datetime.utcnow()

        try:
            order_items = await self._build_order_items(items, now)
            total_price = sum((item.total_price for item in order_items), Decimal("0"))

            order = Order(
                user_id=user_id,
                total_price=total_price,
                status="pending",
                delivery_method=delivery_method,
                delivery_address=delivery_address or None,
                is_ready=False,
                is_given_to_client=False,
                items=order_items,
            )
            self.db.add(order)
            await self.db.flush()

            for item in order_items:
                await self.stock.decrement(item.variant_id, item.size, item.quantity)

            await self._clear_purchased_cart_items(user_id, order_items)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Создан заказ {order.id} пользователя {user_id} на сумму {total_price}")
        return await self.get_by_id(order.id)

    async def _build_order_items(self, items: list[dict], now: datetime) -> list[OrderItem]:
        """Проверить позиции и собрать снимки для заказа."""
        requested: dict[tuple[UUID, str], int] = defaultdict(int)
        order_items = []

        for item in items:
            product_id = item["product_id"]
            variant_id = item["variant_id"]
            size = item["size"]
            quantity = int(item["quantity"])

            if quantity < 1:
                raise ValidationError("Количество должно быть не меньше 1")

            stmt_product = (
                select(Product)
                .options(selectinload(Product.discounts))
                .where(Product.id == product_id)
                .execution_options(populate_existing=True)
            )
            result = await self.db.execute(stmt_product)
            product = result.scalar_one_or_none()

            if not product:
                raise NotFoundError(f"Товар с ID {product_id} не найден")

            stmt_variant = (
                select(ProductVariant)
                .options(
                    selectinload(ProductVariant.sizes),
                    selectinload(ProductVariant.discounts),
                )
                .where(
                    ProductVariant.id == variant_id,
                    ProductVariant.product_id == product.id,
                )
                .execution_options(populate_existing=True)
            )
            result = await self.db.execute(stmt_variant)
            variant = result.scalar_one_or_none()

            if not variant:
                raise NotFoundError("Вариант товара не найден")

            size_entry = variant.find_size(size)
            if not size_entry:
                raise ValidationError(f"Размер {size} не найден у варианта")

            requested[(variant.id, size)] += quantity
            if size_entry.quantity < requested[(variant.id, size)]:
                raise StockError(
                    f"Недостаточно товара. Доступно: {size_entry.quantity}, "
                    f"запрошено: {requested[(variant.id, size)]}"
                )

            unit_price, percentage = resolve_unit_price(product, variant, now)

            order_items.append(
                OrderItem(
                    product_id=product.id,
                    variant_id=variant.id,
                    size=size,
                    quantity=quantity,
                    title_snapshot=product.title,
                    model_snapshot=product.model,
                    color_snapshot=variant.color,
                    base_price=product.price,
                    discount_percentage=percentage,
                    unit_price=unit_price,
                    total_price=unit_price * quantity,
                )
            )

        return order_items

    async def _clear_purchased_cart_items(self, user_id: UUID, order_items: list[OrderItem]) -> None:
        """Удалить из корзины пользователя купленные пары вариант/размер одним запросом."""
        pairs = {(item.variant_id, item.size) for item in order_items}
        stmt = (
            delete(CartItem)
            .where(
                CartItem.cart_id.in_(select(Cart.id).where(Cart.user_id == user_id)),
                or_(*[
                    and_(CartItem.variant_id == variant_id, CartItem.size == size)
                    for variant_id, size in pairs
                ]),
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(stmt)

    async def check_availability(self, items: list[dict]) -> dict:
        """Проверить наличие товаров без оформления заказа."""
        if not items:
            raise ValidationError("Неверные данные для проверки товаров")
        return await self.stock.check_availability(items)

    async def get_by_id(self, order_id: UUID) -> Order | None:
        """Получить заказ по ID."""
        stmt = (
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_for_user(self, order_id: UUID, user_id: UUID) -> Order:
        """Получить заказ, принадлежащий пользователю."""
        order = await self.get_by_id(order_id)
        if not order:
            raise NotFoundError("Заказ не найден")
        if order.user_id != user_id:
            raise ForbiddenError("Вы не авторизованы для просмотра этого заказа")
        return order

    async def get_by_user_id(self, user_id: UUID) -> list[Order]:
        """Получить заказы пользователя, новые сначала."""
        stmt = (
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def has_purchased(self, user_id: UUID, product_id: UUID) -> bool:
        """Есть ли у пользователя заказ с этим товаром."""
        stmt = (
            select(OrderItem.id)
            .join(Order, Order.id == OrderItem.order_id)
            .where(Order.user_id == user_id, OrderItem.product_id == product_id)
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def get_all(self) -> list[Order]:
        """Получить все заказы (для админки)."""
        stmt = (
            select(Order)
            .options(selectinload(Order.items), selectinload(Order.user))
            .order_by(Order.created_at.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def delete_order(self, order_id: UUID, user_id: UUID) -> None:
        """
        Удалить заказ пользователя.

        Остатки возвращаются по тем же вариантам и размерам, с которых были
        списаны. Если заказ уже выдан клиенту, товар на склад не возвращается.
        """
        order = await self.get_by_id(order_id)
        if not order:
            raise NotFoundError("Заказ не найден")
        if order.user_id != user_id:
            raise ForbiddenError("Вы не авторизованы для удаления этого заказа")

        try:
            if not order.is_given_to_client:
                for item in order.items:
                    if item.variant_id is None:
                        continue
                    await self.stock.increment(item.variant_id, item.size, item.quantity)

            await self.db.execute(delete(OrderItem).where(OrderItem.order_id == order_id))
            await self.db.execute(delete(Order).where(Order.id == order_id))
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Заказ {order_id} удалён пользователем {user_id}")

    async def mark_ready(self, order_id: UUID) -> Order:
        """Отметить заказ как собранный."""
        order = await self.get_by_id(order_id)
        if not order:
            raise NotFoundError("Заказ не найден")

        order.is_ready = True
        order.status = "ready"
        await self.db.commit()
        return await self.get_by_id(order_id)

    async def mark_given(self, order_id: UUID) -> Order:
        """Отметить заказ как выданный клиенту."""
        order = await self.get_by_id(order_id)
        if not order:
            raise NotFoundError("Заказ не найден")

        order.is_ready = True
        order.is_given_to_client = True
        order.status = "completed"
        await self.db.commit()
        return await self.get_by_id(order_id)
