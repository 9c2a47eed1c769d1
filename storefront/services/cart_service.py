"""Сервис для работы с корзиной."""
import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.exceptions import ValidationError, NotFoundError, StockError
from storefront.models.cart import Cart, CartItem
from storefront.models.product import Product, ProductVariant

logger = logging.getLogger(__name__)

CART_ACTIONS = ("increment", "decrement")


class CartService:
    """Сервис для работы с корзиной."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_cart(self, user_id: UUID) -> Cart:
        """Получить корзину пользователя со скидками для отображения цен."""
        cart = await self._load_cart(user_id)
        if not cart:
            raise NotFoundError("Корзина не найдена")
        return cart

    async def add_to_cart(
        self,
        user_id: UUID,
        product_id: UUID,
        variant_id: UUID,
        size: str,
        quantity: int | None = None,
    ) -> Cart:
        """
        Добавить товар в корзину.

        Количество ограничивается остатком размера: если запрошено больше,
        чем есть на складе, в корзине окажется весь доступный остаток.
        Размер с нулевым остатком не добавляется: выбрасывается StockError,
        чтобы в корзине не появлялись позиции с количеством 0.
        """
        requested_qty = quantity if quantity and quantity > 0 else 1

        product = await self.db.get(Product, product_id)
        if not product:
            raise NotFoundError("Продукт не найден")

        variant = await self._get_variant(variant_id)
        if not variant or variant.product_id != product_id:
            raise NotFoundError("Вариант товара не найден")

        size_entry = variant.find_size(size)
        if not size_entry:
            raise ValidationError(f"Размер {size} не найден у выбранного варианта")

        available_qty = size_entry.quantity
        if available_qty <= 0:
            raise StockError(f"Размера {size} нет в наличии")

        cart = await self._get_or_create_cart(user_id)

        stmt = select(CartItem).where(
            CartItem.cart_id == cart.id,
            CartItem.product_id == product_id,
            CartItem.variant_id == variant_id,
            CartItem.size == size,
        )
        result = await self.db.execute(stmt)
        existing_item = result.scalar_one_or_none()

        if existing_item:
            existing_item.quantity = min(existing_item.quantity + requested_qty, available_qty)
        else:
            self.db.add(
                CartItem(
                    cart_id=cart.id,
                    product_id=product_id,
                    variant_id=variant_id,
                    size=size,
                    quantity=min(requested_qty, available_qty),
                )
            )

        await self.db.commit()
        return await self._load_cart(user_id)

    async def remove_from_cart(self, user_id: UUID, item_id: UUID) -> None:
        """Полностью удалить позицию из корзины."""
        item = await self._get_owned_item(user_id, item_id)
        await self.db.delete(item)
        await self.db.commit()

    async def update_quantity(self, user_id: UUID, item_id: UUID, action: str) -> Cart:
        """
        Изменить количество позиции на единицу.

        Увеличение упирается в остаток размера, уменьшение с 1 удаляет позицию.
        """
        if action not in CART_ACTIONS:
            raise ValidationError("Неверные данные запроса")

        item = await self._get_owned_item(user_id, item_id)

        variant = await self._get_variant(item.variant_id)
        if not variant:
            raise NotFoundError("Вариант товара не найден")

        size_entry = variant.find_size(item.size)
        if not size_entry:
            raise ValidationError(f"Размер {item.size} не найден у выбранного варианта")

        if action == "increment":
            if item.quantity >= size_entry.quantity:
                raise StockError(f"На складе только {size_entry.quantity} шт. размера {item.size}")
            item.quantity += 1
        elif item.quantity > 1:
            item.quantity -= 1
        else:
            await self.db.delete(item)

        await self.db.commit()
        return await self._load_cart(user_id)

    async def _get_variant(self, variant_id: UUID) -> ProductVariant | None:
        stmt = (
            select(ProductVariant)
            .options(selectinload(ProductVariant.sizes))
            .where(ProductVariant.id == variant_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _get_owned_item(self, user_id: UUID, item_id: UUID) -> CartItem:
        stmt = (
            select(CartItem)
            .join(Cart, Cart.id == CartItem.cart_id)
            .where(CartItem.id == item_id, Cart.user_id == user_id)
        )
        result = await self.db.execute(stmt)
        item = result.scalar_one_or_none()
        if not item:
            raise NotFoundError("Элемент не найден или доступ запрещён")
        return item

    async def _get_or_create_cart(self, user_id: UUID) -> Cart:
        stmt = select(Cart).where(Cart.user_id == user_id)
        result = await self.db.execute(stmt)
        cart = result.scalar_one_or_none()
        if cart:
            return cart

        cart = Cart(user_id=user_id)
        self.db.add(cart)
        try:
            await self.db.flush()
        except IntegrityError:
            # Корзину успели создать параллельным запросом
            await self.db.rollback()
            result = await self.db.execute(stmt)
            cart = result.scalar_one()
        else:
            logger.info(f"Создана корзина {cart.id} пользователя {user_id}")
        return cart

    async def _load_cart(self, user_id: UUID) -> Cart | None:
        stmt = (
            select(Cart)
            .options(
                selectinload(Cart.items)
                .selectinload(CartItem.product)
                .selectinload(Product.discounts),
                selectinload(Cart.items)
                .selectinload(CartItem.variant)
                .options(
                    selectinload(ProductVariant.images),
                    selectinload(ProductVariant.sizes),
                    selectinload(ProductVariant.discounts),
                ),
            )
            .where(Cart.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
