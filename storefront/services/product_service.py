"""Сервис для работы с товарами."""
import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, delete, update, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.exceptions import ValidationError, NotFoundError
from storefront.models.cart import CartItem
from storefront.models.comment import Comment
from storefront.models.discount import Discount
from storefront.models.like import Like
from storefront.models.order import OrderItem
from storefront.models.product import Product, ProductVariant, VariantSize, ProductImage, Season

logger = logging.getLogger(__name__)

SORT_OPTIONS = {
    "priceAsc": Product.price.asc(),
    "priceDesc": Product.price.desc(),
    "old": Product.created_at.asc(),
    "new": Product.created_at.desc(),
}


def _product_details_options():
    return (
        selectinload(Product.discounts),
        selectinload(Product.likes),
        selectinload(Product.variants).options(
            selectinload(ProductVariant.images),
            selectinload(ProductVariant.sizes),
            selectinload(ProductVariant.discounts),
        ),
    )


def _validate_sizes(sizes: list[dict], index: int) -> list[dict]:
    """Проверить список размеров варианта (index - номер варианта с нуля)."""
    if not sizes:
        raise ValidationError(f"Неверные данные для варианта №{index + 1}")

    labels = set()
    for entry in sizes:
        size = entry.get("size")
        quantity = entry.get("quantity")
        if not size or quantity is None or int(quantity) < 0:
            raise ValidationError(f"Неверный формат размеров в варианте №{index + 1}")
        if size in labels:
            raise ValidationError(f"Размер {size} указан дважды в варианте №{index + 1}")
        labels.add(size)
    return sizes


class ProductService:
    """Сервис для работы с товарами."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_visible(
        self,
        season: str | None = None,
        sex: str | None = None,
        model: str | None = None,
        age: str | None = None,
        color: str | None = None,
        size: str | None = None,
        search_query: str | None = None,
        min_price: Decimal | None = None,
        max_price: Decimal | None = None,
        sort: str | None = None,
    ) -> list[Product]:
        """Получить видимые товары с фильтрацией."""
        stmt = select(Product).options(*_product_details_options()).where(
            Product.visible == True,  # noqa: E712
        )

        if min_price is not None:
            stmt = stmt.where(Product.price >= min_price)
        if max_price is not None:
            stmt = stmt.where(Product.price <= max_price)
        if sex:
            stmt = stmt.where(Product.sex == sex)
        if model:
            stmt = stmt.where(Product.model == model)
        if age:
            stmt = stmt.where(Product.age == age)
        if season:
            stmt = stmt.where(Product.season == season)

        # Поиск по названию и описанию
        if search_query:
            stmt = stmt.where(
                or_(
                    Product.title.ilike(f"%{search_query}%"),
                    Product.description.ilike(f"%{search_query}%"),
                )
            )

        # Хотя бы один вариант должен подходить под цвет и размер
        variant_conditions = []
        if color:
            variant_conditions.append(ProductVariant.color == color)
        if size:
            variant_conditions.append(ProductVariant.sizes.any(VariantSize.size == size))
        if variant_conditions:
            stmt = stmt.where(Product.variants.any(and_(*variant_conditions)))
        else:
            stmt = stmt.where(Product.variants.any())

        stmt = stmt.order_by(SORT_OPTIONS.get(sort, SORT_OPTIONS["new"]))

        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_all_for_admin(self) -> list[Product]:
        """Получить все товары, включая скрытые."""
        stmt = (
            select(Product)
            .options(*_product_details_options())
            .order_by(Product.created_at.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_by_id(self, product_id: UUID) -> Product | None:
        """Получить товар со всеми вариантами, размерами, изображениями и скидками."""
        stmt = (
            select(Product)
            .options(*_product_details_options())
            .where(Product.id == product_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def create(
        self,
        user_id: UUID,
        title: str,
        price: Decimal,
        season: str,
        variants: list[dict],
        description: str | None = None,
        sex: str | None = None,
        model: str | None = None,
        age: str | None = None,
    ) -> UUID:
        """
        Создать товар с вариантами, размерами и изображениями.

        Returns:
            ID созданного товара
        """
        if not variants:
            raise ValidationError("Нужно указать варианты товара")
        if season not in {s.value for s in Season}:
            raise ValidationError(
                "Неверное значение сезона, допустимые значения: SUMMER, WINTER, ALL_SEASON"
            )
        for index, variant_data in enumerate(variants):
            if not variant_data.get("color"):
                raise ValidationError(f"Неверные данные для варианта №{index + 1}")
            _validate_sizes(variant_data.get("sizes") or [], index)

        product = Product(
            user_id=user_id,
            title=title,
            description=description,
            price=price,
            sex=sex,
            model=model,
            age=age,
            season=season,
        )
        self.db.add(product)

        try:
            await self.db.flush()  # Получаем ID товара
            product_id = product.id

            for variant_data in variants:
                await self._add_variant(product_id, variant_data)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Создан товар {product_id} ({title}) с вариантами: {len(variants)}")
        return product_id

    async def update(
        self,
        product_id: UUID,
        title: str | None = None,
        description: str | None = None,
        price: Decimal | None = None,
        sex: str | None = None,
        model: str | None = None,
        age: str | None = None,
        season: str | None = None,
        visible: bool | None = None,
        variants: list[dict] | None = None,
    ) -> Product:
        """
        Обновить товар.

        Варианты с id обновляются (цвет, список размеров, изображения),
        варианты без id создаются.
        """
        product = await self.get_by_id(product_id)
        if not product:
            raise NotFoundError("Товар не найден")

        if season is not None and season not in {s.value for s in Season}:
            raise ValidationError(
                "Неверное значение сезона, допустимые значения: SUMMER, WINTER, ALL_SEASON"
            )

        own_variant_ids = {variant.id for variant in product.variants}
        for index, variant_data in enumerate(variants or []):
            if not variant_data.get("color"):
                raise ValidationError(f"Неверные данные для варианта №{index + 1}")
            _validate_sizes(variant_data.get("sizes") or [], index)
            if variant_data.get("id") and variant_data["id"] not in own_variant_ids:
                raise NotFoundError(f"Вариант №{index + 1} не принадлежит товару")

        if title is not None:
            product.title = title
        if description is not None:
            product.description = description
        if price is not None:
            product.price = price
        if sex is not None:
            product.sex = sex
        if model is not None:
            product.model = model
        if age is not None:
            product.age = age
        if season is not None:
            product.season = season
        if visible is not None:
            product.visible = visible

        try:
            for variant_data in variants or []:
                if variant_data.get("id"):
                    await self._update_variant(variant_data)
                else:
                    await self._add_variant(product_id, variant_data)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        return await self.get_by_id(product_id)

    async def _add_variant(self, product_id: UUID, variant_data: dict) -> ProductVariant:
        variant = ProductVariant(product_id=product_id, color=variant_data["color"])
        self.db.add(variant)
        await self.db.flush()

        self._add_sizes(variant.id, variant_data["sizes"])
        for url in variant_data.get("images") or []:
            self.db.add(ProductImage(variant_id=variant.id, url=url))
        await self.db.flush()
        return variant

    async def _update_variant(self, variant_data: dict) -> None:
        variant_id = variant_data["id"]

        await self.db.execute(
            update(ProductVariant)
            .where(ProductVariant.id == variant_id)
            .values(color=variant_data["color"])
            .execution_options(synchronize_session=False)
        )

        # Список размеров переписывается целиком
        await self.db.execute(
            delete(VariantSize)
            .where(VariantSize.variant_id == variant_id)
            .execution_options(synchronize_session=False)
        )
        self._add_sizes(variant_id, variant_data["sizes"])

        # Оставляем только перечисленные изображения и добавляем новые
        keep_ids = list(variant_data.get("existing_images") or [])
        await self.db.execute(
            delete(ProductImage)
            .where(ProductImage.variant_id == variant_id, ProductImage.id.not_in(keep_ids))
            .execution_options(synchronize_session=False)
        )
        for url in variant_data.get("images") or []:
            self.db.add(ProductImage(variant_id=variant_id, url=url))
        await self.db.flush()

    def _add_sizes(self, variant_id: UUID, sizes: list[dict]) -> None:
        for position, entry in enumerate(sizes):
            self.db.add(
                VariantSize(
                    variant_id=variant_id,
                    size=entry["size"],
                    quantity=int(entry["quantity"]),
                    position=position,
                )
            )

    async def delete(self, product_id: UUID) -> bool:
        """
        Удалить товар со всеми зависимыми данными.

        Позиции заказов не удаляются: ссылки на товар и вариант обнуляются,
        снимок цены и названия остаётся в истории заказов.
        """
        product = await self.db.get(Product, product_id)
        if not product:
            return False

        variant_ids = select(ProductVariant.id).where(ProductVariant.product_id == product_id)

        # Порядок важен: сначала зависимые строки, товар последним
        statements = [
            delete(Comment).where(Comment.product_id == product_id),
            delete(Like).where(Like.product_id == product_id),
            delete(CartItem).where(CartItem.product_id == product_id),
            update(OrderItem)
            .where(OrderItem.product_id == product_id)
            .values(product_id=None, variant_id=None),
            delete(Discount).where(
                or_(Discount.product_id == product_id, Discount.variant_id.in_(variant_ids))
            ),
            delete(ProductImage).where(ProductImage.variant_id.in_(variant_ids)),
            delete(VariantSize).where(VariantSize.variant_id.in_(variant_ids)),
            delete(ProductVariant).where(ProductVariant.product_id == product_id),
            delete(Product).where(Product.id == product_id),
        ]

        try:
            for stmt in statements:
                await self.db.execute(stmt, execution_options={"synchronize_session": False})
            await self.db.commit()
        except Exception:
            # Откатываем транзакцию при ошибке
            await self.db.rollback()
            raise

        logger.info(f"Товар {product_id} удалён")
        return True
