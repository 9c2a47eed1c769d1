"""
Расчёт цены товара с учётом скидок.

Из активных скидок товара и варианта берётся максимальный процент (скидки не
суммируются). Цена со скидкой округляется вниз до целого:
``floor(price * (1 - percentage / 100))``.
"""
import math
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_FLOOR
from typing import Iterable

from storefront.models.discount import Discount
from storefront.models.product import Product, ProductVariant

HUNDRED = Decimal("100")


def to_naive_utc(value: datetime) -> datetime:
    """Привести datetime к naive UTC (так время хранится в БД)."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def is_discount_active(discount: Discount, now: datetime) -> bool:
    """Скидка активна, если now попадает в окно действия, включая обе границы."""
    return discount.starts_at <= now <= discount.ends_at


def active_discounts(discounts: Iterable[Discount], now: datetime) -> list[Discount]:
    """Отфильтровать активные на момент now скидки."""
    return [discount for discount in discounts if is_discount_active(discount, now)]


def best_discount_percentage(
    product_discounts: Iterable[Discount],
    variant_discounts: Iterable[Discount],
    now: datetime,
) -> Decimal:
    """Максимальный процент среди активных скидок товара и варианта (0, если скидок нет)."""
    percentages = [
        Decimal(discount.percentage)
        for discount in active_discounts([*product_discounts, *variant_discounts], now)
    ]
    return max(percentages, default=Decimal("0"))


def effective_price(base_price: Decimal, percentage: Decimal) -> Decimal:
    """Цена со скидкой, округлённая вниз. Без скидки возвращается базовая цена."""
    base_price = Decimal(base_price)
    if not percentage:
        return base_price
    discounted = base_price * (HUNDRED - Decimal(percentage)) / HUNDRED
    return discounted.to_integral_value(rounding=ROUND_FLOOR)


def resolve_unit_price(
    product: Product,
    variant: ProductVariant,
    now: datetime,
) -> tuple[Decimal, Decimal]:
    """
    Цена за единицу для пары товар/вариант на момент now.

    Скидки товара и варианта должны быть загружены заранее.

    Returns:
        Tuple (цена со скидкой, применённый процент)
    """
    percentage = best_discount_percentage(product.discounts, variant.discounts, now)
    return effective_price(product.price, percentage), percentage


def seconds_until_price_change(discounts: Iterable[Discount], now: datetime) -> int | None:
    """
    Через сколько секунд ближайшая из скидок начнётся или закончится.

    Конец окна включается в него, поэтому цена меняется только после ends_at.
    Возвращает None, если впереди нет ни одной границы.
    """
    moments = []
    for discount in discounts:
        if discount.starts_at > now:
            moments.append(discount.starts_at)
        elif discount.ends_at >= now:
            moments.append(discount.ends_at + timedelta(seconds=1))

    if not moments:
        return None
    return max(1, math.ceil((min(moments) - now).total_seconds()))
