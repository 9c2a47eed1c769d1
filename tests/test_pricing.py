"""Расчёт цены со скидками."""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from storefront.models.discount import Discount
from storefront.models.product import Product, ProductVariant
from storefront.services.pricing_service import (
    best_discount_percentage,
    effective_price,
    is_discount_active,
    resolve_unit_price,
    seconds_until_price_change,
    to_naive_utc,
)

NOW = datetime(2026, 6, 15, 12, 0, 0)


def discount(percentage, starts_at=NOW - timedelta(days=1), ends_at=NOW + timedelta(days=1)):
    return Discount(percentage=Decimal(str(percentage)), starts_at=starts_at, ends_at=ends_at)


class TestDiscountWindow:
    def test_active_inside_window(self):
        assert is_discount_active(discount(10), NOW)

    def test_window_boundaries_are_inclusive(self):
        d = discount(10, starts_at=NOW, ends_at=NOW + timedelta(hours=1))
        assert is_discount_active(d, NOW)
        assert is_discount_active(d, NOW + timedelta(hours=1))

    def test_inactive_outside_window(self):
        d = discount(10, starts_at=NOW, ends_at=NOW + timedelta(hours=1))
        assert not is_discount_active(d, NOW - timedelta(seconds=1))
        assert not is_discount_active(d, NOW + timedelta(hours=1, seconds=1))

    def test_aware_datetime_converted_to_naive_utc(self):
        moscow = timezone(timedelta(hours=3))
        value = datetime(2026, 6, 15, 15, 0, tzinfo=moscow)
        assert to_naive_utc(value) == datetime(2026, 6, 15, 12, 0)

    def test_naive_datetime_unchanged(self):
        assert to_naive_utc(NOW) is NOW


class TestEffectivePrice:
    def test_no_discount_returns_base_price(self):
        assert effective_price(Decimal("999.99"), Decimal("0")) == Decimal("999.99")

    def test_rounds_down(self):
        # 999 * 0.85 = 849.15
        assert effective_price(Decimal("999"), Decimal("15")) == Decimal("849")

    def test_full_discount(self):
        assert effective_price(Decimal("1000"), Decimal("100")) == Decimal("0")


class TestBestDiscount:
    def test_max_not_sum(self):
        percentage = best_discount_percentage([discount(20)], [discount(50)], NOW)
        assert percentage == Decimal("50")

    def test_expired_discounts_ignored(self):
        expired = discount(70, starts_at=NOW - timedelta(days=10), ends_at=NOW - timedelta(days=5))
        assert best_discount_percentage([expired], [discount(10)], NOW) == Decimal("10")

    def test_no_discounts(self):
        assert best_discount_percentage([], [], NOW) == Decimal("0")

    def test_resolve_unit_price_uses_best_of_product_and_variant(self):
        product = Product(title="Куртка", price=Decimal("1000"), season="WINTER")
        variant = ProductVariant(color="red")
        product.discounts = [discount(20)]
        variant.discounts = [discount(50)]

        price, percentage = resolve_unit_price(product, variant, NOW)

        assert price == Decimal("500")
        assert percentage == Decimal("50")

    def test_resolve_unit_price_without_discounts(self):
        product = Product(title="Куртка", price=Decimal("1000"), season="WINTER")
        variant = ProductVariant(color="red")
        product.discounts = []
        variant.discounts = []

        assert resolve_unit_price(product, variant, NOW) == (Decimal("1000"), Decimal("0"))


class TestPriceChangeBoundary:
    def test_no_discounts(self):
        assert seconds_until_price_change([], NOW) is None

    def test_expired_discount_ignored(self):
        d = discount(10, starts_at=NOW - timedelta(days=2), ends_at=NOW - timedelta(days=1))
        assert seconds_until_price_change([d], NOW) is None

    def test_upcoming_start(self):
        d = discount(10, starts_at=NOW + timedelta(seconds=30), ends_at=NOW + timedelta(days=1))
        assert seconds_until_price_change([d], NOW) == 30

    def test_end_counts_after_inclusive_boundary(self):
        d = discount(10, starts_at=NOW - timedelta(days=1), ends_at=NOW + timedelta(seconds=20))
        assert seconds_until_price_change([d], NOW) == 21

    def test_nearest_boundary_wins(self):
        far = discount(10, starts_at=NOW - timedelta(days=1), ends_at=NOW + timedelta(hours=1))
        near = discount(20, starts_at=NOW + timedelta(seconds=5), ends_at=NOW + timedelta(days=1))
        assert seconds_until_price_change([far, near], NOW) == 5
