"""Оформление заказов, списание остатков и история заказов."""
import uuid
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select, update

from storefront.core.exceptions import ForbiddenError, NotFoundError, StockError, ValidationError
from storefront.models.order import Order
from storefront.models.product import VariantSize
from storefront.services.cart_service import CartService
from storefront.services.discount_service import DiscountService
from storefront.services.order_service import OrderService
from storefront.services.product_service import ProductService
from storefront.services.stock_service import StockService


def line(product, size="M", quantity=1, variant=None):
    return {
        "product_id": product.id,
        "variant_id": (variant or product.variants[0]).id,
        "size": size,
        "quantity": quantity,
    }


async def count_orders(db) -> int:
    result = await db.execute(select(Order.id))
    return len(result.scalars().all())


class TestCreateOrder:
    async def test_total_is_sum_of_discounted_lines(self, db, admin, customer, make_product):
        shirt = await make_product(title="Футболка", price=Decimal("1000"))
        jeans = await make_product(title="Джинсы", price=Decimal("999"))
        now = datetime.utcnow()
        await DiscountService(db).create_discount(
            admin.id, Decimal("20"), now - timedelta(days=1), now + timedelta(days=1), product_id=shirt.id
        )
        await DiscountService(db).create_discount(
            admin.id, Decimal("50"), now - timedelta(days=1), now + timedelta(days=1),
            variant_id=shirt.variants[0].id,
        )
        await DiscountService(db).create_discount(
            admin.id, Decimal("15"), now - timedelta(days=1), now + timedelta(days=1), product_id=jeans.id
        )

        order = await OrderService(db).create_order(
            customer.id, [line(shirt, quantity=2), line(jeans)], "pickup"
        )

        # 2 * 500 + floor(999 * 0.85) = 1000 + 849
        assert order.total_price == Decimal("1849")
        assert order.status == "pending"
        assert not order.is_ready
        assert not order.is_given_to_client
        shirt_item = next(item for item in order.items if item.title_snapshot == "Футболка")
        assert shirt_item.unit_price == Decimal("500")
        assert shirt_item.discount_percentage == Decimal("50")
        assert shirt_item.base_price == Decimal("1000")

    async def test_decrements_stock(self, db, customer, make_product):
        product = await make_product(sizes=[{"size": "M", "quantity": 3}])
        variant_id = product.variants[0].id

        await OrderService(db).create_order(customer.id, [line(product, quantity=3)], "pickup")

        assert await StockService(db).get_available(variant_id, "M") == 0

    async def test_second_order_fails_when_stock_exhausted(self, db, customer, other_customer, make_product):
        product = await make_product(sizes=[{"size": "M", "quantity": 3}])
        service = OrderService(db)
        await service.create_order(customer.id, [line(product, quantity=3)], "pickup")

        with pytest.raises(StockError):
            await service.create_order(other_customer.id, [line(product, quantity=1)], "pickup")

        assert await count_orders(db) == 1

    async def test_insufficient_stock_creates_nothing(self, db, customer, make_product):
        product = await make_product(sizes=[{"size": "M", "quantity": 2}])
        variant_id = product.variants[0].id

        with pytest.raises(StockError):
            await OrderService(db).create_order(customer.id, [line(product, quantity=5)], "pickup")

        assert await count_orders(db) == 0
        assert await StockService(db).get_available(variant_id, "M") == 2

    async def test_repeated_lines_are_summed(self, db, customer, make_product):
        product = await make_product(sizes=[{"size": "M", "quantity": 3}])
        with pytest.raises(StockError):
            await OrderService(db).create_order(
                customer.id, [line(product, quantity=2), line(product, quantity=2)], "pickup"
            )
        assert await count_orders(db) == 0

    async def test_failure_on_later_line_keeps_earlier_stock(self, db, customer, make_product):
        first = await make_product(title="Первый", sizes=[{"size": "M", "quantity": 5}])
        second = await make_product(title="Второй", sizes=[{"size": "M", "quantity": 1}])
        first_variant_id = first.variants[0].id

        with pytest.raises(StockError):
            await OrderService(db).create_order(
                customer.id, [line(first, quantity=2), line(second, quantity=2)], "pickup"
            )

        assert await StockService(db).get_available(first_variant_id, "M") == 5

    async def test_stock_sold_out_after_validation(self, db, customer, make_product, monkeypatch):
        product = await make_product(sizes=[{"size": "M", "quantity": 3}])
        variant_id = product.variants[0].id
        items = [line(product, quantity=3)]
        await CartService(db).add_to_cart(customer.id, product.id, variant_id, "M", 3)

        build_order_items = OrderService._build_order_items

        async def sold_out_meanwhile(self, items, now):
            # Параллельный заказ забрал остаток после проверки наличия
            order_items = await build_order_items(self, items, now)
            await self.db.execute(
                update(VariantSize)
                .where(VariantSize.variant_id == variant_id)
                .values(quantity=0)
                .execution_options(synchronize_session=False)
            )
            return order_items

        monkeypatch.setattr(OrderService, "_build_order_items", sold_out_meanwhile)

        with pytest.raises(StockError):
            await OrderService(db).create_order(customer.id, items, "pickup")

        assert await count_orders(db) == 0
        assert await StockService(db).get_available(variant_id, "M") == 3
        cart = await CartService(db).get_cart(customer.id)
        assert [(item.size, item.quantity) for item in cart.items] == [("M", 3)]

    async def test_empty_items(self, db, customer):
        with pytest.raises(ValidationError):
            await OrderService(db).create_order(customer.id, [], "pickup")

    async def test_unknown_delivery_method(self, db, customer, make_product):
        product = await make_product()
        with pytest.raises(ValidationError):
            await OrderService(db).create_order(customer.id, [line(product)], "teleport")

    async def test_courier_requires_address(self, db, customer, make_product):
        product = await make_product()
        with pytest.raises(ValidationError):
            await OrderService(db).create_order(customer.id, [line(product)], "courier")

    async def test_unknown_product(self, db, customer, make_product):
        product = await make_product()
        item = line(product)
        item["product_id"] = uuid.uuid4()
        with pytest.raises(NotFoundError):
            await OrderService(db).create_order(customer.id, [item], "pickup")

    async def test_unknown_size(self, db, customer, make_product):
        product = await make_product()
        with pytest.raises(ValidationError):
            await OrderService(db).create_order(customer.id, [line(product, size="XS")], "pickup")

    async def test_clears_purchased_cart_lines_only(self, db, customer, make_product):
        product = await make_product(sizes=[{"size": "M", "quantity": 5}, {"size": "L", "quantity": 5}])
        variant = product.variants[0]
        cart_service = CartService(db)
        await cart_service.add_to_cart(customer.id, product.id, variant.id, "M", 1)
        await cart_service.add_to_cart(customer.id, product.id, variant.id, "L", 1)

        await OrderService(db).create_order(customer.id, [line(product, size="M")], "pickup")

        cart = await cart_service.get_cart(customer.id)
        assert [item.size for item in cart.items] == ["L"]

    async def test_snapshot_survives_price_change(self, db, customer, make_product):
        product = await make_product(price=Decimal("1000"))
        order = await OrderService(db).create_order(customer.id, [line(product)], "pickup")

        await ProductService(db).update(product.id, title="Новое название", price=Decimal("2000"))

        order = await OrderService(db).get_by_id(order.id)
        assert order.items[0].title_snapshot == "Футболка"
        assert order.items[0].unit_price == Decimal("1000")
        assert order.total_price == Decimal("1000")


class TestCheckAvailability:
    async def test_available(self, db, make_product):
        product = await make_product(sizes=[{"size": "M", "quantity": 3}])
        result = await OrderService(db).check_availability([line(product, quantity=3)])
        assert result == {"available": True}

    async def test_missing_item(self, db, make_product):
        product = await make_product(sizes=[{"size": "M", "quantity": 3}])
        result = await OrderService(db).check_availability([line(product, quantity=4)])

        assert result["available"] is False
        assert result["missing_item"]["requested_quantity"] == 4
        assert result["missing_item"]["available_quantity"] == 3

    async def test_does_not_change_stock(self, db, make_product):
        product = await make_product(sizes=[{"size": "M", "quantity": 3}])
        await OrderService(db).check_availability([line(product, quantity=2)])
        assert await StockService(db).get_available(product.variants[0].id, "M") == 3

    async def test_empty(self, db):
        with pytest.raises(ValidationError):
            await OrderService(db).check_availability([])


class TestDeleteOrder:
    async def test_restocks(self, db, customer, make_product):
        product = await make_product(sizes=[{"size": "M", "quantity": 3}])
        service = OrderService(db)
        order = await service.create_order(customer.id, [line(product, quantity=2)], "pickup")

        await service.delete_order(order.id, customer.id)

        assert await StockService(db).get_available(product.variants[0].id, "M") == 3
        assert await service.get_by_id(order.id) is None

    async def test_given_order_not_restocked(self, db, customer, make_product):
        product = await make_product(sizes=[{"size": "M", "quantity": 3}])
        service = OrderService(db)
        order = await service.create_order(customer.id, [line(product, quantity=2)], "pickup")
        await service.mark_given(order.id)

        await service.delete_order(order.id, customer.id)

        assert await StockService(db).get_available(product.variants[0].id, "M") == 1

    async def test_foreign_order(self, db, customer, other_customer, make_product):
        product = await make_product()
        order = await OrderService(db).create_order(customer.id, [line(product)], "pickup")
        with pytest.raises(ForbiddenError):
            await OrderService(db).delete_order(order.id, other_customer.id)

    async def test_unknown_order(self, db, customer):
        with pytest.raises(NotFoundError):
            await OrderService(db).delete_order(uuid.uuid4(), customer.id)


class TestOrderStatus:
    async def test_mark_ready_then_given(self, db, customer, make_product):
        product = await make_product()
        service = OrderService(db)
        order = await service.create_order(customer.id, [line(product)], "pickup")

        order = await service.mark_ready(order.id)
        assert order.is_ready
        assert order.status == "ready"

        order = await service.mark_given(order.id)
        assert order.is_given_to_client
        assert order.status == "completed"


class TestOrderEndpoints:
    def _payload(self, product, quantity=1):
        return {
            "items": [
                {
                    "product_id": str(product.id),
                    "variant_id": str(product.variants[0].id),
                    "size": "M",
                    "quantity": quantity,
                }
            ],
            "delivery_method": "courier",
            "delivery_address": "Москва, ул. Тверская, 1",
        }

    async def test_create_and_list(self, client, auth, customer, make_product):
        product = await make_product()

        response = await client.post("/api/v1/orders", json=self._payload(product, 2), headers=auth(customer))
        assert response.status_code == 201
        order = response.json()["order"]
        assert order["total_price"] == 2000
        assert order["items"][0]["title"] == "Футболка"

        response = await client.get("/api/v1/orders", headers=auth(customer))
        assert [o["id"] for o in response.json()] == [order["id"]]

    async def test_insufficient_stock_response(self, client, auth, customer, make_product):
        product = await make_product(sizes=[{"size": "M", "quantity": 1}])
        response = await client.post("/api/v1/orders", json=self._payload(product, 2), headers=auth(customer))
        assert response.status_code == 400
        assert "Недостаточно товара" in response.json()["error"]

    async def test_zero_quantity_rejected(self, client, auth, customer, make_product):
        product = await make_product()
        response = await client.post("/api/v1/orders", json=self._payload(product, 0), headers=auth(customer))
        assert response.status_code == 400
        assert "error" in response.json()

    async def test_check_endpoint(self, client, auth, customer, make_product):
        product = await make_product(sizes=[{"size": "M", "quantity": 1}])
        payload = self._payload(product, 2)
        response = await client.post("/api/v1/orders/check", json={"items": payload["items"]}, headers=auth(customer))
        assert response.status_code == 200
        data = response.json()
        assert data["available"] is False
        assert data["missing_item"]["available_quantity"] == 1

    async def test_foreign_order_forbidden(self, client, auth, customer, other_customer, make_product):
        product = await make_product()
        response = await client.post("/api/v1/orders", json=self._payload(product), headers=auth(customer))
        order_id = response.json()["order"]["id"]

        response = await client.get(f"/api/v1/orders/{order_id}", headers=auth(other_customer))
        assert response.status_code == 403

    async def test_admin_list_requires_admin(self, client, auth, admin, manager, customer, make_product):
        product = await make_product()
        await client.post("/api/v1/orders", json=self._payload(product), headers=auth(customer))

        response = await client.get("/api/v1/admin/orders", headers=auth(manager))
        assert response.status_code == 403

        response = await client.get("/api/v1/admin/orders", headers=auth(admin))
        assert response.status_code == 200
        assert response.json()[0]["user_email"] == "customer@example.com"

        response = await client.get(f"/api/v1/admin/orders/user/{customer.id}", headers=auth(admin))
        assert len(response.json()) == 1

    async def test_manager_marks_ready(self, client, auth, manager, customer, make_product):
        product = await make_product()
        response = await client.post("/api/v1/orders", json=self._payload(product), headers=auth(customer))
        order_id = response.json()["order"]["id"]

        response = await client.patch(f"/api/v1/orders/{order_id}/ready", headers=auth(customer))
        assert response.status_code == 403

        response = await client.patch(f"/api/v1/orders/{order_id}/ready", headers=auth(manager))
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    async def test_status_routes_without_orders_prefix(self, client, auth, manager, customer, make_product):
        product = await make_product()
        response = await client.post("/api/v1/orders", json=self._payload(product), headers=auth(customer))
        order_id = response.json()["order"]["id"]

        response = await client.patch(f"/api/v1/{order_id}/ready", headers=auth(manager))
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

        response = await client.patch(f"/api/v1/{order_id}/given", headers=auth(manager))
        assert response.status_code == 200
        assert response.json()["is_given_to_client"] is True


class TestStockDecrement:
    async def test_decrements(self, db, make_product):
        product = await make_product(sizes=[{"size": "M", "quantity": 3}])
        variant_id = product.variants[0].id

        await StockService(db).decrement(variant_id, "M", 3)

        assert await StockService(db).get_available(variant_id, "M") == 0

    async def test_not_enough_leaves_stock(self, db, make_product):
        product = await make_product(sizes=[{"size": "M", "quantity": 2}])
        variant_id = product.variants[0].id

        with pytest.raises(StockError) as exc_info:
            await StockService(db).decrement(variant_id, "M", 3)

        assert "Доступно: 2" in exc_info.value.message
        assert await StockService(db).get_available(variant_id, "M") == 2

    async def test_unknown_size(self, db, make_product):
        product = await make_product()
        with pytest.raises(StockError):
            await StockService(db).decrement(product.variants[0].id, "XS", 1)
