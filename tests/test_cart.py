"""Корзина: добавление, изменение количества, владение позициями."""
import uuid

import pytest

from storefront.core.exceptions import NotFoundError, StockError, ValidationError
from storefront.services.cart_service import CartService


class TestAddToCart:
    async def test_quantity_defaults_to_one(self, db, customer, make_product):
        product = await make_product()
        variant = product.variants[0]

        cart = await CartService(db).add_to_cart(customer.id, product.id, variant.id, "M")

        assert len(cart.items) == 1
        assert cart.items[0].quantity == 1

    async def test_quantity_clamped_to_stock(self, db, customer, make_product):
        product = await make_product(sizes=[{"size": "M", "quantity": 5}])
        variant = product.variants[0]
        service = CartService(db)

        await service.add_to_cart(customer.id, product.id, variant.id, "M", 2)
        cart = await service.add_to_cart(customer.id, product.id, variant.id, "M", 4)

        assert len(cart.items) == 1
        assert cart.items[0].quantity == 5

    async def test_separate_lines_per_size(self, db, customer, make_product):
        product = await make_product(sizes=[{"size": "M", "quantity": 5}, {"size": "L", "quantity": 5}])
        variant = product.variants[0]
        service = CartService(db)

        await service.add_to_cart(customer.id, product.id, variant.id, "M")
        cart = await service.add_to_cart(customer.id, product.id, variant.id, "L")

        assert sorted(item.size for item in cart.items) == ["L", "M"]

    async def test_unknown_product(self, db, customer, make_product):
        product = await make_product()
        with pytest.raises(NotFoundError):
            await CartService(db).add_to_cart(customer.id, uuid.uuid4(), product.variants[0].id, "M")

    async def test_variant_of_another_product(self, db, customer, make_product):
        first = await make_product(title="Первый")
        second = await make_product(title="Второй")
        with pytest.raises(NotFoundError):
            await CartService(db).add_to_cart(customer.id, first.id, second.variants[0].id, "M")

    async def test_unknown_size(self, db, customer, make_product):
        product = await make_product()
        with pytest.raises(ValidationError):
            await CartService(db).add_to_cart(customer.id, product.id, product.variants[0].id, "XXL")

    async def test_size_out_of_stock(self, db, customer, make_product):
        product = await make_product(sizes=[{"size": "M", "quantity": 0}])
        with pytest.raises(StockError):
            await CartService(db).add_to_cart(customer.id, product.id, product.variants[0].id, "M")


class TestUpdateQuantity:
    async def _cart_with_item(self, db, customer, make_product, stock=3, quantity=1):
        product = await make_product(sizes=[{"size": "M", "quantity": stock}])
        cart = await CartService(db).add_to_cart(customer.id, product.id, product.variants[0].id, "M", quantity)
        return cart.items[0]

    async def test_increment(self, db, customer, make_product):
        item = await self._cart_with_item(db, customer, make_product)
        cart = await CartService(db).update_quantity(customer.id, item.id, "increment")
        assert cart.items[0].quantity == 2

    async def test_increment_beyond_stock(self, db, customer, make_product):
        item = await self._cart_with_item(db, customer, make_product, stock=2, quantity=2)
        with pytest.raises(StockError):
            await CartService(db).update_quantity(customer.id, item.id, "increment")

    async def test_decrement_from_one_removes_line(self, db, customer, make_product):
        item = await self._cart_with_item(db, customer, make_product)
        cart = await CartService(db).update_quantity(customer.id, item.id, "decrement")
        assert cart.items == []

    async def test_unknown_action(self, db, customer, make_product):
        item = await self._cart_with_item(db, customer, make_product)
        with pytest.raises(ValidationError):
            await CartService(db).update_quantity(customer.id, item.id, "double")

    async def test_foreign_item_not_found(self, db, customer, other_customer, make_product):
        item = await self._cart_with_item(db, customer, make_product)
        with pytest.raises(NotFoundError):
            await CartService(db).update_quantity(other_customer.id, item.id, "increment")


class TestCartEndpoints:
    async def test_get_cart_without_cart(self, client, auth, customer):
        response = await client.get("/api/v1/cart", headers=auth(customer))
        assert response.status_code == 404
        assert response.json() == {"error": "Корзина не найдена"}

    async def test_requires_token(self, client):
        response = await client.get("/api/v1/cart")
        assert response.status_code == 401
        assert "error" in response.json()

    async def test_add_and_view_with_discounted_price(self, client, auth, db, admin, customer, make_product):
        product = await make_product(price=1000)
        variant = product.variants[0]

        response = await client.put(
            "/api/v1/cart",
            json={"product_id": str(product.id), "variant_id": str(variant.id), "size": "M", "quantity": 2},
            headers=auth(customer),
        )
        assert response.status_code == 200

        response = await client.post(
            "/api/v1/discount",
            json={
                "percentage": 15,
                "starts_at": "2020-01-01T00:00:00",
                "ends_at": "2100-01-01T00:00:00",
                "product_id": str(product.id),
            },
            headers=auth(admin),
        )
        assert response.status_code == 201

        response = await client.get("/api/v1/cart", headers=auth(customer))
        data = response.json()
        assert data["items"][0]["unit_price"] == 850
        assert data["items"][0]["total_price"] == 1700
        assert data["total_price"] == 1700
        assert data["items"][0]["variant"]["images"][0]["url"] == "https://cdn.example.com/tshirt.jpg"
        assert data["items"][0]["product"]["price"] == 1000

    async def test_remove_item(self, client, auth, customer, make_product):
        product = await make_product()
        response = await client.put(
            "/api/v1/cart",
            json={"product_id": str(product.id), "variant_id": str(product.variants[0].id), "size": "M"},
            headers=auth(customer),
        )
        item_id = response.json()["items"][0]["id"]

        response = await client.request(
            "DELETE", "/api/v1/cart", json={"item_id": item_id}, headers=auth(customer)
        )
        assert response.status_code == 200

        response = await client.get("/api/v1/cart", headers=auth(customer))
        assert response.json()["items"] == []

    async def test_update_quantity_invalid_action(self, client, auth, customer):
        response = await client.put(
            "/api/v1/cart/update-quantity",
            json={"item_id": str(uuid.uuid4()), "action": "double"},
            headers=auth(customer),
        )
        assert response.status_code == 400
        assert "error" in response.json()
