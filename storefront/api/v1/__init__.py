"""API v1 роутеры."""
from fastapi import APIRouter

from storefront.api.v1 import cart, orders, discounts, products, likes, comments

router = APIRouter()

# Пути ресурсов заданы в самих роутерах: /cart, /orders, /admin/orders, /product, ...
router.include_router(cart.router, tags=["cart"])
router.include_router(orders.router, tags=["orders"])
router.include_router(discounts.router, tags=["discounts"])
router.include_router(products.router, tags=["products"])
router.include_router(likes.router, tags=["likes"])
router.include_router(comments.router, tags=["comments"])
