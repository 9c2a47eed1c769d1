"""Модели базы данных."""
from storefront.models.user import User, UserRole
from storefront.models.product import Product, ProductVariant, VariantSize, ProductImage, Season
from storefront.models.discount import Discount
from storefront.models.cart import Cart, CartItem
from storefront.models.order import Order, OrderItem
from storefront.models.like import Like
from storefront.models.comment import Comment

__all__ = [
    "User",
    "UserRole",
    "Product",
    "ProductVariant",
    "VariantSize",
    "ProductImage",
    "Season",
    "Discount",
    "Cart",
    "CartItem",
    "Order",
    "OrderItem",
    "Like",
    "Comment",
]
