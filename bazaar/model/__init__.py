# ------ bazaar/model/__init__.py ------

from .user import User
from .category import Category
from .product import Product
from .address import Address
from .order import Order, OrderItem
from .coupon import Coupon, CouponUsage, CouponCheck
from .cart import Cart, CartItem, CouponApplication

__all__ = [
    "User",
    "Category",
    "Product",
    "Address",
    "Order",
    "OrderItem",
    "Coupon",
    "CouponUsage",
    "CouponCheck",
    "Cart",
    "CartItem",
    "CouponApplication",
]
