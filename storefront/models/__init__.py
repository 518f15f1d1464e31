"""Database models for the storefront backend"""

from storefront.models.order import Order, OrderStatus
from storefront.models.coupon import Coupon
from storefront.models.credential import CachedCredential
from storefront.models.customer import CustomerProfile, SavedAddress
from storefront.models.product import Product
from storefront.models.alert import PaymentAlert
from storefront.models.user import StaffUser, StaffSession

__all__ = [
    "Order",
    "OrderStatus",
    "Coupon",
    "CachedCredential",
    "CustomerProfile",
    "SavedAddress",
    "Product",
    "PaymentAlert",
    "StaffUser",
    "StaffSession",
]
