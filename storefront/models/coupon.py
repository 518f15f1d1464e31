"""Coupon model — admin-managed discount codes"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric, Text
from sqlalchemy.sql import func
from storefront.models.base import Base


class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, unique=True, index=True, nullable=False)  # stored upper-case
    description = Column(Text, nullable=True)
    discount_type = Column(String, nullable=False, default="percent")  # percent | fixed
    discount_value = Column(Numeric(10, 2), nullable=False)
    min_order_value = Column(Numeric(10, 2), default=0)
    max_discount = Column(Numeric(10, 2), default=0)  # 0 = uncapped
    usage_limit = Column(Integer, default=0)  # 0 = unlimited
    used_count = Column(Integer, default=0)
    valid_from = Column(DateTime, nullable=True)
    valid_until = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def to_document(self) -> dict:
        return {
            "id": str(self.id),
            "code": self.code,
            "description": self.description,
            "discountType": self.discount_type,
            "discountValue": float(self.discount_value or 0),
            "minOrderValue": float(self.min_order_value or 0),
            "maxDiscount": float(self.max_discount or 0),
            "usageLimit": self.usage_limit or 0,
            "usedCount": self.used_count or 0,
            "validFrom": self.valid_from.isoformat() if self.valid_from else None,
            "validUntil": self.valid_until.isoformat() if self.valid_until else None,
            "isActive": bool(self.is_active),
        }
