"""
Product catalog model
"""
from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, Text
from datetime import datetime
from storefront.models.base import Base


class Product(Base):
    """Catalog entry shown on the storefront"""
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    sku = Column(String, unique=True, index=True, nullable=True)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False)  # rupees
    category = Column(String, index=True, nullable=True)
    image = Column(String, nullable=True)
    stock = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_document(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "sku": self.sku,
            "description": self.description,
            "price": self.price,
            "category": self.category,
            "image": self.image,
            "stock": self.stock or 0,
            "inStock": (self.stock or 0) > 0,
            "isActive": bool(self.is_active),
        }
