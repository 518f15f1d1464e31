"""Product catalog queries and admin product management"""
import math
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.models.product import Product
from storefront.utils.logger import log


class ProductError(ValueError):
    """Invalid product data supplied by an admin."""


def _price(value: Any) -> float:
    try:
        price = float(value)
    except (TypeError, ValueError):
        raise ProductError("price must be a number")
    if isinstance(value, bool) or not math.isfinite(price) or price < 0:
        raise ProductError("price must be a non-negative number")
    return round(price, 2)


def _apply_fields(product: Product, data: Dict[str, Any]) -> None:
    if "name" in data:
        name = str(data["name"] or "").strip()
        if not name:
            raise ProductError("name is required")
        product.name = name
    if "price" in data:
        product.price = _price(data["price"])
    if "stock" in data:
        try:
            product.stock = max(int(data["stock"] or 0), 0)
        except (TypeError, ValueError):
            raise ProductError("stock must be an integer")
    for key in ("sku", "description", "category", "image"):
        if key in data:
            value = data[key]
            setattr(product, key, str(value).strip() if value not in (None, "") else None)
    if "isActive" in data:
        product.is_active = bool(data["isActive"])


class ProductService:
    def __init__(self, db: Session):
        self.db = db

    def list_products(
        self,
        query: Optional[str] = None,
        category: Optional[str] = None,
        include_inactive: bool = False,
        limit: int = 200,
    ) -> List[Product]:
        q = self.db.query(Product)
        if not include_inactive:
            q = q.filter(Product.is_active == True)  # noqa: E712
        if category:
            q = q.filter(Product.category == category)
        if query:
            pattern = f"%{query.strip()}%"
            q = q.filter(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
        return q.order_by(Product.name.asc()).limit(limit).all()

    def get(self, product_id: int, include_inactive: bool = False) -> Optional[Product]:
        product = self.db.get(Product, product_id)
        if product is None or (not include_inactive and not product.is_active):
            return None
        return product

    def create(self, data: Dict[str, Any]) -> Product:
        if "name" not in data or "price" not in data:
            raise ProductError("name and price are required")
        product = Product(stock=0, is_active=True)
        _apply_fields(product, data)
        self.db.add(product)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ProductError(f"SKU {product.sku} already exists")
        self.db.refresh(product)
        log.info(f"Created product {product.id} ({product.name})")
        return product

    def update(self, product_id: int, data: Dict[str, Any]) -> Product:
        product = self.db.get(Product, product_id)
        if product is None:
            raise LookupError(f"Product {product_id} not found")
        try:
            _apply_fields(product, data)
            self.db.commit()
        except ProductError:
            self.db.rollback()
            raise
        except IntegrityError:
            self.db.rollback()
            raise ProductError(f"SKU {data.get('sku')} already exists")
        self.db.refresh(product)
        return product

    def delete(self, product_id: int) -> bool:
        product = self.db.get(Product, product_id)
        if product is None:
            return False
        self.db.delete(product)
        self.db.commit()
        log.info(f"Deleted product {product_id}")
        return True
