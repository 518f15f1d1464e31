"""
Catalog endpoints
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from storefront.models.base import get_db
from storefront.services.product_service import ProductService

router = APIRouter(prefix="/api/products", tags=["products"])


@router.get("")
def list_products(
    q: Optional[str] = Query(None, description="Text search on name and description"),
    category: Optional[str] = Query(None),
    limit: int = Query(200, ge=1, le=500),
    db: Session = Depends(get_db),
):
    products = ProductService(db).list_products(query=q, category=category, limit=limit)
    return {"products": [p.to_document() for p in products], "count": len(products)}


@router.get("/{product_id}")
def get_product(product_id: int, db: Session = Depends(get_db)):
    product = ProductService(db).get(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product.to_document()
