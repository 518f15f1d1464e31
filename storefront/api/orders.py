"""
Customer order endpoints
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from storefront.models.base import get_db
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.get("/by-payment/{payment_id}")
def get_order_by_payment(payment_id: str, db: Session = Depends(get_db)):
    """Order document for a gateway payment id (read back by the confirmation page)."""
    doc = OrderService(db).get_by_payment(payment_id)
    if doc is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return doc


@router.get("")
def list_customer_orders(
    user_id: Optional[str] = Query(None, alias="userId"),
    email: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """A customer's orders, newest first; legacy orders are matched by shipping email."""
    if not user_id and not email:
        raise HTTPException(status_code=400, detail="userId or email is required")
    orders = OrderService(db).list_for_customer(user_id=user_id, email=email)
    return {"orders": orders, "count": len(orders)}
