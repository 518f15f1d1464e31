"""
Storefront coupon endpoints
"""
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from storefront.models.base import get_db
from storefront.services.coupon_service import CouponService

router = APIRouter(prefix="/api/coupons", tags=["coupons"])


class ApplyCouponRequest(BaseModel):
    code: str = ""
    subtotal: Any = 0


@router.get("")
def available_coupons(db: Session = Depends(get_db)):
    coupons = CouponService(db).available_coupons()
    return {"coupons": [c.to_document() for c in coupons]}


@router.post("/apply")
def apply_coupon(body: ApplyCouponRequest, db: Session = Depends(get_db)):
    """Evaluate a coupon code against a cart subtotal."""
    return CouponService(db).evaluate(body.code, body.subtotal).to_dict()
