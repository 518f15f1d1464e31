"""
Admin endpoints: orders, coupons, products, payment alerts
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from storefront.api.deps import require_staff
from storefront.models.base import get_db
from storefront.services import alert_service
from storefront.services.coupon_service import CouponError, CouponService
from storefront.services.order_service import InvalidStatusTransition, OrderService
from storefront.services.order_writer import OrderWriteError
from storefront.services.payment_service import PaymentService, PaymentValidationError
from storefront.services.product_service import ProductError, ProductService
from storefront.utils.logger import log

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_staff)])


class StatusUpdate(BaseModel):
    status: str


# ── Orders ───────────────────────────────────────────────

@router.get("/orders")
def list_orders(
    status: Optional[str] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    try:
        orders = OrderService(db).list_orders(status=status, limit=limit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"orders": orders, "count": len(orders)}


@router.patch("/orders/{order_id}/status")
def update_order_status(order_id: int, body: StatusUpdate, db: Session = Depends(get_db)):
    try:
        order = OrderService(db).update_status(order_id, body.status)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStatusTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return order.to_document()


# ── Coupons ──────────────────────────────────────────────

@router.get("/coupons")
def list_coupons(db: Session = Depends(get_db)):
    return {"coupons": [c.to_document() for c in CouponService(db).list_coupons()]}


@router.post("/coupons", status_code=201)
def create_coupon(data: Dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    try:
        return CouponService(db).create(data).to_document()
    except CouponError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.put("/coupons/{coupon_id}")
def update_coupon(coupon_id: int, data: Dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    try:
        return CouponService(db).update(coupon_id, data).to_document()
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CouponError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/coupons/{coupon_id}")
def delete_coupon(coupon_id: int, db: Session = Depends(get_db)):
    if not CouponService(db).delete(coupon_id):
        raise HTTPException(status_code=404, detail="Coupon not found")
    return {"success": True}


# ── Products ─────────────────────────────────────────────

@router.get("/products")
def list_products(db: Session = Depends(get_db)):
    products = ProductService(db).list_products(include_inactive=True, limit=1000)
    return {"products": [p.to_document() for p in products]}


@router.post("/products", status_code=201)
def create_product(data: Dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    try:
        return ProductService(db).create(data).to_document()
    except ProductError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.put("/products/{product_id}")
def update_product(product_id: int, data: Dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    try:
        return ProductService(db).update(product_id, data).to_document()
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ProductError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/products/{product_id}")
def delete_product(product_id: int, db: Session = Depends(get_db)):
    if not ProductService(db).delete(product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    return {"success": True}


# ── Payment alerts ───────────────────────────────────────

@router.get("/alerts")
def list_alerts(include_resolved: bool = Query(False), db: Session = Depends(get_db)):
    alerts = alert_service.list_alerts(db, include_resolved=include_resolved)
    return {"alerts": [a.to_document() for a in alerts], "count": len(alerts)}


@router.post("/alerts/{alert_id}/resolve")
def resolve_alert(alert_id: int, db: Session = Depends(get_db)):
    alert = alert_service.resolve_alert(db, alert_id)
    if alert is None:
        raise HTTPException(status_code=404, detail="Alert not found")
    return alert.to_document()


@router.post("/alerts/{alert_id}/retry")
def retry_alert(alert_id: int, db: Session = Depends(get_db)):
    """Re-run verification for a failed confirmation; resolves the alert on success."""
    try:
        result = PaymentService(db).retry_alert(alert_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PaymentValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OrderWriteError as e:
        log.error(f"Retry of alert {alert_id} failed to save order: {e}")
        raise HTTPException(status_code=500, detail="Internal server error while saving order.")
    return result.to_response()
