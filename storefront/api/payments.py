"""
Payment endpoints: gateway order creation and payment verification
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from storefront.api.deps import get_gateway
from storefront.connectors.razorpay_connector import GatewayAPIError, RazorpayConnector
from storefront.models.base import get_db
from storefront.services.order_writer import OrderWriteError
from storefront.services.payment_service import (
    CapabilityDisabled,
    PaymentService,
    PaymentValidationError,
)
from storefront.utils.logger import log

router = APIRouter(prefix="/api/payments", tags=["payments"])

SAVE_FAILED_MESSAGE = "Internal server error while saving order."


class CreateOrderRequest(BaseModel):
    amount: Any = None
    currency: Optional[str] = "INR"


def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": "failure", "message": message})


@router.post("/create-order")
async def create_order(
    body: CreateOrderRequest,
    db: Session = Depends(get_db),
    gateway: RazorpayConnector = Depends(get_gateway),
):
    """Create a Razorpay order for a rupee amount; returns the gateway order (amount in paise)."""
    service = PaymentService(db, gateway=gateway)
    try:
        return await service.create_gateway_order(body.amount, body.currency)
    except PaymentValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except GatewayAPIError as e:
        log.error(f"Razorpay order creation failed: {e.message} (status={e.status})")
        raise HTTPException(
            status_code=500,
            detail={"message": "Failed to create Razorpay order", "error": e.to_dict()},
        )


@router.post("/verify")
def verify_payment(request: Dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    """
    Verify the gateway's payment signature and save the order once.

    Returns {"status": "success", "orderId"} or {"status": "failure", "message"}.
    """
    service = PaymentService(db)
    try:
        result = service.verify_payment(request)
    except PaymentValidationError as e:
        return _failure(400, str(e))
    except OrderWriteError as e:
        log.error(f"Error saving order for payment {request.get('paymentId')}: {e}")
        return _failure(500, SAVE_FAILED_MESSAGE)

    return JSONResponse(status_code=result.http_status, content=result.to_response())


@router.post("/record-unverified")
def record_unverified(request: Dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    """Development-only order write without signature verification."""
    service = PaymentService(db)
    try:
        result = service.record_unverified_order(request)
    except CapabilityDisabled as e:
        return _failure(403, str(e))
    except PaymentValidationError as e:
        return _failure(400, str(e))
    except OrderWriteError as e:
        log.error(f"Error saving unverified order for payment {request.get('paymentId')}: {e}")
        return _failure(500, SAVE_FAILED_MESSAGE)

    return JSONResponse(status_code=result.http_status, content=result.to_response())


@router.post("/preferences")
async def checkout_preferences(
    payload: Optional[Dict[str, Any]] = Body(None),
    gateway: RazorpayConnector = Depends(get_gateway),
):
    """Proxy to Razorpay's standard-checkout preferences API."""
    try:
        return await gateway.create_checkout_preference(payload)
    except GatewayAPIError as e:
        log.error(f"Razorpay preferences request failed: {e.message} (status={e.status})")
        content = e.payload if e.payload is not None else {"message": e.message}
        return JSONResponse(status_code=e.status or 500, content=content)
