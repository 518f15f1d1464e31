"""
Admin shipment endpoints (Shiprocket)

All endpoints answer 200 with a tagged result: {"success": true, ...} or
{"success": false, "message": ...} carrying the carrier's message.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from storefront.api.deps import get_carrier, require_staff
from storefront.connectors.shiprocket_connector import ShiprocketConnector
from storefront.models.base import get_db
from storefront.services.shipment_service import ShipmentService

router = APIRouter(prefix="/admin/shipments", tags=["admin-shipments"], dependencies=[Depends(require_staff)])


class RatesRequest(BaseModel):
    delivery_pincode: Any = None
    weight: Any = 0.5
    pickup_pincode: Optional[Any] = None
    cod: bool = False


class AwbRequest(BaseModel):
    shipment_id: Any = None
    courier_id: Any = None


def _service(db: Session, carrier: ShiprocketConnector) -> ShipmentService:
    return ShipmentService(db, carrier=carrier)


@router.post("")
async def create_shipment(
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    carrier: ShiprocketConnector = Depends(get_carrier),
):
    """
    Book a shipment for a stored order ({"orderId": ...}) or an order-like object.

    Optional "pickup_location" and "dimensions" ({length, breadth, height, weight}).
    """
    return await _service(db, carrier).create_shipment(payload)


@router.get("/pickup-addresses")
async def pickup_addresses(
    db: Session = Depends(get_db),
    carrier: ShiprocketConnector = Depends(get_carrier),
):
    return await _service(db, carrier).list_pickup_addresses()


@router.post("/rates")
async def shipment_rates(
    body: RatesRequest,
    db: Session = Depends(get_db),
    carrier: ShiprocketConnector = Depends(get_carrier),
):
    return await _service(db, carrier).get_rates(
        body.delivery_pincode, body.weight, body.pickup_pincode, body.cod
    )


@router.post("/awb")
async def assign_awb(
    body: AwbRequest,
    db: Session = Depends(get_db),
    carrier: ShiprocketConnector = Depends(get_carrier),
):
    return await _service(db, carrier).assign_awb(body.shipment_id, body.courier_id)
