"""
Shipment Service
Admin-side shipment booking on top of the Shiprocket connector.

Every public method returns a tagged result ({"success": bool, ...}) so the
admin UI can show the carrier's message without handling exceptions.
"""
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.config import Settings, get_settings
from storefront.connectors.base import UpstreamError
from storefront.connectors.shiprocket_connector import ShiprocketConnector
from storefront.models.customer import CustomerProfile
from storefront.models.order import Order
from storefront.services.address_sanitizer import MissingFieldsError, sanitize
from storefront.services.order_service import OrderService
from storefront.utils.logger import log


def _failure(message: str, **extra: Any) -> Dict[str, Any]:
    return {"success": False, "message": message, **extra}


def _upstream_failure(error: UpstreamError) -> Dict[str, Any]:
    result = _failure(error.message)
    if error.status is not None:
        result["status"] = error.status
    if error.payload is not None:
        result["details"] = error.payload
    return result


class ShipmentService:
    """Books carrier shipments for stored or ad-hoc orders"""

    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        carrier: Optional[ShiprocketConnector] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.carrier = carrier or ShiprocketConnector(self.settings)

    def _load_order(self, order_id: Any) -> Optional[Order]:
        try:
            return self.db.get(Order, int(order_id))
        except (TypeError, ValueError):
            return None

    def _profile_for(self, order: Order) -> Optional[Dict[str, Any]]:
        if not order.user_id:
            return None
        profile = self.db.get(CustomerProfile, order.user_id)
        if profile is None:
            return None
        return {"email": profile.email, "displayName": profile.display_name}

    async def create_shipment(
        self,
        request: Any,
        pickup_location: Optional[str] = None,
        dimensions: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Sanitize and book a shipment. Never raises.

        Args:
            request: {"orderId": <stored order id>} or any order-like object
            pickup_location: Pickup nickname; the configured pickup name wins over it
            dimensions: Package length/breadth/height (cm) and weight (kg)

        Returns:
            {"success": True, "order_id", "shipment_id", "status"} or
            {"success": False, "message", ...} with the carrier's message verbatim
        """
        try:
            request = request if isinstance(request, dict) else {}
            order: Optional[Order] = None
            raw: Dict[str, Any] = request
            profile = None

            order_ref = request.get("orderId")
            if order_ref is not None and not request.get("billing_address"):
                order = self._load_order(order_ref)
                if order is None:
                    return _failure(f"Order {order_ref} not found")
                raw = order.to_document()
                profile = self._profile_for(order)

            pickup_location = pickup_location or request.get("pickup_location")
            dimensions = dimensions or request.get("dimensions")
            shipment = sanitize(
                raw,
                profile=profile,
                pickup_location=pickup_location,
                dimensions=dimensions,
                settings=self.settings,
            )
            payload = shipment.order

            configured_pickup = (self.settings.shiprocket_pickup_name or "").strip()
            if configured_pickup:
                log.info(f"Overriding pickup_location with configured value: {configured_pickup}")
                payload["pickup_location"] = configured_pickup

            if shipment.recovered_fields:
                log.warning(
                    f"Shipment {payload['order_id']}: recovered {shipment.recovered_fields} from address text"
                )
            log.info(f"Sanitized payload for Shiprocket: {payload}")

            missing = shipment.missing_fields
            if missing:
                raise MissingFieldsError(missing)

            booked = await self.carrier.book_shipment(payload)

            if order is not None:
                OrderService(self.db, self.settings).mark_shipped(
                    order, booked.get("order_id"), booked.get("shipment_id")
                )

            return {
                "success": True,
                "order_id": booked.get("order_id"),
                "shipment_id": booked.get("shipment_id"),
                "status": booked.get("status"),
                "recovered_fields": shipment.recovered_fields,
            }
        except MissingFieldsError as e:
            log.error(f"Blocking Shiprocket call due to missing fields: {e.missing}")
            return _failure("Missing required address fields", missing=e.missing)
        except UpstreamError as e:
            log.error(f"Shiprocket order creation failed: {e.message} (status={e.status})")
            return _upstream_failure(e)
        except SQLAlchemyError as e:
            self.db.rollback()
            log.error(f"Shipment booked but order update failed: {e}")
            return _failure("Failed to update order after booking")
        except Exception as e:
            log.exception(f"Unexpected error creating shipment: {e}")
            return _failure(str(e) or "Failed to create Shiprocket order")

    async def list_pickup_addresses(self) -> Dict[str, Any]:
        try:
            result = await self.carrier.list_pickup_addresses()
            return {"success": True, **result}
        except UpstreamError as e:
            return _upstream_failure(e)

    async def get_rates(
        self,
        delivery_pincode: Any,
        weight: Any = 0.5,
        pickup_pincode: Optional[Any] = None,
        cod: bool = False,
    ) -> Dict[str, Any]:
        try:
            result = await self.carrier.get_shipment_rates(delivery_pincode, weight, pickup_pincode, cod)
            return {"success": True, **result}
        except ValueError as e:
            return _failure(str(e))
        except UpstreamError as e:
            return _upstream_failure(e)

    async def assign_awb(self, shipment_id: Any, courier_id: Any) -> Dict[str, Any]:
        try:
            data = await self.carrier.assign_awb(shipment_id, courier_id)
            return {"success": True, "data": data}
        except ValueError as e:
            return _failure(str(e))
        except UpstreamError as e:
            return _upstream_failure(e)
