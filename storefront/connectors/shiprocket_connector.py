"""
Shiprocket logistics connector.

API structure:
  - POST /auth/login — email/password → bearer token (valid 240 hours)
  - POST /orders/create/adhoc — book a shipment for one order
  - GET /settings/company/addresses/pickup — registered pickup locations
  - GET /courier/serviceability/ — courier rates for a destination pincode
  - POST /courier/assign/awb — assign a courier (AWB) to a shipment

The bearer token is cached in the api_tokens table so every worker process
shares it. Within a process concurrent callers wait on a single refresh;
across processes a duplicate refresh is tolerated (last write wins).
"""
from typing import Any, Callable, Dict, List, Optional
from datetime import datetime, timedelta
import asyncio
import re

from sqlalchemy.orm import Session, sessionmaker

from storefront.config import Settings, get_settings
from storefront.connectors.base import BaseConnector, NotConfiguredError, UpstreamError
from storefront.models.base import SessionLocal
from storefront.models.credential import CachedCredential
from storefront.utils.logger import log

CARRIER_NAME = "shiprocket"

_PINCODE_RE = re.compile(r"^\d{6}$")


class CarrierAPIError(UpstreamError):
    """Shiprocket rejected or failed a request; message is the carrier's own."""


class CarrierNotConfigured(NotConfiguredError, CarrierAPIError):
    pass


class ShiprocketConnector(BaseConnector):
    """Connector for the Shiprocket external API."""

    error_class = CarrierAPIError

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session_factory: Optional[sessionmaker] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        settings = settings or get_settings()
        super().__init__("Shiprocket", settings.shiprocket_api_base_url, settings)
        self.email = settings.shiprocket_email
        self.password = settings.shiprocket_password
        self.validity = timedelta(hours=settings.shiprocket_token_validity_hours)
        self.refresh_threshold = timedelta(hours=settings.shiprocket_token_refresh_threshold_hours)
        self.session_factory = session_factory or SessionLocal
        self.clock = clock
        self.auth_count = 0
        self._refresh_lock: Optional[asyncio.Lock] = None
        self._lock_loop = None

    # ── Token cache ──────────────────────────────────────────

    def _lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._refresh_lock is None or self._lock_loop is not loop:
            self._refresh_lock = asyncio.Lock()
            self._lock_loop = loop
        return self._refresh_lock

    def _cached_token(self) -> Optional[str]:
        """Return the stored token if it has more than the refresh threshold left."""
        db: Session = self.session_factory()
        try:
            cred = db.get(CachedCredential, CARRIER_NAME)
            if not cred or not cred.token or not cred.expires_at:
                return None
            remaining = cred.expires_at - self.clock()
            if remaining <= self.refresh_threshold:
                return None
            log.debug(
                f"Using cached Shiprocket token (valid for "
                f"{remaining.total_seconds() / 3600:.1f} more hours)"
            )
            return cred.token
        finally:
            db.close()

    def _store_token(self, token: str) -> None:
        now = self.clock()
        db: Session = self.session_factory()
        try:
            db.merge(CachedCredential(
                carrier=CARRIER_NAME,
                token=token,
                expires_at=now + self.validity,
                last_updated=now,
            ))
            db.commit()
        finally:
            db.close()

    def invalidate_token(self) -> None:
        db: Session = self.session_factory()
        try:
            db.query(CachedCredential).filter(CachedCredential.carrier == CARRIER_NAME).delete()
            db.commit()
        finally:
            db.close()

    async def _authenticate(self) -> str:
        if not self.email or not self.password:
            raise CarrierNotConfigured(
                "Shiprocket credentials not configured. Set SHIPROCKET_EMAIL and SHIPROCKET_PASSWORD"
            )
        self.auth_count += 1
        data = await self._retry_operation(
            lambda: self._request(
                "POST", "/auth/login", json={"email": self.email, "password": self.password}
            ),
            operation_name="authenticate",
        )
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise CarrierAPIError("Failed to get token from Shiprocket API", payload=data)
        return token

    async def get_token(self) -> str:
        """Return a valid bearer token, refreshing and storing it when needed."""
        token = self._cached_token()
        if token:
            return token

        async with self._lock():
            # Another caller may have refreshed while we waited
            token = self._cached_token()
            if token:
                return token

            log.info("Fetching new Shiprocket token...")
            token = await self._authenticate()
            self._store_token(token)
            log.info("New Shiprocket token stored successfully")
            return token

    async def _authed_request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Send a request with the bearer token; re-authenticate once on 401."""
        for attempt in (1, 2):
            token = await self.get_token()
            headers = {**self._headers(), "Authorization": f"Bearer {token}"}
            try:
                return await self._request(method, path, json=json, params=params, headers=headers)
            except CarrierAPIError as e:
                if e.status == 401 and attempt == 1:
                    log.warning("Shiprocket rejected cached token, re-authenticating")
                    self.invalidate_token()
                    continue
                raise

    async def validate_connection(self) -> bool:
        try:
            await self.get_token()
            return True
        except CarrierAPIError as e:
            log.error(f"Shiprocket connection check failed: {e}")
            return False

    # ── Carrier operations ───────────────────────────────────

    async def book_shipment(self, order: Dict[str, Any]) -> Dict[str, Any]:
        """
        Submit a sanitized order for shipment. Sent once, never retried.

        Returns:
            Dict with order_id, shipment_id, status and the raw carrier response

        Raises:
            CarrierAPIError: with the carrier's message verbatim on rejection
        """
        data = await self._authed_request("POST", "/orders/create/adhoc", json=order)
        if not isinstance(data, dict) or data.get("order_id") is None:
            message = data.get("message") if isinstance(data, dict) else None
            raise CarrierAPIError(message or "Shiprocket did not return an order id", payload=data)

        log.info(
            f"Shiprocket order created: order_id={data.get('order_id')} "
            f"shipment_id={data.get('shipment_id')}"
        )
        return {
            "order_id": data.get("order_id"),
            "shipment_id": data.get("shipment_id"),
            "status": data.get("status"),
            "raw": data,
        }

    async def list_pickup_addresses(self) -> Dict[str, Any]:
        """
        List registered pickup locations, restricted to the allow-list when any match.

        Returns:
            Dict with addresses and configured_pickup (the nickname bookings will use)
        """
        data = await self._retry_operation(
            lambda: self._authed_request("GET", "/settings/company/addresses/pickup"),
            operation_name="list_pickup_addresses",
        )
        body = data.get("data") if isinstance(data, dict) else None
        if isinstance(body, dict):
            body = body.get("shipping_address")
        addresses: List[Dict[str, Any]] = body if isinstance(body, list) else []

        def _nickname(address: Dict[str, Any]) -> Optional[str]:
            return address.get("pickup_location") or address.get("name")

        allowed = self.settings.pickup_allowlist
        filtered = [a for a in addresses if _nickname(a) in allowed]
        configured = (
            self.settings.shiprocket_pickup_name
            or (filtered and _nickname(filtered[0]))
            or (addresses and _nickname(addresses[0]))
            or (allowed[0] if allowed else "Home")
        )
        return {"addresses": filtered or addresses, "configured_pickup": configured}

    async def get_shipment_rates(
        self,
        delivery_pincode: Any,
        weight: Any = 0.5,
        pickup_pincode: Optional[Any] = None,
        cod: bool = False,
    ) -> Dict[str, Any]:
        """
        Courier serviceability and rates for a destination.

        Raises:
            ValueError: delivery pincode is not exactly 6 digits
        """
        delivery = str(delivery_pincode or "").strip()
        if not _PINCODE_RE.match(delivery):
            raise ValueError("Valid delivery_pincode (6 digits) is required")
        pickup = str(pickup_pincode or self.settings.shiprocket_default_pickup_pincode).strip()
        try:
            weight = float(weight) or 0.5
        except (TypeError, ValueError):
            weight = 0.5

        params = {
            "pickup_postcode": pickup,
            "delivery_postcode": delivery,
            "weight": weight,
            "cod": 1 if cod else 0,
        }
        data = await self._retry_operation(
            lambda: self._authed_request("GET", "/courier/serviceability/", params=params),
            operation_name="get_shipment_rates",
        )
        body = data.get("data") if isinstance(data, dict) else None
        couriers = body.get("available_courier_companies", []) if isinstance(body, dict) else []
        return {
            "pickup_postcode": pickup,
            "delivery_postcode": delivery,
            "weight": weight,
            "cod": params["cod"],
            "couriers": couriers,
        }

    async def assign_awb(self, shipment_id: Any, courier_id: Any) -> Dict[str, Any]:
        """
        Assign a courier to a booked shipment. Sent once, never retried.

        Raises:
            ValueError: shipment_id or courier_id missing
        """
        if not shipment_id or not courier_id:
            raise ValueError("shipment_id and courier_id are required")
        return await self._authed_request(
            "POST",
            "/courier/assign/awb",
            json={"shipment_id": shipment_id, "courier_id": courier_id},
        )
