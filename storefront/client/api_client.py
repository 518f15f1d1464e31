"""
Storefront API client

API structure:
  - POST /api/payments/create-order — rupee amount → Razorpay order
  - POST /api/payments/verify — signed payment confirmation → order id
  - GET /api/orders/by-payment/{payment_id} — order read-back
"""
from typing import Any, Dict, Optional

from storefront.config import Settings
from storefront.connectors.base import BaseConnector, UpstreamError
from storefront.utils.logger import log


class StorefrontAPIError(UpstreamError):
    """The storefront API failed or rejected a request."""


class StorefrontClient(BaseConnector):
    """Client used by the checkout flow to talk to the storefront backend."""

    error_class = StorefrontAPIError

    def __init__(self, base_url: str, settings: Optional[Settings] = None):
        super().__init__("Storefront", base_url, settings)

    def _error_message(self, data: Any, status: int) -> str:
        if isinstance(data, dict) and isinstance(data.get("detail"), str):
            return data["detail"]
        return super()._error_message(data, status)

    async def validate_connection(self) -> bool:
        try:
            data = await self._request("GET", "/health")
            return isinstance(data, dict) and data.get("status") == "healthy"
        except StorefrontAPIError as e:
            log.error(f"Storefront health check failed: {e}")
            return False

    async def create_order(self, amount: Any, currency: str = "INR") -> Dict[str, Any]:
        return await self._request(
            "POST", "/api/payments/create-order", json={"amount": amount, "currency": currency}
        )

    async def verify_payment(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """
        Submit a signed payment confirmation.

        Returns the {"status": ...} body for both success and failure verdicts;
        raises only when no verdict came back.
        """
        try:
            return await self._request("POST", "/api/payments/verify", json=request)
        except StorefrontAPIError as e:
            if isinstance(e.payload, dict) and e.payload.get("status") == "failure":
                return e.payload
            raise

    async def get_order_by_payment(self, payment_id: str) -> Optional[Dict[str, Any]]:
        """Order document for a payment id, or None if it has not been written yet."""
        try:
            return await self._request("GET", f"/api/orders/by-payment/{payment_id}")
        except StorefrontAPIError as e:
            if e.status == 404:
                return None
            raise
