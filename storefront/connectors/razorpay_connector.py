"""
Razorpay payment gateway connector.

API structure:
  - POST /orders — create a gateway order (amount in paise)
  - POST /standard_checkout/preferences — hosted checkout preferences

Authentication is HTTP Basic with key_id:key_secret. The secret never leaves
the server; the hosted checkout only ever sees the key id and order id.
"""
from typing import Any, Dict, Optional
import time

import aiohttp

from storefront.config import Settings, get_settings
from storefront.connectors.base import BaseConnector, NotConfiguredError, UpstreamError
from storefront.utils.logger import log


class GatewayAPIError(UpstreamError):
    """Razorpay rejected or failed a request."""


class GatewayNotConfigured(NotConfiguredError, GatewayAPIError):
    pass


class RazorpayConnector(BaseConnector):
    """Connector for the Razorpay Orders API."""

    error_class = GatewayAPIError

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        super().__init__("Razorpay", settings.razorpay_api_base_url, settings)
        self.key_id = settings.razorpay_key_id
        self.key_secret = settings.razorpay_key_secret

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    def _auth(self) -> aiohttp.BasicAuth:
        if not self.configured:
            raise GatewayNotConfigured("Razorpay keys not configured")
        return aiohttp.BasicAuth(self.key_id, self.key_secret)

    def _error_message(self, data: Any, status: int) -> str:
        # Razorpay errors: {"error": {"code": "BAD_REQUEST_ERROR", "description": "..."}}
        if isinstance(data, dict) and isinstance(data.get("error"), dict):
            description = data["error"].get("description")
            if description:
                return str(description)
        return super()._error_message(data, status)

    async def validate_connection(self) -> bool:
        """Check the configured keys are accepted by listing a single order."""
        if not self.configured:
            log.warning("Razorpay keys not configured, skipping")
            return False
        try:
            await self._request("GET", "/orders", params={"count": 1}, auth=self._auth())
            log.info("Connected to Razorpay API")
            return True
        except GatewayAPIError as e:
            log.error(f"Razorpay connection check failed: {e}")
            return False

    async def create_order(
        self,
        amount_minor: int,
        currency: str,
        receipt: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create a gateway order.

        Args:
            amount_minor: Amount in the currency's minor unit (paise for INR)
            currency: ISO currency code
            receipt: Merchant reference; defaults to a timestamped receipt id

        Returns:
            Gateway order object ({id, amount, currency, receipt, status, ...})
        """
        payload = {
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt or f"receipt_{int(time.time() * 1000)}",
        }
        order = await self._request("POST", "/orders", json=payload, auth=self._auth())
        log.info(f"Created Razorpay order {order.get('id')} for {amount_minor} {currency} minor units")
        return order

    async def create_checkout_preference(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Forward a standard-checkout preference request with server-side credentials."""
        return await self._request(
            "POST", "/standard_checkout/preferences", json=payload or {}, auth=self._auth()
        )
