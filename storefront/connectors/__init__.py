"""Outbound API connectors for the storefront backend"""

from storefront.connectors.base import BaseConnector, UpstreamError, NotConfiguredError
from storefront.connectors.razorpay_connector import RazorpayConnector, GatewayAPIError, GatewayNotConfigured
from storefront.connectors.shiprocket_connector import ShiprocketConnector, CarrierAPIError, CarrierNotConfigured

__all__ = [
    "BaseConnector",
    "UpstreamError",
    "NotConfiguredError",
    "RazorpayConnector",
    "GatewayAPIError",
    "GatewayNotConfigured",
    "ShiprocketConnector",
    "CarrierAPIError",
    "CarrierNotConfigured",
]
