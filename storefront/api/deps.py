"""Shared FastAPI dependencies"""
from fastapi import HTTPException, Request

from storefront.connectors.razorpay_connector import RazorpayConnector
from storefront.connectors.shiprocket_connector import ShiprocketConnector
from storefront.models.user import StaffUser

# Lazy-init so the carrier's token refresh lock is shared by every request
_carrier = None


def get_gateway() -> RazorpayConnector:
    return RazorpayConnector()


def get_carrier() -> ShiprocketConnector:
    global _carrier
    if _carrier is None:
        _carrier = ShiprocketConnector()
    return _carrier


def require_staff(request: Request) -> StaffUser:
    """Dependency: raise 401 if no authenticated staff user on request."""
    user = getattr(request.state, "user", None)
    if not user:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user
