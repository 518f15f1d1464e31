"""
Health check and status endpoints
"""
from fastapi import APIRouter
from datetime import datetime
from storefront.config import get_settings
from storefront import __version__

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": __version__
    }


@router.get("/status")
async def get_status():
    """Get system status"""
    settings = get_settings()
    return {
        "app_name": settings.app_name,
        "store_name": settings.store_name,
        "version": __version__,
        "environment": settings.environment,
        "integrations": {
            "razorpay": bool(settings.razorpay_key_id and settings.razorpay_key_secret),
            "shiprocket": bool(settings.shiprocket_email and settings.shiprocket_password),
        },
        "features": {
            "unverified_checkout": settings.allow_unverified_checkout,
            "hide_completed_status": settings.hide_completed_status,
        },
        "timestamp": datetime.utcnow().isoformat()
    }
