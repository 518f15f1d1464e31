"""
Logging configuration
"""
from loguru import logger
import os
import sys
from storefront.config import get_settings

settings = get_settings()

# Modules whose records also go to the payments log
PAYMENT_LOG_MODULES = (
    "storefront.services.payment_service",
    "storefront.services.order_writer",
    "storefront.services.alert_service",
    "storefront.services.shipment_service",
    "storefront.connectors.razorpay_connector",
    "storefront.connectors.shiprocket_connector",
)


def _is_payment_record(record) -> bool:
    return (record["name"] or "").startswith(PAYMENT_LOG_MODULES)


def setup_logger():
    """Configure logger with appropriate settings"""
    logger.remove()  # Remove default handler

    # Console logging
    logger.add(
        sys.stdout,
        colorize=True,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level=settings.log_level
    )

    if not settings.log_to_file:
        return logger

    logger.add(
        os.path.join(settings.log_dir, "storefront_{time:YYYY-MM-DD}.log"),
        rotation="00:00",
        retention="30 days",
        compression="zip",
        level="INFO"
    )

    # Payment, order and carrier activity, kept for reconciliation
    logger.add(
        os.path.join(settings.log_dir, "payments_{time:YYYY-MM-DD}.log"),
        rotation="00:00",
        retention="180 days",
        compression="zip",
        level="INFO",
        filter=_is_payment_record
    )

    logger.add(
        os.path.join(settings.log_dir, "errors_{time:YYYY-MM-DD}.log"),
        rotation="00:00",
        retention="90 days",
        level="ERROR"
    )

    return logger


# Initialize logger
log = setup_logger()
