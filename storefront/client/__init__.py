"""Async client for the storefront API and the checkout confirmation flow"""

from storefront.client.api_client import StorefrontClient, StorefrontAPIError
from storefront.client.reconciliation import (
    CheckoutSnapshot,
    ConfirmationView,
    OrderReconciliationReader,
)
from storefront.client.checkout import CheckoutFlow, VerificationNotifier, VerificationFailure

__all__ = [
    "StorefrontClient",
    "StorefrontAPIError",
    "CheckoutSnapshot",
    "ConfirmationView",
    "OrderReconciliationReader",
    "CheckoutFlow",
    "VerificationNotifier",
    "VerificationFailure",
]
