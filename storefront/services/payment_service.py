"""
Payment Service
Gateway order creation and the payment verification handshake.

Flow:
  1. create_gateway_order: rupees → paise, Razorpay order for the hosted checkout
  2. verify_payment: check the gateway's signature, then write the order once
  3. record_unverified_order: development-only write without a signature,
     available only when allow_unverified_checkout is set (never in production)
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.config import Settings, get_settings
from storefront.connectors.razorpay_connector import GatewayNotConfigured, RazorpayConnector
from storefront.models.alert import PaymentAlert
from storefront.services import alert_service
from storefront.services.order_writer import (
    OrderPayload,
    OrderWriteError,
    find_order_by_payment,
    mark_verified,
    normalize_items,
    normalize_shipping,
    write_order,
)
from storefront.services.signature_verifier import verify_signature
from storefront.utils.logger import log

REQUIRED_VERIFY_FIELDS = ("orderId", "paymentId", "signature", "userId")

MISSING_DETAILS_MESSAGE = "Missing required details."
SIGNATURE_MISMATCH_MESSAGE = "Payment verification failed (Signature Mismatch)."
NOT_CONFIGURED_MESSAGE = "Payment gateway not configured."
ORDER_MISMATCH_MESSAGE = "Payment verification failed (Order mismatch)."


class PaymentValidationError(ValueError):
    """Caller supplied malformed or missing payment data."""


class CapabilityDisabled(Exception):
    """A gated capability was requested while its flag is off."""


@dataclass
class VerificationResult:
    success: bool
    message: Optional[str] = None
    order_id: Optional[int] = None
    http_status: int = 200

    def to_response(self) -> Dict[str, Any]:
        if self.success:
            return {"status": "success", "orderId": str(self.order_id)}
        return {"status": "failure", "message": self.message}


def parse_amount(value: Any) -> Decimal:
    """Validate a major-unit amount: a finite, positive JSON number."""
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise PaymentValidationError("Invalid amount.")
    amount = Decimal(str(value))
    if not amount.is_finite() or amount <= 0:
        raise PaymentValidationError("Invalid amount.")
    return amount


def to_minor_units(amount: Any) -> int:
    """Rupees → paise, rounded half-up to a whole paisa; at least one paisa."""
    try:
        minor = int((parse_amount(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        raise PaymentValidationError("Invalid amount.")
    if minor < 1:
        raise PaymentValidationError("Invalid amount.")
    return minor


class PaymentService:
    """Gateway order creation and signed payment confirmation handling."""

    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        gateway: Optional[RazorpayConnector] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.gateway = gateway or RazorpayConnector(self.settings)

    async def create_gateway_order(self, amount: Any, currency: Optional[str] = None) -> Dict[str, Any]:
        """
        Create a gateway order for a rupee amount.

        Raises:
            PaymentValidationError: amount is not a positive number
            GatewayNotConfigured: Razorpay keys missing
            GatewayAPIError: Razorpay failed the request
        """
        amount_minor = to_minor_units(amount)
        if not self.gateway.configured:
            log.error("Razorpay keys are not configured (create_gateway_order)")
            raise GatewayNotConfigured("Razorpay keys not configured")
        return await self.gateway.create_order(amount_minor, currency or self.settings.default_currency)

    def _order_payload(self, request: Dict[str, Any]) -> OrderPayload:
        return OrderPayload(
            items=normalize_items(request.get("cartItems")),
            total=request.get("total") or 0,
            shipping=normalize_shipping(request.get("shippingForm")),
            user_id=request.get("userId"),
            gateway_order_id=request.get("orderId"),
            gateway_signature=request.get("signature"),
            save_for_future=bool(request.get("saveForFuture")),
            address_label=request.get("addressLabel") or "Home",
        )

    def verify_payment(self, request: Dict[str, Any], record_failures: bool = True) -> VerificationResult:
        """
        Verify a signed payment confirmation and persist its order.

        Raises:
            PaymentValidationError: a required field is missing
            OrderWriteError: the order store failed the write
        """
        if any(not request.get(k) for k in REQUIRED_VERIFY_FIELDS):
            raise PaymentValidationError(MISSING_DETAILS_MESSAGE)

        gateway_order_id = request["orderId"]
        payment_id = request["paymentId"]
        secret = self.settings.razorpay_key_secret
        if not secret:
            log.error("Razorpay key secret not configured (verify_payment)")
            return VerificationResult(False, NOT_CONFIGURED_MESSAGE, http_status=500)

        if not verify_signature(gateway_order_id, payment_id, request["signature"], secret):
            if record_failures:
                alert_service.record_alert(
                    self.db,
                    alert_service.SIGNATURE_MISMATCH,
                    SIGNATURE_MISMATCH_MESSAGE,
                    gateway_order_id=gateway_order_id,
                    gateway_payment_id=payment_id,
                    payload=request,
                )
            return VerificationResult(False, SIGNATURE_MISMATCH_MESSAGE, http_status=400)

        try:
            existing = find_order_by_payment(self.db, payment_id)
            if existing is not None and not existing.payment_verified:
                # An unverified order is only upgraded by a signature over its own gateway order
                if existing.payment_gateway_order_id != gateway_order_id:
                    if record_failures:
                        alert_service.record_alert(
                            self.db,
                            alert_service.ORDER_MISMATCH,
                            ORDER_MISMATCH_MESSAGE,
                            gateway_order_id=gateway_order_id,
                            gateway_payment_id=payment_id,
                            payload=request,
                        )
                    return VerificationResult(False, ORDER_MISMATCH_MESSAGE, http_status=400)
                mark_verified(self.db, existing, request["signature"])
                return VerificationResult(True, order_id=existing.id)

            order_id = write_order(self.db, payment_id, self._order_payload(request), verified=True)
        except SQLAlchemyError as e:
            self.db.rollback()
            log.error(f"Order store failed while verifying payment {payment_id}: {e}")
            if record_failures:
                self._record_write_failure(request)
            raise OrderWriteError("Failed to persist order") from e
        except OrderWriteError:
            if record_failures:
                self._record_write_failure(request)
            raise

        return VerificationResult(True, order_id=order_id)

    def _record_write_failure(self, request: Dict[str, Any]) -> None:
        alert_service.record_alert(
            self.db,
            alert_service.WRITE_FAILED,
            "Verified payment could not be saved",
            gateway_order_id=request.get("orderId"),
            gateway_payment_id=request.get("paymentId"),
            payload=request,
        )

    def record_unverified_order(self, request: Dict[str, Any]) -> VerificationResult:
        """
        Write an order from client-held payment data without a signature check.

        Raises:
            CapabilityDisabled: allow_unverified_checkout is off
            PaymentValidationError: no payment id
        """
        if not self.settings.allow_unverified_checkout:
            raise CapabilityDisabled("Unverified checkout is disabled")
        payment_id = request.get("paymentId")
        if not payment_id:
            raise PaymentValidationError(MISSING_DETAILS_MESSAGE)

        order_id = write_order(self.db, payment_id, self._order_payload(request), verified=False)
        alert_service.record_alert(
            self.db,
            alert_service.UNVERIFIED_ORDER,
            "Order saved without signature verification",
            gateway_order_id=request.get("orderId"),
            gateway_payment_id=payment_id,
            payload=request,
        )
        return VerificationResult(True, order_id=order_id)

    def retry_alert(self, alert_id: int) -> VerificationResult:
        """
        Re-run verification from an alert's stored request; resolves it on success.

        Raises:
            LookupError: no such alert, or it has no stored request
        """
        alert = self.db.get(PaymentAlert, alert_id)
        if alert is None or not alert.payload:
            raise LookupError(f"Alert {alert_id} has no request to retry")

        result = self.verify_payment(dict(alert.payload), record_failures=False)
        if result.success:
            alert_service.resolve_alert(self.db, alert_id)
        return result
