"""
Order confirmation read-back.

The order is written by the verify call, which may still be in flight when
the confirmation view opens. The reader therefore polls a bounded number of
times and, if the order never shows up, renders a degraded view from the
checkout data held locally.

Tearing the view down cancels the reading task; a pending sleep is
cancelled with it and no view is produced.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

import aiohttp

from storefront.config import get_settings
from storefront.connectors.base import UpstreamError
from storefront.services.order_service import display_status
from storefront.utils.logger import log

OrderFetch = Callable[[str], Awaitable[Union[Dict[str, Any], List[Dict[str, Any]], None]]]

# Errors that mean "not readable yet" rather than "broken"
TRANSIENT_READ_ERRORS = (UpstreamError, aiohttp.ClientError, asyncio.TimeoutError)


@dataclass
class CheckoutSnapshot:
    """What the browser knows after the gateway's checkout handler fires."""
    gateway_order_id: str
    payment_id: str
    signature: Optional[str] = None
    total: float = 0.0
    cart_items: List[Dict[str, Any]] = field(default_factory=list)
    shipping_form: Dict[str, Any] = field(default_factory=dict)
    user_id: Optional[str] = None
    save_for_future: bool = False
    address_label: str = "Home"

    def to_verify_request(self) -> Dict[str, Any]:
        return {
            "orderId": self.gateway_order_id,
            "paymentId": self.payment_id,
            "signature": self.signature,
            "cartItems": self.cart_items,
            "total": self.total,
            "shippingForm": self.shipping_form,
            "userId": self.user_id,
            "saveForFuture": self.save_for_future,
            "addressLabel": self.address_label,
        }


@dataclass
class ConfirmationView:
    payment_id: str
    order_id: Optional[str]
    total: float
    status: Optional[str]
    shipping: Dict[str, Any]
    items: List[Dict[str, Any]] = field(default_factory=list)
    created_at: Optional[str] = None
    degraded: bool = False

    @classmethod
    def from_order(cls, doc: Dict[str, Any], hide_completed: bool = True) -> "ConfirmationView":
        return cls(
            payment_id=doc.get("paymentGatewayPaymentId"),
            order_id=doc.get("id"),
            total=float(doc.get("total") or 0),
            status=display_status(doc.get("status"), hide_completed),
            shipping=doc.get("shipping") or {},
            items=doc.get("items") or [],
            created_at=doc.get("createdAt"),
        )

    @classmethod
    def degraded_from(cls, checkout: CheckoutSnapshot) -> "ConfirmationView":
        """Local-only view: no items and no server timestamp."""
        return cls(
            payment_id=checkout.payment_id,
            order_id=None,
            total=float(checkout.total or 0),
            status=None,
            shipping=dict(checkout.shipping_form or {}),
            degraded=True,
        )


def earliest_order(found: Union[Dict[str, Any], List[Dict[str, Any]]]) -> Optional[Dict[str, Any]]:
    """Pick one order when a payment id matched several (earliest createdAt wins)."""
    if isinstance(found, dict):
        return found
    orders = [o for o in found or [] if isinstance(o, dict)]
    if not orders:
        return None

    def _key(doc: Dict[str, Any]):
        try:
            created = datetime.fromisoformat(str(doc.get("createdAt")))
        except ValueError:
            created = datetime.max
        return created, str(doc.get("id"))

    return min(orders, key=_key)


class OrderReconciliationReader:
    """Bounded read-back of the order written for a payment."""

    def __init__(
        self,
        fetch: OrderFetch,
        delays: Optional[Sequence[float]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        hide_completed: Optional[bool] = None,
    ):
        settings = get_settings()
        self.fetch = fetch
        self.delays = tuple(delays if delays is not None else settings.read_delays)
        self.sleep = sleep
        self.hide_completed = settings.hide_completed_status if hide_completed is None else hide_completed
        self.attempts = 0

    async def read(self, payment_id: str, checkout: CheckoutSnapshot) -> ConfirmationView:
        """
        Poll once after each configured delay; degrade after the last attempt.

        Raises:
            asyncio.CancelledError: the view was torn down while waiting
        """
        for delay in self.delays:
            await self.sleep(delay)
            self.attempts += 1
            try:
                found = await self.fetch(payment_id)
            except TRANSIENT_READ_ERRORS as e:
                log.warning(f"Order read for payment {payment_id} failed (attempt {self.attempts}): {e}")
                continue

            order = earliest_order(found) if found else None
            if order is not None:
                return ConfirmationView.from_order(order, self.hide_completed)
            log.debug(f"Order for payment {payment_id} not found yet (attempt {self.attempts})")

        log.warning(f"Order for payment {payment_id} not readable after {self.attempts} attempts, rendering degraded view")
        return ConfirmationView.degraded_from(checkout)
