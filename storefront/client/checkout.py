"""
Checkout completion flow

After the gateway's checkout handler fires, two independent tasks start:
  1. render: read back the order (or degrade) for the confirmation view
  2. verify: submit the signed confirmation to the backend

A verification that fails is published to the VerificationNotifier, which
keeps it until a retry succeeds.
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from storefront.client.api_client import StorefrontClient
from storefront.client.reconciliation import CheckoutSnapshot, ConfirmationView, OrderReconciliationReader
from storefront.connectors.base import UpstreamError
from storefront.utils.logger import log

VerifyCall = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]


@dataclass
class VerificationFailure:
    checkout: CheckoutSnapshot
    message: str
    attempts: int = 1
    last_attempt: Optional[datetime] = None


class VerificationNotifier:
    """Holds failed verifications until they are retried successfully."""

    def __init__(self, verify: VerifyCall):
        self.verify = verify
        self._failures: Dict[str, VerificationFailure] = {}
        self._listeners: List[Callable[[VerificationFailure], Any]] = []

    @property
    def failures(self) -> List[VerificationFailure]:
        return list(self._failures.values())

    def subscribe(self, listener: Callable[[VerificationFailure], Any]) -> None:
        self._listeners.append(listener)

    def publish(self, checkout: CheckoutSnapshot, message: str) -> VerificationFailure:
        failure = self._failures.get(checkout.payment_id)
        if failure is None:
            failure = VerificationFailure(checkout, message, last_attempt=datetime.utcnow())
            self._failures[checkout.payment_id] = failure
        else:
            failure.message = message
            failure.attempts += 1
            failure.last_attempt = datetime.utcnow()

        log.error(f"Payment verification failed for {checkout.payment_id}: {message}")
        for listener in self._listeners:
            try:
                listener(failure)
            except Exception as e:
                log.error(f"Verification failure listener raised: {e}")
        return failure

    async def retry_failed(self) -> Dict[str, bool]:
        """
        Re-submit every held failure once.

        Returns:
            payment id -> whether verification succeeded this time
        """
        results: Dict[str, bool] = {}
        for payment_id, failure in list(self._failures.items()):
            ok, message = await _submit(self.verify, failure.checkout)
            results[payment_id] = ok
            if ok:
                del self._failures[payment_id]
                log.info(f"Verification retry succeeded for {payment_id}")
            else:
                self.publish(failure.checkout, message)
        return results


async def _submit(verify: VerifyCall, checkout: CheckoutSnapshot) -> tuple:
    try:
        result = await verify(checkout.to_verify_request())
    except UpstreamError as e:
        return False, e.message
    if isinstance(result, dict) and result.get("status") == "success":
        return True, None
    message = result.get("message") if isinstance(result, dict) else None
    return False, message or "Payment verification failed"


class CheckoutFlow:
    """Runs confirmation rendering and payment verification side by side."""

    def __init__(
        self,
        client: StorefrontClient,
        reader: Optional[OrderReconciliationReader] = None,
        notifier: Optional[VerificationNotifier] = None,
    ):
        self.client = client
        self.reader = reader or OrderReconciliationReader(client.get_order_by_payment)
        self.notifier = notifier or VerificationNotifier(client.verify_payment)
        self._tasks: Set[asyncio.Task] = set()

    def _track(self, coro: Awaitable) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _verify(self, checkout: CheckoutSnapshot) -> bool:
        ok, message = await _submit(self.client.verify_payment, checkout)
        if not ok:
            self.notifier.publish(checkout, message)
        return ok

    def start(self, checkout: CheckoutSnapshot) -> Dict[str, asyncio.Task]:
        """Schedule both tasks; neither waits for the other."""
        verify_task = self._track(self._verify(checkout))
        render_task = self._track(self.reader.read(checkout.payment_id, checkout))
        return {"verify": verify_task, "render": render_task}

    async def complete(self, checkout: CheckoutSnapshot) -> ConfirmationView:
        """Return the confirmation view; verification keeps running in the background."""
        tasks = self.start(checkout)
        return await tasks["render"]

    async def wait_verifications(self) -> None:
        pending = [t for t in self._tasks if not t.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def close(self) -> None:
        """Tear down: cancel anything still running."""
        for task in list(self._tasks):
            task.cancel()
        await self.wait_verifications()
