"""
Confirmation read-back and the two-task checkout flow.

Sleeps are recorded instead of slept so the retry schedule can be asserted.
"""
import asyncio

import pytest

from storefront.client.api_client import StorefrontAPIError, StorefrontClient
from storefront.client.checkout import CheckoutFlow, VerificationNotifier
from storefront.client.reconciliation import (
    CheckoutSnapshot,
    OrderReconciliationReader,
    earliest_order,
)


def _run(coro):
    """Run an async coroutine in a sync test."""
    return asyncio.run(coro)


CHECKOUT = CheckoutSnapshot(
    gateway_order_id="order_1",
    payment_id="pay_1",
    signature="sig",
    total=250.0,
    cart_items=[{"name": "Cold Brew", "quantity": 2, "price": 125.0}],
    shipping_form={"fullName": "Asha Rao", "pincode": "560038"},
    user_id="user-1",
)

ORDER_DOC = {
    "id": "17",
    "paymentGatewayPaymentId": "pay_1",
    "total": 250.0,
    "status": "InProcess",
    "items": [{"name": "Cold Brew", "quantity": 2, "unitPrice": 125.0}],
    "shipping": {"fullName": "Asha Rao"},
    "createdAt": "2025-03-14T09:30:00",
}


class ScriptedFetch:
    """Returns (or raises) one scripted result per call."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    async def __call__(self, payment_id):
        self.calls += 1
        result = self.results.pop(0) if self.results else None
        if isinstance(result, Exception):
            raise result
        return result


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


# ────────────────────────────────────────────
# READER
# ────────────────────────────────────────────


class TestReader:
    def test_found_on_first_attempt(self):
        sleep = RecordingSleep()
        reader = OrderReconciliationReader(ScriptedFetch(ORDER_DOC), delays=(0.5, 2.0), sleep=sleep)

        view = _run(reader.read("pay_1", CHECKOUT))

        assert view.degraded is False
        assert view.order_id == "17"
        assert view.items == ORDER_DOC["items"]
        assert view.created_at == "2025-03-14T09:30:00"
        assert sleep.delays == [0.5]

    def test_found_on_follow_up(self):
        sleep = RecordingSleep()
        fetch = ScriptedFetch(None, ORDER_DOC)
        view = _run(OrderReconciliationReader(fetch, delays=(0.5, 2.0), sleep=sleep).read("pay_1", CHECKOUT))

        assert view.degraded is False
        assert fetch.calls == 2
        assert sleep.delays == [0.5, 2.0]

    def test_degrades_after_last_attempt(self):
        fetch = ScriptedFetch(None, None, ORDER_DOC)
        view = _run(OrderReconciliationReader(fetch, delays=(0.5, 2.0), sleep=RecordingSleep()).read("pay_1", CHECKOUT))

        assert fetch.calls == 2
        assert view.degraded is True
        assert view.items == []
        assert view.created_at is None
        assert view.total == 250.0
        assert view.shipping["fullName"] == "Asha Rao"

    def test_transient_errors_count_as_not_found(self):
        fetch = ScriptedFetch(StorefrontAPIError("unreachable"), ORDER_DOC)
        view = _run(OrderReconciliationReader(fetch, delays=(0.5, 2.0), sleep=RecordingSleep()).read("pay_1", CHECKOUT))
        assert view.degraded is False

    def test_completed_is_shown_as_in_process(self):
        doc = {**ORDER_DOC, "status": "Completed"}
        reader = OrderReconciliationReader(ScriptedFetch(doc), delays=(0,), sleep=RecordingSleep(), hide_completed=True)
        assert _run(reader.read("pay_1", CHECKOUT)).status == "InProcess"

    def test_cancelling_the_view_stops_reading(self):
        fetch = ScriptedFetch(ORDER_DOC)
        reader = OrderReconciliationReader(fetch, delays=(5.0,))

        async def open_and_close():
            task = asyncio.ensure_future(reader.read("pay_1", CHECKOUT))
            await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        _run(open_and_close())
        assert fetch.calls == 0

    def test_duplicate_orders_resolve_to_earliest(self):
        later = {**ORDER_DOC, "id": "18", "createdAt": "2025-03-14T09:31:00"}
        assert earliest_order([later, ORDER_DOC])["id"] == "17"
        assert earliest_order([]) is None
        assert earliest_order(ORDER_DOC) is ORDER_DOC


# ────────────────────────────────────────────
# CHECKOUT FLOW
# ────────────────────────────────────────────


class FakeClient:
    def __init__(self, verdicts, order=None):
        self.verdicts = list(verdicts)
        self.order = order
        self.verify_requests = []

    async def verify_payment(self, request):
        self.verify_requests.append(request)
        verdict = self.verdicts.pop(0)
        if isinstance(verdict, Exception):
            raise verdict
        return verdict

    async def get_order_by_payment(self, payment_id):
        return self.order


def _flow(client):
    reader = OrderReconciliationReader(client.get_order_by_payment, delays=(0, 0), sleep=RecordingSleep())
    return CheckoutFlow(client, reader=reader)


class TestCheckoutFlow:
    def test_render_and_verify_both_run(self):
        client = FakeClient([{"status": "success", "orderId": "17"}], order=ORDER_DOC)
        flow = _flow(client)

        async def go():
            view = await flow.complete(CHECKOUT)
            await flow.wait_verifications()
            return view

        view = _run(go())
        assert view.order_id == "17"
        assert client.verify_requests[0]["paymentId"] == "pay_1"
        assert client.verify_requests[0]["orderId"] == "order_1"
        assert flow.notifier.failures == []

    def test_failed_verification_is_published_and_retriable(self):
        client = FakeClient([
            {"status": "failure", "message": "Payment verification failed (Signature Mismatch)."},
            {"status": "success", "orderId": "17"},
        ])
        flow = _flow(client)
        published = []
        flow.notifier.subscribe(published.append)

        async def go():
            view = await flow.complete(CHECKOUT)
            await flow.wait_verifications()
            return view

        view = _run(go())
        assert view.degraded is True
        assert len(published) == 1
        assert "Signature Mismatch" in flow.notifier.failures[0].message

        assert _run(flow.notifier.retry_failed()) == {"pay_1": True}
        assert flow.notifier.failures == []

    def test_unreachable_backend_is_a_failure(self):
        notifier = VerificationNotifier(FakeClient([StorefrontAPIError("unreachable")]).verify_payment)
        notifier.publish(CHECKOUT, "first failure")

        assert _run(notifier.retry_failed()) == {"pay_1": False}
        failure = notifier.failures[0]
        assert failure.attempts == 2
        assert failure.message == "unreachable"


# ────────────────────────────────────────────
# API CLIENT
# ────────────────────────────────────────────


class TestStorefrontClient:
    def test_failure_verdict_returned_not_raised(self, monkeypatch):
        client = StorefrontClient("http://shop.test")

        async def rejected(*args, **kwargs):
            raise StorefrontAPIError(
                "bad", status=400, payload={"status": "failure", "message": "Missing required details."},
            )

        monkeypatch.setattr(client, "_request", rejected)
        assert _run(client.verify_payment({}))["message"] == "Missing required details."

    def test_not_yet_written_order_is_none(self, monkeypatch):
        client = StorefrontClient("http://shop.test")

        async def not_found(*args, **kwargs):
            raise StorefrontAPIError("Order not found", status=404, payload={"detail": "Order not found"})

        monkeypatch.setattr(client, "_request", not_found)
        assert _run(client.get_order_by_payment("pay_1")) is None

    def test_server_error_propagates(self, monkeypatch):
        client = StorefrontClient("http://shop.test")

        async def broken(*args, **kwargs):
            raise StorefrontAPIError("boom", status=500)

        monkeypatch.setattr(client, "_request", broken)
        with pytest.raises(StorefrontAPIError):
            _run(client.get_order_by_payment("pay_1"))
