"""
Payment flow end to end through the HTTP API.

The Razorpay API is faked at the connector's _request seam; signatures are
computed with the test key secret set in conftest.
"""
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from storefront.api.deps import get_gateway
from storefront.config import Settings
from storefront.connectors.razorpay_connector import GatewayAPIError, RazorpayConnector
from storefront.main import app
from storefront.models.alert import PaymentAlert
from storefront.models.order import Order, OrderStatus
from storefront.services import alert_service
from storefront.services.order_writer import OrderWriteError
from storefront.services.payment_service import (
    CapabilityDisabled,
    PaymentService,
    PaymentValidationError,
    to_minor_units,
)
from storefront.services.signature_verifier import compute_signature

SECRET = "test_secret"

SHIPPING_FORM = {
    "fullName": "Asha Rao",
    "address": "12 MG Road, Indiranagar",
    "city": "Bengaluru",
    "state": "Karnataka",
    "pincode": "560038",
    "country": "India",
    "email": "asha@example.com",
    "phone": "9876543210",
}


def _verify_body(order_id="order_test1", payment_id="pay_test1", signature=None, **overrides):
    body = {
        "orderId": order_id,
        "paymentId": payment_id,
        "signature": signature if signature is not None else compute_signature(order_id, payment_id, SECRET),
        "cartItems": [{"name": "Cold Brew", "sku": "CB-1", "quantity": 2, "price": 125.0}],
        "total": 250.0,
        "shippingForm": dict(SHIPPING_FORM),
        "userId": "user-1",
        "saveForFuture": False,
    }
    body.update(overrides)
    return body


@pytest.fixture
def gateway(monkeypatch):
    connector = RazorpayConnector()
    calls = []

    async def fake_request(method, path, json=None, params=None, headers=None, auth=None):
        calls.append((method, path, json))
        return {"id": "order_test1", "entity": "order", "status": "created", **(json or {})}

    monkeypatch.setattr(connector, "_request", fake_request)
    connector.calls = calls
    app.dependency_overrides[get_gateway] = lambda: connector
    yield connector
    app.dependency_overrides.pop(get_gateway, None)


# ────────────────────────────────────────────
# CREATE ORDER
# ────────────────────────────────────────────


class TestCreateOrder:
    def test_rupees_converted_to_paise(self, client, gateway):
        resp = client.post("/api/payments/create-order", json={"amount": 250.00, "currency": "INR"})

        assert resp.status_code == 200
        data = resp.json()
        assert data["id"] == "order_test1"
        assert data["amount"] == 25000
        assert data["currency"] == "INR"
        assert data["receipt"].startswith("receipt_")

    @pytest.mark.parametrize("amount", ["250", "abc", 0, -10, None, True, 0.004, 1e308])
    def test_invalid_amount_rejected(self, client, gateway, amount):
        resp = client.post("/api/payments/create-order", json={"amount": amount})
        assert resp.status_code == 400
        assert gateway.calls == []

    def test_gateway_failure_is_500_with_upstream_detail(self, client, gateway, monkeypatch):
        async def failing(*args, **kwargs):
            raise GatewayAPIError(
                "Authentication failed", status=401,
                payload={"error": {"code": "BAD_REQUEST_ERROR", "description": "Authentication failed"}},
            )

        monkeypatch.setattr(gateway, "_request", failing)
        resp = client.post("/api/payments/create-order", json={"amount": 10})

        assert resp.status_code == 500
        detail = resp.json()["detail"]
        assert detail["error"]["details"]["error"]["code"] == "BAD_REQUEST_ERROR"

    def test_minor_units_round_half_up(self):
        assert to_minor_units(0.005) == 1
        assert to_minor_units(19.99) == 1999
        assert to_minor_units(250) == 25000

    def test_amount_below_one_paisa_rejected(self):
        with pytest.raises(PaymentValidationError):
            to_minor_units(0.004)


# ────────────────────────────────────────────
# VERIFY
# ────────────────────────────────────────────


class TestVerify:
    def test_scenario_correct_signature_writes_one_order(self, client, gateway, db):
        created = client.post("/api/payments/create-order", json={"amount": 250.00}).json()
        assert created["amount"] == 25000

        resp = client.post("/api/payments/verify", json=_verify_body(order_id=created["id"]))

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "success"
        orders = db.query(Order).all()
        assert len(orders) == 1
        assert body["orderId"] == str(orders[0].id)
        assert float(orders[0].total) == 250
        assert orders[0].status == OrderStatus.IN_PROCESS
        assert orders[0].payment_gateway_order_id == "order_test1"
        assert orders[0].payment_verified is True

    def test_repeated_verify_is_idempotent(self, client, db):
        first = client.post("/api/payments/verify", json=_verify_body()).json()
        second = client.post("/api/payments/verify", json=_verify_body(total=1.0)).json()

        assert first == second
        assert db.query(Order).count() == 1

    def test_scenario_bad_signature_writes_nothing(self, client, db):
        resp = client.post("/api/payments/verify", json=_verify_body(signature="deadbeef"))

        assert resp.status_code == 400
        body = resp.json()
        assert body["status"] == "failure"
        assert "Signature Mismatch" in body["message"]
        assert db.query(Order).count() == 0
        alert = db.query(PaymentAlert).one()
        assert alert.kind == alert_service.SIGNATURE_MISMATCH
        assert alert.payment_gateway_payment_id == "pay_test1"

    @pytest.mark.parametrize("field", ["orderId", "paymentId", "signature", "userId"])
    def test_missing_required_field(self, client, db, field):
        body = _verify_body()
        body.pop(field)
        resp = client.post("/api/payments/verify", json=body)

        assert resp.status_code == 400
        assert resp.json() == {"status": "failure", "message": "Missing required details."}
        assert db.query(Order).count() == 0

    def test_store_failure_is_generic_500(self, client, db):
        with patch("storefront.services.payment_service.write_order", side_effect=OrderWriteError("db down")):
            resp = client.post("/api/payments/verify", json=_verify_body())

        assert resp.status_code == 500
        assert resp.json()["message"] == "Internal server error while saving order."
        assert "db down" not in resp.text

    def test_lookup_failure_is_generic_500_with_alert(self, client, db):
        locked = OperationalError("SELECT orders", {}, Exception("database is locked"))
        with patch("storefront.services.payment_service.find_order_by_payment", side_effect=locked):
            resp = client.post("/api/payments/verify", json=_verify_body())

        assert resp.status_code == 500
        assert resp.headers["content-type"].startswith("application/json")
        assert resp.json() == {"status": "failure", "message": "Internal server error while saving order."}
        assert "locked" not in resp.text
        assert db.query(PaymentAlert).filter(PaymentAlert.kind == alert_service.WRITE_FAILED).count() == 1
        assert db.query(Order).count() == 0

    def test_order_read_back(self, client):
        assert client.get("/api/orders/by-payment/pay_test1").status_code == 404

        client.post("/api/payments/verify", json=_verify_body())
        doc = client.get("/api/orders/by-payment/pay_test1").json()

        assert doc["paymentGatewayPaymentId"] == "pay_test1"
        assert doc["total"] == 250.0
        assert doc["items"][0] == {"name": "Cold Brew", "sku": "CB-1", "quantity": 2, "unitPrice": 125.0}
        assert doc["shipping"]["pincode"] == "560038"
        assert doc["createdAt"]


# ────────────────────────────────────────────
# SERVICE-LEVEL PATHS
# ────────────────────────────────────────────


class TestPaymentService:
    def test_missing_secret_is_server_error(self, db):
        service = PaymentService(db, settings=Settings(razorpay_key_secret=None))
        result = service.verify_payment(_verify_body())
        assert result.success is False
        assert result.http_status == 500
        assert db.query(Order).count() == 0

    def test_missing_fields_raise(self, db):
        with pytest.raises(PaymentValidationError):
            PaymentService(db).verify_payment({"orderId": "o"})

    def test_unverified_checkout_disabled_by_default(self, client, db):
        resp = client.post("/api/payments/record-unverified", json=_verify_body(signature=""))
        assert resp.status_code == 403
        with pytest.raises(CapabilityDisabled):
            PaymentService(db).record_unverified_order(_verify_body())

    def test_unverified_checkout_refused_in_production(self):
        with pytest.raises(ValueError):
            Settings(allow_unverified_checkout=True, environment="production")

    def test_unverified_order_is_upgraded_by_later_verify(self, db):
        service = PaymentService(db, settings=Settings(allow_unverified_checkout=True))
        unverified = service.record_unverified_order(_verify_body(signature=""))

        order = db.get(Order, unverified.order_id)
        assert order.payment_verified is False
        assert db.query(PaymentAlert).filter(PaymentAlert.kind == alert_service.UNVERIFIED_ORDER).count() == 1

        verified = service.verify_payment(_verify_body())
        assert verified.order_id == unverified.order_id
        db.refresh(order)
        assert order.payment_verified is True
        assert db.query(Order).count() == 1

    def test_unverified_order_for_another_gateway_order_is_not_upgraded(self, db):
        service = PaymentService(db, settings=Settings(allow_unverified_checkout=True))
        forged = service.record_unverified_order(
            _verify_body(order_id="order_other", signature="", total=1.0)
        )

        result = service.verify_payment(_verify_body())

        assert result.success is False
        assert result.http_status == 400
        order = db.get(Order, forged.order_id)
        db.refresh(order)
        assert order.payment_verified is False
        assert db.query(Order).count() == 1
        assert db.query(PaymentAlert).filter(PaymentAlert.kind == alert_service.ORDER_MISMATCH).count() == 1

    def test_upgrade_commit_failure_raises_write_error(self, db):
        service = PaymentService(db, settings=Settings(allow_unverified_checkout=True))
        service.record_unverified_order(_verify_body(signature=""))
        failing = OperationalError("UPDATE orders", {}, Exception("disk I/O error"))
        with patch("storefront.services.payment_service.mark_verified", side_effect=failing):
            with pytest.raises(OrderWriteError):
                service.verify_payment(_verify_body())

        assert db.query(PaymentAlert).filter(PaymentAlert.kind == alert_service.WRITE_FAILED).count() == 1

    def test_failed_write_alert_can_be_retried(self, db):
        service = PaymentService(db)
        with patch("storefront.services.payment_service.write_order", side_effect=OrderWriteError("db down")):
            with pytest.raises(OrderWriteError):
                service.verify_payment(_verify_body())

        alert = db.query(PaymentAlert).one()
        assert alert.kind == alert_service.WRITE_FAILED

        result = service.retry_alert(alert.id)
        assert result.success is True
        db.refresh(alert)
        assert alert.resolved is True
        assert db.query(Order).count() == 1

    def test_retry_of_bad_signature_stays_open(self, db):
        service = PaymentService(db)
        service.verify_payment(_verify_body(signature="deadbeef"))
        alert = db.query(PaymentAlert).one()

        result = service.retry_alert(alert.id)
        assert result.success is False
        db.refresh(alert)
        assert alert.resolved is False
        assert db.query(PaymentAlert).count() == 1

    def test_retry_unknown_alert(self, db):
        with pytest.raises(LookupError):
            PaymentService(db).retry_alert(999)


def test_preferences_proxy_passes_upstream_error_through(client, gateway, monkeypatch):
    async def rejected(*args, **kwargs):
        raise GatewayAPIError("bad", status=400, payload={"error": {"description": "bad preference"}})

    monkeypatch.setattr(gateway, "_request", rejected)
    resp = client.post("/api/payments/preferences", json={"order_id": "order_test1"})

    assert resp.status_code == 400
    assert resp.json() == {"error": {"description": "bad preference"}}
