"""
Order status state machine and customer order listing.
"""
from datetime import datetime, timedelta

import pytest

from storefront.config import Settings
from storefront.models.coupon import Coupon
from storefront.models.order import Order, OrderStatus
from storefront.services.coupon_service import apply_coupon
from storefront.services.order_service import (
    InvalidStatusTransition,
    OrderService,
    can_transition,
    display_status,
)


def _add(db, payment_id, user_id=None, email=None, status=OrderStatus.IN_PROCESS, age_days=0):
    order = Order(
        user_id=user_id,
        items=[],
        total=100,
        status=status,
        shipping={"email": email} if email else {},
        payment_gateway_payment_id=payment_id,
        created_at=datetime.utcnow() - timedelta(days=age_days),
    )
    db.add(order)
    db.commit()
    return order


class TestTransitions:
    @pytest.mark.parametrize("current,target,allowed", [
        ("InProcess", "Shipped", True),
        ("InProcess", "Cancelled", True),
        ("InProcess", "Completed", False),
        ("Shipped", "Completed", True),
        ("Shipped", "Cancelled", True),
        ("Shipped", "InProcess", False),
        ("Completed", "Cancelled", False),
        ("Cancelled", "InProcess", False),
        ("Cancelled", "Shipped", False),
        ("Cancelled", "Cancelled", True),
        ("In Process", "Shipped", True),
    ])
    def test_table(self, current, target, allowed):
        assert can_transition(current, target) is allowed

    def test_invalid_transition_raises(self, db):
        order = _add(db, "pay_1", status=OrderStatus.CANCELLED)
        with pytest.raises(InvalidStatusTransition) as exc:
            OrderService(db).update_status(order.id, "Shipped")
        assert exc.value.current == OrderStatus.CANCELLED

    def test_legacy_spelling_is_normalised(self, db):
        order = _add(db, "pay_1", status="In Process")
        updated = OrderService(db).update_status(order.id, "shipped")
        assert updated.status == OrderStatus.SHIPPED

    def test_mark_shipped_keeps_terminal_status(self, db):
        order = _add(db, "pay_1", status=OrderStatus.CANCELLED)
        OrderService(db).mark_shipped(order, 1, 2)
        assert order.status == OrderStatus.CANCELLED
        assert order.shipment_carrier_shipment_id == "2"


class TestDisplayStatus:
    def test_completed_hidden_by_default(self):
        assert display_status("Completed") == "InProcess"

    def test_completed_shown_when_not_hidden(self):
        assert display_status("Completed", hide_completed=False) == "Completed"

    def test_other_statuses_unchanged(self):
        assert display_status("Shipped") == "Shipped"
        assert display_status("In Process") == "InProcess"


class TestCustomerOrders:
    def test_newest_first_with_legacy_email_match(self, db):
        _add(db, "pay_old", email="Asha@Example.com", age_days=30)
        _add(db, "pay_mid", user_id="user-1", age_days=5)
        _add(db, "pay_new", user_id="user-1", status=OrderStatus.COMPLETED)
        _add(db, "pay_other", user_id="user-2", email="asha@example.com")

        orders = OrderService(db).list_for_customer(user_id="user-1", email="asha@example.com")

        assert [o["paymentGatewayPaymentId"] for o in orders] == ["pay_new", "pay_mid", "pay_old"]
        assert orders[0]["status"] == "Completed"
        assert orders[0]["displayStatus"] == "InProcess"

    def test_display_follows_setting(self, db):
        _add(db, "pay_1", user_id="user-1", status=OrderStatus.COMPLETED)
        orders = OrderService(db, Settings(hide_completed_status=False)).list_for_customer(user_id="user-1")
        assert orders[0]["displayStatus"] == "Completed"

    def test_api_requires_an_identity(self, client):
        assert client.get("/api/orders").status_code == 400
        assert client.get("/api/orders", params={"userId": "nobody"}).json() == {"orders": [], "count": 0}


class TestCouponEvaluation:
    NOW = datetime(2025, 3, 14)

    def _coupon(self, **overrides):
        values = dict(
            code="BREW", discount_type="percent", discount_value=20, min_order_value=0,
            max_discount=0, usage_limit=0, used_count=0, is_active=True,
        )
        values.update(overrides)
        return Coupon(**values)

    def test_percent(self):
        result = apply_coupon(self._coupon(), 500, self.NOW)
        assert (result.valid, result.discount, result.total) == (True, 100.0, 400.0)

    def test_percent_capped(self):
        assert apply_coupon(self._coupon(max_discount=30), 500, self.NOW).discount == 30.0

    def test_fixed_never_exceeds_subtotal(self):
        result = apply_coupon(self._coupon(discount_type="fixed", discount_value=300), 200, self.NOW)
        assert result.discount == 200.0
        assert result.total == 0.0

    @pytest.mark.parametrize("overrides,reason", [
        ({"is_active": False}, "not active"),
        ({"valid_from": datetime(2025, 4, 1)}, "not valid yet"),
        ({"valid_until": datetime(2025, 3, 1)}, "expired"),
        ({"usage_limit": 5, "used_count": 5}, "usage limit"),
        ({"min_order_value": 1000}, "Minimum order value"),
    ])
    def test_rejections(self, overrides, reason):
        result = apply_coupon(self._coupon(**overrides), 500, self.NOW)
        assert result.valid is False
        assert reason in result.reason

    def test_unknown_coupon_and_bad_subtotal(self):
        assert apply_coupon(None, 500).reason == "Coupon not found"
        assert apply_coupon(self._coupon(), "lots").valid is False
        assert apply_coupon(self._coupon(), float("nan")).valid is False
