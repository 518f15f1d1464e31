"""
Order Service
Order reads for customers and admins, and the order status state machine.

    InProcess ──> Shipped ──> Completed
        │            │
        └────────────┴──> Cancelled

Same-state updates are no-ops. Cancelled and Completed are terminal.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from storefront.config import Settings, get_settings
from storefront.models.order import Order, OrderStatus
from storefront.services.order_writer import find_order_by_payment
from storefront.utils.logger import log

ALLOWED_TRANSITIONS = {
    OrderStatus.IN_PROCESS: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
}


class InvalidStatusTransition(ValueError):
    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot move order from {current} to {requested}")
        self.current = current
        self.requested = requested


def can_transition(current: str, target: str) -> bool:
    current = OrderStatus.parse(current) or current
    return target == current or target in ALLOWED_TRANSITIONS.get(current, set())


def display_status(status: Optional[str], hide_completed: bool = True) -> Optional[str]:
    """Status as shown to customers; storage keeps the real value."""
    status = OrderStatus.parse(status) or status
    if hide_completed and status == OrderStatus.COMPLETED:
        return OrderStatus.IN_PROCESS
    return status


class OrderService:
    """Order queries and status updates"""

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    def _customer_document(self, order: Order) -> Dict[str, Any]:
        doc = order.to_document()
        doc["displayStatus"] = display_status(order.status, self.settings.hide_completed_status)
        return doc

    def get_by_payment(self, payment_id: str) -> Optional[Dict[str, Any]]:
        order = find_order_by_payment(self.db, payment_id)
        return order.to_document() if order else None

    def get(self, order_id: int) -> Optional[Order]:
        return self.db.get(Order, order_id)

    def list_for_customer(
        self,
        user_id: Optional[str] = None,
        email: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        A customer's orders, newest first.

        Orders placed before accounts carried a user id are matched on the
        shipping email instead.
        """
        orders: Dict[int, Order] = {}
        if user_id:
            for order in self.db.query(Order).filter(Order.user_id == user_id).all():
                orders[order.id] = order

        if email:
            wanted = email.strip().lower()
            legacy = self.db.query(Order).filter(Order.user_id.is_(None)).all()
            for order in legacy:
                shipping_email = str((order.shipping or {}).get("email") or "").strip().lower()
                if shipping_email and shipping_email == wanted:
                    orders[order.id] = order

        ordered = sorted(orders.values(), key=lambda o: (o.created_at, o.id), reverse=True)
        return [self._customer_document(o) for o in ordered]

    def list_orders(self, status: Optional[str] = None, limit: int = 200) -> List[Dict[str, Any]]:
        query = self.db.query(Order)
        if status:
            parsed = OrderStatus.parse(status)
            if parsed is None:
                raise ValueError(f"Unknown order status: {status}")
            query = query.filter(Order.status == parsed)
        orders = query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()
        return [o.to_document() for o in orders]

    def update_status(self, order_id: int, status: Any) -> Order:
        """
        Move an order to a new status.

        Raises:
            LookupError: no such order
            ValueError: unknown status value
            InvalidStatusTransition: the state machine does not allow the move
        """
        order = self.get(order_id)
        if order is None:
            raise LookupError(f"Order {order_id} not found")

        target = OrderStatus.parse(status)
        if target is None:
            raise ValueError(f"Unknown order status: {status}")

        current = OrderStatus.parse(order.status) or order.status
        if target == current:
            return order
        if not can_transition(current, target):
            raise InvalidStatusTransition(current, target)

        order.status = target
        self.db.commit()
        self.db.refresh(order)
        log.info(f"Order {order.id} status {current} -> {target}")
        return order

    def mark_shipped(self, order: Order, carrier_order_id: Any, carrier_shipment_id: Any) -> Order:
        """Record carrier ids after a booking; moves InProcess orders to Shipped."""
        order.shipment_carrier_order_id = str(carrier_order_id) if carrier_order_id is not None else None
        order.shipment_carrier_shipment_id = (
            str(carrier_shipment_id) if carrier_shipment_id is not None else None
        )
        if (OrderStatus.parse(order.status) or order.status) == OrderStatus.IN_PROCESS:
            order.status = OrderStatus.SHIPPED
        self.db.commit()
        self.db.refresh(order)
        return order
