"""
Order Models

One row per completed or in-flight purchase. Line items and the shipping
address snapshot are stored as JSON so the order reads back as the same
document the confirmation view, the admin order list and the shipment
booking client consume.
"""
from sqlalchemy import Column, Integer, String, DateTime, JSON, Numeric, Boolean
from datetime import datetime
from typing import Any, Dict, Optional
from storefront.models.base import Base


class OrderStatus:
    """Stored order status values."""
    IN_PROCESS = "InProcess"
    SHIPPED = "Shipped"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

    ALL = (IN_PROCESS, SHIPPED, COMPLETED, CANCELLED)

    @classmethod
    def parse(cls, value: Any) -> Optional[str]:
        """Normalise a status string ("In Process", "shipped", ...) or return None."""
        if value is None:
            return None
        key = str(value).replace(" ", "").replace("_", "").lower()
        for status in cls.ALL:
            if status.lower() == key:
                return status
        return None


class Order(Base):
    """
    A purchase, written exactly once per gateway payment id.

    paymentGatewayPaymentId is unique: the writer checks before inserting and
    the index settles concurrent writers for the same payment.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)

    # Owner (legacy orders have no user and are matched by shipping email)
    user_id = Column(String, index=True, nullable=True)

    items = Column(JSON, nullable=False, default=list)
    total = Column(Numeric(12, 2), nullable=False, default=0)  # rupees, not paise
    status = Column(String, index=True, nullable=False, default=OrderStatus.IN_PROCESS)
    shipping = Column(JSON, nullable=True)

    # Gateway identifiers (immutable once written)
    payment_gateway_order_id = Column(String, index=True, nullable=True)
    payment_gateway_payment_id = Column(String, unique=True, index=True, nullable=False)
    payment_gateway_signature = Column(String, nullable=True)
    payment_verified = Column(Boolean, nullable=False, default=True)

    # Carrier identifiers (set on shipment booking)
    shipment_carrier_order_id = Column(String, nullable=True)
    shipment_carrier_shipment_id = Column(String, nullable=True)

    created_at = Column(DateTime, index=True, nullable=False, default=datetime.utcnow)

    def to_document(self) -> Dict[str, Any]:
        """Wire representation; field names are shared with every order consumer."""
        return {
            "id": str(self.id),
            "userId": self.user_id,
            "items": self.items or [],
            "total": float(self.total) if self.total is not None else 0.0,
            "status": self.status,
            "shipping": self.shipping or {},
            "paymentGatewayOrderId": self.payment_gateway_order_id,
            "paymentGatewayPaymentId": self.payment_gateway_payment_id,
            "paymentGatewaySignature": self.payment_gateway_signature,
            "paymentVerified": bool(self.payment_verified),
            "shipmentCarrierOrderId": self.shipment_carrier_order_id,
            "shipmentCarrierShipmentId": self.shipment_carrier_shipment_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
