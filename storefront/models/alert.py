"""
Payment alerts

Failed or unverified payment confirmations are recorded here so an operator
can see them and retry, rather than the failure living only in a log line.
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON, Text
from datetime import datetime
from storefront.models.base import Base


class PaymentAlert(Base):
    __tablename__ = "payment_alerts"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String, index=True, nullable=False)  # signature_mismatch | write_failed | unverified_order
    payment_gateway_order_id = Column(String, index=True, nullable=True)
    payment_gateway_payment_id = Column(String, index=True, nullable=True)
    message = Column(Text, nullable=False)
    payload = Column(JSON, nullable=True)
    resolved = Column(Boolean, default=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    resolved_at = Column(DateTime, nullable=True)

    def to_document(self) -> dict:
        return {
            "id": str(self.id),
            "kind": self.kind,
            "paymentGatewayOrderId": self.payment_gateway_order_id,
            "paymentGatewayPaymentId": self.payment_gateway_payment_id,
            "message": self.message,
            "resolved": bool(self.resolved),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "resolvedAt": self.resolved_at.isoformat() if self.resolved_at else None,
        }
