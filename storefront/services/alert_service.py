"""
Payment alert service

Failed payment verifications are recorded as alerts that admins can list,
retry and resolve. A failure here never hides the original failure: it is
logged and the caller's result is returned unchanged.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.models.alert import PaymentAlert
from storefront.utils.logger import log

SIGNATURE_MISMATCH = "signature_mismatch"
WRITE_FAILED = "write_failed"
UNVERIFIED_ORDER = "unverified_order"
ORDER_MISMATCH = "order_mismatch"


def record_alert(
    db: Session,
    kind: str,
    message: str,
    gateway_order_id: Optional[str] = None,
    gateway_payment_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> Optional[PaymentAlert]:
    """Store an alert; returns None if the alert itself could not be stored."""
    log.warning(f"Payment alert [{kind}] order={gateway_order_id} payment={gateway_payment_id}: {message}")
    alert = PaymentAlert(
        kind=kind,
        message=message,
        payment_gateway_order_id=gateway_order_id,
        payment_gateway_payment_id=gateway_payment_id,
        payload=payload,
    )
    try:
        db.add(alert)
        db.commit()
        db.refresh(alert)
        return alert
    except SQLAlchemyError as e:
        db.rollback()
        log.error(f"Failed to record payment alert [{kind}]: {e}")
        return None


def list_alerts(db: Session, include_resolved: bool = False, limit: int = 100) -> List[PaymentAlert]:
    query = db.query(PaymentAlert)
    if not include_resolved:
        query = query.filter(PaymentAlert.resolved == False)  # noqa: E712
    return query.order_by(PaymentAlert.created_at.desc()).limit(limit).all()


def resolve_alert(db: Session, alert_id: int) -> Optional[PaymentAlert]:
    alert = db.get(PaymentAlert, alert_id)
    if alert is None:
        return None
    if not alert.resolved:
        alert.resolved = True
        alert.resolved_at = datetime.utcnow()
        db.commit()
        db.refresh(alert)
    return alert
