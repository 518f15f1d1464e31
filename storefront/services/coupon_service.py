"""
Coupon Service
Admin coupon management and storefront coupon evaluation.

Evaluation is advisory: the storefront shows the discount, but the verify
endpoint charges whatever the gateway order was created for.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.models.coupon import Coupon
from storefront.utils.logger import log

DISCOUNT_TYPES = ("percent", "fixed")

# wire name -> column
_FIELDS = {
    "code": "code",
    "description": "description",
    "discountType": "discount_type",
    "discountValue": "discount_value",
    "minOrderValue": "min_order_value",
    "maxDiscount": "max_discount",
    "usageLimit": "usage_limit",
    "validFrom": "valid_from",
    "validUntil": "valid_until",
    "isActive": "is_active",
}


class CouponError(ValueError):
    """Invalid coupon data supplied by an admin."""


@dataclass
class CouponEvaluation:
    valid: bool
    discount: float = 0.0
    total: float = 0.0
    reason: Optional[str] = None
    code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "code": self.code,
            "discount": self.discount,
            "total": self.total,
            "reason": self.reason,
        }


def _money(value: Any) -> Decimal:
    amount = Decimal(str(value or 0))
    if not amount.is_finite():
        raise InvalidOperation(f"not a finite amount: {value}")
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def apply_coupon(coupon: Optional[Coupon], subtotal: Any, now: Optional[datetime] = None) -> CouponEvaluation:
    """Evaluate a coupon against a cart subtotal (rupees)."""
    now = now or datetime.utcnow()
    try:
        amount = _money(subtotal)
    except ArithmeticError:
        return CouponEvaluation(False, reason="Invalid subtotal")
    if amount < 0:
        return CouponEvaluation(False, reason="Invalid subtotal")

    def reject(reason: str) -> CouponEvaluation:
        return CouponEvaluation(False, total=float(amount), reason=reason, code=coupon.code if coupon else None)

    if coupon is None:
        return reject("Coupon not found")
    if not coupon.is_active:
        return reject("Coupon is not active")
    if coupon.valid_from and now < coupon.valid_from:
        return reject("Coupon is not valid yet")
    if coupon.valid_until and now > coupon.valid_until:
        return reject("Coupon has expired")
    if (coupon.usage_limit or 0) > 0 and (coupon.used_count or 0) >= coupon.usage_limit:
        return reject("Coupon usage limit reached")
    minimum = _money(coupon.min_order_value)
    if amount < minimum:
        return reject(f"Minimum order value is {minimum}")

    value = _money(coupon.discount_value)
    if coupon.discount_type == "percent":
        discount = _money(amount * value / 100)
        cap = _money(coupon.max_discount)
        if cap > 0:
            discount = min(discount, cap)
    else:
        discount = value
    discount = min(discount, amount)

    return CouponEvaluation(
        True,
        discount=float(discount),
        total=float(amount - discount),
        code=coupon.code,
    )


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        raise CouponError(f"Invalid date: {value}")


def _apply_fields(coupon: Coupon, data: Dict[str, Any]) -> None:
    for wire, column in _FIELDS.items():
        if wire not in data:
            continue
        value = data[wire]
        if column == "code":
            value = str(value or "").strip().upper()
            if not value:
                raise CouponError("Coupon code is required")
        elif column == "discount_type":
            if value not in DISCOUNT_TYPES:
                raise CouponError("discountType must be 'percent' or 'fixed'")
        elif column in ("discount_value", "min_order_value", "max_discount"):
            try:
                value = _money(value)
            except ArithmeticError:
                raise CouponError(f"{wire} must be a number")
            if value < 0:
                raise CouponError(f"{wire} must not be negative")
        elif column == "usage_limit":
            try:
                value = max(int(value or 0), 0)
            except (TypeError, ValueError):
                raise CouponError("usageLimit must be an integer")
        elif column in ("valid_from", "valid_until"):
            value = _parse_datetime(value)
        elif column == "is_active":
            value = bool(value)
        setattr(coupon, column, value)

    if coupon.discount_type == "percent" and coupon.discount_value is not None and coupon.discount_value > 100:
        raise CouponError("Percent discount cannot exceed 100")


class CouponService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_code(self, code: str) -> Optional[Coupon]:
        code = (code or "").strip().upper()
        if not code:
            return None
        return self.db.query(Coupon).filter(Coupon.code == code).first()

    def list_coupons(self, active_only: bool = False) -> List[Coupon]:
        query = self.db.query(Coupon)
        if active_only:
            query = query.filter(Coupon.is_active == True)  # noqa: E712
        return query.order_by(Coupon.code.asc()).all()

    def available_coupons(self, now: Optional[datetime] = None) -> List[Coupon]:
        """Active coupons that are inside their validity window and not exhausted."""
        now = now or datetime.utcnow()
        available = []
        for coupon in self.list_coupons(active_only=True):
            if coupon.valid_from and now < coupon.valid_from:
                continue
            if coupon.valid_until and now > coupon.valid_until:
                continue
            if (coupon.usage_limit or 0) > 0 and (coupon.used_count or 0) >= coupon.usage_limit:
                continue
            available.append(coupon)
        return available

    def evaluate(self, code: str, subtotal: Any) -> CouponEvaluation:
        return apply_coupon(self.get_by_code(code), subtotal)

    def create(self, data: Dict[str, Any]) -> Coupon:
        """
        Raises:
            CouponError: invalid data or duplicate code
        """
        if "code" not in data or "discountValue" not in data:
            raise CouponError("code and discountValue are required")
        coupon = Coupon(discount_type="percent", used_count=0, is_active=True)
        _apply_fields(coupon, data)
        self.db.add(coupon)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise CouponError(f"Coupon {coupon.code} already exists")
        self.db.refresh(coupon)
        log.info(f"Created coupon {coupon.code}")
        return coupon

    def update(self, coupon_id: int, data: Dict[str, Any]) -> Coupon:
        """
        Raises:
            LookupError: no such coupon
            CouponError: invalid data or duplicate code
        """
        coupon = self.db.get(Coupon, coupon_id)
        if coupon is None:
            raise LookupError(f"Coupon {coupon_id} not found")
        try:
            _apply_fields(coupon, data)
            self.db.commit()
        except CouponError:
            self.db.rollback()
            raise
        except IntegrityError:
            self.db.rollback()
            raise CouponError(f"Coupon {data.get('code')} already exists")
        self.db.refresh(coupon)
        return coupon

    def delete(self, coupon_id: int) -> bool:
        coupon = self.db.get(Coupon, coupon_id)
        if coupon is None:
            return False
        self.db.delete(coupon)
        self.db.commit()
        log.info(f"Deleted coupon {coupon.code}")
        return True
