"""
Order writer — persists one order per gateway payment id.

The writer looks the payment up before inserting and the unique index on
payment_gateway_payment_id settles two writers racing for the same payment:
the loser rolls back and returns the winner's id.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.models.customer import CustomerProfile, SavedAddress
from storefront.models.order import Order, OrderStatus
from storefront.utils.logger import log

SHIPPING_FIELDS = ("fullName", "address", "city", "state", "pincode", "country", "email", "phone")


class OrderWriteError(Exception):
    """The order store rejected or failed the write."""


@dataclass
class OrderPayload:
    items: List[Dict[str, Any]] = field(default_factory=list)
    total: float = 0.0
    shipping: Dict[str, Any] = field(default_factory=dict)
    user_id: Optional[str] = None
    gateway_order_id: Optional[str] = None
    gateway_signature: Optional[str] = None
    save_for_future: bool = False
    address_label: str = "Home"


def _to_number(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def normalize_items(cart_items: Any) -> List[Dict[str, Any]]:
    """Map cart line items onto {name, sku, quantity, unitPrice}."""
    items = []
    for raw in cart_items if isinstance(cart_items, list) else []:
        if not isinstance(raw, dict):
            continue
        try:
            quantity = int(raw.get("quantity") or raw.get("qty") or 1)
        except (TypeError, ValueError):
            quantity = 1
        sku = raw.get("sku") or raw.get("id")
        item = {
            "name": raw.get("name") or raw.get("productName") or raw.get("title") or "Item",
            "sku": str(sku) if sku is not None else None,
            "quantity": max(quantity, 1),
            "unitPrice": _to_number(raw.get("unitPrice", raw.get("price"))),
        }
        if raw.get("image"):
            item["image"] = raw["image"]
        items.append(item)
    return items


def normalize_shipping(form: Any) -> Dict[str, Any]:
    """Snapshot the checkout form as the order's shipping address."""
    form = form if isinstance(form, dict) else {}
    shipping = {
        "fullName": form.get("fullName") or form.get("name"),
        "address": form.get("address"),
        "city": form.get("city"),
        "state": form.get("state"),
        "pincode": form.get("pincode"),
        "country": form.get("country") or "India",
        "email": form.get("email"),
        "phone": form.get("phone"),
    }
    return {k: (str(v).strip() if v is not None else None) for k, v in shipping.items()}


def address_slug(label: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (label or "").lower()).strip("-")
    return slug or "saved"


def find_order_by_payment(db: Session, payment_id: str) -> Optional[Order]:
    """Earliest order for a payment id (tolerates a duplicate from before the unique index)."""
    return (
        db.query(Order)
        .filter(Order.payment_gateway_payment_id == payment_id)
        .order_by(Order.created_at.asc(), Order.id.asc())
        .first()
    )


def save_address_for_future(
    db: Session,
    user_id: str,
    address: Dict[str, Any],
    label: str = "Home",
) -> None:
    """Upsert the default profile address and the labelled address book entry."""
    address = {k: address.get(k) for k in SHIPPING_FIELDS}

    profile = db.get(CustomerProfile, user_id)
    if profile is None:
        profile = CustomerProfile(user_id=user_id)
        db.add(profile)
    # Merge: only the address is replaced, other profile fields are kept
    profile.address = address
    if not profile.email and address.get("email"):
        profile.email = address["email"]
    if not profile.display_name and address.get("fullName"):
        profile.display_name = address["fullName"]

    slug = address_slug(label)
    saved = (
        db.query(SavedAddress)
        .filter(SavedAddress.user_id == user_id, SavedAddress.slug == slug)
        .first()
    )
    if saved is None:
        saved = SavedAddress(user_id=user_id, slug=slug)
        db.add(saved)
    saved.label = label or "Saved"
    saved.address = address

    db.commit()


def mark_verified(db: Session, order: Order, signature: str) -> Order:
    """Upgrade an order written without verification once its signature checks out.

    Raises:
        OrderWriteError: the store failed the update
    """
    if order.payment_verified:
        return order
    order_id = order.id
    order.payment_verified = True
    if not order.payment_gateway_signature:
        order.payment_gateway_signature = signature
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log.error(f"Failed to mark order {order_id} verified: {e}")
        raise OrderWriteError("Failed to persist order") from e
    db.refresh(order)
    log.info(f"Order {order_id} verified after unverified write")
    return order


def write_order(
    db: Session,
    payment_id: str,
    payload: OrderPayload,
    verified: bool = True,
) -> int:
    """
    Persist an order exactly once per payment id.

    Returns:
        The id of the new order, or of the existing one for a repeated payment id

    Raises:
        OrderWriteError: the store failed the write
    """
    if not payment_id:
        raise OrderWriteError("payment id is required")

    try:
        existing = find_order_by_payment(db, payment_id)
    except SQLAlchemyError as e:
        db.rollback()
        log.error(f"Order lookup failed for payment {payment_id}: {e}")
        raise OrderWriteError("Failed to read existing order") from e
    if existing is not None:
        log.info(f"Order for payment {payment_id} already exists (id={existing.id}), not rewriting")
        return existing.id

    order = Order(
        user_id=payload.user_id,
        items=payload.items,
        total=round(_to_number(payload.total), 2),
        status=OrderStatus.IN_PROCESS,
        shipping=payload.shipping,
        payment_gateway_order_id=payload.gateway_order_id,
        payment_gateway_payment_id=payment_id,
        payment_gateway_signature=payload.gateway_signature,
        payment_verified=verified,
    )
    db.add(order)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        winner = find_order_by_payment(db, payment_id)
        if winner is not None:
            log.warning(f"Concurrent write for payment {payment_id} lost to order {winner.id}")
            return winner.id
        raise OrderWriteError("Failed to persist order") from e
    except SQLAlchemyError as e:
        db.rollback()
        log.error(f"Order write failed for payment {payment_id}: {e}")
        raise OrderWriteError("Failed to persist order") from e

    db.refresh(order)
    log.info(f"Saved order {order.id} for payment {payment_id} (verified={verified})")

    if payload.save_for_future and payload.user_id:
        try:
            save_address_for_future(db, payload.user_id, payload.shipping, payload.address_label)
        except SQLAlchemyError as e:
            # Order is already committed; only the address book entry is lost
            db.rollback()
            log.error(f"Failed to save address for user {payload.user_id}: {e}")

    return order.id
