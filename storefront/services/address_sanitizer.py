"""
Shipment address sanitizer.

Turns a loosely structured order (a stored order document, a carrier-shaped
flat payload, a legacy record with top-level address fields) into the strict
order payload the carrier accepts. Every mandatory field comes out non-empty:
values are coalesced across known aliases, validated, and defaulted.

City, state and pincode can additionally be recovered from the free-text
address line. Those guesses are best effort only and are listed in
`recovered_fields` so callers can treat them as lower confidence.
"""
import math
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Sequence

from storefront.config import Settings, get_settings

DEFAULT_NAME = "Customer"
DEFAULT_ADDRESS = "Sansad Marg"
DEFAULT_CITY = "New Delhi"
DEFAULT_STATE = "Delhi"
DEFAULT_PINCODE = "110001"
DEFAULT_COUNTRY = "India"
DEFAULT_PHONE = "9999999999"
DEFAULT_PICKUP = "Primary"
DEFAULT_DIMENSIONS = {"length": 15.0, "breadth": 15.0, "height": 15.0, "weight": 0.5}

ITEM_NAME_MAX = 50
ORDER_DATE_FORMAT = "%Y-%m-%d %H:%M"

KNOWN_STATES = (
    "Delhi", "Karnataka", "Maharashtra", "Tamil Nadu", "Uttar Pradesh", "Haryana",
    "Punjab", "Gujarat", "Rajasthan", "Kerala", "West Bengal", "Andhra Pradesh",
    "Telangana", "Madhya Pradesh", "Bihar", "Odisha", "Assam", "Jharkhand",
    "Chhattisgarh", "Uttarakhand", "Himachal Pradesh", "Goa", "Jammu and Kashmir",
    "Chandigarh", "Puducherry",
)

ADDRESS_FIELDS = ("customer_name", "address", "city", "state", "pincode", "country", "email", "phone")

REQUIRED_FIELDS = (
    [f"billing_{f}" for f in ADDRESS_FIELDS]
    + [f"shipping_{f}" for f in ADDRESS_FIELDS]
    + ["pickup_location", "order_id", "order_date"]
)

# Nested objects that may hold the address snapshot, most specific first
_SNAPSHOT_KEYS = ("shippingAddress", "shipping", "checkout", "Address", "address", "delivery")

# Prefixes: "" = top level, "shipping." = snapshot object, "profile." = customer profile
_ALIASES: Dict[str, Sequence[str]] = {
    "customer_name": (
        "billing_customer_name", "shipping.fullName", "shipping.name",
        "fullName", "customerName", "name", "profile.displayName", "profile.display_name",
    ),
    "address_line1": (
        "shipping.line1", "shipping.address_line1", "shipping.address1", "shipping.address",
    ),
    "address_line2": ("shipping.line2", "shipping.address_line2", "shipping.address2"),
    "city": ("billing_city", "shipping.city", "city"),
    "state": ("billing_state", "shipping.state", "state"),
    "pincode": (
        "billing_pincode", "shipping.pincode", "shipping.zip", "shipping.postalCode",
        "shipping.postcode", "pincode", "zip", "postalCode",
    ),
    "country": ("billing_country", "shipping.country", "country"),
    "email": (
        "billing_email", "shipping.email", "email", "customerEmail",
        "profile.email",
    ),
    "phone": (
        "billing_phone", "shipping.phone", "shipping.phoneNumber", "shipping.phone_number",
        "phone", "mobile", "customerPhone", "profile.phone",
    ),
}

_PIN_TOKEN = re.compile(r"\b\d{6}\b")
_NON_DIGIT = re.compile(r"\D")


class MissingFieldsError(ValueError):
    """A sanitized order still lacks mandatory carrier fields."""

    def __init__(self, missing: List[str]):
        super().__init__(f"Missing mandatory fields: {', '.join(missing)}")
        self.missing = list(missing)


@dataclass
class SanitizedShipment:
    """Carrier payload plus the fields that were guessed from free text."""
    order: Dict[str, Any]
    recovered_fields: List[str] = field(default_factory=list)

    @property
    def missing_fields(self) -> List[str]:
        return missing_fields(self.order)


def _text(value: Any) -> str:
    """Trimmed string for scalars; empty for None, containers and booleans."""
    if value is None or isinstance(value, (bool, dict, list, tuple, set)):
        return ""
    if isinstance(value, float):
        if not math.isfinite(value):
            return ""
        if value.is_integer():
            value = int(value)
    try:
        return str(value).strip()
    except ValueError:
        # int past the interpreter's digit limit
        return ""


def _digits(value: Any) -> str:
    return _NON_DIGIT.sub("", _text(value))


def _number(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        n = float(_text(value)) if not isinstance(value, (int, float)) else float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    return n if math.isfinite(n) else default


def _round_half_up(value: float) -> int:
    try:
        return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        # more digits than the decimal context holds; sub-unit rounding is moot
        return int(value)


class _Sources:
    """Alias lookup across the raw record, its address snapshot and the profile."""

    def __init__(self, raw: Dict[str, Any], profile: Dict[str, Any]):
        self.raw = raw
        self.profile = profile
        self.snapshot: Dict[str, Any] = {}
        for key in _SNAPSHOT_KEYS:
            candidate = raw.get(key)
            if isinstance(candidate, dict):
                self.snapshot = candidate
                break

    def get(self, alias: str) -> str:
        if alias.startswith("shipping."):
            return _text(self.snapshot.get(alias[len("shipping."):]))
        if alias.startswith("profile."):
            return _text(self.profile.get(alias[len("profile."):]))
        return _text(self.raw.get(alias))

    def coalesce(self, name: str) -> str:
        for alias in _ALIASES[name]:
            value = self.get(alias)
            if value:
                return value
        return ""


def _address_line(sources: _Sources) -> str:
    direct = _text(sources.raw.get("billing_address"))
    if direct:
        return direct
    line1 = sources.coalesce("address_line1")
    line2 = sources.coalesce("address_line2")
    joined = ", ".join(p for p in (line1, line2) if p)
    return joined or _text(sources.raw.get("address"))


def guess_city(address: str) -> Optional[str]:
    """Second-to-last non-empty comma segment, when there are at least two."""
    parts = [p.strip() for p in address.split(",") if p.strip()]
    if len(parts) >= 2:
        return parts[-2]
    return None


def guess_state(address: str) -> Optional[str]:
    """First known state name appearing as a whole word (case-insensitive)."""
    for state in KNOWN_STATES:
        if re.search(rf"\b{re.escape(state)}\b", address, re.IGNORECASE):
            return state
    return None


def guess_pincode(address: str) -> Optional[str]:
    match = _PIN_TOKEN.search(address)
    return match.group(0) if match else None


def _sanitize_items(raw_items: Any) -> List[Dict[str, Any]]:
    items = []
    stamp = int(time.time() * 1000)
    for index, item in enumerate(raw_items if isinstance(raw_items, list) else []):
        if not isinstance(item, dict):
            continue
        name = _text(item.get("name")) or _text(item.get("productName")) or "Product"
        sku = _text(item.get("sku")) or _text(item.get("id")) or f"SKU{stamp}-{index + 1}"
        units = int(_number(item.get("units", item.get("quantity", item.get("qty"))), 1))
        price = _number(
            item.get("selling_price", item.get("unitPrice", item.get("price"))), 0.0
        )
        sanitized = {
            "name": name[:ITEM_NAME_MAX],
            "sku": sku,
            "units": units if units > 0 else 1,
            "selling_price": max(_round_half_up(price), 0),
            "discount": _text(item.get("discount")),
            "tax": _text(item.get("tax")),
        }
        if _text(item.get("hsn")):
            sanitized["hsn"] = _text(item.get("hsn"))
        items.append(sanitized)
    return items


def _order_date(raw: Dict[str, Any], now: datetime) -> str:
    given = _text(raw.get("order_date"))
    if given:
        try:
            datetime.strptime(given, ORDER_DATE_FORMAT)
            return given
        except ValueError:
            pass
    created = raw.get("createdAt", raw.get("created_at", raw.get("date")))
    if isinstance(created, datetime):
        return created.strftime(ORDER_DATE_FORMAT)
    if isinstance(created, str) and created:
        try:
            return datetime.fromisoformat(created.replace("Z", "+00:00")).strftime(ORDER_DATE_FORMAT)
        except ValueError:
            pass
    return now.strftime(ORDER_DATE_FORMAT)


_TRUE_FLAGS = ("true", "1", "yes", "y", "on")


def _flag(value: Any) -> bool:
    """Boolean from JSON-ish input; strings count only when they spell true."""
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_FLAGS
    if isinstance(value, (bool, int, float)):
        return bool(value)
    return False


def _is_shipping_is_billing(raw: Dict[str, Any]) -> bool:
    flag = raw.get("shipping_is_billing", raw.get("shippingIsBilling"))
    has_shipping_fields = any(_text(raw.get(f"shipping_{f}")) for f in ADDRESS_FIELDS)
    return _flag(flag) or not has_shipping_fields


def sanitize(
    raw: Any,
    profile: Any = None,
    pickup_location: Optional[str] = None,
    dimensions: Optional[Dict[str, Any]] = None,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> SanitizedShipment:
    """
    Build a carrier order payload from any order-like input. Never raises.

    Args:
        raw: Order-like mapping; anything else is treated as empty
        profile: Customer profile used as a last-resort source for name/email/phone
        pickup_location: Pickup nickname; falls back to the record's own, then "Primary"
        dimensions: Package length/breadth/height (cm) and weight (kg)
    """
    settings = settings or get_settings()
    now = now or datetime.now()
    raw = raw if isinstance(raw, dict) else {}
    profile = profile if isinstance(profile, dict) else {}
    dimensions = dimensions if isinstance(dimensions, dict) else {}
    sources = _Sources(raw, profile)
    recovered: List[str] = []

    default_email = settings.shipment_default_email

    name = sources.coalesce("customer_name") or DEFAULT_NAME
    address = _address_line(sources) or DEFAULT_ADDRESS
    country = sources.coalesce("country") or DEFAULT_COUNTRY

    email = sources.coalesce("email")
    if "@" not in email:
        email = default_email

    phone = _digits(sources.coalesce("phone"))
    if len(phone) != 10:
        phone = DEFAULT_PHONE

    pincode = _digits(sources.coalesce("pincode"))
    if len(pincode) != 6:
        pincode = guess_pincode(address) or ""
        if pincode:
            recovered.append("pincode")
        else:
            pincode = DEFAULT_PINCODE

    city = sources.coalesce("city")
    if not city or city == DEFAULT_CITY:
        guessed = guess_city(address) if address != DEFAULT_ADDRESS else None
        if guessed:
            city = guessed
            recovered.append("city")
    city = city or DEFAULT_CITY

    state = sources.coalesce("state")
    if not state or state == DEFAULT_STATE:
        guessed = guess_state(address) if address != DEFAULT_ADDRESS else None
        if guessed:
            state = guessed
            recovered.append("state")
    state = state or DEFAULT_STATE

    billing = {
        "customer_name": name,
        "address": address,
        "city": city,
        "state": state,
        "pincode": pincode,
        "country": country,
        "email": email,
        "phone": phone,
    }

    shipping_is_billing = _is_shipping_is_billing(raw)
    if shipping_is_billing:
        shipping = dict(billing)
    else:
        shipping = {}
        for f in ADDRESS_FIELDS:
            shipping[f] = _text(raw.get(f"shipping_{f}")) or billing[f]
        ship_pin = _digits(shipping["pincode"])
        shipping["pincode"] = ship_pin if len(ship_pin) == 6 else billing["pincode"]
        ship_phone = _digits(shipping["phone"])
        shipping["phone"] = ship_phone if len(ship_phone) == 10 else billing["phone"]
        if "@" not in shipping["email"]:
            shipping["email"] = billing["email"]

    items = _sanitize_items(raw.get("order_items", raw.get("items")))
    items_total = sum(i["selling_price"] * i["units"] for i in items)
    total = raw.get("sub_total", raw.get("total", raw.get("amount")))
    sub_total = _round_half_up(_number(total, items_total))

    order: Dict[str, Any] = {
        "order_id": _text(raw.get("order_id")) or _text(raw.get("id")) or str(int(time.time() * 1000)),
        "order_date": _order_date(raw, now),
        "pickup_location": _text(pickup_location) or _text(raw.get("pickup_location")) or DEFAULT_PICKUP,
        "channel_id": _text(raw.get("channel_id")),
        "comment": _text(raw.get("comment")) or f"Order from {settings.store_name}",
        "billing_last_name": _text(raw.get("billing_last_name")),
        "billing_address_2": _text(raw.get("billing_address_2")),
        "shipping_is_billing": shipping_is_billing,
        "shipping_last_name": _text(raw.get("shipping_last_name")),
        "shipping_address_2": _text(raw.get("shipping_address_2")),
        "order_items": items,
        "payment_method": _text(raw.get("payment_method")) or "Prepaid",
        "shipping_charges": _number(raw.get("shipping_charges"), 0.0),
        "giftwrap_charges": _number(raw.get("giftwrap_charges"), 0.0),
        "transaction_charges": _number(raw.get("transaction_charges"), 0.0),
        "total_discount": _number(raw.get("total_discount"), 0.0),
        "sub_total": sub_total,
    }
    for key, default in DEFAULT_DIMENSIONS.items():
        value = _number(dimensions.get(key, raw.get(key)), default)
        order[key] = value if value > 0 else default
    for f in ADDRESS_FIELDS:
        order[f"billing_{f}"] = billing[f]
        order[f"shipping_{f}"] = shipping[f]

    return SanitizedShipment(order=order, recovered_fields=recovered)


def missing_fields(order: Dict[str, Any]) -> List[str]:
    """Mandatory fields that are still empty, plus order_items when there are none."""
    missing = [f for f in REQUIRED_FIELDS if not _text(order.get(f))]
    if not order.get("order_items"):
        missing.append("order_items")
    return missing
