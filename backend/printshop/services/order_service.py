# Overview: Service-layer operations for orders; creation, status lifecycle and access rules.

"""
Order Service

================================================================================
PURPOSE: One checkout = one Order aggregate, written once and then moved
through fulfillment by admins and the payment gateway.
================================================================================

STATE MACHINE:
    unpaid -> in-review -> needs-discussion -> printing -> shipping
           -> in-delivery -> delivered -> completed
    canceled is reachable from unpaid / in-review / needs-discussion and
    is terminal, as is completed.

    ALLOWED_TRANSITIONS is checked before every write; anything else raises
    OrderTransitionError. unpaid may jump straight to printing so that an
    order settled outside the gateway can be started by an admin.

RULES:
1. Every real status change appends exactly one history row; setting the
   current status again is a no-op.
2. History is append-only and skipped states are never backfilled.
3. Item configuration/statistics are stored exactly as submitted. Prices
   are re-derived from the price table: a client echo that disagrees is
   rejected (PricingMismatchError), never silently rewritten.
4. total_amount == subtotal + shipping_cost, computed here.
5. A FinalizeFilesJob is enqueued in the same transaction as the order;
   later updates never enqueue another.
6. Customers read their own orders; admins read and write all of them.
================================================================================
"""

from __future__ import annotations

import random
import re

from flask import current_app

from ..extensions import db
from ..models import Address, FinalizeFilesJob, Order, OrderItem, OrderStatusHistory, User, UserFile, ORDER_STATUSES, PAYMENT_METHODS
from ..models.orders import JOB_PENDING
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    parse_infill,
    parse_layer_height,
    parse_non_negative_number,
    parse_quantity,
    parse_wall_count,
    validate_phone_number,
    validate_postal_code,
)
from . import pricing_service
from .concurrency import check_version, commit_or_conflict
from .pricing_service import PricingError, PricingMismatchError
from .temp_file_service import TEMP_TOKEN_PREFIX
from printshop.time_utils import epoch_millis, parse_iso_datetime, utcnow


# =============================================================================
# CONSTANTS
# =============================================================================

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "unpaid": frozenset({"in-review", "needs-discussion", "printing", "canceled"}),
    "in-review": frozenset({"needs-discussion", "printing", "canceled"}),
    "needs-discussion": frozenset({"in-review", "printing", "canceled"}),
    "printing": frozenset({"shipping"}),
    "shipping": frozenset({"in-delivery"}),
    "in-delivery": frozenset({"delivered"}),
    "delivered": frozenset({"completed"}),
    "completed": frozenset(),
    "canceled": frozenset(),
}

ORDER_NUMBER_PATTERN = re.compile(r"^[A-Z0-9][A-Z0-9-]{5,39}$")
MONEY_TOLERANCE = 0.01
MAX_ITEMS_PER_ORDER = 50
ADMIN_UPDATABLE_FIELDS = {"status", "adminNotes", "customerNotes", "trackingNumber", "shippedAt", "version"}


class OrderError(ValueError):
    """Raised when an order payload violates business rules."""


class OrderTransitionError(OrderError):
    """Raised when a status change is not in ALLOWED_TRANSITIONS."""


# =============================================================================
# STATUS MACHINE
# =============================================================================

def validate_status(status: str) -> None:
    if status not in ORDER_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(ORDER_STATUSES)}"
        )


def can_transition(from_status: str, to_status: str) -> bool:
    validate_status(from_status)
    validate_status(to_status)
    if from_status == to_status:
        return True
    return to_status in ALLOWED_TRANSITIONS[from_status]


def change_status(order: Order, new_status: str, *, changed_by_user_id: int | None) -> bool:
    """
    Move an order to new_status, appending one history row.

    Does not commit. Returns False (and appends nothing) when the status is
    unchanged.

    Raises:
        ValidationError: unknown status
        OrderTransitionError: transition not allowed
    """
    validate_status(new_status)
    if order.status == new_status:
        return False
    if not can_transition(order.status, new_status):
        raise OrderTransitionError(f"Cannot move order from '{order.status}' to '{new_status}'")

    previous = order.status
    order.status = new_status
    order.status_history.append(OrderStatusHistory(
        status=new_status,
        changed_at=utcnow(),
        changed_by_user_id=changed_by_user_id,
    ))
    if new_status == "shipping" and order.shipped_at is None:
        order.shipped_at = utcnow()

    current_app.logger.info(
        "Order %s status %s -> %s (by user %s)", order.order_number, previous, new_status, changed_by_user_id
    )
    return True


# =============================================================================
# PAYLOAD PARSING
# =============================================================================

def generate_order_number() -> str:
    """ORD-{epoch millis}-{3 random digits}, re-rolled on the rare collision."""
    for _ in range(5):
        candidate = f"ORD-{epoch_millis()}-{random.randint(0, 999):03d}"
        if not db.session.query(Order.id).filter_by(order_number=candidate).first():
            return candidate
    raise ConflictError("Could not allocate a unique order number; retry")


def _as_config_string(name: str, value) -> str:
    if value is None or isinstance(value, (dict, list, bool)):
        raise ValidationError(f"configuration.{name} is required")
    text = str(value).strip()
    if not text:
        raise ValidationError(f"configuration.{name} is required")
    return text


def _parse_item(raw, idx: int) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{idx}] must be an object")

    file_ref = raw.get("file")
    if not isinstance(file_ref, (str, int)) or not str(file_ref).strip():
        raise ValidationError(f"items[{idx}].file is required")
    file_name = (raw.get("fileName") or "").strip()
    if not file_name:
        raise ValidationError(f"items[{idx}].fileName is required")

    config = raw.get("configuration")
    if not isinstance(config, dict):
        raise ValidationError(f"items[{idx}].configuration is required")
    material = _as_config_string("material", config.get("material"))
    layer_height = _as_config_string("layerHeight", config.get("layerHeight"))
    infill = _as_config_string("infill", config.get("infill"))
    wall_count = _as_config_string("wallCount", config.get("wallCount"))
    parse_layer_height(layer_height)
    parse_infill(infill)
    parse_wall_count(wall_count)
    color = config.get("color")
    color = str(color).strip() if color not in (None, "") else None

    stats = raw.get("statistics")
    if not isinstance(stats, dict) or stats.get("filamentWeight") is None:
        raise ValidationError(f"items[{idx}].statistics.filamentWeight is required (slice the file first)")
    weight = parse_non_negative_number(f"items[{idx}].statistics.filamentWeight", stats.get("filamentWeight"))
    if weight <= 0:
        raise ValidationError(f"items[{idx}].statistics.filamentWeight must be greater than 0")
    print_time = stats.get("printTime")
    if print_time is not None:
        print_time = parse_non_negative_number(f"items[{idx}].statistics.printTime", print_time)

    file_size = raw.get("fileSize")
    if file_size is not None:
        file_size = int(parse_non_negative_number(f"items[{idx}].fileSize", file_size))

    pricing = raw.get("pricing") if isinstance(raw.get("pricing"), dict) else {}

    return {
        "file_ref": str(file_ref).strip(),
        "file_name": file_name,
        "file_size": file_size,
        "quantity": parse_quantity(raw.get("quantity", 1)),
        "material": material,
        "color": color,
        "layer_height": layer_height,
        "infill": infill,
        "wall_count": wall_count,
        "print_time": print_time,
        "filament_weight": weight,
        "client_price_per_gram": pricing.get("pricePerGram"),
        "client_total_price": raw.get("totalPrice"),
    }


def _check_file_refs(items: list[dict], user: User) -> None:
    """A ref that is not a temp token must be one of the customer's own user files."""
    for idx, item in enumerate(items):
        ref = item["file_ref"]
        if ref.startswith(TEMP_TOKEN_PREFIX):
            continue
        owned = None
        if ref.isdigit():
            owned = (
                db.session.query(UserFile.id)
                .filter_by(id=int(ref), uploaded_by_user_id=user.id)
                .first()
            )
        if owned is None:
            raise ValidationError(f"items[{idx}].file is not an uploaded file of yours")


def _price_items(items: list[dict]) -> None:
    """Fill price_per_gram/total_price from the live table; reject disagreeing echoes."""
    rows = pricing_service.load_price_rows()
    for idx, item in enumerate(items):
        price_per_gram = pricing_service.find_price_per_gram(rows, item["material"], item["layer_height"])
        if price_per_gram is None:
            raise PricingError(
                f"items[{idx}]: no price for {item['material']} at {item['layer_height']} mm layer height"
            )
        total = pricing_service.calculate_item_price(item["filament_weight"], item["quantity"], price_per_gram)

        client_ppg = item["client_price_per_gram"]
        if client_ppg is not None:
            client_ppg = parse_non_negative_number(f"items[{idx}].pricing.pricePerGram", client_ppg)
        if client_ppg is not None and abs(client_ppg - price_per_gram) > 1e-9:
            raise PricingMismatchError(
                f"items[{idx}]: price per gram changed ({client_ppg} -> {price_per_gram}); refresh your quote"
            )
        client_total = item["client_total_price"]
        if client_total is not None:
            client_total = parse_non_negative_number(f"items[{idx}].totalPrice", client_total)
        if client_total is not None and abs(client_total - total) > MONEY_TOLERANCE:
            raise PricingMismatchError(
                f"items[{idx}]: totalPrice {client_total} does not match computed {total}"
            )
        item["price_per_gram"] = price_per_gram
        item["total_price"] = total


def _optional_int(name: str, value) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")


def _parse_shipping(raw, user: User) -> dict:
    """
    Shipping snapshot from either a saved address (addressId) or inline fields,
    plus the chosen courier service.
    """
    if not isinstance(raw, dict):
        raise ValidationError("shipping is required")

    snapshot: dict = {}
    address_id = raw.get("addressId")
    if address_id is not None:
        address = db.session.get(Address, address_id)
        if address is None or (address.user_id != user.id and not user.is_admin):
            raise NotFoundError("Address not found")
        snapshot.update(
            recipient_name=address.recipient_name,
            phone_number=address.phone_number,
            address_line1=address.address_line1,
            address_line2=address.address_line2,
            province_name=address.province_name or address.rajaongkir_province_name,
            regency_name=address.regency_name or address.rajaongkir_city_name,
            district_name=address.district_name or address.rajaongkir_district_name,
            village_name=address.village_name or address.rajaongkir_subdistrict_name,
            postal_code=address.postal_code,
            destination_id=address.rajaongkir_destination_id,
        )
    else:
        for key in ("recipientName", "phoneNumber", "addressLine1", "postalCode"):
            if not raw.get(key):
                raise ValidationError(f"shipping.{key} is required")
        snapshot.update(
            recipient_name=str(raw["recipientName"]).strip(),
            phone_number=validate_phone_number(raw["phoneNumber"]),
            address_line1=str(raw["addressLine1"]).strip(),
            address_line2=(raw.get("addressLine2") or "").strip() or None,
            province_name=raw.get("province"),
            regency_name=raw.get("regency"),
            district_name=raw.get("district"),
            village_name=raw.get("village"),
            postal_code=validate_postal_code(raw["postalCode"]),
            destination_id=_optional_int("shipping.destinationId", raw.get("destinationId")),
        )

    for key in ("courier", "service"):
        if not raw.get(key):
            raise ValidationError(f"shipping.{key} is required")
    snapshot.update(
        courier=str(raw["courier"]).strip().lower(),
        courier_name=raw.get("courierName"),
        courier_service=str(raw["service"]).strip(),
        service_description=raw.get("serviceDescription"),
        estimated_delivery=raw.get("etd"),
        shipping_cost=parse_non_negative_number("shipping.cost", raw.get("cost")),
    )
    return snapshot


# =============================================================================
# CREATE
# =============================================================================

def create_order(user: User, payload: dict) -> Order:
    """
    Create an order from a checkout payload and enqueue file finalization.

    Payload keys: items (required, non-empty), shipping (required),
    customerNotes, paymentMethod, orderNumber, summary (optional echo).

    Raises:
        ValidationError: malformed payload, or a file ref the customer does not own
        PricingError: an item has no price table row
        PricingMismatchError: client echo of a price/total disagrees
        ConflictError: supplied orderNumber already exists
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("An order needs at least one item")
    if len(raw_items) > MAX_ITEMS_PER_ORDER:
        raise ValidationError(f"An order may contain at most {MAX_ITEMS_PER_ORDER} items")

    items = [_parse_item(raw, idx) for idx, raw in enumerate(raw_items)]
    _check_file_refs(items, user)
    _price_items(items)
    shipping = _parse_shipping(payload.get("shipping"), user)

    subtotal = round(sum(i["total_price"] for i in items), 2)
    shipping_cost = round(shipping.pop("shipping_cost"), 2)
    total_amount = round(subtotal + shipping_cost, 2)
    total_weight = round(sum(i["filament_weight"] * i["quantity"] for i in items), 3)
    total_print_time = round(sum((i["print_time"] or 0) * i["quantity"] for i in items), 2)

    summary = payload.get("summary")
    if isinstance(summary, dict) and summary.get("totalAmount") is not None:
        echoed_total = parse_non_negative_number("summary.totalAmount", summary["totalAmount"])
        if abs(echoed_total - total_amount) > MONEY_TOLERANCE:
            raise PricingMismatchError(
                f"totalAmount {summary['totalAmount']} does not match computed {total_amount}"
            )

    order_number = payload.get("orderNumber")
    if order_number:
        order_number = str(order_number).strip().upper()
        if not ORDER_NUMBER_PATTERN.match(order_number):
            raise ValidationError("orderNumber may only contain letters, digits and dashes")
        if db.session.query(Order.id).filter_by(order_number=order_number).first():
            raise ConflictError(f"Order number {order_number} already exists")
    else:
        order_number = generate_order_number()

    payment_method = payload.get("paymentMethod")
    if payment_method and payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"paymentMethod must be one of: {', '.join(PAYMENT_METHODS)}")
    now = utcnow()

    order = Order(
        order_number=order_number,
        user_id=user.id,
        status="unpaid",
        payment_status="pending",
        payment_method=payment_method or None,
        subtotal=subtotal,
        shipping_cost=shipping_cost,
        total_amount=total_amount,
        total_weight=total_weight,
        total_print_time=total_print_time,
        customer_notes=(payload.get("customerNotes") or "").strip() or None,
        **shipping,
    )
    for position, item in enumerate(items):
        order.items.append(OrderItem(
            position=position,
            file_ref=item["file_ref"],
            file_finalized=not item["file_ref"].startswith(TEMP_TOKEN_PREFIX),
            file_name=item["file_name"],
            file_size=item["file_size"],
            quantity=item["quantity"],
            material=item["material"],
            color=item["color"],
            layer_height=item["layer_height"],
            infill=item["infill"],
            wall_count=item["wall_count"],
            print_time=item["print_time"],
            filament_weight=item["filament_weight"],
            price_per_gram=item["price_per_gram"],
            total_price=item["total_price"],
        ))
    order.status_history.append(OrderStatusHistory(
        status="unpaid",
        changed_at=now,
        changed_by_user_id=user.id,
    ))
    order.finalize_job = FinalizeFilesJob(status=JOB_PENDING, attempts=0, next_attempt_at=now)

    db.session.add(order)
    db.session.commit()

    current_app.logger.info(
        "Created order %s for user %s: %d item(s), total %.2f",
        order.order_number, user.id, len(order.items), order.total_amount,
    )
    return order


# =============================================================================
# READ
# =============================================================================

def get_order(order_id: int, viewer: User) -> Order:
    """Owner or admin; anyone else sees NotFoundError."""
    order = db.session.get(Order, order_id)
    if order is None or not (viewer.is_admin or order.user_id == viewer.id):
        raise NotFoundError("Order not found")
    return order


def list_orders(
    viewer: User,
    *,
    status: str | None = None,
    user_id: int | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Order], int]:
    """Newest first. Customers only ever see their own orders."""
    query = db.session.query(Order)
    if viewer.is_admin:
        if user_id is not None:
            query = query.filter(Order.user_id == user_id)
    else:
        query = query.filter(Order.user_id == viewer.id)
    if status:
        validate_status(status)
        query = query.filter(Order.status == status)

    total = query.count()
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .limit(max(1, min(limit, 100)))
        .offset(max(0, offset))
        .all()
    )
    return orders, total


# =============================================================================
# UPDATE / DELETE (admin)
# =============================================================================

def update_order(order_id: int, actor: User, data: dict) -> Order:
    """
    Admin edit of status, notes and tracking.

    `version` (optional) must equal the current version_id.

    Raises:
        NotFoundError, ValidationError, OrderTransitionError,
        ConflictError (stale version)
    """
    if not isinstance(data, dict) or not data:
        raise ValidationError("Nothing to update")
    disallowed = sorted(set(data) - ADMIN_UPDATABLE_FIELDS)
    if disallowed:
        raise ValidationError(f"Fields cannot be changed: {', '.join(disallowed)}")

    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    check_version(order, data.get("version"))

    if "status" in data:
        change_status(order, str(data["status"] or ""), changed_by_user_id=actor.id)
    if "adminNotes" in data:
        order.admin_notes = (data["adminNotes"] or "").strip() or None
    if "customerNotes" in data:
        order.customer_notes = (data["customerNotes"] or "").strip() or None
    if "trackingNumber" in data:
        order.tracking_number = (data["trackingNumber"] or "").strip() or None
    if "shippedAt" in data:
        try:
            order.shipped_at = parse_iso_datetime(data["shippedAt"]) if data["shippedAt"] else None
        except ValueError:
            raise ValidationError("shippedAt must be an ISO-8601 datetime")

    commit_or_conflict()
    return order


def delete_order(order_id: int) -> None:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    db.session.delete(order)
    db.session.commit()
    current_app.logger.info("Deleted order %s", order.order_number)
