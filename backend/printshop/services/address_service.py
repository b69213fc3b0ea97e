# Overview: Service-layer operations for saved shipping addresses.

"""
Address Service

RULES:
- A user keeps at most MAX_ADDRESSES_PER_USER saved addresses.
- At most one default per user; marking one default clears the others.
  A user's first address becomes the default.
- Deleting the default promotes the most recently created remaining one.
- Only the owner (or an admin) can read or change an address; others get
  NotFoundError so ids cannot be enumerated.
- The rate-API destination can be supplied by the client (rajaOngkir
  object) or resolved from the region names when the API is configured.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Address, User
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    validate_payload,
    validate_phone_number,
    validate_postal_code,
)
from . import shipping_service
from printshop.time_utils import utcnow


MAX_ADDRESSES_PER_USER = 3

ADDRESS_POLICY = ModelValidationPolicy(
    writable_fields={
        "recipientName": "recipient_name",
        "phoneNumber": "phone_number",
        "addressLine1": "address_line1",
        "addressLine2": "address_line2",
        "provinceCode": "province_code",
        "regencyCode": "regency_code",
        "districtCode": "district_code",
        "villageCode": "village_code",
        "provinceName": "province_name",
        "regencyName": "regency_name",
        "districtName": "district_name",
        "villageName": "village_name",
        "postalCode": "postal_code",
        "isDefault": "is_default",
    },
    required_on_create={
        "recipientName",
        "phoneNumber",
        "addressLine1",
        "provinceCode",
        "regencyCode",
        "districtCode",
        "postalCode",
    },
)

DESTINATION_FIELDS = {
    "destinationId": "rajaongkir_destination_id",
    "locationLabel": "rajaongkir_location_label",
    "zipCode": "rajaongkir_zip_code",
    "provinceName": "rajaongkir_province_name",
    "cityName": "rajaongkir_city_name",
    "districtName": "rajaongkir_district_name",
    "subdistrictName": "rajaongkir_subdistrict_name",
}


class AddressError(ValidationError):
    """Raised for address rules beyond field validation (e.g. the per-user limit)."""


def _split_payload(payload) -> tuple[dict, dict | None]:
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    fields = dict(payload)
    destination = fields.pop("rajaOngkir", None)
    if destination is not None and not isinstance(destination, dict):
        raise ValidationError("rajaOngkir must be an object")
    return fields, destination


def _check_formats(patch: dict) -> None:
    if "postal_code" in patch:
        patch["postal_code"] = validate_postal_code(patch["postal_code"])
    if "phone_number" in patch:
        patch["phone_number"] = validate_phone_number(patch["phone_number"])


def _apply_destination(address: Address, destination: dict) -> None:
    for wire_key, column in DESTINATION_FIELDS.items():
        if wire_key not in destination:
            continue
        value = destination[wire_key]
        if wire_key == "destinationId" and value is not None:
            try:
                value = int(value)
            except (TypeError, ValueError):
                raise ValidationError("rajaOngkir.destinationId must be an integer")
        setattr(address, column, value)
    address.rajaongkir_last_verified = utcnow()


def _apply_search_result(address: Address, match: dict) -> None:
    address.rajaongkir_destination_id = match.get("id")
    address.rajaongkir_location_label = match.get("label")
    address.rajaongkir_zip_code = match.get("zip_code")
    address.rajaongkir_province_name = match.get("province_name")
    address.rajaongkir_city_name = match.get("city_name")
    address.rajaongkir_district_name = match.get("district_name")
    address.rajaongkir_subdistrict_name = match.get("subdistrict_name")
    address.rajaongkir_last_verified = utcnow()


def _resolve_destination(address: Address) -> None:
    """Best-effort lookup; an unresolved address can still be saved."""
    if not current_app.config.get("RAJAONGKIR_API_KEY"):
        return
    try:
        match = shipping_service.resolve_destination(
            village=address.village_name,
            district=address.district_name,
            city=address.regency_name,
            province=address.province_name,
        )
    except shipping_service.ShippingError as exc:
        current_app.logger.warning("Destination lookup failed for address %s: %s", address.id, exc)
        return
    if match:
        _apply_search_result(address, match)


def _clear_other_defaults(user_id: int, keep_id: int | None) -> None:
    query = db.session.query(Address).filter(Address.user_id == user_id, Address.is_default.is_(True))
    if keep_id is not None:
        query = query.filter(Address.id != keep_id)
    for other in query.all():
        other.is_default = False


# =============================================================================
# OPERATIONS
# =============================================================================

def list_addresses(user: User) -> list[Address]:
    return (
        db.session.query(Address)
        .filter(Address.user_id == user.id)
        .order_by(Address.is_default.desc(), Address.created_at.desc(), Address.id.desc())
        .all()
    )


def get_address(address_id: int, viewer: User) -> Address:
    address = db.session.get(Address, address_id)
    if address is None or not (viewer.is_admin or address.user_id == viewer.id):
        raise NotFoundError("Address not found")
    return address


def create_address(user: User, payload) -> Address:
    """
    Save a new address for user.

    Raises:
        AddressError: user already has MAX_ADDRESSES_PER_USER addresses
        ValidationError: missing or malformed fields
    """
    fields, destination = _split_payload(payload)
    patch = validate_payload(model=Address, payload=fields, policy=ADDRESS_POLICY, partial=False)
    _check_formats(patch)

    existing = db.session.query(Address).filter(Address.user_id == user.id).count()
    if existing >= MAX_ADDRESSES_PER_USER:
        raise AddressError(f"You can save at most {MAX_ADDRESSES_PER_USER} addresses")

    address = Address(user_id=user.id, **patch)
    if existing == 0:
        address.is_default = True
    elif address.is_default is None:
        address.is_default = False

    db.session.add(address)
    db.session.flush()
    if address.is_default:
        _clear_other_defaults(user.id, address.id)

    if destination:
        _apply_destination(address, destination)
    else:
        _resolve_destination(address)

    db.session.commit()
    current_app.logger.info("User %s saved address %s", user.id, address.id)
    return address


def update_address(address_id: int, viewer: User, payload) -> Address:
    address = get_address(address_id, viewer)
    fields, destination = _split_payload(payload)
    patch = validate_payload(model=Address, payload=fields, policy=ADDRESS_POLICY, partial=True)
    _check_formats(patch)

    if patch.get("is_default") is False and address.is_default:
        raise ValidationError("Set another address as default instead of unsetting this one")

    region_changed = any(
        k in patch and patch[k] != getattr(address, k)
        for k in ("village_name", "district_name", "regency_name", "province_name")
    )
    for key, value in patch.items():
        setattr(address, key, value)

    if patch.get("is_default"):
        _clear_other_defaults(address.user_id, address.id)

    if destination:
        _apply_destination(address, destination)
    elif region_changed:
        _resolve_destination(address)

    db.session.commit()
    return address


def set_default_address(address_id: int, viewer: User) -> Address:
    address = get_address(address_id, viewer)
    _clear_other_defaults(address.user_id, address.id)
    address.is_default = True
    db.session.commit()
    return address


def delete_address(address_id: int, viewer: User) -> None:
    address = get_address(address_id, viewer)
    user_id = address.user_id
    was_default = address.is_default
    db.session.delete(address)
    db.session.flush()

    if was_default:
        replacement = (
            db.session.query(Address)
            .filter(Address.user_id == user_id)
            .order_by(Address.created_at.desc(), Address.id.desc())
            .first()
        )
        if replacement:
            replacement.is_default = True

    db.session.commit()


def default_address(user: User) -> Address | None:
    return db.session.query(Address).filter(Address.user_id == user.id, Address.is_default.is_(True)).first()
