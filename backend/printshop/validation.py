# Overview: Shared input validation and the base error types used across services.

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from printshop.time_utils import parse_iso_datetime


# Print configuration bounds
MAX_LAYER_HEIGHT_MM = 1.0
MIN_WALL_COUNT = 1
MAX_WALL_COUNT = 20
INFILL_PATTERN = re.compile(r"^\d+%$")
POSTAL_CODE_PATTERN = re.compile(r"^\d{5}$")
PHONE_PATTERN = re.compile(r"^\+?[0-9][0-9\s-]{6,19}$")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., stale version, duplicate name)."""


class NotFoundError(LookupError):
    """404-level missing or inaccessible resource."""


# =============================================================================
# GENERIC PAYLOAD VALIDATION
# =============================================================================

@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Allowlist of client-settable fields for one model.

    writable_fields maps the camelCase wire key to the model column key.
    required_on_create lists wire keys that must be present on POST.
    """
    writable_fields: dict[str, str]
    required_on_create: set[str] = field(default_factory=set)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    return {c.key: c for c in model.__mapper__.columns}


def _coerce_value(wire_key: str, col, value: Any):
    coltype = col.type

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{wire_key} must be a boolean")

    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            return int(value.strip())
        raise ValidationError(f"{wire_key} must be an integer")

    if isinstance(coltype, Float):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError:
                raise ValidationError(f"{wire_key} must be a number")
        raise ValidationError(f"{wire_key} must be a number")

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{wire_key} must be an ISO-8601 datetime")
            if dt is not None:
                return dt
        raise ValidationError(f"{wire_key} must be an ISO-8601 datetime")

    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{wire_key} must be a string")
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: Any,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validate incoming JSON against column metadata and a field allowlist.

    Returns a patch dict keyed by column name. partial=False enforces
    required_on_create; partial=True validates only the keys provided.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(k for k in policy.required_on_create if payload.get(k) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    patch: dict = {}

    for wire_key, raw in payload.items():
        if wire_key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {wire_key}")
        col = cols[policy.writable_fields[wire_key]]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{wire_key} cannot be null")
            patch[col.key] = None
            continue

        val = _coerce_value(wire_key, col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable and val == "":
            raise ValidationError(f"{wire_key} cannot be blank")
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{wire_key} exceeds max length {col.type.length}")

        patch[col.key] = val

    return patch


# =============================================================================
# PRINT CONFIGURATION RULES
# =============================================================================

def parse_layer_height(value: Any) -> float:
    """Layer height in millimetres: a number in (0, 1.0]."""
    try:
        height = float(value)
    except (TypeError, ValueError):
        raise ValidationError("layerHeight must be a number")
    if height <= 0 or height > MAX_LAYER_HEIGHT_MM:
        raise ValidationError(f"layerHeight must be greater than 0 and at most {MAX_LAYER_HEIGHT_MM}")
    return height


def parse_infill(value: Any) -> int:
    """Infill as a percentage string such as '20%'; returns the integer percent."""
    text = str(value or "").strip()
    if not INFILL_PATTERN.match(text):
        raise ValidationError("infill must be a percentage like '20%'")
    percent = int(text[:-1])
    if percent > 100:
        raise ValidationError("infill must be between 0% and 100%")
    return percent


def parse_wall_count(value: Any) -> int:
    try:
        walls = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError("wallCount must be an integer")
    if walls < MIN_WALL_COUNT or walls > MAX_WALL_COUNT:
        raise ValidationError(f"wallCount must be between {MIN_WALL_COUNT} and {MAX_WALL_COUNT}")
    return walls


def parse_quantity(value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError("quantity must be an integer")
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        raise ValidationError("quantity must be an integer")
    if quantity < 1 or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError("quantity must be a whole number of at least 1")
    return quantity


def parse_non_negative_number(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number")
    if number < 0:
        raise ValidationError(f"{name} must be >= 0")
    return number


def validate_postal_code(value: Any) -> str:
    text = str(value or "").strip()
    if not POSTAL_CODE_PATTERN.match(text):
        raise ValidationError("Postal code must be 5 digits")
    return text


def validate_phone_number(value: Any) -> str:
    text = str(value or "").strip()
    if not PHONE_PATTERN.match(text):
        raise ValidationError("phoneNumber is not a valid phone number")
    return text
