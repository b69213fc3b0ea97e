# Overview: Service-layer operations for the admin-managed material catalog.

"""
Catalog Service

Filament types (with their colors) and printing option lists are read by
the public order wizard and edited by admins. Pricing tables live in
pricing_service; this module only covers what is selectable.
"""

from __future__ import annotations

import re

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import FilamentColor, FilamentType, PrintingOption, PrintingOptionValue
from ..models.catalog import PRINTING_OPTION_TYPES
from ..validation import ConflictError, NotFoundError, ValidationError


HEX_CODE_PATTERN = re.compile(r"^#[0-9A-Fa-f]{6}$")
MAX_COLORS_PER_FILAMENT = 50


class CatalogError(ValidationError):
    """Raised for malformed catalog edits (bad color, option value or name)."""


# =============================================================================
# FILAMENTS
# =============================================================================

def list_filaments(*, include_inactive: bool = False) -> list[FilamentType]:
    query = db.session.query(FilamentType)
    if not include_inactive:
        query = query.filter(FilamentType.is_active.is_(True))
    return query.order_by(FilamentType.name).all()


def get_filament(filament_id: int) -> FilamentType:
    filament = db.session.get(FilamentType, filament_id)
    if filament is None:
        raise NotFoundError("Filament type not found")
    return filament


def _parse_colors(colors) -> list[FilamentColor]:
    if not isinstance(colors, list):
        raise CatalogError("colors must be a list")
    if len(colors) > MAX_COLORS_PER_FILAMENT:
        raise CatalogError(f"At most {MAX_COLORS_PER_FILAMENT} colors per filament")

    parsed = []
    seen = set()
    for idx, color in enumerate(colors):
        if not isinstance(color, dict):
            raise CatalogError(f"colors[{idx}] must be an object")
        name = str(color.get("name") or "").strip()
        hex_code = str(color.get("hexCode") or "").strip()
        if not name:
            raise CatalogError(f"colors[{idx}].name is required")
        if not HEX_CODE_PATTERN.match(hex_code):
            raise CatalogError(f"colors[{idx}].hexCode must look like #RRGGBB")
        if name.lower() in seen:
            raise CatalogError(f"Duplicate color name: {name}")
        seen.add(name.lower())
        parsed.append(FilamentColor(position=idx, name=name, hex_code=hex_code.upper()))
    return parsed


def _clean_name(value) -> str:
    name = str(value or "").strip()
    if not name:
        raise CatalogError("name is required")
    if len(name) > 64:
        raise CatalogError("name exceeds max length 64")
    return name


def _name_taken(name: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(FilamentType).filter(db.func.lower(FilamentType.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(FilamentType.id != exclude_id)
    return db.session.query(query.exists()).scalar()


def create_filament(data: dict) -> FilamentType:
    """
    Raises:
        ValidationError: missing name or malformed colors
        ConflictError: a filament with that name exists (case-insensitive)
    """
    if not isinstance(data, dict):
        raise CatalogError("Invalid JSON payload")
    name = _clean_name(data.get("name"))
    if _name_taken(name):
        raise ConflictError(f"Filament type '{name}' already exists")

    filament = FilamentType(
        name=name,
        description=data.get("description"),
        is_active=bool(data.get("isActive", True)),
    )
    filament.colors = _parse_colors(data.get("colors") or [])
    db.session.add(filament)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Filament type '{name}' already exists")

    current_app.logger.info("Created filament type %s", name)
    return filament


def update_filament(filament_id: int, data: dict) -> FilamentType:
    if not isinstance(data, dict):
        raise CatalogError("Invalid JSON payload")
    filament = get_filament(filament_id)

    if "name" in data:
        name = _clean_name(data["name"])
        if _name_taken(name, exclude_id=filament.id):
            raise ConflictError(f"Filament type '{name}' already exists")
        filament.name = name
    if "description" in data:
        filament.description = data["description"]
    if "isActive" in data:
        if not isinstance(data["isActive"], bool):
            raise CatalogError("isActive must be a boolean")
        filament.is_active = data["isActive"]
    if "colors" in data:
        new_colors = _parse_colors(data["colors"])
        filament.colors.clear()
        db.session.flush()
        filament.colors.extend(new_colors)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Filament type name already exists")
    return filament


def delete_filament(filament_id: int) -> None:
    """Deactivates instead of deleting; placed orders reference materials by name."""
    filament = get_filament(filament_id)
    filament.is_active = False
    if filament.pricing_table is not None:
        filament.pricing_table.is_active = False
    db.session.commit()


# =============================================================================
# PRINTING OPTIONS
# =============================================================================

def list_printing_options(*, include_inactive: bool = False) -> list[dict]:
    """Options with their values; inactive values are hidden from the public list."""
    query = db.session.query(PrintingOption)
    if not include_inactive:
        query = query.filter(PrintingOption.is_active.is_(True))
    result = []
    for option in query.order_by(PrintingOption.id).all():
        data = option.to_dict()
        if not include_inactive:
            data["values"] = [v for v in data["values"] if v["isActive"]]
        result.append(data)
    return result


def _parse_option_values(option_type: str, values, max_value) -> list[PrintingOptionValue]:
    if not isinstance(values, list) or not values:
        raise CatalogError("values must be a non-empty list")

    parsed = []
    for idx, raw in enumerate(values):
        if not isinstance(raw, dict):
            raise CatalogError(f"values[{idx}] must be an object")
        value = str(raw.get("value") or "").strip()
        if not value:
            raise CatalogError(f"values[{idx}].value is required")
        number_text = value[:-1] if option_type == "infill" and value.endswith("%") else value
        if not number_text.isdigit():
            raise CatalogError(f"values[{idx}].value must be a whole number")
        if max_value is not None and int(number_text) > max_value:
            raise CatalogError(f"values[{idx}].value exceeds maxValue {max_value}")
        parsed.append(PrintingOptionValue(
            position=idx,
            label=str(raw.get("label") or value).strip()[:64],
            value=value,
            is_active=bool(raw.get("isActive", True)),
        ))
    return parsed


def upsert_printing_option(option_type: str, data: dict) -> PrintingOption:
    """Create or replace the option list for infill or wallCount."""
    if option_type not in PRINTING_OPTION_TYPES:
        raise CatalogError(f"option type must be one of: {', '.join(PRINTING_OPTION_TYPES)}")
    if not isinstance(data, dict):
        raise CatalogError("Invalid JSON payload")

    max_value = data.get("maxValue")
    if max_value is not None and (not isinstance(max_value, int) or isinstance(max_value, bool) or max_value < 1):
        raise CatalogError("maxValue must be a positive integer")

    values = _parse_option_values(option_type, data.get("values"), max_value)

    option = db.session.query(PrintingOption).filter_by(option_type=option_type).first()
    if option is None:
        option = PrintingOption(option_type=option_type)
        db.session.add(option)
    else:
        option.values.clear()
        db.session.flush()

    option.title = str(data.get("title") or option.title or option_type).strip()
    option.description = data.get("description", option.description)
    option.max_value = max_value
    if "isActive" in data:
        option.is_active = bool(data["isActive"])
    elif option.is_active is None:
        option.is_active = True
    option.values.extend(values)

    db.session.commit()
    return option
