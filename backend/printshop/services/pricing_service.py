# Overview: Service-layer operations for pricing; per-gram price tables and order quotes.

"""
Pricing Service

WHY: Print price is weight-based. Each filament type has a table of
per-gram prices keyed by layer height; a file's price is its sliced
filament weight times quantity times the matching per-gram price.

DESIGN:
- Lookup is exact on material and matches layer height within
  LAYER_HEIGHT_TOLERANCE, so "0.2" and 0.2000001 price identically.
- The pure functions (find_price_per_gram, calculate_item_price,
  calculate_quote) have no database access; the storefront wizard uses
  them for its live estimate and order_service uses them to re-price an
  order on submission.
- A file without a matching row is "not yet priced": quotes leave it out
  of the totals instead of failing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from ..extensions import db
from ..models import FilamentType, PricingRow, PricingTable
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import check_version, commit_or_conflict
from printshop.time_utils import utcnow


# =============================================================================
# CONSTANTS
# =============================================================================

LAYER_HEIGHT_TOLERANCE = 0.001
MIN_TABLE_LAYER_HEIGHT = 0.01
MAX_TABLE_LAYER_HEIGHT = 1.0


class PricingError(ValueError):
    """Raised when an item cannot be priced or a price table is invalid."""


class PricingMismatchError(PricingError):
    """Raised when a client-submitted price disagrees with the price table."""


# =============================================================================
# PURE CALCULATION
# =============================================================================

@dataclass(frozen=True)
class PriceRow:
    material: str
    layer_height: float
    price_per_gram: float


@dataclass(frozen=True)
class PricingInput:
    key: str
    material: str
    layer_height: str | float
    quantity: int
    filament_weight: float


@dataclass(frozen=True)
class QuoteLine:
    key: str
    material: str
    layer_height: float
    filament_weight: float
    quantity: int
    price_per_gram: float
    total_price: float


@dataclass
class Quote:
    lines: list[QuoteLine] = field(default_factory=list)
    unpriced: list[str] = field(default_factory=list)
    subtotal: float = 0.0
    total_weight: float = 0.0

    def to_dict(self) -> dict:
        return {
            "lines": [
                {
                    "key": line.key,
                    "material": line.material,
                    "layerHeight": line.layer_height,
                    "filamentWeight": line.filament_weight,
                    "quantity": line.quantity,
                    "pricePerGram": line.price_per_gram,
                    "totalPrice": line.total_price,
                }
                for line in self.lines
            ],
            "unpriced": list(self.unpriced),
            "subtotal": self.subtotal,
            "totalWeight": self.total_weight,
        }


def _same_material(a: str, b: str) -> bool:
    return (a or "").strip().casefold() == (b or "").strip().casefold()


def find_price_per_gram(
    rows: Iterable[PriceRow],
    material: str,
    layer_height: str | float,
) -> Optional[float]:
    """
    Per-gram price for (material, layer height), or None when unpriced.

    Layer heights compare within LAYER_HEIGHT_TOLERANCE.
    """
    try:
        height = float(layer_height)
    except (TypeError, ValueError):
        return None

    for row in rows:
        if _same_material(row.material, material) and abs(row.layer_height - height) <= LAYER_HEIGHT_TOLERANCE:
            return row.price_per_gram
    return None


def calculate_item_price(filament_weight: float, quantity: int, price_per_gram: float) -> float:
    """weight (g, per unit) x quantity x price per gram, rounded to 2 places."""
    return round(float(filament_weight) * int(quantity) * float(price_per_gram), 2)


def calculate_quote(items: Iterable[PricingInput], rows: Iterable[PriceRow]) -> Quote:
    """
    Price a set of files.

    Unpriced files are listed in Quote.unpriced and excluded from subtotal
    and total_weight.
    """
    rows = list(rows)
    quote = Quote()
    for item in items:
        price_per_gram = find_price_per_gram(rows, item.material, item.layer_height)
        if price_per_gram is None:
            quote.unpriced.append(item.key)
            continue
        total = calculate_item_price(item.filament_weight, item.quantity, price_per_gram)
        quote.lines.append(QuoteLine(
            key=item.key,
            material=item.material,
            layer_height=float(item.layer_height),
            filament_weight=float(item.filament_weight),
            quantity=int(item.quantity),
            price_per_gram=price_per_gram,
            total_price=total,
        ))
        quote.subtotal += total
        quote.total_weight += float(item.filament_weight) * int(item.quantity)

    quote.subtotal = round(quote.subtotal, 2)
    quote.total_weight = round(quote.total_weight, 3)
    return quote


def rows_from_tables(tables: Iterable[dict]) -> list[PriceRow]:
    """Flatten the /api/catalog/pricing wire shape into PriceRow records."""
    rows = []
    for table in tables:
        material = table.get("filamentType")
        if not material or table.get("isActive") is False:
            continue
        for row in table.get("pricingTable") or []:
            rows.append(PriceRow(
                material=material,
                layer_height=float(row["layerHeight"]),
                price_per_gram=float(row["pricePerGram"]),
            ))
    return rows


# =============================================================================
# PRICE TABLE PERSISTENCE
# =============================================================================

def load_price_rows() -> list[PriceRow]:
    """Rows of every active table whose filament type is active."""
    tables = (
        db.session.query(PricingTable)
        .join(FilamentType, PricingTable.filament_type_id == FilamentType.id)
        .filter(PricingTable.is_active.is_(True), FilamentType.is_active.is_(True))
        .all()
    )
    return [
        PriceRow(material=t.filament_type.name, layer_height=r.layer_height, price_per_gram=r.price_per_gram)
        for t in tables
        for r in t.rows
    ]


def list_pricing_tables(*, include_inactive: bool = False) -> list[PricingTable]:
    query = db.session.query(PricingTable)
    if not include_inactive:
        query = query.filter(PricingTable.is_active.is_(True))
    return query.order_by(PricingTable.id).all()


def _validate_rows(rows) -> list[tuple[float, float]]:
    if not isinstance(rows, list) or not rows:
        raise ValidationError("pricingTable must be a non-empty list")

    cleaned: list[tuple[float, float]] = []
    for idx, row in enumerate(rows):
        if not isinstance(row, dict):
            raise ValidationError(f"pricingTable[{idx}] must be an object")
        try:
            height = float(row.get("layerHeight"))
            price = float(row.get("pricePerGram"))
        except (TypeError, ValueError):
            raise ValidationError(f"pricingTable[{idx}] needs numeric layerHeight and pricePerGram")
        if height < MIN_TABLE_LAYER_HEIGHT or height > MAX_TABLE_LAYER_HEIGHT:
            raise ValidationError(
                f"pricingTable[{idx}].layerHeight must be between {MIN_TABLE_LAYER_HEIGHT} and {MAX_TABLE_LAYER_HEIGHT}"
            )
        if price < 0:
            raise ValidationError(f"pricingTable[{idx}].pricePerGram must be >= 0")
        for existing, _ in cleaned:
            if abs(existing - height) <= LAYER_HEIGHT_TOLERANCE:
                raise ValidationError(f"Duplicate layer height {height} in pricing table")
        cleaned.append((height, price))
    return cleaned


def upsert_pricing_table(
    filament_type_id: int,
    rows,
    *,
    is_active: bool | None = None,
    expected_version: int | None = None,
) -> PricingTable:
    """
    Replace the price rows of a filament type's table, creating it if needed.

    Raises:
        NotFoundError: filament type missing
        ValidationError: bad or duplicate rows
        ConflictError: expected_version is stale
    """
    filament = db.session.get(FilamentType, filament_type_id)
    if not filament:
        raise NotFoundError("Filament type not found")

    cleaned = _validate_rows(rows)

    table = db.session.query(PricingTable).filter_by(filament_type_id=filament_type_id).first()
    if table is None:
        if expected_version is not None:
            raise ConflictError("Pricing table does not exist yet")
        table = PricingTable(filament_type_id=filament_type_id, is_active=True)
        db.session.add(table)
    else:
        check_version(table, expected_version)
        table.rows.clear()
        # Flush deletes first so the (table, layer) unique constraint sees the new rows cleanly
        db.session.flush()

    for height, price in sorted(cleaned):
        table.rows.append(PricingRow(layer_height=height, price_per_gram=price))
    if is_active is not None:
        table.is_active = bool(is_active)
    # Touch the parent row so version_id advances on row-only edits
    table.updated_at = utcnow()

    commit_or_conflict()
    return table
