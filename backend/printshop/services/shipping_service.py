# Overview: Service-layer operations for shipping rates, destinations and courier settings.

"""
Shipping Rate Resolver (RajaOngkir / Komerce)

WHY: Checkout needs a delivery price before payment. Rates come from the
RajaOngkir domestic-cost API, keyed by origin warehouse, destination id,
weight and courier.

RULES:
- Shipments lighter than MIN_SHIPPING_WEIGHT_GRAMS are billed at the floor.
- Below HEAVY_CARGO_THRESHOLD_GRAMS, truck/cargo services are dropped;
  they only make sense for bulky loads and quote misleadingly low per kg.
- Answers are cached for SHIPPING_CACHE_TTL_HOURS in shipping_rate_cache.
- An address without a resolved destination id cannot be quoted.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import timedelta
from typing import Optional

import httpx
from flask import current_app

from ..extensions import db
from ..models import CourierSettings, ShippingRateCache, SUPPORTED_COURIERS
from ..models.shipping import DEFAULT_ENABLED_COURIERS
from ..validation import ValidationError
from . import http_client
from printshop.time_utils import utcnow


# =============================================================================
# CONSTANTS
# =============================================================================

MIN_SHIPPING_WEIGHT_GRAMS = 300
HEAVY_CARGO_THRESHOLD_GRAMS = 10_000
HEAVY_CARGO_KEYWORDS = ("TRUCK", "CARGO", "KARGO", "JTR", "GOKIL")
DEFAULT_SEARCH_LIMIT = 10


class ShippingError(ValueError):
    """Raised when a rate cannot be quoted; status_code hints the HTTP mapping."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class ShippingService:
    name: str
    code: str
    service: str
    description: str
    cost: float
    etd: str

    def to_dict(self) -> dict:
        return asdict(self)


# =============================================================================
# PURE RULES
# =============================================================================

def billable_weight(weight_grams: float) -> int:
    """Weight the courier charges for: at least MIN_SHIPPING_WEIGHT_GRAMS, whole grams."""
    try:
        grams = float(weight_grams)
    except (TypeError, ValueError):
        raise ValidationError("weight must be a number")
    if grams <= 0:
        raise ValidationError("weight must be greater than 0")
    return max(MIN_SHIPPING_WEIGHT_GRAMS, int(round(grams)))


def is_heavy_cargo(service: ShippingService) -> bool:
    haystack = f"{service.service} {service.description}".upper()
    return any(keyword in haystack for keyword in HEAVY_CARGO_KEYWORDS)


def filter_services(services: list[ShippingService], weight_grams: float) -> list[ShippingService]:
    """Drop heavy-cargo services for parcels under the threshold; order is kept."""
    if weight_grams >= HEAVY_CARGO_THRESHOLD_GRAMS:
        return list(services)
    return [s for s in services if not is_heavy_cargo(s)]


def parse_cost_response(payload: dict) -> list[ShippingService]:
    """Map the domestic-cost `data` list into ShippingService records."""
    rows = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(rows, list):
        return []
    services = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        try:
            cost = float(row.get("cost") or 0)
        except (TypeError, ValueError):
            continue
        services.append(ShippingService(
            name=str(row.get("name") or ""),
            code=str(row.get("code") or ""),
            service=str(row.get("service") or ""),
            description=str(row.get("description") or ""),
            cost=cost,
            etd=str(row.get("etd") or ""),
        ))
    return services


def _norm(value: Optional[str]) -> str:
    return (value or "").strip().casefold()


def find_best_match(
    results: list[dict],
    *,
    village: Optional[str] = None,
    district: Optional[str] = None,
    city: Optional[str] = None,
    province: Optional[str] = None,
) -> Optional[dict]:
    """
    Pick the destination that best matches an address's region names.

    Tries, in order: village+district+city+province, district+city+province,
    city+province, then falls back to the first result.
    """
    if not results:
        return None

    def matches(row: dict, *pairs) -> bool:
        return all(expected and _norm(row.get(field)) == _norm(expected) for field, expected in pairs)

    levels = (
        (("subdistrict_name", village), ("district_name", district), ("city_name", city), ("province_name", province)),
        (("district_name", district), ("city_name", city), ("province_name", province)),
        (("city_name", city), ("province_name", province)),
    )
    for pairs in levels:
        for row in results:
            if matches(row, *pairs):
                return row
    return results[0]


# =============================================================================
# COURIER SETTINGS
# =============================================================================

def get_courier_settings() -> CourierSettings:
    """Return the singleton settings row, creating it with defaults."""
    settings = db.session.query(CourierSettings).order_by(CourierSettings.id).first()
    if settings is None:
        settings = CourierSettings(
            warehouse_id=current_app.config.get("RAJAONGKIR_ORIGIN_ID", 73633),
            enabled_couriers=list(DEFAULT_ENABLED_COURIERS),
            estimated_processing_days=1,
        )
        db.session.add(settings)
        db.session.commit()
    return settings


def update_courier_settings(data: dict) -> CourierSettings:
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    settings = get_courier_settings()

    if "warehouseId" in data:
        try:
            settings.warehouse_id = int(data["warehouseId"])
        except (TypeError, ValueError):
            raise ValidationError("warehouseId must be an integer")
    if "warehouseName" in data:
        settings.warehouse_name = (data["warehouseName"] or "").strip() or None
    if "warehouseAddress" in data:
        settings.warehouse_address = (data["warehouseAddress"] or "").strip() or None
    if "enabledCouriers" in data:
        couriers = data["enabledCouriers"]
        if not isinstance(couriers, list) or not couriers:
            raise ValidationError("enabledCouriers must be a non-empty list")
        unknown = [c for c in couriers if c not in SUPPORTED_COURIERS]
        if unknown:
            raise ValidationError(f"Unsupported couriers: {', '.join(map(str, unknown))}")
        settings.enabled_couriers = list(dict.fromkeys(couriers))
    if "freeShippingThreshold" in data:
        value = data["freeShippingThreshold"]
        if value is not None and (not isinstance(value, (int, float)) or value < 0):
            raise ValidationError("freeShippingThreshold must be a non-negative number")
        settings.free_shipping_threshold = value
    if "defaultCourier" in data:
        value = data["defaultCourier"] or None
        if value is not None and value not in SUPPORTED_COURIERS:
            raise ValidationError(f"Unsupported courier: {value}")
        settings.default_courier = value
    if "estimatedProcessingDays" in data:
        value = data["estimatedProcessingDays"]
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ValidationError("estimatedProcessingDays must be a non-negative integer")
        settings.estimated_processing_days = value

    db.session.commit()
    return settings


# =============================================================================
# RATE API
# =============================================================================

def _api_client() -> httpx.Client:
    api_key = current_app.config.get("RAJAONGKIR_API_KEY") or ""
    if not api_key:
        raise ShippingError("Shipping rate API is not configured", status_code=503)
    return http_client.build_client(
        current_app.config["RAJAONGKIR_BASE_URL"].rstrip("/"),
        headers={"key": api_key, "Accept": "application/json"},
    )


def cache_key(origin: int, destination: int, weight: int, courier: str) -> str:
    return f"shipping:{origin}:{destination}:{weight}:{courier}"


def _read_cache(key: str) -> Optional[list[dict]]:
    entry = db.session.get(ShippingRateCache, key)
    if entry is None:
        return None
    if entry.expires_at <= utcnow():
        db.session.delete(entry)
        db.session.commit()
        return None
    return entry.payload


def _write_cache(key: str, services: list[ShippingService]) -> None:
    ttl = timedelta(hours=int(current_app.config.get("SHIPPING_CACHE_TTL_HOURS", 24)))
    now = utcnow()
    entry = db.session.get(ShippingRateCache, key)
    if entry is None:
        entry = ShippingRateCache(cache_key=key)
        db.session.add(entry)
    entry.payload = [s.to_dict() for s in services]
    entry.created_at = now
    entry.expires_at = now + ttl
    db.session.commit()


def fetch_rates(origin: int, destination: int, weight: int, courier: str) -> list[ShippingService]:
    """Raw domestic-cost call (weight already billable). Raises ShippingError on failure."""
    try:
        with _api_client() as client:
            response = client.post(
                "/calculate/domestic-cost",
                data={
                    "origin": str(origin),
                    "destination": str(destination),
                    "weight": str(weight),
                    "courier": courier,
                },
            )
    except httpx.HTTPError as exc:
        raise ShippingError(f"Shipping rate API unreachable: {exc}", status_code=502)

    if response.status_code >= 400:
        raise ShippingError(
            f"Shipping rate API returned status {response.status_code}",
            status_code=502,
        )
    try:
        payload = response.json()
    except ValueError:
        raise ShippingError("Shipping rate API returned invalid JSON", status_code=502)
    return parse_cost_response(payload)


def calculate_shipping_cost(
    destination_id,
    weight_grams: float,
    courier: str,
    *,
    use_cache: bool = True,
) -> dict:
    """
    Quote shipping services for a parcel.

    Returns:
        {"origin", "destination", "weight", "billableWeight", "courier",
         "services": [...], "cached"}

    Raises:
        ShippingError: no destination id (400), courier disabled (400),
            upstream failure (502)
    """
    if destination_id in (None, ""):
        raise ShippingError("Address has no shipping destination; update the address first")
    try:
        destination = int(destination_id)
    except (TypeError, ValueError):
        raise ShippingError("destinationId must be an integer")

    courier = (courier or "").strip().lower()
    settings = get_courier_settings()
    if courier not in (settings.enabled_couriers or []):
        raise ShippingError(f"Courier '{courier}' is not available")

    weight = billable_weight(weight_grams)
    origin = settings.warehouse_id
    key = cache_key(origin, destination, weight, courier)

    cached = _read_cache(key) if use_cache else None
    if cached is not None:
        services = [ShippingService(**row) for row in cached]
        from_cache = True
    else:
        services = fetch_rates(origin, destination, weight, courier)
        _write_cache(key, services)
        from_cache = False

    offered = filter_services(services, weight)
    return {
        "origin": origin,
        "destination": destination,
        "weight": float(weight_grams),
        "billableWeight": weight,
        "courier": courier,
        "services": [s.to_dict() for s in offered],
        "cached": from_cache,
    }


def search_destinations(search: str, *, limit: int = DEFAULT_SEARCH_LIMIT, offset: int = 0) -> list[dict]:
    """Free-text destination lookup; returns the API's `data` rows unchanged."""
    search = (search or "").strip()
    if len(search) < 3:
        raise ValidationError("search must be at least 3 characters")
    limit = max(1, min(int(limit), 100))
    offset = max(0, int(offset))

    try:
        with _api_client() as client:
            response = client.get(
                "/destination/domestic-destination",
                params={"search": search, "limit": limit, "offset": offset},
            )
    except httpx.HTTPError as exc:
        raise ShippingError(f"Destination search unreachable: {exc}", status_code=502)

    if response.status_code == 404:
        return []
    if response.status_code >= 400:
        raise ShippingError(f"Destination search returned status {response.status_code}", status_code=502)
    try:
        payload = response.json()
    except ValueError:
        raise ShippingError("Destination search returned invalid JSON", status_code=502)
    data = payload.get("data") if isinstance(payload, dict) else None
    return data if isinstance(data, list) else []


def resolve_destination(
    *,
    village: Optional[str],
    district: Optional[str],
    city: Optional[str],
    province: Optional[str],
) -> Optional[dict]:
    """Search by the most specific region name available and pick the best match."""
    term = village or district or city
    if not term:
        return None
    results = search_destinations(term, limit=DEFAULT_SEARCH_LIMIT)
    if not results and village and district:
        results = search_destinations(district, limit=DEFAULT_SEARCH_LIMIT)
    return find_best_match(results, village=village, district=district, city=city, province=province)


def purge_expired_cache() -> int:
    deleted = db.session.query(ShippingRateCache).filter(
        ShippingRateCache.expires_at <= utcnow()
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted
