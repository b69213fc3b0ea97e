from __future__ import annotations

from ..extensions import db
from printshop.time_utils import to_utc_z

DEFAULT_WAREHOUSE_ID = 73633
DEFAULT_ENABLED_COURIERS = ["jne", "jnt", "sicepat"]

SUPPORTED_COURIERS = {
    "jne": "JNE",
    "jnt": "J&T Express",
    "sicepat": "SiCepat",
    "ide": "ID Express",
    "sap": "SAP Express",
    "ninja": "Ninja Xpress",
    "tiki": "TIKI",
    "lion": "Lion Parcel",
    "anteraja": "AnterAja",
    "pos": "POS Indonesia",
    "ncs": "NCS",
    "rex": "REX",
    "rpx": "RPX",
    "sentral": "Sentral Cargo",
    "star": "Star Cargo",
    "wahana": "Wahana",
    "dse": "DSE",
}


class CourierSettings(db.Model):
    """
    Store-wide shipping settings (single row).

    warehouse_id is the RajaOngkir origin for every rate lookup.
    """
    __tablename__ = "courier_settings"

    id = db.Column(db.Integer, primary_key=True)
    warehouse_id = db.Column(db.Integer, nullable=False, default=DEFAULT_WAREHOUSE_ID)
    warehouse_name = db.Column(db.String(120), nullable=True)
    warehouse_address = db.Column(db.Text, nullable=True)
    enabled_couriers = db.Column(db.JSON, nullable=False, default=lambda: list(DEFAULT_ENABLED_COURIERS))
    free_shipping_threshold = db.Column(db.Float, nullable=True)
    default_courier = db.Column(db.String(16), nullable=True)
    estimated_processing_days = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now()
    )

    def to_dict(self) -> dict:
        return {
            "warehouseId": self.warehouse_id,
            "warehouseName": self.warehouse_name,
            "warehouseAddress": self.warehouse_address,
            "enabledCouriers": [
                {"code": code, "name": SUPPORTED_COURIERS.get(code, code.upper())}
                for code in (self.enabled_couriers or [])
            ],
            "freeShippingThreshold": self.free_shipping_threshold,
            "defaultCourier": self.default_courier,
            "estimatedProcessingDays": self.estimated_processing_days,
            "updatedAt": to_utc_z(self.updated_at),
        }


class ShippingRateCache(db.Model):
    """Cached rate-API answers keyed shipping:{origin}:{destination}:{weight}:{courier}."""
    __tablename__ = "shipping_rate_cache"

    cache_key = db.Column(db.String(120), primary_key=True)
    payload = db.Column(db.JSON, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
