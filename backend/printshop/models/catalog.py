from __future__ import annotations

from ..extensions import db
from printshop.time_utils import to_utc_z

PRINTING_OPTION_TYPES = ("infill", "wallCount")


class FilamentType(db.Model):
    """
    A printable material (PLA, PETG, ...) and the colors it is stocked in.

    The name is the material key used by the pricing table and sent to the
    slicer as filament_type.
    """
    __tablename__ = "filament_types"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True, index=True)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now()
    )

    colors = db.relationship(
        "FilamentColor",
        backref="filament_type",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="FilamentColor.position",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "isActive": self.is_active,
            "colors": [c.to_dict() for c in self.colors],
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class FilamentColor(db.Model):
    __tablename__ = "filament_colors"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    filament_type_id = db.Column(db.Integer, db.ForeignKey("filament_types.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    name = db.Column(db.String(64), nullable=False)
    hex_code = db.Column(db.String(7), nullable=False)

    def to_dict(self) -> dict:
        return {"name": self.name, "hexCode": self.hex_code}


class PrintingOption(db.Model):
    """Selectable values for one print parameter (infill or wallCount)."""
    __tablename__ = "printing_options"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    option_type = db.Column(db.String(16), nullable=False, unique=True)
    title = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    max_value = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    values = db.relationship(
        "PrintingOptionValue",
        backref="option",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="PrintingOptionValue.position",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.option_type,
            "title": self.title,
            "description": self.description,
            "maxValue": self.max_value,
            "isActive": self.is_active,
            "values": [v.to_dict() for v in self.values],
        }


class PrintingOptionValue(db.Model):
    __tablename__ = "printing_option_values"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    option_id = db.Column(db.Integer, db.ForeignKey("printing_options.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    label = db.Column(db.String(64), nullable=False)
    value = db.Column(db.String(32), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {"label": self.label, "value": self.value, "isActive": self.is_active}


class PricingTable(db.Model):
    """
    Per-gram prices for one filament type, one row per layer height.

    Exactly one table per filament type. Editing a table never touches
    orders already placed: orders keep their own pricePerGram snapshot.
    """
    __tablename__ = "pricing_tables"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    filament_type_id = db.Column(
        db.Integer, db.ForeignKey("filament_types.id"), nullable=False, unique=True, index=True
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now()
    )

    filament_type = db.relationship("FilamentType", backref=db.backref("pricing_table", uselist=False))
    rows = db.relationship(
        "PricingRow",
        backref="table",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="PricingRow.layer_height",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "filamentType": self.filament_type.name if self.filament_type else None,
            "filamentTypeId": self.filament_type_id,
            "isActive": self.is_active,
            "pricingTable": [r.to_dict() for r in self.rows],
            "version": self.version_id,
            "updatedAt": to_utc_z(self.updated_at),
        }


class PricingRow(db.Model):
    __tablename__ = "pricing_rows"
    __table_args__ = (
        db.UniqueConstraint("table_id", "layer_height", name="uq_pricing_rows_table_layer"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    table_id = db.Column(db.Integer, db.ForeignKey("pricing_tables.id"), nullable=False, index=True)
    layer_height = db.Column(db.Float, nullable=False)
    price_per_gram = db.Column(db.Float, nullable=False)

    def to_dict(self) -> dict:
        return {"layerHeight": self.layer_height, "pricePerGram": self.price_per_gram}
