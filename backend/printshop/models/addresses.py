from __future__ import annotations

from ..extensions import db
from printshop.time_utils import to_utc_z


class Address(db.Model):
    """
    Saved shipping address with Indonesian administrative region codes.

    rajaongkir_* columns hold the rate-API destination resolved for this
    address; an address without rajaongkir_destination_id cannot be quoted.
    """
    __tablename__ = "addresses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    recipient_name = db.Column(db.String(120), nullable=False)
    phone_number = db.Column(db.String(32), nullable=False)
    address_line1 = db.Column(db.String(255), nullable=False)
    address_line2 = db.Column(db.String(255), nullable=True)

    province_code = db.Column(db.String(16), nullable=False)
    regency_code = db.Column(db.String(16), nullable=False)
    district_code = db.Column(db.String(16), nullable=False)
    village_code = db.Column(db.String(16), nullable=True)
    province_name = db.Column(db.String(120), nullable=True)
    regency_name = db.Column(db.String(120), nullable=True)
    district_name = db.Column(db.String(120), nullable=True)
    village_name = db.Column(db.String(120), nullable=True)
    postal_code = db.Column(db.String(5), nullable=False)

    is_default = db.Column(db.Boolean, nullable=False, default=False)

    rajaongkir_destination_id = db.Column(db.Integer, nullable=True)
    rajaongkir_location_label = db.Column(db.String(255), nullable=True)
    rajaongkir_zip_code = db.Column(db.String(10), nullable=True)
    rajaongkir_last_verified = db.Column(db.DateTime(timezone=True), nullable=True)
    rajaongkir_province_name = db.Column(db.String(120), nullable=True)
    rajaongkir_city_name = db.Column(db.String(120), nullable=True)
    rajaongkir_district_name = db.Column(db.String(120), nullable=True)
    rajaongkir_subdistrict_name = db.Column(db.String(120), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now()
    )

    user = db.relationship("User", backref=db.backref("addresses", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user": self.user_id,
            "recipientName": self.recipient_name,
            "phoneNumber": self.phone_number,
            "addressLine1": self.address_line1,
            "addressLine2": self.address_line2,
            "provinceCode": self.province_code,
            "regencyCode": self.regency_code,
            "districtCode": self.district_code,
            "villageCode": self.village_code,
            "provinceName": self.province_name,
            "regencyName": self.regency_name,
            "districtName": self.district_name,
            "villageName": self.village_name,
            "postalCode": self.postal_code,
            "isDefault": self.is_default,
            "rajaOngkir": {
                "destinationId": self.rajaongkir_destination_id,
                "locationLabel": self.rajaongkir_location_label,
                "zipCode": self.rajaongkir_zip_code,
                "lastVerified": to_utc_z(self.rajaongkir_last_verified),
                "provinceName": self.rajaongkir_province_name,
                "cityName": self.rajaongkir_city_name,
                "districtName": self.rajaongkir_district_name,
                "subdistrictName": self.rajaongkir_subdistrict_name,
            },
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
