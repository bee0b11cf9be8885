from __future__ import annotations

from ..extensions import db
from goldledger.time_utils import to_utc_z

DEFAULT_UNITS = ("grams", "ounces", "kilograms")
PRICE_API_SOURCES = ("metals_api", "goldprice_org", "manual")

DEFAULT_PURITY_PRESETS = [
    {"name": "24K", "percentage": 0.999},
    {"name": "22K", "percentage": 0.916},
    {"name": "18K", "percentage": 0.75},
    {"name": "14K", "percentage": 0.585},
    {"name": "Raw", "percentage": 0.85},
]

DEFAULT_LOCATION_PRESETS = ["in_safe", "at_refinery", "in_transit", "exported"]


class BusinessSettings(db.Model):
    """
    Single-row business profile and trading defaults.

    Accessed only through settings_service.get_settings(), which creates the
    row with defaults on first use.
    """
    __tablename__ = "business_settings"

    id = db.Column(db.Integer, primary_key=True)

    business_name = db.Column(db.String(255), nullable=False, default="GoldTrader Pro")
    business_phone = db.Column(db.String(64), nullable=True)
    business_email = db.Column(db.String(255), nullable=True)
    business_address = db.Column(db.Text, nullable=True)

    default_currency = db.Column(db.String(8), nullable=False, default="USD")
    default_unit = db.Column(db.String(16), nullable=False, default="grams")
    default_margin_percentage = db.Column(db.Float, nullable=False, default=5.0)

    commodity_type = db.Column(db.String(16), nullable=False, default="gold")

    price_api_source = db.Column(db.String(32), nullable=False, default="manual")
    manual_spot_price = db.Column(db.Float, nullable=True)
    last_price_update = db.Column(db.DateTime(timezone=True), nullable=True)
    price_refresh_interval_minutes = db.Column(db.Integer, nullable=False, default=15)

    purity_presets = db.Column(db.JSON, nullable=False, default=lambda: [dict(p) for p in DEFAULT_PURITY_PRESETS])
    location_presets = db.Column(db.JSON, nullable=False, default=lambda: list(DEFAULT_LOCATION_PRESETS))

    last_modified_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "business_name": self.business_name,
            "business_phone": self.business_phone,
            "business_email": self.business_email,
            "business_address": self.business_address,
            "default_currency": self.default_currency,
            "default_unit": self.default_unit,
            "default_margin_percentage": self.default_margin_percentage,
            "commodity_type": self.commodity_type,
            "price_api_source": self.price_api_source,
            "manual_spot_price": self.manual_spot_price,
            "last_price_update": to_utc_z(self.last_price_update),
            "price_refresh_interval_minutes": self.price_refresh_interval_minutes,
            "purity_presets": self.purity_presets,
            "location_presets": self.location_presets,
            "last_modified_by": self.last_modified_by,
            "updated_at": to_utc_z(self.updated_at),
        }
