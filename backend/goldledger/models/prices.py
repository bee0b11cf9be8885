from __future__ import annotations

from ..extensions import db
from goldledger.time_utils import to_utc_z, utcnow

COMMODITIES = ("gold", "oil", "gas")
PRICE_SOURCES = (
    "metals_api",
    "goldprice_org",
    "goldapi",
    "freecurrencyapi",
    "exchangerate_host",
    "cached",
    "fallback",
    "manual",
    "lbma",
)


class PriceObservation(db.Model):
    """
    Append-only spot price time series.

    Ordering is (timestamp, id): the autoincrement id is the tie-break for
    observations recorded at the same instant.
    """
    __tablename__ = "price_history"
    __table_args__ = (
        db.Index("ix_price_history_commodity_ts", "commodity", "timestamp", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    commodity = db.Column(db.String(16), nullable=False, default="gold")
    price_per_oz = db.Column(db.Float, nullable=False)
    price_per_gram = db.Column(db.Float, nullable=False)
    currency = db.Column(db.String(8), nullable=False, default="USD")
    source = db.Column(db.String(32), nullable=False)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<PriceObservation {self.commodity} {self.price_per_oz}/oz @ {self.timestamp}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "commodity": self.commodity,
            "price_per_oz": self.price_per_oz,
            "price_per_gram": round(self.price_per_gram, 4),
            "currency": self.currency,
            "source": self.source,
            "is_live": self.source not in ("manual", "cached", "fallback"),
            "timestamp": to_utc_z(self.timestamp),
        }
