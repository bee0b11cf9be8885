from __future__ import annotations

from ..extensions import db
from goldledger.money_utils import round_money, round_weight
from goldledger.time_utils import to_utc_z, utcnow

TRADE_TYPES = ("buy", "sell")
TRADE_PAYMENT_METHODS = ("cash", "momo", "bank_transfer", "advance_deduction")
PAYMENT_STATUSES = ("pending", "partial", "completed")


class GoldTransaction(db.Model):
    """
    One buy or sell event: an append-only ledger entry.

    PRICING (all derived at creation, never edited):
    - spot_price_per_gram = spot_price_per_oz / 31.1035
    - buy:  buying_price_per_gram = spot_per_gram * (1 - discount/100)
    - sell: buying_price_per_gram = spot_per_gram * (1 + discount/100)
    - total_amount = weight_grams * buying_price_per_gram * purity_percentage

    ADVANCE LINK:
    A buy may settle part of one advance. advance_deducted is the amount
    actually applied (never more than the advance's remaining balance).

    receipt_number is unique: {BUY|SELL}-{base36 ms timestamp} unless the
    caller supplies one.
    """
    __tablename__ = "gold_transactions"
    __table_args__ = (
        db.Index("ix_goldtx_type_occurred", "type", "occurred_at"),
        db.Index("ix_goldtx_supplier_occurred", "supplier_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    type = db.Column(db.String(8), nullable=False)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False)
    supplier_name = db.Column(db.String(255), nullable=False)

    gold_type = db.Column(db.String(64), nullable=False, default="raw")
    purity = db.Column(db.String(32), nullable=False, default="24K")
    purity_percentage = db.Column(db.Float, nullable=False, default=0.999)
    specific_gravity = db.Column(db.Float, nullable=True)
    weight_grams = db.Column(db.Float, nullable=False)

    spot_price_per_oz = db.Column(db.Float, nullable=False)
    spot_price_per_gram = db.Column(db.Float, nullable=False)
    discount_percentage = db.Column(db.Float, nullable=False, default=0.0)
    buying_price_per_gram = db.Column(db.Float, nullable=False)
    total_amount = db.Column(db.Float, nullable=False)
    currency = db.Column(db.String(8), nullable=False, default="USD")

    payment_method = db.Column(db.String(32), nullable=False, default="cash")
    payment_status = db.Column(db.String(16), nullable=False, default="completed", index=True)
    amount_paid = db.Column(db.Float, nullable=False, default=0.0)
    advance_deducted = db.Column(db.Float, nullable=True)
    advance_id = db.Column(db.Integer, db.ForeignKey("advances.id"), nullable=True, index=True)

    location = db.Column(db.String(32), nullable=False, default="in_safe", index=True)
    # Public batch code created, augmented or depleted by this trade
    batch_id = db.Column(db.String(64), nullable=True, index=True)

    receipt_number = db.Column(db.String(64), nullable=False, unique=True)
    receipt_sent = db.Column(db.Boolean, nullable=False, default=False)
    receipt_sent_to = db.Column(db.String(255), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(128), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    supplier = db.relationship("Supplier", backref=db.backref("transactions", lazy=True))

    @property
    def profit_margin(self) -> float:
        if self.type == "sell":
            return self.total_amount * (self.discount_percentage / 100)
        return 0.0

    def __repr__(self) -> str:
        return (
            f"<GoldTransaction id={self.id} {self.type} receipt={self.receipt_number!r} "
            f"weight={self.weight_grams} total={self.total_amount}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier_name,
            "gold_type": self.gold_type,
            "purity": self.purity,
            "purity_percentage": self.purity_percentage,
            "specific_gravity": self.specific_gravity,
            "weight_grams": round_weight(self.weight_grams),
            "spot_price_per_oz": round_money(self.spot_price_per_oz),
            "spot_price_per_gram": round_money(self.spot_price_per_gram),
            "discount_percentage": self.discount_percentage,
            "buying_price_per_gram": round_money(self.buying_price_per_gram),
            "total_amount": round_money(self.total_amount),
            "currency": self.currency,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "amount_paid": round_money(self.amount_paid),
            "advance_deducted": round_money(self.advance_deducted),
            "advance_id": self.advance_id,
            "location": self.location,
            "batch_id": self.batch_id,
            "receipt_number": self.receipt_number,
            "receipt_sent": self.receipt_sent,
            "receipt_sent_to": self.receipt_sent_to,
            "profit_margin": round_money(self.profit_margin),
            "notes": self.notes,
            "created_by": self.created_by,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
        }
