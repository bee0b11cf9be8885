from __future__ import annotations

from ..extensions import db
from goldledger.money_utils import MONEY_EPSILON, round_money, round_weight
from goldledger.time_utils import to_utc_z, utcnow

ADVANCE_STATUSES = ("pending", "partial", "settled")
ADVANCE_PAYMENT_METHODS = ("cash", "momo", "bank_transfer")


def derive_advance_status(remaining_balance: float, amount: float) -> str:
    """
    Status is a pure function of remaining balance vs original amount.

    settled: remaining <= 0
    partial: 0 < remaining < amount
    pending: otherwise
    """
    if remaining_balance <= MONEY_EPSILON:
        return "settled"
    if remaining_balance < amount:
        return "partial"
    return "pending"


class Advance(db.Model):
    """
    Cash paid to a supplier ahead of a gold delivery (receivable in kind).

    INVARIANTS:
    - amount is immutable once created.
    - remaining_balance starts at amount, never increases, never goes below 0.
    - remaining_balance + SUM(settlements.amount) == amount.
    - status is stored for queryability but always recomputed from
      remaining_balance by advance_service; it is never set from input.
    - settled_date is set exactly once, on the transition into 'settled'.
    """
    __tablename__ = "advances"
    __table_args__ = (
        db.Index("ix_advances_supplier_given", "supplier_id", "given_date"),
        db.Index("ix_advances_status_remaining", "status", "remaining_balance"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    # Display snapshot taken at write time; supplier_id stays canonical
    supplier_name = db.Column(db.String(255), nullable=False)

    amount = db.Column(db.Float, nullable=False)
    currency = db.Column(db.String(8), nullable=False, default="USD")
    purpose = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    remaining_balance = db.Column(db.Float, nullable=False)

    payment_method = db.Column(db.String(32), nullable=False, default="cash")
    payment_reference = db.Column(db.String(128), nullable=True)

    given_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    expected_settlement_date = db.Column(db.DateTime(timezone=True), nullable=True)
    settled_date = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    supplier = db.relationship("Supplier", backref=db.backref("advances", lazy=True))
    settlements = db.relationship(
        "AdvanceSettlement",
        back_populates="advance",
        order_by="AdvanceSettlement.id",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def settled_total(self) -> float:
        return sum(s.amount for s in self.settlements)

    def __repr__(self) -> str:
        return (
            f"<Advance id={self.id} supplier_id={self.supplier_id} "
            f"amount={self.amount} remaining={self.remaining_balance} status={self.status}>"
        )

    def to_dict(self, include_settlements: bool = True) -> dict:
        data = {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier_name,
            "amount": round_money(self.amount),
            "currency": self.currency,
            "purpose": self.purpose,
            "status": self.status,
            "remaining_balance": round_money(self.remaining_balance),
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "given_date": to_utc_z(self.given_date),
            "expected_settlement_date": to_utc_z(self.expected_settlement_date),
            "settled_date": to_utc_z(self.settled_date),
            "notes": self.notes,
            "created_by": self.created_by,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_settlements:
            data["settlement_history"] = [s.to_dict() for s in self.settlements]
        return data


class AdvanceSettlement(db.Model):
    """Append-only record of gold value applied against an advance."""
    __tablename__ = "advance_settlements"
    __table_args__ = (
        db.Index("ix_adv_settlements_advance", "advance_id", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    advance_id = db.Column(db.Integer, db.ForeignKey("advances.id"), nullable=False)
    transaction_id = db.Column(db.Integer, db.ForeignKey("gold_transactions.id"), nullable=False, index=True)

    # Amount actually consumed from remaining_balance (never the raw offered value)
    amount = db.Column(db.Float, nullable=False)
    weight_grams = db.Column(db.Float, nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    notes = db.Column(db.String(255), nullable=True)

    advance = db.relationship("Advance", back_populates="settlements")

    def to_dict(self) -> dict:
        return {
            "transaction_id": self.transaction_id,
            "amount": round_money(self.amount),
            "weight_grams": round_weight(self.weight_grams),
            "date": to_utc_z(self.date),
            "notes": self.notes,
        }
