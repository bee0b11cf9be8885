from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from goldledger.money_utils import round_money, round_weight
from goldledger.time_utils import to_utc_z, utcnow

LOCATIONS = ("in_safe", "at_refinery", "in_transit", "exported")

# Origin recorded on the first movement of manually entered stock
EXTERNAL_LOCATION = "external"


class InventoryBatch(db.Model):
    """
    A discrete, location-tracked quantity of physical gold.

    INVARIANTS:
    - total_cost == weight_grams * avg_cost_per_gram after every flush
      (recomputed by the before_insert/before_update listeners below; never
      assigned by callers).
    - weight_grams >= 0. Empty batches are kept for history and excluded
      from vault summaries.
    - movements are append-only.
    """
    __tablename__ = "inventory_batches"
    __table_args__ = (
        db.Index("ix_batches_location_weight", "location", "weight_grams"),
        db.CheckConstraint("weight_grams >= 0", name="ck_batches_weight_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    batch_id = db.Column(db.String(64), nullable=False, unique=True)

    gold_type = db.Column(db.String(64), nullable=False, default="raw", index=True)
    purity = db.Column(db.String(32), nullable=False, index=True)
    purity_percentage = db.Column(db.Float, nullable=False)

    weight_grams = db.Column(db.Float, nullable=False)
    location = db.Column(db.String(32), nullable=False, default="in_safe")

    avg_cost_per_gram = db.Column(db.Float, nullable=False)
    total_cost = db.Column(db.Float, nullable=False, default=0.0)

    source_transaction_id = db.Column(db.Integer, db.ForeignKey("gold_transactions.id"), nullable=True, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    movements = db.relationship(
        "InventoryMovement",
        back_populates="batch",
        order_by="InventoryMovement.id",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def recompute_total_cost(self) -> None:
        self.total_cost = (self.weight_grams or 0.0) * (self.avg_cost_per_gram or 0.0)

    def __repr__(self) -> str:
        return f"<InventoryBatch {self.batch_id} {self.weight_grams}g @ {self.location}>"

    def to_dict(self, include_movements: bool = True) -> dict:
        data = {
            "id": self.id,
            "batch_id": self.batch_id,
            "gold_type": self.gold_type,
            "purity": self.purity,
            "purity_percentage": self.purity_percentage,
            "weight_grams": round_weight(self.weight_grams),
            "location": self.location,
            "avg_cost_per_gram": round_money(self.avg_cost_per_gram),
            "total_cost": round_money(self.total_cost),
            "source_transaction_id": self.source_transaction_id,
            "supplier_id": self.supplier_id,
            "notes": self.notes,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_movements:
            data["movement_history"] = [m.to_dict() for m in self.movements]
        return data


@event.listens_for(InventoryBatch, "before_insert")
@event.listens_for(InventoryBatch, "before_update")
def _batch_total_cost(mapper, connection, target: InventoryBatch) -> None:
    target.recompute_total_cost()


class InventoryMovement(db.Model):
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_inv_movements_batch", "batch_pk", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    batch_pk = db.Column(db.Integer, db.ForeignKey("inventory_batches.id"), nullable=False)

    from_location = db.Column(db.String(32), nullable=False)
    to_location = db.Column(db.String(32), nullable=False)
    weight_grams = db.Column(db.Float, nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    notes = db.Column(db.String(255), nullable=True)
    moved_by = db.Column(db.String(128), nullable=True)

    batch = db.relationship("InventoryBatch", back_populates="movements")

    def to_dict(self) -> dict:
        return {
            "from_location": self.from_location,
            "to_location": self.to_location,
            "weight_grams": round_weight(self.weight_grams),
            "date": to_utc_z(self.date),
            "notes": self.notes,
            "moved_by": self.moved_by,
        }
