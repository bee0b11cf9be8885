# Overview: Service-layer operations for vault inventory batches.

from __future__ import annotations

from ..extensions import db
from ..models import InventoryBatch, InventoryMovement
from ..models.inventory import EXTERNAL_LOCATION, LOCATIONS
from ..money_utils import MONEY_EPSILON, round_money, round_weight
from ..validation import (
    NoOpMoveError,
    NotFoundError,
    ValidationError,
    require_choice,
    require_non_negative,
    require_positive,
    require_purity,
    require_text,
)
from .concurrency import lock_for_update, run_with_retry
from .document_service import batch_id_taken, next_batch_id
from .ledger_service import append_ledger_event
from .price_service import find_latest_price
"""
Vault Inventory Invariants

Batch model:
- Each batch is a discrete quantity of gold with its own weighted average
  cost per gram (avg_cost_per_gram).
- total_cost = weight_grams * avg_cost_per_gram, recomputed on every flush.
- weight_grams never goes negative.

Costing:
- Augmenting a batch blends costs by weight:
    avg = (w0 * a0 + w * a) / (w0 + w)
- Depleting a batch removes weight at the current average; avg is unchanged.

Location:
- location is one of in_safe, at_refinery, in_transit, exported.
- Every move appends a movement row {from, to, weight, date, notes, moved_by}.
- A move to the batch's current location is rejected.

Audit:
- Each mutation appends a LedgerEvent in the same DB transaction.
"""


def get_batch(batch_id: str, *, lock: bool = False) -> InventoryBatch:
    query = db.session.query(InventoryBatch).filter_by(batch_id=batch_id)
    if lock:
        query = lock_for_update(query)
    batch = query.first()
    if batch is None:
        raise NotFoundError("Inventory batch not found", details={"batch_id": batch_id})
    return batch


def _create_batch_inner(
    *,
    purity: str,
    purity_percentage: float,
    weight_grams: float,
    avg_cost_per_gram: float,
    location: str = "in_safe",
    gold_type: str = "raw",
    batch_id: str | None = None,
    source_transaction_id: int | None = None,
    supplier_id: int | None = None,
    notes: str | None = None,
) -> InventoryBatch:
    """Core batch creation without retry or commit."""
    require_choice(location, LOCATIONS, "location")
    purity = require_text(purity, "purity")
    purity_percentage = require_purity(purity_percentage)
    weight_grams = require_positive(weight_grams, "weight_grams")
    avg_cost_per_gram = require_non_negative(avg_cost_per_gram, "avg_cost_per_gram")

    if batch_id:
        if batch_id_taken(batch_id):
            raise ValidationError("batch_id already exists", details={"batch_id": batch_id})
    else:
        batch_id = next_batch_id()

    batch = InventoryBatch(
        batch_id=batch_id,
        gold_type=gold_type or "raw",
        purity=purity,
        purity_percentage=purity_percentage,
        weight_grams=weight_grams,
        location=location,
        avg_cost_per_gram=avg_cost_per_gram,
        source_transaction_id=source_transaction_id,
        supplier_id=supplier_id,
        notes=notes,
    )
    batch.recompute_total_cost()
    db.session.add(batch)
    db.session.flush()
    return batch


def create_batch(
    *,
    purity: str,
    purity_percentage: float,
    weight_grams: float,
    avg_cost_per_gram: float,
    location: str = "in_safe",
    gold_type: str = "raw",
    batch_id: str | None = None,
    source_transaction_id: int | None = None,
    supplier_id: int | None = None,
    notes: str | None = None,
    actor: str | None = None,
) -> InventoryBatch:
    def _op():
        batch = _create_batch_inner(
            purity=purity,
            purity_percentage=purity_percentage,
            weight_grams=weight_grams,
            avg_cost_per_gram=avg_cost_per_gram,
            location=location,
            gold_type=gold_type,
            batch_id=batch_id,
            source_transaction_id=source_transaction_id,
            supplier_id=supplier_id,
            notes=notes,
        )
        append_ledger_event(
            event_type="inventory.batch_created",
            event_category="inventory",
            entity_type="inventory_batch",
            entity_id=batch.id,
            supplier_id=supplier_id,
            actor=actor,
            note=batch.batch_id,
            payload={"weight_grams": batch.weight_grams, "location": batch.location},
        )
        db.session.commit()
        return batch

    return run_with_retry(_op)


def add_stock(
    *,
    purity: str,
    purity_percentage: float,
    weight_grams: float,
    avg_cost_per_gram: float,
    location: str = "in_safe",
    gold_type: str = "raw",
    notes: str | None = None,
    moved_by: str | None = None,
) -> InventoryBatch:
    """
    Manual stock entry (stock not sourced from a recorded buy).

    The batch's first movement is recorded from 'external' so its custody
    history starts at entry.
    """
    def _op():
        batch = _create_batch_inner(
            purity=purity,
            purity_percentage=purity_percentage,
            weight_grams=weight_grams,
            avg_cost_per_gram=avg_cost_per_gram,
            location=location,
            gold_type=gold_type,
            notes=notes,
        )
        db.session.add(InventoryMovement(
            batch_pk=batch.id,
            from_location=EXTERNAL_LOCATION,
            to_location=batch.location,
            weight_grams=batch.weight_grams,
            notes="Manual Stock Entry",
            moved_by=moved_by,
        ))
        db.session.flush()
        append_ledger_event(
            event_type="inventory.stock_added",
            event_category="inventory",
            entity_type="inventory_batch",
            entity_id=batch.id,
            actor=moved_by,
            note=batch.batch_id,
            payload={"weight_grams": batch.weight_grams, "location": batch.location},
        )
        db.session.commit()
        db.session.refresh(batch)
        return batch

    return run_with_retry(_op)


def _augment_batch_inner(batch: InventoryBatch, weight_grams: float, cost_per_gram: float) -> InventoryBatch:
    weight_grams = require_positive(weight_grams, "weight_grams")
    cost_per_gram = require_non_negative(cost_per_gram, "cost_per_gram")

    prior_weight = batch.weight_grams or 0.0
    new_weight = prior_weight + weight_grams
    batch.avg_cost_per_gram = (
        prior_weight * (batch.avg_cost_per_gram or 0.0) + weight_grams * cost_per_gram
    ) / new_weight
    batch.weight_grams = new_weight
    batch.recompute_total_cost()
    db.session.flush()
    return batch


def augment_batch(
    batch_id: str,
    *,
    weight_grams: float,
    cost_per_gram: float,
    actor: str | None = None,
) -> InventoryBatch:
    """Add weight to an existing batch, blending its average cost by weight."""
    def _op():
        batch = get_batch(batch_id, lock=True)
        _augment_batch_inner(batch, weight_grams, cost_per_gram)
        append_ledger_event(
            event_type="inventory.batch_augmented",
            event_category="inventory",
            entity_type="inventory_batch",
            entity_id=batch.id,
            supplier_id=batch.supplier_id,
            actor=actor,
            note=batch.batch_id,
            payload={"weight_grams": weight_grams, "cost_per_gram": cost_per_gram},
        )
        db.session.commit()
        return batch

    return run_with_retry(_op)


def _deplete_batch_inner(batch: InventoryBatch, weight_grams: float) -> InventoryBatch:
    weight_grams = require_positive(weight_grams, "weight_grams")
    available = batch.weight_grams or 0.0
    if weight_grams > available + MONEY_EPSILON:
        raise ValidationError(
            "Insufficient weight in batch",
            details={"batch_id": batch.batch_id, "available": available, "requested": weight_grams},
        )
    batch.weight_grams = max(0.0, available - weight_grams)
    batch.recompute_total_cost()
    db.session.flush()
    return batch


def deplete_batch(batch_id: str, *, weight_grams: float, actor: str | None = None) -> InventoryBatch:
    def _op():
        batch = get_batch(batch_id, lock=True)
        _deplete_batch_inner(batch, weight_grams)
        append_ledger_event(
            event_type="inventory.batch_depleted",
            event_category="inventory",
            entity_type="inventory_batch",
            entity_id=batch.id,
            supplier_id=batch.supplier_id,
            actor=actor,
            note=batch.batch_id,
            payload={"weight_grams": weight_grams},
        )
        db.session.commit()
        return batch

    return run_with_retry(_op)


def move_batch(
    batch_id: str,
    *,
    to_location: str,
    moved_by: str | None = None,
    notes: str | None = None,
) -> InventoryBatch:
    """
    Move a batch to a new custody location.

    Raises:
        ValidationError: unknown destination
        NoOpMoveError: destination equals current location
        NotFoundError: unknown batch
    """
    require_choice(to_location, LOCATIONS, "to_location")

    def _op():
        batch = get_batch(batch_id, lock=True)
        from_location = batch.location
        if from_location == to_location:
            raise NoOpMoveError(
                "Batch is already at this location",
                details={"batch_id": batch_id, "location": to_location},
            )

        db.session.add(InventoryMovement(
            batch_pk=batch.id,
            from_location=from_location,
            to_location=to_location,
            weight_grams=batch.weight_grams,
            notes=notes,
            moved_by=moved_by,
        ))
        batch.location = to_location
        db.session.flush()

        append_ledger_event(
            event_type="inventory.moved",
            event_category="inventory",
            entity_type="inventory_batch",
            entity_id=batch.id,
            supplier_id=batch.supplier_id,
            actor=moved_by,
            note=f"{from_location} -> {to_location}",
            payload={"weight_grams": batch.weight_grams},
        )
        db.session.commit()
        db.session.refresh(batch)
        return batch

    return run_with_retry(_op)


def list_batches(*, location: str | None = None, include_empty: bool = False) -> list[InventoryBatch]:
    q = db.session.query(InventoryBatch)
    if location:
        q = q.filter(InventoryBatch.location == require_choice(location, LOCATIONS, "location"))
    if not include_empty:
        q = q.filter(InventoryBatch.weight_grams > 0)
    return q.order_by(InventoryBatch.created_at.desc(), InventoryBatch.id.desc()).all()


def summary_by_location(*, include_market_value: bool = False) -> dict:
    """
    Aggregate non-empty batches per location plus a grand total.

    Every location is present (zeros when empty). With include_market_value
    the total carries weight * latest gold price per gram, or None when no
    price has been recorded.
    """
    summary = {
        loc: {"total_weight": 0.0, "total_cost": 0.0, "batch_count": 0}
        for loc in LOCATIONS
    }
    total = {"total_weight": 0.0, "total_cost": 0.0, "batch_count": 0}

    rows = (
        db.session.query(
            InventoryBatch.location,
            db.func.coalesce(db.func.sum(InventoryBatch.weight_grams), 0.0),
            db.func.coalesce(db.func.sum(InventoryBatch.total_cost), 0.0),
            db.func.count(InventoryBatch.id),
        )
        .filter(InventoryBatch.weight_grams > 0)
        .group_by(InventoryBatch.location)
        .order_by(InventoryBatch.location.asc())
        .all()
    )
    for location, weight, cost, count in rows:
        bucket = summary.setdefault(location, {"total_weight": 0.0, "total_cost": 0.0, "batch_count": 0})
        bucket["total_weight"] = float(weight)
        bucket["total_cost"] = float(cost)
        bucket["batch_count"] = int(count)
        total["total_weight"] += float(weight)
        total["total_cost"] += float(cost)
        total["batch_count"] += int(count)

    for bucket in list(summary.values()) + [total]:
        bucket["total_weight"] = round_weight(bucket["total_weight"])
        bucket["total_cost"] = round_money(bucket["total_cost"])

    if include_market_value:
        latest = find_latest_price("gold")
        total["market_value"] = (
            round_money(total["total_weight"] * latest.price_per_gram) if latest else None
        )

    summary["total"] = total
    return summary
