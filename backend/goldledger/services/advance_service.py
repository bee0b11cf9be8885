# Overview: Service-layer operations for supplier cash advances and their settlement.

from __future__ import annotations

import logging
import math

from flask import current_app

from ..extensions import db
from ..models import Advance, AdvanceSettlement, GoldTransaction, Supplier
from ..models.advances import ADVANCE_PAYMENT_METHODS, ADVANCE_STATUSES, derive_advance_status
from ..money_utils import MONEY_EPSILON, round_money
from ..validation import (
    InvalidStateError,
    NotFoundError,
    ValidationError,
    require_choice,
    require_non_negative,
    require_positive,
)
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import append_ledger_event
from .supplier_service import (
    _record_advance_issued_inner,
    _record_advance_settled_inner,
    get_supplier,
)
from goldledger.time_utils import coerce_datetime, utcnow
"""
Advance Lifecycle

    pending --(partial settlement)--> partial --(settled to zero)--> settled
    pending --(full settlement in one step)--> settled

- remaining_balance starts at amount and only decreases, floored at 0.
- A settlement consumes min(gold_value, remaining_balance). The excess of
  an over-settlement is logged and dropped; no payable is created.
- The settlement row stores the consumed amount, so
  remaining_balance + SUM(settlements.amount) == amount always holds.
- status is recomputed from remaining_balance on every mutation.
- settled_date is stamped once, on the transition into 'settled'.
- The supplier's outstanding_balance moves by the same consumed amount in
  the same DB transaction.
"""

logger = logging.getLogger(__name__)


def get_advance(advance_id: int, *, lock: bool = False) -> Advance:
    query = db.session.query(Advance).filter_by(id=advance_id)
    if lock:
        query = lock_for_update(query)
    advance = query.first()
    if advance is None:
        raise NotFoundError("Advance not found", details={"advance_id": advance_id})
    return advance


def issue_advance(
    *,
    supplier_id: int,
    amount: float,
    currency: str | None = None,
    purpose: str | None = None,
    payment_method: str = "cash",
    payment_reference: str | None = None,
    expected_settlement_date=None,
    given_date=None,
    notes: str | None = None,
    created_by: str | None = None,
) -> Advance:
    """
    Pay cash to a supplier ahead of delivery.

    The advance row and the supplier's balance increase are one unit of work.

    Raises:
        ValidationError: amount <= 0, unknown payment method, bad dates
        NotFoundError: unknown supplier
    """
    amount = require_positive(amount, "amount")
    require_choice(payment_method, ADVANCE_PAYMENT_METHODS, "payment_method")
    try:
        given_at = coerce_datetime(given_date)
        expected_at = coerce_datetime(expected_settlement_date, default_now=False)
    except ValueError as exc:
        raise ValidationError(str(exc))

    def _op():
        supplier = get_supplier(supplier_id, lock=True)

        advance = Advance(
            supplier_id=supplier.id,
            supplier_name=supplier.name,
            amount=amount,
            currency=currency or current_app.config.get("GOLD_DEFAULT_CURRENCY", "USD"),
            purpose=purpose,
            remaining_balance=amount,
            status=derive_advance_status(amount, amount),
            payment_method=payment_method,
            payment_reference=payment_reference,
            given_date=given_at,
            expected_settlement_date=expected_at,
            notes=notes,
            created_by=created_by,
        )
        db.session.add(advance)
        db.session.flush()

        _record_advance_issued_inner(supplier, amount)

        append_ledger_event(
            event_type="advance.issued",
            event_category="advance",
            entity_type="advance",
            entity_id=advance.id,
            supplier_id=supplier.id,
            actor=created_by,
            occurred_at=given_at,
            note=purpose,
            payload={"amount": amount, "currency": advance.currency, "payment_method": payment_method},
        )

        db.session.commit()
        return advance

    return run_with_retry(_op)


def _settle_with_delivery_inner(
    advance: Advance,
    *,
    transaction_id: int,
    gold_value: float,
    weight_grams: float,
    notes: str | None = None,
    supplier: Supplier | None = None,
    actor: str | None = None,
) -> tuple[AdvanceSettlement, float]:
    """
    Apply delivered gold value against a locked advance. Flushes, never commits.

    Returns (settlement_row, applied_amount).
    """
    gold_value = require_positive(gold_value, "gold_value")
    weight_grams = require_non_negative(weight_grams, "weight_grams")

    if advance.status == "settled" or advance.remaining_balance <= MONEY_EPSILON:
        raise InvalidStateError(
            "Advance is already settled",
            details={"advance_id": advance.id},
        )

    prior_remaining = advance.remaining_balance
    if gold_value >= prior_remaining - MONEY_EPSILON:
        applied = prior_remaining
    else:
        applied = gold_value

    excess = gold_value - applied
    if excess > MONEY_EPSILON:
        logger.warning(
            "Over-settlement on advance %s: %.2f offered, %.2f applied, %.2f dropped",
            advance.id, gold_value, applied, excess,
        )

    settlement = AdvanceSettlement(
        advance_id=advance.id,
        transaction_id=transaction_id,
        amount=applied,
        weight_grams=weight_grams,
        notes=notes,
    )
    db.session.add(settlement)

    advance.remaining_balance = max(0.0, prior_remaining - applied)
    if advance.remaining_balance <= MONEY_EPSILON:
        advance.remaining_balance = 0.0
    advance.status = derive_advance_status(advance.remaining_balance, advance.amount)
    if advance.status == "settled" and advance.settled_date is None:
        advance.settled_date = utcnow()

    if supplier is None:
        supplier = get_supplier(advance.supplier_id, lock=True)
    _record_advance_settled_inner(supplier, applied)

    db.session.flush()

    append_ledger_event(
        event_type="advance.settled",
        event_category="advance",
        entity_type="advance",
        entity_id=advance.id,
        supplier_id=advance.supplier_id,
        actor=actor,
        note=notes,
        payload={
            "transaction_id": transaction_id,
            "gold_value": gold_value,
            "applied": applied,
            "remaining_balance": advance.remaining_balance,
            "status": advance.status,
        },
    )
    return settlement, applied


def settle_with_delivery(
    *,
    advance_id: int,
    transaction_id: int,
    gold_value: float,
    weight_grams: float,
    notes: str | None = None,
    actor: str | None = None,
) -> Advance:
    """
    Settle an advance against an already recorded delivery.

    transaction_service calls the inner helper inside the buy's own unit of
    work; this entry point is for settling against an existing transaction.
    The transaction must be a buy from the advance's supplier that has not
    settled this or another advance; it records the applied amount as its
    advance_deducted.

    Raises:
        InvalidStateError: advance already settled
        ValidationError: gold_value <= 0, transaction not an eligible buy
        NotFoundError: unknown advance or transaction
    """
    def _op():
        advance = get_advance(advance_id, lock=True)
        tx = lock_for_update(db.session.query(GoldTransaction).filter_by(id=transaction_id)).first()
        if tx is None:
            raise NotFoundError("Transaction not found", details={"transaction_id": transaction_id})
        _check_settling_transaction(advance, tx)

        _, applied = _settle_with_delivery_inner(
            advance,
            transaction_id=tx.id,
            gold_value=gold_value,
            weight_grams=weight_grams,
            notes=notes,
            actor=actor,
        )
        tx.advance_id = advance.id
        tx.advance_deducted = (tx.advance_deducted or 0.0) + applied
        db.session.commit()
        return advance

    return run_with_retry(_op)


def _check_settling_transaction(advance: Advance, tx: GoldTransaction) -> None:
    """A buy from the advance's own supplier may settle one advance, once."""
    details = {"advance_id": advance.id, "transaction_id": tx.id}
    if tx.type != "buy":
        raise ValidationError("Only buy transactions can settle an advance", details=details)
    if tx.supplier_id != advance.supplier_id:
        raise ValidationError("Transaction belongs to a different supplier", details=details)
    if tx.advance_id is not None and tx.advance_id != advance.id:
        raise ValidationError("Transaction already settled a different advance", details=details)
    already = (
        db.session.query(AdvanceSettlement.id)
        .filter_by(advance_id=advance.id, transaction_id=tx.id)
        .first()
    )
    if already is not None:
        raise ValidationError("Transaction already settled this advance", details=details)


def list_outstanding(supplier_id: int) -> list[Advance]:
    """Advances with a remaining balance, oldest first."""
    get_supplier(supplier_id)
    return (
        db.session.query(Advance)
        .filter(Advance.supplier_id == supplier_id, Advance.remaining_balance > MONEY_EPSILON)
        .order_by(Advance.given_date.asc(), Advance.id.asc())
        .all()
    )


def outstanding_summary(supplier_id: int | None = None) -> dict:
    q = db.session.query(
        db.func.coalesce(db.func.sum(Advance.remaining_balance), 0.0),
        db.func.count(Advance.id),
    ).filter(Advance.status.in_(["pending", "partial"]))
    if supplier_id is not None:
        q = q.filter(Advance.supplier_id == supplier_id)
    total, count = q.one()
    return {"total_outstanding": round_money(float(total)), "count": int(count)}


def list_advances(
    *,
    supplier_id: int | None = None,
    status: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    page = max(1, int(page))
    limit = max(1, min(int(limit), 500))

    q = db.session.query(Advance)
    if supplier_id is not None:
        q = q.filter(Advance.supplier_id == supplier_id)
    if status:
        q = q.filter(Advance.status == require_choice(status, ADVANCE_STATUSES, "status"))

    total = q.count()
    items = (
        q.order_by(Advance.given_date.desc(), Advance.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "items": items,
        "summary": outstanding_summary(supplier_id),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if total else 0,
        },
    }
