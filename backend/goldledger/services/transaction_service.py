# Overview: Service-layer operations for recording gold buys and sells.

from __future__ import annotations

import math

from ..extensions import db
from ..models import GoldTransaction
from ..models.inventory import LOCATIONS
from ..models.transactions import TRADE_PAYMENT_METHODS, TRADE_TYPES
from ..money_utils import MONEY_EPSILON
from ..validation import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    require_choice,
    require_non_negative,
    require_number,
    require_positive,
    require_purity,
)
from .advance_service import _settle_with_delivery_inner, get_advance
from .concurrency import run_with_retry
from .document_service import next_receipt_number, receipt_number_taken
from .inventory_service import (
    _augment_batch_inner,
    _create_batch_inner,
    _deplete_batch_inner,
    get_batch,
)
from .ledger_service import append_ledger_event
from .price_service import per_gram
from .settings_service import get_settings, resolve_purity
from .supplier_service import _record_transaction_effect_inner, get_supplier
from goldledger.time_utils import coerce_datetime
"""
Trade Recording

One buy or sell is a single unit of work:
    transaction row -> advance settlement -> supplier totals -> inventory
All four writes commit together or roll back together.

Pricing (pure, see compute_pricing):
- spot_price_per_gram = spot_price_per_oz / 31.1035
- buy:  buying_price_per_gram = spot_per_gram * (1 - discount/100)
- sell: buying_price_per_gram = spot_per_gram * (1 + discount/100)
- total_amount = weight_grams * buying_price_per_gram * purity_percentage

Advance deduction (buys only):
- applied = min(total_amount, advance.remaining_balance)
- payment_method is forced to 'advance_deduction'

Inventory:
- buy without batch_id: new batch at avg_cost_per_gram = price/g * purity
- buy with batch_id: weighted-average augment of that batch
- sell with batch_id: deplete that batch; without it stock is untouched
"""


def compute_pricing(
    trade_type: str,
    *,
    weight_grams: float,
    purity_percentage: float,
    spot_price_per_oz: float,
    discount_percentage: float = 0.0,
) -> dict:
    """Derive unit price and total for one trade. Deterministic; touches no state."""
    require_choice(trade_type, TRADE_TYPES, "type")
    weight_grams = require_positive(weight_grams, "weight_grams")
    purity_percentage = require_purity(purity_percentage)
    spot_price_per_oz = require_positive(spot_price_per_oz, "spot_price_per_oz")
    discount_percentage = require_number(discount_percentage, "discount_percentage")

    spot_per_gram = per_gram(spot_price_per_oz)
    if trade_type == "buy":
        price_per_gram = spot_per_gram * (1 - discount_percentage / 100)
    else:
        price_per_gram = spot_per_gram * (1 + discount_percentage / 100)

    if price_per_gram <= 0:
        raise ValidationError(
            "discount_percentage produces a non-positive price",
            details={"discount_percentage": discount_percentage},
        )

    return {
        "spot_price_per_gram": spot_per_gram,
        "buying_price_per_gram": price_per_gram,
        "total_amount": weight_grams * price_per_gram * purity_percentage,
    }


def derive_payment_status(total_amount: float, amount_paid: float, advance_deducted: float) -> str:
    covered = (amount_paid or 0.0) + (advance_deducted or 0.0)
    if covered >= total_amount - MONEY_EPSILON:
        return "completed"
    if covered > MONEY_EPSILON:
        return "partial"
    return "pending"


def _resolve_purity_percentage(purity: str, purity_percentage) -> float:
    if purity_percentage is not None:
        return require_purity(purity_percentage)
    resolved = resolve_purity(purity)
    if resolved is None:
        raise ValidationError(
            "purity_percentage is required for a purity without a preset",
            details={"purity": purity},
        )
    return resolved


def _record_trade(
    trade_type: str,
    *,
    supplier_id: int,
    weight_grams: float,
    spot_price_per_oz: float,
    discount_percentage: float = 0.0,
    purity: str = "24K",
    purity_percentage: float | None = None,
    gold_type: str = "raw",
    specific_gravity: float | None = None,
    payment_method: str = "cash",
    amount_paid: float | None = None,
    advance_id: int | None = None,
    location: str = "in_safe",
    batch_id: str | None = None,
    receipt_number: str | None = None,
    currency: str | None = None,
    occurred_at=None,
    notes: str | None = None,
    created_by: str | None = None,
) -> GoldTransaction:
    require_choice(location, LOCATIONS, "location")
    require_choice(payment_method, TRADE_PAYMENT_METHODS, "payment_method")
    if specific_gravity is not None:
        specific_gravity = require_positive(specific_gravity, "specific_gravity")
    if amount_paid is not None:
        amount_paid = require_non_negative(amount_paid, "amount_paid")
    if advance_id is not None and trade_type != "buy":
        raise ValidationError("Only buy transactions can settle an advance")
    if advance_id is None and payment_method == "advance_deduction":
        raise ValidationError("advance_deduction requires an advance_id")
    try:
        occurred = coerce_datetime(occurred_at)
    except ValueError as exc:
        raise ValidationError(str(exc))

    def _op():
        supplier = get_supplier(supplier_id, lock=True)
        settings = get_settings()

        label = (purity or "24K").strip()
        purity_pct = _resolve_purity_percentage(label, purity_percentage)
        pricing = compute_pricing(
            trade_type,
            weight_grams=weight_grams,
            purity_percentage=purity_pct,
            spot_price_per_oz=spot_price_per_oz,
            discount_percentage=discount_percentage,
        )
        total_amount = pricing["total_amount"]

        advance = None
        deduction = 0.0
        method = payment_method
        if advance_id is not None:
            advance = get_advance(advance_id, lock=True)
            if advance.supplier_id != supplier.id:
                raise ValidationError(
                    "Advance belongs to a different supplier",
                    details={"advance_id": advance_id, "supplier_id": supplier.id},
                )
            if advance.status == "settled" or advance.remaining_balance <= MONEY_EPSILON:
                raise InvalidStateError("Advance is already settled", details={"advance_id": advance_id})
            deduction = min(total_amount, advance.remaining_balance)
            method = "advance_deduction"

        if receipt_number:
            if receipt_number_taken(receipt_number):
                raise ConflictError(
                    "Receipt number already exists",
                    details={"receipt_number": receipt_number},
                )
            receipt = receipt_number
        else:
            receipt = next_receipt_number(trade_type)

        batch = None
        if batch_id:
            batch = get_batch(batch_id, lock=True)
            if trade_type == "buy":
                if batch.location != location:
                    raise ValidationError(
                        "Batch is at a different location",
                        details={"batch_id": batch_id, "batch_location": batch.location},
                    )
                if abs(batch.purity_percentage - purity_pct) > MONEY_EPSILON:
                    raise ValidationError(
                        "Batch has a different purity",
                        details={"batch_id": batch_id, "batch_purity": batch.purity_percentage},
                    )

        paid = amount_paid if amount_paid is not None else max(0.0, total_amount - deduction)

        tx = GoldTransaction(
            type=trade_type,
            supplier_id=supplier.id,
            supplier_name=supplier.name,
            gold_type=gold_type or "raw",
            purity=label,
            purity_percentage=purity_pct,
            specific_gravity=specific_gravity,
            weight_grams=float(weight_grams),
            spot_price_per_oz=float(spot_price_per_oz),
            spot_price_per_gram=pricing["spot_price_per_gram"],
            discount_percentage=float(discount_percentage or 0.0),
            buying_price_per_gram=pricing["buying_price_per_gram"],
            total_amount=total_amount,
            currency=currency or settings.default_currency,
            payment_method=method,
            payment_status=derive_payment_status(total_amount, paid, deduction),
            amount_paid=paid,
            advance_id=advance.id if advance is not None else None,
            location=location,
            receipt_number=receipt,
            notes=notes,
            created_by=created_by,
            occurred_at=occurred,
        )
        db.session.add(tx)
        db.session.flush()

        if advance is not None:
            _, applied = _settle_with_delivery_inner(
                advance,
                transaction_id=tx.id,
                gold_value=deduction,
                weight_grams=tx.weight_grams,
                notes=notes or f"Settled via {receipt}",
                supplier=supplier,
                actor=created_by,
            )
            tx.advance_deducted = applied

        _record_transaction_effect_inner(supplier, tx)

        cost_per_gram = tx.buying_price_per_gram * purity_pct
        if trade_type == "buy":
            if batch is not None:
                _augment_batch_inner(batch, tx.weight_grams, cost_per_gram)
            else:
                batch = _create_batch_inner(
                    purity=label,
                    purity_percentage=purity_pct,
                    weight_grams=tx.weight_grams,
                    avg_cost_per_gram=cost_per_gram,
                    location=location,
                    gold_type=tx.gold_type,
                    source_transaction_id=tx.id,
                    supplier_id=supplier.id,
                )
            tx.batch_id = batch.batch_id
        elif batch is not None:
            _deplete_batch_inner(batch, tx.weight_grams)
            tx.batch_id = batch.batch_id

        db.session.flush()

        append_ledger_event(
            event_type=f"transaction.{trade_type}_recorded",
            event_category="transaction",
            entity_type="gold_transaction",
            entity_id=tx.id,
            supplier_id=supplier.id,
            actor=created_by,
            occurred_at=occurred,
            note=receipt,
            payload={
                "weight_grams": tx.weight_grams,
                "total_amount": tx.total_amount,
                "advance_id": tx.advance_id,
                "advance_deducted": tx.advance_deducted,
                "batch_id": tx.batch_id,
            },
        )

        db.session.commit()
        return tx

    return run_with_retry(_op)


def record_buy(
    *,
    supplier_id: int,
    weight_grams: float,
    spot_price_per_oz: float,
    discount_percentage: float = 0.0,
    purity: str = "24K",
    purity_percentage: float | None = None,
    gold_type: str = "raw",
    specific_gravity: float | None = None,
    payment_method: str = "cash",
    amount_paid: float | None = None,
    advance_id: int | None = None,
    location: str = "in_safe",
    batch_id: str | None = None,
    receipt_number: str | None = None,
    currency: str | None = None,
    occurred_at=None,
    notes: str | None = None,
    created_by: str | None = None,
) -> GoldTransaction:
    """
    Record a purchase from a supplier.

    Raises:
        ValidationError: bad inputs, advance of another supplier, batch mismatch
        NotFoundError: unknown supplier, advance or batch
        InvalidStateError: advance already settled
        ConflictError: receipt_number already used
    """
    return _record_trade(
        "buy",
        supplier_id=supplier_id,
        weight_grams=weight_grams,
        spot_price_per_oz=spot_price_per_oz,
        discount_percentage=discount_percentage,
        purity=purity,
        purity_percentage=purity_percentage,
        gold_type=gold_type,
        specific_gravity=specific_gravity,
        payment_method=payment_method,
        amount_paid=amount_paid,
        advance_id=advance_id,
        location=location,
        batch_id=batch_id,
        receipt_number=receipt_number,
        currency=currency,
        occurred_at=occurred_at,
        notes=notes,
        created_by=created_by,
    )


def record_sell(
    *,
    supplier_id: int,
    weight_grams: float,
    spot_price_per_oz: float,
    discount_percentage: float = 0.0,
    purity: str = "24K",
    purity_percentage: float | None = None,
    gold_type: str = "raw",
    specific_gravity: float | None = None,
    payment_method: str = "cash",
    amount_paid: float | None = None,
    location: str = "in_safe",
    batch_id: str | None = None,
    receipt_number: str | None = None,
    currency: str | None = None,
    occurred_at=None,
    notes: str | None = None,
    created_by: str | None = None,
) -> GoldTransaction:
    """Record a sale to a buyer. discount_percentage acts as a premium over spot."""
    return _record_trade(
        "sell",
        supplier_id=supplier_id,
        weight_grams=weight_grams,
        spot_price_per_oz=spot_price_per_oz,
        discount_percentage=discount_percentage,
        purity=purity,
        purity_percentage=purity_percentage,
        gold_type=gold_type,
        specific_gravity=specific_gravity,
        payment_method=payment_method,
        amount_paid=amount_paid,
        location=location,
        batch_id=batch_id,
        receipt_number=receipt_number,
        currency=currency,
        occurred_at=occurred_at,
        notes=notes,
        created_by=created_by,
    )


def get_transaction(transaction_id: int) -> GoldTransaction:
    tx = db.session.get(GoldTransaction, transaction_id)
    if tx is None:
        raise NotFoundError("Transaction not found", details={"transaction_id": transaction_id})
    return tx


def list_transactions(
    *,
    type: str | None = None,
    supplier_id: int | None = None,
    location: str | None = None,
    start=None,
    end=None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    page = max(1, int(page))
    limit = max(1, min(int(limit), 500))

    q = db.session.query(GoldTransaction)
    if type:
        q = q.filter(GoldTransaction.type == require_choice(type, TRADE_TYPES, "type"))
    if supplier_id is not None:
        q = q.filter(GoldTransaction.supplier_id == supplier_id)
    if location:
        q = q.filter(GoldTransaction.location == require_choice(location, LOCATIONS, "location"))
    try:
        start_at = coerce_datetime(start, default_now=False)
        end_at = coerce_datetime(end, default_now=False)
    except ValueError as exc:
        raise ValidationError(str(exc))
    if start_at is not None:
        q = q.filter(GoldTransaction.occurred_at >= start_at)
    if end_at is not None:
        q = q.filter(GoldTransaction.occurred_at <= end_at)

    total = q.count()
    items = (
        q.order_by(GoldTransaction.occurred_at.desc(), GoldTransaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "items": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if total else 0,
        },
    }
