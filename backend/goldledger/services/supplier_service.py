# Overview: Service-layer operations for suppliers; owns the supplier running totals.

"""
Supplier (Counterparty) Ledger

The only sanctioned mutation path for a supplier's derived totals.

- register_supplier: all totals start at zero.
- _record_transaction_effect_inner: once per recorded trade; bumps count,
  weight and amount traded. Ordinary paid trades do NOT move
  outstanding_balance; only advance issuance and settlement do.
- _record_advance_issued_inner: balance += amount.
- _record_advance_settled_inner: balance -= applied amount, never crossing
  zero.

The *_inner functions expect a supplier row already locked by the caller's
unit of work and never commit. The public record_* wrappers lock, write an
audit event and commit on their own.
"""

from __future__ import annotations

import math

from sqlalchemy import or_

from ..extensions import db
from ..models import Advance, GoldTransaction, Supplier
from ..money_utils import round_money, round_weight
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    require_choice,
    require_non_negative,
    require_text,
)
from ..models.suppliers import MOMO_PROVIDERS, SUPPLIER_TYPES, TRUST_LEVELS
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import append_ledger_event
from goldledger.time_utils import coerce_datetime, to_utc_z

# Identity, classification and payment metadata; totals are deliberately absent.
UPDATABLE_FIELDS = {
    "name",
    "phone",
    "email",
    "location",
    "type",
    "trust_level",
    "is_active",
    "notes",
    "tags",
    "bank_details",
    "momo_details",
}


def _normalize_email(email: str | None) -> str | None:
    if email is None:
        return None
    email = email.strip().lower()
    return email or None


def _normalize_phone(phone: str | None) -> str | None:
    if phone is None:
        return None
    phone = phone.strip()
    return phone or None


def _ensure_phone_unique(phone: str | None, *, exclude_id: int | None = None) -> None:
    if not phone:
        return
    q = db.session.query(Supplier.id).filter(Supplier.phone == phone)
    if exclude_id is not None:
        q = q.filter(Supplier.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("Supplier with this phone already exists", details={"phone": phone})


def _apply_bank_details(supplier: Supplier, bank_details: dict | None) -> None:
    if bank_details is None:
        return
    if not isinstance(bank_details, dict):
        raise ValidationError("bank_details must be an object")
    supplier.bank_name = bank_details.get("bank_name")
    supplier.bank_account_number = bank_details.get("account_number")
    supplier.bank_account_name = bank_details.get("account_name")


def _apply_momo_details(supplier: Supplier, momo_details: dict | None) -> None:
    if momo_details is None:
        return
    if not isinstance(momo_details, dict):
        raise ValidationError("momo_details must be an object")
    provider = momo_details.get("provider")
    if provider is not None:
        require_choice(provider, MOMO_PROVIDERS, "momo_details.provider")
    supplier.momo_provider = provider
    supplier.momo_number = momo_details.get("number")
    supplier.momo_registered_name = momo_details.get("registered_name")


def get_supplier(supplier_id: int, *, lock: bool = False) -> Supplier:
    query = db.session.query(Supplier).filter_by(id=supplier_id)
    if lock:
        query = lock_for_update(query)
    supplier = query.first()
    if supplier is None:
        raise NotFoundError("Supplier not found", details={"supplier_id": supplier_id})
    return supplier


def register_supplier(
    *,
    name: str,
    phone: str | None = None,
    email: str | None = None,
    location: str | None = None,
    type: str = "miner",
    trust_level: str = "new",
    bank_details: dict | None = None,
    momo_details: dict | None = None,
    notes: str | None = None,
    tags: list[str] | None = None,
    created_by: str | None = None,
) -> Supplier:
    """
    Register a new supplier with zeroed totals.

    Raises:
        ValidationError: empty name, unknown type/trust level/MoMo provider
        ConflictError: phone already registered to another supplier
    """
    def _op():
        clean_name = require_text(name, "name")
        require_choice(type, SUPPLIER_TYPES, "type")
        require_choice(trust_level, TRUST_LEVELS, "trust_level")

        clean_phone = _normalize_phone(phone)
        _ensure_phone_unique(clean_phone)

        supplier = Supplier(
            name=clean_name,
            phone=clean_phone,
            email=_normalize_email(email),
            location=location,
            type=type,
            trust_level=trust_level,
            is_active=True,
            total_transactions=0,
            total_weight_grams=0.0,
            total_amount_traded=0.0,
            outstanding_balance=0.0,
            notes=notes,
            tags=list(tags) if tags else None,
            created_by=created_by,
        )
        _apply_bank_details(supplier, bank_details)
        _apply_momo_details(supplier, momo_details)

        db.session.add(supplier)
        db.session.flush()

        append_ledger_event(
            event_type="supplier.registered",
            event_category="supplier",
            entity_type="supplier",
            entity_id=supplier.id,
            supplier_id=supplier.id,
            actor=created_by,
            note=clean_name,
        )

        db.session.commit()
        return supplier

    return run_with_retry(_op)


def update_supplier(supplier_id: int, *, actor: str | None = None, **fields) -> Supplier:
    """
    Edit identity, classification or payment metadata.

    Derived totals are not in UPDATABLE_FIELDS; passing one raises
    ValidationError rather than silently ignoring it.
    """
    unknown = sorted(set(fields) - UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(
            f"Field not allowed: {', '.join(unknown)}",
            details={"fields": unknown},
        )

    def _op():
        supplier = get_supplier(supplier_id, lock=True)

        if "name" in fields:
            supplier.name = require_text(fields["name"], "name")
        if "phone" in fields:
            clean_phone = _normalize_phone(fields["phone"])
            _ensure_phone_unique(clean_phone, exclude_id=supplier.id)
            supplier.phone = clean_phone
        if "email" in fields:
            supplier.email = _normalize_email(fields["email"])
        if "location" in fields:
            supplier.location = fields["location"]
        if "type" in fields:
            supplier.type = require_choice(fields["type"], SUPPLIER_TYPES, "type")
        if "trust_level" in fields:
            supplier.trust_level = require_choice(fields["trust_level"], TRUST_LEVELS, "trust_level")
        if "is_active" in fields:
            supplier.is_active = bool(fields["is_active"])
        if "notes" in fields:
            supplier.notes = fields["notes"]
        if "tags" in fields:
            supplier.tags = list(fields["tags"]) if fields["tags"] else None
        if "bank_details" in fields:
            _apply_bank_details(supplier, fields["bank_details"])
        if "momo_details" in fields:
            _apply_momo_details(supplier, fields["momo_details"])

        append_ledger_event(
            event_type="supplier.updated",
            event_category="supplier",
            entity_type="supplier",
            entity_id=supplier.id,
            supplier_id=supplier.id,
            actor=actor,
            payload={"fields": sorted(fields)},
        )

        db.session.commit()
        return supplier

    return run_with_retry(_op)


def deactivate_supplier(supplier_id: int, *, actor: str | None = None) -> Supplier:
    """Soft delete: suppliers with history are never removed."""
    def _op():
        supplier = get_supplier(supplier_id, lock=True)
        supplier.is_active = False
        append_ledger_event(
            event_type="supplier.deactivated",
            event_category="supplier",
            entity_type="supplier",
            entity_id=supplier.id,
            supplier_id=supplier.id,
            actor=actor,
        )
        db.session.commit()
        return supplier

    return run_with_retry(_op)


def list_suppliers(
    *,
    search: str | None = None,
    type: str | None = None,
    trust_level: str | None = None,
    has_balance: bool = False,
    include_inactive: bool = False,
    page: int = 1,
    limit: int = 50,
) -> dict:
    page = max(1, int(page))
    limit = max(1, min(int(limit), 500))

    q = db.session.query(Supplier)
    if not include_inactive:
        q = q.filter(Supplier.is_active.is_(True))
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(Supplier.name.ilike(pattern), Supplier.phone.ilike(pattern)))
    if type:
        q = q.filter(Supplier.type == require_choice(type, SUPPLIER_TYPES, "type"))
    if trust_level:
        q = q.filter(Supplier.trust_level == require_choice(trust_level, TRUST_LEVELS, "trust_level"))
    if has_balance:
        q = q.filter(Supplier.outstanding_balance != 0)

    total = q.count()
    items = (
        q.order_by(Supplier.outstanding_balance.desc(), Supplier.name.asc())
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


def get_supplier_detail(supplier_id: int) -> dict:
    """Supplier with its 10 latest trades and open advances (newest first)."""
    supplier = get_supplier(supplier_id)

    recent = (
        db.session.query(GoldTransaction)
        .filter_by(supplier_id=supplier_id)
        .order_by(GoldTransaction.occurred_at.desc(), GoldTransaction.id.desc())
        .limit(10)
        .all()
    )
    advances = (
        db.session.query(Advance)
        .filter(
            Advance.supplier_id == supplier_id,
            Advance.status.in_(["pending", "partial"]),
        )
        .order_by(Advance.given_date.desc(), Advance.id.desc())
        .all()
    )

    data = supplier.to_dict()
    data["recent_transactions"] = [tx.to_dict() for tx in recent]
    data["advances"] = [adv.to_dict(include_settlements=False) for adv in advances]
    return data


def get_balance_summary(supplier_id: int) -> dict:
    """Current totals for one supplier. Read-only."""
    supplier = get_supplier(supplier_id)
    return {
        "supplier_id": supplier.id,
        "name": supplier.name,
        "total_transactions": supplier.total_transactions,
        "total_weight_grams": round_weight(supplier.total_weight_grams),
        "total_amount_traded": round_money(supplier.total_amount_traded),
        "outstanding_balance": round_money(supplier.outstanding_balance),
        "balance_type": supplier.balance_type,
        "last_transaction_date": to_utc_z(supplier.last_transaction_date),
    }


def _record_transaction_effect_inner(supplier: Supplier, transaction: GoldTransaction) -> Supplier:
    weight = require_non_negative(transaction.weight_grams, "weight_grams")
    amount = require_non_negative(transaction.total_amount, "total_amount")

    supplier.total_transactions = (supplier.total_transactions or 0) + 1
    supplier.total_weight_grams = (supplier.total_weight_grams or 0.0) + weight
    supplier.total_amount_traded = (supplier.total_amount_traded or 0.0) + amount
    occurred = coerce_datetime(transaction.occurred_at)
    last = coerce_datetime(supplier.last_transaction_date, default_now=False)
    # Backdated trades never move the date backwards
    if last is None or occurred > last:
        supplier.last_transaction_date = occurred
    db.session.flush()
    return supplier


def _record_advance_issued_inner(supplier: Supplier, amount: float) -> Supplier:
    amount = require_non_negative(amount, "amount")
    supplier.outstanding_balance = (supplier.outstanding_balance or 0.0) + amount
    db.session.flush()
    return supplier


def _record_advance_settled_inner(supplier: Supplier, amount_settled: float) -> Supplier:
    amount_settled = require_non_negative(amount_settled, "amount_settled")
    prior = supplier.outstanding_balance or 0.0
    # A settlement may bring the balance down to zero but never push it past
    # zero into "business owes supplier" territory.
    supplier.outstanding_balance = max(min(prior, 0.0), prior - amount_settled)
    db.session.flush()
    return supplier


def record_transaction_effect(
    supplier_id: int,
    transaction: GoldTransaction,
    *,
    actor: str | None = None,
) -> Supplier:
    """
    Apply one trade to the supplier totals.

    Callers must invoke this exactly once per transaction; nothing here
    deduplicates. transaction_service does this inside its own unit of work.
    """
    def _op():
        supplier = get_supplier(supplier_id, lock=True)
        _record_transaction_effect_inner(supplier, transaction)
        append_ledger_event(
            event_type="supplier.transaction_effect",
            event_category="supplier",
            entity_type="supplier",
            entity_id=supplier.id,
            supplier_id=supplier.id,
            actor=actor,
            payload={
                "transaction_id": transaction.id,
                "weight_grams": transaction.weight_grams,
                "total_amount": transaction.total_amount,
                "total_transactions": supplier.total_transactions,
            },
        )
        db.session.commit()
        return supplier

    return run_with_retry(_op)


def record_advance_issued(supplier_id: int, amount: float, *, actor: str | None = None) -> Supplier:
    def _op():
        supplier = get_supplier(supplier_id, lock=True)
        _record_advance_issued_inner(supplier, amount)
        append_ledger_event(
            event_type="supplier.advance_issued",
            event_category="supplier",
            entity_type="supplier",
            entity_id=supplier.id,
            supplier_id=supplier.id,
            actor=actor,
            payload={"amount": amount, "outstanding_balance": supplier.outstanding_balance},
        )
        db.session.commit()
        return supplier

    return run_with_retry(_op)


def record_advance_settled(supplier_id: int, amount_settled: float, *, actor: str | None = None) -> Supplier:
    def _op():
        supplier = get_supplier(supplier_id, lock=True)
        _record_advance_settled_inner(supplier, amount_settled)
        append_ledger_event(
            event_type="supplier.advance_settled",
            event_category="supplier",
            entity_type="supplier",
            entity_id=supplier.id,
            supplier_id=supplier.id,
            actor=actor,
            payload={"amount_settled": amount_settled, "outstanding_balance": supplier.outstanding_balance},
        )
        db.session.commit()
        return supplier

    return run_with_retry(_op)
