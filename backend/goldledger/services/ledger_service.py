# Overview: Append-only audit trail for ledger mutations.

from __future__ import annotations

import json
from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import LedgerEvent
"""
Audit Ledger Invariants

- Append-only: events are never updated or deleted.
- No business logic here; callers decide what to record.
- Events are flushed inside the caller's DB transaction and committed (or
  rolled back) together with the change they describe.
- occurred_at is business time; created_at is system time (DB default).
"""


def append_ledger_event(
    *,
    event_type: str,
    event_category: str,
    entity_type: str,
    entity_id: int,
    supplier_id: int | None = None,
    actor: str | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> LedgerEvent:
    ev = LedgerEvent(
        event_type=event_type,
        event_category=event_category,
        entity_type=entity_type,
        entity_id=entity_id,
        supplier_id=supplier_id,
        actor=actor,
        occurred_at=occurred_at,  # if None, column default applies
        note=(note[:255] if note else None),
        payload=json.dumps(payload, default=str) if payload is not None else None,
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def list_ledger_events(
    *,
    supplier_id: int | None = None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    event_category: str | None = None,
    limit: int = 200,
) -> list[LedgerEvent]:
    q = db.session.query(LedgerEvent)
    if supplier_id is not None:
        q = q.filter(LedgerEvent.supplier_id == supplier_id)
    if entity_type is not None:
        q = q.filter(LedgerEvent.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(LedgerEvent.entity_id == entity_id)
    if event_category is not None:
        q = q.filter(LedgerEvent.event_category == event_category)
    return q.order_by(LedgerEvent.occurred_at.desc(), LedgerEvent.id.desc()).limit(limit).all()
