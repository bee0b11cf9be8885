# Overview: Allocation of receipt numbers and inventory batch codes.

from __future__ import annotations

import secrets
import string
import time

from ..extensions import db
from ..models import GoldTransaction, InventoryBatch
from ..validation import ConflictError

_BASE36 = string.digits + string.ascii_uppercase

MAX_ALLOCATION_ATTEMPTS = 50


def to_base36(number: int) -> str:
    if number < 0:
        raise ValueError("base36 encoding requires a non-negative integer")
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def _now_ms() -> int:
    return int(time.time() * 1000)


def receipt_number_taken(receipt_number: str) -> bool:
    return (
        db.session.query(GoldTransaction.id)
        .filter_by(receipt_number=receipt_number)
        .first()
        is not None
    )


def next_receipt_number(trade_type: str, *, now_ms: int | None = None) -> str:
    """
    Allocate {BUY|SELL}-{base36 millisecond timestamp}.

    Two trades in the same millisecond would collide, so the timestamp is
    bumped until an unused number is found. The unique constraint on
    gold_transactions.receipt_number remains the final guard.
    """
    prefix = "BUY" if trade_type == "buy" else "SELL"
    stamp = now_ms if now_ms is not None else _now_ms()
    for offset in range(MAX_ALLOCATION_ATTEMPTS):
        candidate = f"{prefix}-{to_base36(stamp + offset)}"
        if not receipt_number_taken(candidate):
            return candidate
    raise ConflictError("Could not allocate a unique receipt number")


def batch_id_taken(batch_id: str) -> bool:
    return (
        db.session.query(InventoryBatch.id)
        .filter_by(batch_id=batch_id)
        .first()
        is not None
    )


def next_batch_id(*, now_ms: int | None = None) -> str:
    """Allocate BATCH-{base36 ms timestamp}-{3 random base36 chars}."""
    stamp = to_base36(now_ms if now_ms is not None else _now_ms())
    for _ in range(MAX_ALLOCATION_ATTEMPTS):
        suffix = "".join(secrets.choice(_BASE36) for _ in range(3))
        candidate = f"BATCH-{stamp}-{suffix}"
        if not batch_id_taken(candidate):
            return candidate
    raise ConflictError("Could not allocate a unique batch id")
