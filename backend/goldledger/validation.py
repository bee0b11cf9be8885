from __future__ import annotations
from datetime import datetime
import math
from goldledger.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any, Iterable

from sqlalchemy import Boolean, Float, Integer, JSON, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


class LedgerError(Exception):
    """
    Base for every error the ledger surfaces to callers.

    Carries a machine-readable kind, a human message and optional details;
    routes serialize it with to_dict() and reply with status_code.
    """
    kind = "ledger_error"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message, "details": self.details}


class ValidationError(LedgerError, ValueError):
    """400-level input problem."""
    kind = "validation_error"
    status_code = 400


class NotFoundError(LedgerError, LookupError):
    """Referenced supplier, advance, batch, transaction or price does not exist."""
    kind = "not_found"
    status_code = 404


class InvalidStateError(LedgerError):
    """Operation not valid for the entity's current state (e.g. settled advance)."""
    kind = "invalid_state"
    status_code = 409


class NoOpMoveError(ValidationError, InvalidStateError):
    """Inventory move whose destination equals the batch's current location."""
    kind = "no_op_move"
    status_code = 400


class ConflictError(LedgerError):
    """409-level uniqueness conflict (e.g., duplicate supplier phone)."""
    kind = "conflict"
    status_code = 409


class ConcurrencyConflictError(LedgerError):
    """Optimistic-lock conflict that survived every retry attempt."""
    kind = "concurrency_conflict"
    status_code = 409


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - extra_fields: accepted keys that are not model columns (e.g. batch_id
      routing hints, nested payment details); passed through untouched
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    extra_fields: set[str] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_number(key: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be a number")
        try:
            number = float(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be a number")
    else:
        raise ValidationError(f"{key} must be a number")
    if math.isnan(number) or math.isinf(number):
        raise ValidationError(f"{key} must be a finite number")
    return number


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or "." in stripped or "e" in stripped.lower():
                raise ValidationError(f"{col.key} must be an integer")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        raise ValidationError(f"{col.key} must be an integer")

    # Weights, prices and balances are floats
    if isinstance(coltype, Float):
        return _coerce_number(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, JSON):
        return value

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    extra = policy.extra_fields or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                details={"missing": missing},
            )

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k in extra:
            continue
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        if k in extra:
            patch[k] = raw
            continue

        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def require_positive(value: Any, field: str) -> float:
    """Return value as float, rejecting non-numbers, NaN/inf and anything <= 0."""
    number = _coerce_number(field, value)
    if number <= 0:
        raise ValidationError(f"{field} must be > 0", details={field: value})
    return number


def require_non_negative(value: Any, field: str) -> float:
    number = _coerce_number(field, value)
    if number < 0:
        raise ValidationError(f"{field} must be >= 0", details={field: value})
    return number


def require_number(value: Any, field: str) -> float:
    return _coerce_number(field, value)


def require_choice(value: Any, choices: Iterable[str], field: str) -> str:
    choices = tuple(choices)
    if value not in choices:
        raise ValidationError(
            f"{field} must be one of: {', '.join(choices)}",
            details={field: value},
        )
    return value


def require_purity(value: Any, field: str = "purity_percentage") -> float:
    """Purity is a fraction in (0, 1]; 0 is rejected, 1.0 is pure."""
    number = _coerce_number(field, value)
    if number <= 0 or number > 1:
        raise ValidationError(f"{field} must be in (0, 1]", details={field: value})
    return number


def require_text(value: Any, field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    return str(value).strip()
