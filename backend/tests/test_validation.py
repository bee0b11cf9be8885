# Overview: Pytest coverage for payload validation and the error taxonomy.

from datetime import datetime

import pytest

from goldledger.models import Advance, GoldTransaction
from goldledger.validation import (
    ConcurrencyConflictError,
    ConflictError,
    InvalidStateError,
    LedgerError,
    ModelValidationPolicy,
    NoOpMoveError,
    NotFoundError,
    ValidationError,
    require_purity,
    validate_payload,
)

POLICY = ModelValidationPolicy(
    writable_fields={"supplier_id", "weight_grams", "purity", "occurred_at", "receipt_sent"},
    required_on_create={"supplier_id", "weight_grams"},
    extra_fields={"batch_hint"},
)


def test_validate_payload_coerces_types():
    patch = validate_payload(
        model=GoldTransaction,
        payload={
            "supplier_id": "7",
            "weight_grams": "12.5",
            "purity": " 22K ",
            "occurred_at": "2024-05-01T10:00:00+02:00",
            "batch_hint": {"raw": True},
        },
        policy=POLICY,
        partial=False,
    )
    assert patch == {
        "supplier_id": 7,
        "weight_grams": 12.5,
        "purity": "22K",
        "occurred_at": datetime(2024, 5, 1, 8, 0, 0),
        "batch_hint": {"raw": True},
    }


@pytest.mark.parametrize("payload, message", [
    ({"weight_grams": 1}, "Missing required fields: supplier_id"),
    ({"supplier_id": 1, "weight_grams": 1, "total_amount": 5}, "Field not allowed: total_amount"),
    ({"supplier_id": "1.5", "weight_grams": 1}, "supplier_id must be an integer"),
    ({"supplier_id": 1, "weight_grams": "heavy"}, "weight_grams must be a number"),
    ({"supplier_id": 1, "weight_grams": True}, "weight_grams must be a number"),
    ({"supplier_id": 1, "weight_grams": "nan"}, "weight_grams must be a finite number"),
    ({"supplier_id": 1, "weight_grams": 1, "purity": None}, "purity cannot be null"),
    ({"supplier_id": 1, "weight_grams": 1, "occurred_at": "yesterday"}, "occurred_at must be an ISO-8601 datetime"),
])
def test_validate_payload_rejections(payload, message):
    with pytest.raises(ValidationError) as excinfo:
        validate_payload(model=GoldTransaction, payload=payload, policy=POLICY, partial=False)
    assert str(excinfo.value) == message


def test_partial_payload_skips_required():
    patch = validate_payload(model=GoldTransaction, payload={"purity": "18K"}, policy=POLICY, partial=True)
    assert patch == {"purity": "18K"}


def test_string_length_enforced():
    policy = ModelValidationPolicy(writable_fields={"currency"})
    with pytest.raises(ValidationError):
        validate_payload(model=Advance, payload={"currency": "X" * 9}, policy=policy, partial=True)


@pytest.mark.parametrize("value", [1, 1.0, "0.5", 0.000001])
def test_require_purity_accepts(value):
    assert 0 < require_purity(value) <= 1


@pytest.mark.parametrize("value", [0, "0", -0.5, 1.01, None, "inf"])
def test_require_purity_rejects(value):
    with pytest.raises(ValidationError):
        require_purity(value)


def test_error_taxonomy():
    cases = [
        (ValidationError, 400, "validation_error"),
        (NoOpMoveError, 400, "no_op_move"),
        (NotFoundError, 404, "not_found"),
        (InvalidStateError, 409, "invalid_state"),
        (ConflictError, 409, "conflict"),
        (ConcurrencyConflictError, 409, "concurrency_conflict"),
    ]
    for cls, status, kind in cases:
        err = cls("boom", details={"id": 1})
        assert isinstance(err, LedgerError)
        assert err.status_code == status
        assert err.to_dict() == {"error": kind, "message": "boom", "details": {"id": 1}}

    assert isinstance(ValidationError("x"), ValueError)
    assert isinstance(NotFoundError("x"), LookupError)
    assert issubclass(NoOpMoveError, InvalidStateError)
