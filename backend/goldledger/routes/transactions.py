# Overview: Flask API routes for gold buy/sell transactions; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..models import GoldTransaction
from ..services import transaction_service
from ..validation import LedgerError, ModelValidationPolicy, ValidationError, require_choice, validate_payload
from ..models.transactions import TRADE_TYPES

"""
POST /api/gold/transactions dispatches on "type":
- buy:  may carry advance_id (settles that advance) and batch_id (augments it)
- sell: may carry batch_id (depletes it); advance_id is rejected

Derived pricing fields (spot_price_per_gram, buying_price_per_gram,
total_amount) are never accepted from clients.
"""

TRANSACTION_POLICY = ModelValidationPolicy(
    writable_fields={
        "type",
        "supplier_id",
        "gold_type",
        "purity",
        "purity_percentage",
        "specific_gravity",
        "weight_grams",
        "spot_price_per_oz",
        "discount_percentage",
        "currency",
        "payment_method",
        "amount_paid",
        "advance_id",
        "location",
        "batch_id",
        "receipt_number",
        "notes",
        "created_by",
        "occurred_at",
    },
    required_on_create={"type", "supplier_id", "weight_grams", "spot_price_per_oz"},
)

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/gold/transactions")


@transactions_bp.get("")
def list_transactions_route():
    """
    Query params:
    - type: buy | sell
    - supplier_id: int
    - location: in_safe | at_refinery | in_transit | exported
    - start_date, end_date: ISO-8601 (inclusive)
    - page, limit: pagination
    """
    try:
        result = transaction_service.list_transactions(
            type=request.args.get("type"),
            supplier_id=request.args.get("supplier_id", type=int),
            location=request.args.get("location"),
            start=request.args.get("start_date"),
            end=request.args.get("end_date"),
            page=request.args.get("page", default=1, type=int),
            limit=request.args.get("limit", default=50, type=int),
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list transactions")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "data": [tx.to_dict() for tx in result["items"]],
        "pagination": result["pagination"],
    }), 200


@transactions_bp.post("")
def record_transaction_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=GoldTransaction, payload=payload, policy=TRANSACTION_POLICY, partial=False)
        trade_type = require_choice(patch.pop("type"), TRADE_TYPES, "type")
        if trade_type == "buy":
            tx = transaction_service.record_buy(**patch)
        else:
            if patch.pop("advance_id", None) is not None:
                raise ValidationError("Only buy transactions can settle an advance")
            tx = transaction_service.record_sell(**patch)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record transaction")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"data": tx.to_dict()}), 201


@transactions_bp.get("/<int:transaction_id>")
def get_transaction_route(transaction_id: int):
    try:
        tx = transaction_service.get_transaction(transaction_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"data": tx.to_dict()}), 200
