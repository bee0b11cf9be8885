# Overview: Flask API routes for vault inventory batches; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..models import InventoryBatch
from ..services import inventory_service
from ..validation import LedgerError, ModelValidationPolicy, require_text, validate_payload

STOCK_POLICY = ModelValidationPolicy(
    writable_fields={
        "gold_type",
        "purity",
        "purity_percentage",
        "weight_grams",
        "location",
        "avg_cost_per_gram",
        "notes",
    },
    required_on_create={"purity", "purity_percentage", "weight_grams", "avg_cost_per_gram"},
    extra_fields={"moved_by"},
)

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/gold/inventory")


@inventory_bp.get("")
def list_inventory_route():
    """
    Batches plus the per-location vault summary.

    Query params:
    - location: restrict batches to one location
    - include_empty: include depleted batches (weight 0)
    """
    include_empty = (request.args.get("include_empty") or "").lower() in ("1", "true", "yes")
    try:
        batches = inventory_service.list_batches(
            location=request.args.get("location"),
            include_empty=include_empty,
        )
        summary = inventory_service.summary_by_location(include_market_value=True)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load inventory")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "data": [b.to_dict(include_movements=False) for b in batches],
        "summary": summary,
    }), 200


@inventory_bp.get("/<batch_id>")
def get_batch_route(batch_id: str):
    try:
        batch = inventory_service.get_batch(batch_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"data": batch.to_dict()}), 200


@inventory_bp.post("/add")
def add_stock_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=InventoryBatch, payload=payload, policy=STOCK_POLICY, partial=False)
        batch = inventory_service.add_stock(**patch)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add stock")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"data": batch.to_dict()}), 201


@inventory_bp.post("/move")
def move_batch_route():
    """
    Body: {"batch_id": "...", "to_location": "...", "moved_by": "...", "notes": "..."}
    """
    payload = request.get_json(silent=True) or {}

    try:
        batch = inventory_service.move_batch(
            require_text(payload.get("batch_id"), "batch_id"),
            to_location=require_text(payload.get("to_location"), "to_location"),
            moved_by=payload.get("moved_by"),
            notes=payload.get("notes"),
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to move batch")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"data": batch.to_dict()}), 200
