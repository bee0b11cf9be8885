# Overview: Flask API routes for supplier cash advances; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..models import Advance
from ..services import advance_service
from ..validation import LedgerError, ModelValidationPolicy, validate_payload

ADVANCE_POLICY = ModelValidationPolicy(
    writable_fields={
        "supplier_id",
        "amount",
        "currency",
        "purpose",
        "payment_method",
        "payment_reference",
        "given_date",
        "expected_settlement_date",
        "notes",
        "created_by",
    },
    required_on_create={"supplier_id", "amount"},
)

advances_bp = Blueprint("advances", __name__, url_prefix="/api/gold/advances")


@advances_bp.get("")
def list_advances_route():
    """
    Query params:
    - supplier_id: int (optional)
    - status: pending | partial | settled (optional)
    - page, limit: pagination
    """
    try:
        result = advance_service.list_advances(
            supplier_id=request.args.get("supplier_id", type=int),
            status=request.args.get("status"),
            page=request.args.get("page", default=1, type=int),
            limit=request.args.get("limit", default=50, type=int),
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list advances")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "data": [a.to_dict(include_settlements=False) for a in result["items"]],
        "summary": result["summary"],
        "pagination": result["pagination"],
    }), 200


@advances_bp.post("")
def issue_advance_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Advance, payload=payload, policy=ADVANCE_POLICY, partial=False)
        advance = advance_service.issue_advance(**patch)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to issue advance")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"data": advance.to_dict()}), 201


@advances_bp.get("/<int:advance_id>")
def get_advance_route(advance_id: int):
    try:
        advance = advance_service.get_advance(advance_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"data": advance.to_dict()}), 200
