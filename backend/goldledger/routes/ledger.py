# Overview: Flask API routes for the audit ledger; read-only.

from flask import Blueprint, request, jsonify

from ..services.ledger_service import list_ledger_events

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/gold/ledger")


@ledger_bp.get("")
def list_ledger_events_route():
    """
    Query params (all optional):
    - supplier_id, entity_type, entity_id, category
    - limit: default 100, max 500
    """
    limit = request.args.get("limit", default=100, type=int)
    limit = max(1, min(limit, 500))

    events = list_ledger_events(
        supplier_id=request.args.get("supplier_id", type=int),
        entity_type=request.args.get("entity_type"),
        entity_id=request.args.get("entity_id", type=int),
        event_category=request.args.get("category"),
        limit=limit,
    )
    return jsonify({"data": [ev.to_dict() for ev in events], "limit": limit}), 200
