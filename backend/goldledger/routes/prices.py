# Overview: Flask API routes for spot price observations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..services import price_service
from ..validation import LedgerError

"""
Time semantics:
- "at" is inclusive: the newest observation with timestamp <= at.
- API accepts ISO-8601 datetimes with Z/offsets; stored as UTC-naive.
"""

prices_bp = Blueprint("prices", __name__, url_prefix="/api/gold/price")


@prices_bp.get("")
def latest_price_route():
    """
    Query params:
    - commodity: gold | oil | gas (default gold)
    - at: ISO-8601; return the price in effect at that instant instead of the latest
    """
    commodity = request.args.get("commodity", "gold")
    at = request.args.get("at")

    try:
        if at:
            obs = price_service.price_at(commodity, at)
        else:
            obs = price_service.latest_price(commodity)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"data": obs.to_dict()}), 200


@prices_bp.post("")
def record_manual_price_route():
    """Body: {"price_per_oz": 2350.0, "currency": "USD", "actor": "..."}"""
    payload = request.get_json(silent=True) or {}

    try:
        obs = price_service.record_manual_price(
            price_per_oz=payload.get("price_per_oz"),
            currency=payload.get("currency") or "USD",
            actor=payload.get("actor"),
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record manual price")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"data": obs.to_dict()}), 201


@prices_bp.get("/history")
def price_history_route():
    limit = request.args.get("limit", default=100, type=int)

    try:
        items = price_service.price_history(
            request.args.get("commodity", "gold"),
            limit=limit,
            since=request.args.get("since"),
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"data": [obs.to_dict() for obs in items]}), 200
