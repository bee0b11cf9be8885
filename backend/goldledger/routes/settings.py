# Overview: Flask API routes for business settings; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..services import settings_service
from ..validation import LedgerError, ValidationError

settings_bp = Blueprint("settings", __name__, url_prefix="/api/gold/settings")


@settings_bp.get("")
def get_settings_route():
    settings = settings_service.get_settings()
    # get_settings may have created the default row
    db.session.commit()
    return jsonify({"data": settings.to_dict()}), 200


@settings_bp.put("")
def update_settings_route():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify(ValidationError("Invalid JSON payload").to_dict()), 400

    fields = dict(payload)
    actor = fields.pop("actor", None)

    try:
        settings = settings_service.update_settings(actor=actor, **fields)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update settings")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"data": settings.to_dict()}), 200
