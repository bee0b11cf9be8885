# Overview: Flask API routes for suppliers (counterparties); parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..models import Supplier
from ..services import supplier_service
from ..validation import LedgerError, ModelValidationPolicy, validate_payload

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email", "location", "type", "trust_level", "notes", "tags", "created_by"},
    required_on_create={"name"},
    extra_fields={"bank_details", "momo_details"},
)

SUPPLIER_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email", "location", "type", "trust_level", "is_active", "notes", "tags"},
    extra_fields={"bank_details", "momo_details", "actor"},
)

suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/gold/suppliers")


def _flag(name: str) -> bool:
    return (request.args.get(name) or "").strip().lower() in ("1", "true", "yes")


@suppliers_bp.get("")
def list_suppliers_route():
    """
    Query params:
    - search: substring of name or phone
    - type, trust_level: enum filters
    - has_balance: only suppliers with a non-zero balance
    - include_inactive: include deactivated suppliers
    - page, limit: pagination (limit max 500)
    """
    try:
        result = supplier_service.list_suppliers(
            search=request.args.get("search"),
            type=request.args.get("type"),
            trust_level=request.args.get("trust_level"),
            has_balance=_flag("has_balance"),
            include_inactive=_flag("include_inactive"),
            page=request.args.get("page", default=1, type=int),
            limit=request.args.get("limit", default=50, type=int),
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list suppliers")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "data": [s.to_dict() for s in result["items"]],
        "pagination": result["pagination"],
    }), 200


@suppliers_bp.post("")
def create_supplier_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
        supplier = supplier_service.register_supplier(**patch)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to register supplier")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"data": supplier.to_dict()}), 201


@suppliers_bp.get("/<int:supplier_id>")
def get_supplier_route(supplier_id: int):
    try:
        detail = supplier_service.get_supplier_detail(supplier_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load supplier")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"data": detail}), 200


@suppliers_bp.put("/<int:supplier_id>")
def update_supplier_route(supplier_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_UPDATE_POLICY, partial=True)
        actor = patch.pop("actor", None)
        supplier = supplier_service.update_supplier(supplier_id, actor=actor, **patch)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update supplier")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"data": supplier.to_dict()}), 200


@suppliers_bp.delete("/<int:supplier_id>")
def deactivate_supplier_route(supplier_id: int):
    """Soft delete; the supplier keeps its history and totals."""
    try:
        supplier = supplier_service.deactivate_supplier(supplier_id, actor=request.args.get("actor"))
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to deactivate supplier")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"data": supplier.to_dict()}), 200


@suppliers_bp.get("/<int:supplier_id>/balance")
def supplier_balance_route(supplier_id: int):
    try:
        summary = supplier_service.get_balance_summary(supplier_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"data": summary}), 200
