# Overview: Flask API routes for the dashboard and period P&L reports.

from flask import Blueprint, request, jsonify, current_app

from ..services import reporting_service
from ..validation import LedgerError

reports_bp = Blueprint("reports", __name__, url_prefix="/api/gold")


@reports_bp.get("/dashboard")
def dashboard_route():
    try:
        data = reporting_service.dashboard()
    except Exception:
        current_app.logger.exception("Failed to build dashboard")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"data": data}), 200


@reports_bp.get("/reports")
def period_report_route():
    """
    Query params:
    - period: today | week | month | custom (default today)
    - start_date, end_date: ISO-8601 dates, used when period=custom
    """
    try:
        data = reporting_service.period_report(
            request.args.get("period", "today"),
            start=request.args.get("start_date"),
            end=request.args.get("end_date"),
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to generate report")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"data": data}), 200
