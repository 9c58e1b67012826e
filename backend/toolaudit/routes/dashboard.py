# Overview: Flask API routes for storage audit dashboards and the EQ5044 report.

# backend/toolaudit/routes/dashboard.py
"""
Audit dashboard routes.

All three endpoints are read-only. A storage key that matches no current
tools or toolkits is a 404; a request missing part of the key is a 400.
"""
from flask import Blueprint, current_app, jsonify, request

from ..services import dashboard_service, report_service
from ..validation import ValidationError


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


def _storage_args() -> tuple[str | None, str | None, str | None]:
    return (
        request.args.get("department"),
        request.args.get("storage_name"),
        request.args.get("storage_code"),
    )


@dashboard_bp.get("/storages")
def storages():
    """
    Audit progress per storage location.

    Query params:
    - department: str (optional) - exact match filter

    Returns:
        200: {"items": [...], "count": int}
    """
    department = (request.args.get("department") or "").strip() or None
    try:
        rows = dashboard_service.get_storage_dashboard(department)
    except Exception:
        current_app.logger.exception("Failed to load storage dashboard")
        return jsonify({"error": "Failed to load storage dashboard"}), 500

    return jsonify({"items": rows, "count": len(rows)}), 200


@dashboard_bp.get("/storage-detail")
def storage_detail():
    """
    Detailed audit progress for one storage location.

    Query params:
    - department, storage_name, storage_code: str (required)

    Returns:
        200: Detail
        400: Missing storage key part
        404: No tools or toolkits in this storage
    """
    try:
        detail = dashboard_service.get_storage_detail(*_storage_args())
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to load storage detail")
        return jsonify({"error": "Failed to load storage detail"}), 500

    if detail is None:
        return jsonify({"error": "Storage not found or has no tools"}), 404
    return jsonify(detail), 200


@dashboard_bp.get("/eq5044-report")
def eq5044_report():
    """
    EQ5044 tool audit report: current items x most recent audit snapshots.

    Query params:
    - department, storage_name, storage_code: str (required)

    Returns:
        200: Report
        400: Missing storage key part
        404: No tools or toolkits in this storage
        500: Report configuration invalid
    """
    try:
        report = report_service.get_eq5044_report(*_storage_args())
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except report_service.ReportError as e:
        current_app.logger.error("EQ5044 report misconfigured: %s", e)
        return jsonify({"error": str(e)}), 500
    except Exception:
        current_app.logger.exception("Failed to build EQ5044 report")
        return jsonify({"error": "Failed to build EQ5044 report"}), 500

    if report is None:
        return jsonify({"error": "Storage not found or has no tools"}), 404
    return jsonify(report), 200
