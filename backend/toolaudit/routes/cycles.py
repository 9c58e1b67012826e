# Overview: Flask API routes for audit cycle scheduling.

# backend/toolaudit/routes/cycles.py
from flask import Blueprint, current_app, jsonify, request

from ..extensions import db
from ..services import cycle_service
from ..validation import ValidationError


cycles_bp = Blueprint("audit_cycles", __name__, url_prefix="/api/audit-cycles")


@cycles_bp.get("")
def list_cycles():
    """
    List audit cycles, soonest next audit first.

    Query params:
    - department, storage_name, storage_code: str (optional)
    """
    cycles = cycle_service.list_cycles(
        department=request.args.get("department"),
        storage_name=request.args.get("storage_name"),
        storage_code=request.args.get("storage_code"),
    )
    items = [c.to_dict() for c in cycles]
    return jsonify({"items": items, "count": len(items)}), 200


@cycles_bp.post("")
def create_cycle():
    """
    Schedule audits for a storage location.

    Request body:
    {
        "department": str,
        "storage_name": str,
        "storage_code": str,
        "storage_type": str (optional),
        "frequency": "monthly" | "quarterly" | "custom" (default monthly),
        "max_cycles": int (optional; 12 monthly, 4 quarterly, 1 custom),
        "next_audit_date": ISO-8601 date
    }

    Returns:
        201: Cycle created
        400: Invalid request
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        cycle = cycle_service.create_audit_cycle(
            department=data.get("department"),
            storage_name=data.get("storage_name"),
            storage_code=data.get("storage_code"),
            storage_type=data.get("storage_type") or "",
            frequency=data.get("frequency") or "monthly",
            max_cycles=data.get("max_cycles"),
            next_audit_date=data.get("next_audit_date"),
        )

        db.session.commit()

        return jsonify(cycle.to_dict()), 201

    except (ValidationError, cycle_service.CycleError) as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create audit cycle")
        return jsonify({"error": "Failed to create audit cycle"}), 500
