# Overview: Flask API routes for audit snapshots (append-only audit history).

# backend/toolaudit/routes/snapshots.py
"""
Audit snapshot routes.

There is no PUT/PATCH/DELETE: snapshots are append-only. Sequence
numbers are allocated server-side; a client-sent sequence_number is ignored.
"""
from flask import Blueprint, current_app, jsonify, request

from ..extensions import db
from ..services import snapshot_service


snapshots_bp = Blueprint("audit_snapshots", __name__, url_prefix="/api/audit-snapshots")


@snapshots_bp.get("")
def list_snapshots():
    """
    List audit snapshots, oldest first.

    Query params:
    - department, storage_name, storage_code: str (optional)
    - cycle_id: int (optional)
    - include_data: bool (optional) - include frozen tool/toolkit data

    Returns:
        200: {"items": [...], "count": int}
    """
    include_data = request.args.get("include_data", "").lower() in ("1", "true", "yes")
    try:
        snapshots = snapshot_service.list_snapshots(
            department=request.args.get("department"),
            storage_name=request.args.get("storage_name"),
            storage_code=request.args.get("storage_code"),
            cycle_id=request.args.get("cycle_id", type=int),
        )
    except Exception:
        current_app.logger.exception("Failed to list audit snapshots")
        return jsonify({"error": "Failed to list audit snapshots"}), 500

    items = [s.to_dict(include_data=include_data) for s in snapshots]
    return jsonify({"items": items, "count": len(items)}), 200


@snapshots_bp.post("")
def create_snapshot():
    """
    Record a completed audit run.

    Request body:
    {
        "department": str,
        "storage_name": str,
        "storage_code": str,
        "cycle_id": int (optional),
        "snapshot_date": ISO-8601 (optional),
        "tool_data": [...],
        "toolkit_data": [...],
        "counts": {"total_tools": int, "present_tools": int, ...} (optional),
        "supervisor": {"name": str, "employee_id": str} (required every 6th snapshot)
    }

    Returns:
        201: Snapshot created
        400: Invalid request / supervisor sign-off missing
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        snapshot = snapshot_service.create_snapshot(
            department=data.get("department"),
            storage_name=data.get("storage_name"),
            storage_code=data.get("storage_code"),
            tool_data=data.get("tool_data"),
            toolkit_data=data.get("toolkit_data"),
            counts=data.get("counts"),
            supervisor=data.get("supervisor"),
            cycle_id=data.get("cycle_id"),
            snapshot_date=data.get("snapshot_date"),
        )

        db.session.commit()

        return jsonify(snapshot.to_dict()), 201

    except snapshot_service.SnapshotValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create audit snapshot")
        return jsonify({"error": "Failed to create audit snapshot"}), 500


@snapshots_bp.post("/complete")
def complete_audit():
    """
    Freeze a storage's current inventory as the next audit snapshot.

    Request body:
    {
        "department": str,
        "storage_name": str,
        "storage_code": str,
        "cycle_id": int (optional),
        "supervisor": {"name": str, "employee_id": str} (required every 6th snapshot)
    }

    Returns:
        201: Snapshot created (with counts)
        400: Invalid request / empty storage / supervisor sign-off missing
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        snapshot = snapshot_service.complete_audit(
            department=data.get("department"),
            storage_name=data.get("storage_name"),
            storage_code=data.get("storage_code"),
            supervisor=data.get("supervisor"),
            cycle_id=data.get("cycle_id"),
        )

        db.session.commit()

        return jsonify(snapshot.to_dict()), 201

    except snapshot_service.SnapshotValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to complete audit")
        return jsonify({"error": "Failed to complete audit"}), 500
