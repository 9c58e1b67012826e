# Overview: Flask API routes for running an audit (scan context, resetting marks).

# backend/toolaudit/routes/audits.py
from flask import Blueprint, current_app, jsonify, request

from ..extensions import db
from ..services import inventory_service, scan_service
from ..validation import ValidationError


audits_bp = Blueprint("audits", __name__, url_prefix="/api/audits")


@audits_bp.get("/context")
def scan_context():
    """
    Resolve a scanned QR code to what should be audited.

    Query params:
    - code: str (required) - storage row code or toolkit case code

    Returns:
        200: {"type": "storage", ...} or {"type": "toolkit", ...}
        400: Missing code
        404: Unknown code
    """
    try:
        context = scan_service.resolve_scan(request.args.get("code"))
    except scan_service.ScanError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to resolve scan")
        return jsonify({"error": "Failed to load audit context"}), 500

    if context is None:
        return jsonify({"error": "No storage location or toolkit has this code"}), 404
    return jsonify(context), 200


@audits_bp.post("/reset")
def reset_audit():
    """
    Start the next audit run: every item of the storage goes back to pending.

    Request body: {"department": str, "storage_name": str, "storage_code": str}

    Returns:
        200: {"reset": int}
        400: Missing storage key part
        404: Storage holds no items
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        count = inventory_service.reset_storage_audit(
            data.get("department"), data.get("storage_name"), data.get("storage_code")
        )
        db.session.commit()
        return jsonify({"reset": count}), 200

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except inventory_service.InventoryError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to reset audit marks")
        return jsonify({"error": "Failed to reset audit marks"}), 500
