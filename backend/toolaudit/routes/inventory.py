# Overview: Flask API routes for storage locations, tools, toolkits and audit marks.

# backend/toolaudit/routes/inventory.py
"""
Inventory routes.

Payloads are validated against the SQLAlchemy column metadata through
validate_payload + a per-model policy (writable allowlist and required
fields). Business rules that metadata cannot express live in
enforce_rules_item.
"""
from flask import Blueprint, current_app, jsonify, request

from ..extensions import db
from ..models import KitContent, StorageLocation, Tool, Toolkit
from ..services import inventory_service
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    TOOLKIT_AUDIT_STATUSES,
    ValidationError,
    enforce_rules_item,
    validate_audit_status,
    validate_payload,
)


STORAGE_KEY_FIELDS = {"department", "storage_name", "storage_code"}
PLACEMENT_FIELDS = STORAGE_KEY_FIELDS | {"storage_type", "qr_location"}

STORAGE_LOCATION_POLICY = ModelValidationPolicy(
    writable_fields=STORAGE_KEY_FIELDS | {"storage_type", "is_active"},
    required_on_create=STORAGE_KEY_FIELDS | {"storage_type"},
)

TOOL_POLICY = ModelValidationPolicy(
    writable_fields={"name", "eq_number", "qty", "status", "calibration_due_date", "audit_status"}
    | PLACEMENT_FIELDS,
    required_on_create={"name"} | STORAGE_KEY_FIELDS,
)

TOOLKIT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "kit_number", "qr_code", "status", "calibration_due_date", "audit_status"}
    | PLACEMENT_FIELDS,
    required_on_create={"name"} | STORAGE_KEY_FIELDS,
)

KIT_CONTENT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "eq_number", "qty", "status", "calibration_due_date", "audit_status"},
    required_on_create={"name"},
)


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api")


def _filter_args() -> dict:
    return {
        "department": request.args.get("department"),
        "storage_name": request.args.get("storage_name"),
        "storage_code": request.args.get("storage_code"),
        "qr_location": request.args.get("qr_location"),
    }


def _validate_toolkit_patch(payload: dict, *, partial: bool) -> dict:
    patch = validate_payload(model=Toolkit, payload=payload, policy=TOOLKIT_POLICY, partial=partial)
    audit_status = patch.pop("audit_status", None)
    enforce_rules_item(patch)
    if audit_status is not None:
        patch["audit_status"] = validate_audit_status(audit_status, allowed=TOOLKIT_AUDIT_STATUSES)
    return patch


def _validate_content_patch(payload) -> dict:
    patch = validate_payload(model=KitContent, payload=payload, policy=KIT_CONTENT_POLICY, partial=False)
    enforce_rules_item(patch)
    return patch


# =============================================================================
# Storage locations
# =============================================================================

@inventory_bp.get("/storage-locations")
def list_storage_locations():
    """
    List storage locations with their QR locations.

    Query params:
    - department: str (optional)
    """
    locations = inventory_service.list_storage_locations(request.args.get("department"))
    items = [loc.to_dict() for loc in locations]
    return jsonify({"items": items, "count": len(items)}), 200


@inventory_bp.post("/storage-locations")
def create_storage_location():
    """
    Register a storage location.

    Request body:
    {
        "department": str,
        "storage_name": str,
        "storage_code": str,
        "storage_type": str,
        "qr_locations": [{"row_name": str, "qr_code": str}, ...] (optional)
    }

    Returns:
        201: Created
        400: Invalid request
        409: Storage key or QR code already registered
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400
    payload = dict(payload)
    qr_locations = payload.pop("qr_locations", None)

    try:
        patch = validate_payload(
            model=StorageLocation, payload=payload, policy=STORAGE_LOCATION_POLICY, partial=False
        )
        location = inventory_service.create_storage_location(patch=patch, qr_locations=qr_locations)
        db.session.commit()
        return jsonify(location.to_dict()), 201

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create storage location")
        return jsonify({"error": "Failed to create storage location"}), 500


# =============================================================================
# Tools
# =============================================================================

@inventory_bp.get("/tools")
def list_tools():
    """
    List tools with effective (calibration-aware) status.

    Query params:
    - department, storage_name, storage_code, qr_location: str (optional)
    """
    items = inventory_service.list_tools(**_filter_args())
    return jsonify({"items": items, "count": len(items)}), 200


@inventory_bp.post("/tools")
def create_tool():
    """
    Create a tool.

    Returns:
        201: Created
        400: Invalid request
        409: Equipment number already used
    """
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Tool, payload=payload, policy=TOOL_POLICY, partial=False)
        enforce_rules_item(patch)
        tool = inventory_service.create_tool(patch=patch)
        db.session.commit()
        return jsonify(tool.to_dict()), 201

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create tool")
        return jsonify({"error": "Failed to create tool"}), 500


@inventory_bp.patch("/tools/<int:tool_id>/audit")
def mark_tool_audit(tool_id: int):
    """
    Set a tool's audit mark.

    Request body: {"audit_status": "present" | "needs_update" | "pending"}

    Returns:
        200: Updated tool
        400: Invalid audit status
        404: Tool not found
    """
    data = request.get_json(silent=True) or {}
    try:
        tool = inventory_service.mark_tool_audit(tool_id=tool_id, audit_status=data["audit_status"])
        if tool is None:
            db.session.rollback()
            return jsonify({"error": "Tool not found"}), 404
        db.session.commit()
        return jsonify(tool.to_dict()), 200

    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to mark tool audit")
        return jsonify({"error": "Failed to mark tool audit"}), 500


# =============================================================================
# Toolkits
# =============================================================================

@inventory_bp.get("/toolkits")
def list_toolkits():
    """
    List toolkits (with contents) and their effective status.

    Query params:
    - department, storage_name, storage_code, qr_location: str (optional)
    """
    items = inventory_service.list_toolkits(**_filter_args())
    return jsonify({"items": items, "count": len(items)}), 200


@inventory_bp.post("/toolkits")
def create_toolkit():
    """
    Create a toolkit with optional contents.

    Request body: toolkit fields plus
        "contents": [{"name": str, "eq_number": str, "qty": int, ...}, ...] (optional)

    Returns:
        201: Created
        400: Invalid request
        409: Kit number or QR code already used
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400
    payload = dict(payload)
    raw_contents = payload.pop("contents", None) or []

    try:
        if not isinstance(raw_contents, list):
            raise ValidationError("contents must be a list")
        patch = _validate_toolkit_patch(payload, partial=False)
        contents = [_validate_content_patch(c) for c in raw_contents]
        kit = inventory_service.create_toolkit(patch=patch, contents=contents)
        db.session.commit()
        return jsonify(kit.to_dict()), 201

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create toolkit")
        return jsonify({"error": "Failed to create toolkit"}), 500


@inventory_bp.post("/toolkits/<int:toolkit_id>/contents")
def add_kit_content(toolkit_id: int):
    """
    Add a content line to a toolkit.

    Returns:
        201: Created content
        400: Invalid request
        404: Toolkit not found
    """
    payload = request.get_json(silent=True) or {}
    try:
        patch = _validate_content_patch(payload)
        content = inventory_service.add_kit_content(toolkit_id=toolkit_id, patch=patch)
        if content is None:
            db.session.rollback()
            return jsonify({"error": "Toolkit not found"}), 404
        db.session.commit()
        return jsonify(content.to_dict()), 201

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to add kit content")
        return jsonify({"error": "Failed to add kit content"}), 500


@inventory_bp.patch("/toolkits/<int:toolkit_id>/audit")
def mark_toolkit_audit(toolkit_id: int):
    """
    Set a toolkit's audit mark.

    Request body: {"audit_status": str} (optional; omitted = derive from contents)

    Returns:
        200: Updated toolkit
        400: Invalid audit status
        404: Toolkit not found
    """
    data = request.get_json(silent=True) or {}
    try:
        kit = inventory_service.mark_toolkit_audit(
            toolkit_id=toolkit_id, audit_status=data.get("audit_status")
        )
        if kit is None:
            db.session.rollback()
            return jsonify({"error": "Toolkit not found"}), 404
        db.session.commit()
        return jsonify(kit.to_dict()), 200

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to mark toolkit audit")
        return jsonify({"error": "Failed to mark toolkit audit"}), 500


@inventory_bp.patch("/toolkits/<int:toolkit_id>/contents/<int:content_id>/audit")
def mark_kit_content_audit(toolkit_id: int, content_id: int):
    """
    Set one kit content's audit mark; the toolkit's status is re-derived.

    Request body: {"audit_status": "present" | "needs_update" | "pending"}

    Returns:
        200: Parent toolkit with contents
        400: Invalid audit status
        404: Toolkit or content not found
    """
    data = request.get_json(silent=True) or {}
    try:
        kit = inventory_service.mark_kit_content_audit(
            toolkit_id=toolkit_id,
            content_id=content_id,
            audit_status=data["audit_status"],
        )
        if kit is None:
            db.session.rollback()
            return jsonify({"error": "Toolkit content not found"}), 404
        db.session.commit()
        return jsonify(kit.to_dict()), 200

    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to mark kit content audit")
        return jsonify({"error": "Failed to mark kit content audit"}), 500
