# Overview: Tool, toolkit and storage location records plus per-item audit marking.

"""
Inventory service.

Tools and toolkits are placed by storage key (department + storage name +
storage code) and an optional QR location. Audit marks are set here; the
snapshot service later freezes them.

TOOLKIT AUDIT:
- Marking a kit content re-derives the parent toolkit's audit status:
  every content present -> completed, any content touched -> in_progress.
- A toolkit can also be marked directly (e.g. an empty kit or a manual close-out).
"""
from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import KitContent, QrLocation, StorageLocation, Tool, Toolkit
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    ITEM_AUDIT_STATUSES,
    TOOLKIT_AUDIT_STATUSES,
    ValidationError,
    require_storage_key,
    validate_audit_status,
)
from .calibration import DEFAULT_CAL_THRESHOLD_DAYS, effective_status, effective_toolkit_status
from .concurrency import lock_for_update, run_with_retry


TOOL_MUTABLE_FIELDS = {
    "name",
    "eq_number",
    "qty",
    "status",
    "calibration_due_date",
    "audit_status",
    "department",
    "storage_name",
    "storage_code",
    "storage_type",
    "qr_location",
}

TOOLKIT_MUTABLE_FIELDS = TOOL_MUTABLE_FIELDS - {"eq_number", "qty"} | {"kit_number", "qr_code"}

KIT_CONTENT_MUTABLE_FIELDS = {
    "name",
    "eq_number",
    "qty",
    "status",
    "calibration_due_date",
    "audit_status",
}


class InventoryError(Exception):
    """Raised when inventory operations fail."""
    pass


def _threshold_days() -> int:
    return int(current_app.config.get("CALIBRATION_THRESHOLD_DAYS", DEFAULT_CAL_THRESHOLD_DAYS))


def _apply_patch(obj, patch: dict, allowed: set[str]) -> None:
    for k, v in patch.items():
        if k not in allowed:
            continue
        setattr(obj, k, v)


def _normalize_storage(patch: dict) -> None:
    department, storage_name, storage_code = require_storage_key(
        patch.get("department"), patch.get("storage_name"), patch.get("storage_code")
    )
    patch["department"] = department
    patch["storage_name"] = storage_name
    patch["storage_code"] = storage_code
    # Blank location strings mean "unassigned"
    if not patch.get("qr_location"):
        patch["qr_location"] = None


# =============================================================================
# Storage locations
# =============================================================================

def create_storage_location(*, patch: dict, qr_locations: list | None = None) -> StorageLocation:
    """
    Register a storage location with its scannable rows.

    Args:
        patch: validated StorageLocation fields
        qr_locations: [{"row_name": str, "qr_code": str}, ...]

    Raises:
        ValidationError: malformed key or QR location entry
        ConflictError: storage key or QR code already registered
    """
    department, storage_name, storage_code = require_storage_key(
        patch.get("department"), patch.get("storage_name"), patch.get("storage_code")
    )
    if not isinstance(qr_locations, list):
        qr_locations = []

    existing = (
        db.session.query(StorageLocation)
        .filter_by(department=department, storage_name=storage_name, storage_code=storage_code)
        .first()
    )
    if existing:
        raise ConflictError("Storage location already exists.")

    rows = []
    seen_codes: set[str] = set()
    for entry in qr_locations:
        if not isinstance(entry, dict):
            raise ValidationError("qr_locations entries must be objects")
        row_name = str(entry.get("row_name") or "").strip()
        qr_code = str(entry.get("qr_code") or "").strip()
        if not row_name or not qr_code:
            raise ValidationError("qr_locations entries need row_name and qr_code")
        if qr_code in seen_codes:
            raise ConflictError(f"Duplicate QR code {qr_code!r}")
        seen_codes.add(qr_code)
        rows.append(QrLocation(row_name=row_name, qr_code=qr_code))

    if seen_codes:
        taken = (
            db.session.query(QrLocation.qr_code)
            .filter(QrLocation.qr_code.in_(seen_codes))
            .first()
        )
        if taken:
            raise ConflictError(f"QR code {taken[0]!r} is already assigned")

    location = StorageLocation(
        department=department,
        storage_name=storage_name,
        storage_code=storage_code,
        storage_type=patch.get("storage_type") or "",
        is_active=patch.get("is_active", True),
    )
    location.qr_locations.extend(rows)
    db.session.add(location)
    db.session.flush()
    return location


def list_storage_locations(department: str | None = None) -> list[StorageLocation]:
    query = db.session.query(StorageLocation)
    if department:
        query = query.filter(StorageLocation.department == department)
    return query.order_by(StorageLocation.storage_name.asc(), StorageLocation.id.asc()).all()


# =============================================================================
# Tools and toolkits
# =============================================================================

def _ensure_unique(model, column, value, label: str) -> None:
    if not value:
        return
    if db.session.query(model).filter(column == value).first():
        raise ConflictError(f"{label} {value!r} already exists.")


def create_tool(*, patch: dict) -> Tool:
    """
    Create a tool from a validated patch.

    Raises:
        ValidationError: malformed storage key
        ConflictError: eq_number already used by another tool
    """
    _normalize_storage(patch)
    _ensure_unique(Tool, Tool.eq_number, patch.get("eq_number"), "Equipment number")

    tool = Tool()
    _apply_patch(tool, patch, TOOL_MUTABLE_FIELDS)
    db.session.add(tool)
    db.session.flush()
    return tool


def create_toolkit(*, patch: dict, contents: list[dict] | None = None) -> Toolkit:
    """
    Create a toolkit and its contents in one go.

    Args:
        patch: validated Toolkit fields
        contents: validated KitContent patches

    Raises:
        ValidationError: malformed storage key
        ConflictError: kit_number or qr_code already in use
    """
    _normalize_storage(patch)
    _ensure_unique(Toolkit, Toolkit.kit_number, patch.get("kit_number"), "Kit number")
    _ensure_unique(Toolkit, Toolkit.qr_code, patch.get("qr_code"), "Toolkit QR code")

    kit = Toolkit()
    _apply_patch(kit, patch, TOOLKIT_MUTABLE_FIELDS)
    for content_patch in contents or []:
        content = KitContent()
        _apply_patch(content, content_patch, KIT_CONTENT_MUTABLE_FIELDS)
        kit.contents.append(content)

    db.session.add(kit)
    db.session.flush()
    return kit


def add_kit_content(*, toolkit_id: int, patch: dict) -> KitContent | None:
    """Append one content line to a toolkit. None if the toolkit does not exist."""
    kit = db.session.get(Toolkit, toolkit_id)
    if kit is None:
        return None

    content = KitContent()
    _apply_patch(content, patch, KIT_CONTENT_MUTABLE_FIELDS)
    kit.contents.append(content)
    db.session.flush()
    return content


def _storage_filters(query, model, department, storage_name, storage_code, qr_location):
    if department:
        query = query.filter(model.department == department)
    if storage_name:
        query = query.filter(model.storage_name == storage_name)
    if storage_code:
        query = query.filter(model.storage_code == storage_code)
    if qr_location:
        query = query.filter(model.qr_location == qr_location)
    return query


def list_tools(
    *,
    department: str | None = None,
    storage_name: str | None = None,
    storage_code: str | None = None,
    qr_location: str | None = None,
    now: datetime | None = None,
) -> list[dict]:
    """Tools with their derived effective_status (calibration override applied)."""
    query = _storage_filters(
        db.session.query(Tool), Tool, department, storage_name, storage_code, qr_location
    )
    threshold = _threshold_days()
    now = now or utcnow()

    items = []
    for tool in query.order_by(Tool.name.asc(), Tool.id.asc()).all():
        data = tool.to_dict()
        data["effective_status"] = effective_status(
            tool.status, tool.calibration_due_date, threshold, now=now
        )
        items.append(data)
    return items


def list_toolkits(
    *,
    department: str | None = None,
    storage_name: str | None = None,
    storage_code: str | None = None,
    qr_location: str | None = None,
    now: datetime | None = None,
) -> list[dict]:
    """Toolkits with contents; a kit is for_calibration if any content is due."""
    query = _storage_filters(
        db.session.query(Toolkit), Toolkit, department, storage_name, storage_code, qr_location
    )
    threshold = _threshold_days()
    now = now or utcnow()

    items = []
    for kit in query.order_by(Toolkit.name.asc(), Toolkit.id.asc()).all():
        data = kit.to_dict(include_contents=True)
        data["effective_status"] = effective_toolkit_status(kit, threshold, now=now)
        for content_data, content in zip(data["contents"], kit.contents):
            content_data["effective_status"] = effective_status(
                content.status, content.calibration_due_date, threshold, now=now
            )
        items.append(data)
    return items


# =============================================================================
# Audit marking
# =============================================================================

def derive_toolkit_audit_status(contents) -> str:
    """
    Toolkit audit status from its contents.

    All present -> completed; anything marked -> in_progress; else pending.
    """
    statuses = [c.audit_status for c in contents]
    if statuses and all(s == "present" for s in statuses):
        return "completed"
    if any(s and s != "pending" for s in statuses):
        return "in_progress"
    return "pending"


def mark_tool_audit(*, tool_id: int, audit_status: str) -> Tool | None:
    """
    Set a tool's audit mark.

    Raises:
        ValidationError: audit_status not one of present / needs_update / pending
    """
    validate_audit_status(audit_status, allowed=ITEM_AUDIT_STATUSES)

    def _op():
        tool = lock_for_update(db.session.query(Tool).filter_by(id=tool_id)).first()
        if tool is None:
            return None
        tool.audit_status = audit_status
        tool.last_audited_at = None if audit_status == "pending" else utcnow()
        db.session.flush()
        return tool

    return run_with_retry(_op)


def mark_toolkit_audit(*, toolkit_id: int, audit_status: str | None = None) -> Toolkit | None:
    """
    Set a toolkit's audit mark, or re-derive it from the contents when
    audit_status is None.
    """
    if audit_status is not None:
        validate_audit_status(audit_status, allowed=TOOLKIT_AUDIT_STATUSES)

    def _op():
        kit = lock_for_update(db.session.query(Toolkit).filter_by(id=toolkit_id)).first()
        if kit is None:
            return None
        status = audit_status or derive_toolkit_audit_status(kit.contents)
        kit.audit_status = status
        kit.last_audited_at = None if status == "pending" else utcnow()
        db.session.flush()
        return kit

    return run_with_retry(_op)


def mark_kit_content_audit(*, toolkit_id: int, content_id: int, audit_status: str) -> Toolkit | None:
    """
    Set one kit content's audit mark and roll the result up to its toolkit.

    Returns:
        The parent Toolkit (with refreshed audit_status), or None if either
        the toolkit or the content does not exist.
    """
    validate_audit_status(audit_status, allowed=ITEM_AUDIT_STATUSES)

    def _op():
        kit = lock_for_update(db.session.query(Toolkit).filter_by(id=toolkit_id)).first()
        if kit is None:
            return None
        content = next((c for c in kit.contents if c.id == content_id), None)
        if content is None:
            return None

        now = utcnow()
        content.audit_status = audit_status
        content.last_audited_at = None if audit_status == "pending" else now

        kit.audit_status = derive_toolkit_audit_status(kit.contents)
        kit.last_audited_at = None if kit.audit_status == "pending" else now
        db.session.flush()
        return kit

    return run_with_retry(_op)


def reset_storage_audit(department: str, storage_name: str, storage_code: str) -> int:
    """
    Put every item of a storage back to pending for the next audit run.

    Returns:
        Number of tools and toolkits reset.

    Raises:
        InventoryError: if the storage holds no items
    """
    department, storage_name, storage_code = require_storage_key(department, storage_name, storage_code)
    key = dict(department=department, storage_name=storage_name, storage_code=storage_code)

    def _op():
        tools = db.session.query(Tool).filter_by(**key).all()
        kits = db.session.query(Toolkit).filter_by(**key).all()
        if not tools and not kits:
            raise InventoryError("Storage location has no tools or toolkits")
        for item in tools + kits:
            item.audit_status = "pending"
            item.last_audited_at = None
        for kit in kits:
            for content in kit.contents:
                content.audit_status = "pending"
                content.last_audited_at = None
        db.session.flush()
        return len(tools) + len(kits)

    return run_with_retry(_op)
