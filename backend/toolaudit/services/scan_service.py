# Overview: Resolves a scanned QR code to an audit context (a storage row or a toolkit).

from __future__ import annotations

from ..extensions import db
from ..models import QrLocation, Toolkit
from . import inventory_service


SCAN_TYPE_STORAGE = "storage"
SCAN_TYPE_TOOLKIT = "toolkit"


class ScanError(Exception):
    """Raised when a scanned code is unusable."""
    pass


def _normalize_code(code) -> str:
    if code is None or not isinstance(code, str) or not code.strip():
        raise ScanError("code is required")
    return code.strip()


def resolve_scan(code: str) -> dict | None:
    """
    Look up what a scanned code points at.

    Storage row codes take precedence over toolkit case codes.

    Returns:
        {"type": "storage", "storage": {...}, "tools": [...], "toolkits": [...]}
        {"type": "toolkit", "toolkit": {...}}
        None when nothing carries the code.

    Raises:
        ScanError: empty code
    """
    code = _normalize_code(code)

    qr = db.session.query(QrLocation).filter_by(qr_code=code).first()
    if qr is not None:
        location = qr.storage_location
        filters = dict(
            department=location.department,
            storage_name=location.storage_name,
            storage_code=location.storage_code,
            qr_location=qr.qr_code,
        )
        return {
            "type": SCAN_TYPE_STORAGE,
            "storage": {
                "department": location.department,
                "storage_name": location.storage_name,
                "storage_code": location.storage_code,
                "storage_type": location.storage_type,
                "qr_location": qr.qr_code,
                "row_name": qr.row_name,
            },
            "tools": inventory_service.list_tools(**filters),
            "toolkits": inventory_service.list_toolkits(**filters),
        }

    kit = db.session.query(Toolkit).filter_by(qr_code=code).first()
    if kit is not None:
        matches = inventory_service.list_toolkits(
            department=kit.department,
            storage_name=kit.storage_name,
            storage_code=kit.storage_code,
        )
        data = next((k for k in matches if k["id"] == kit.id), kit.to_dict())
        return {"type": SCAN_TYPE_TOOLKIT, "toolkit": data}

    return None
