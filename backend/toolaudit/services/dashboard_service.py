# Overview: Storage audit dashboards; loads inventory and cycles, delegates the math to audit_progress.

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Tool, Toolkit
from ..time_utils import utcnow
from ..validation import require_storage_key
from .audit_progress import build_storage_detail, summarize_storages
from .calibration import DEFAULT_CAL_THRESHOLD_DAYS
from .cycle_service import cycles_by_storage_key, find_cycle_for_storage


def _threshold_days() -> int:
    return int(current_app.config.get("CALIBRATION_THRESHOLD_DAYS", DEFAULT_CAL_THRESHOLD_DAYS))


def load_storage_items(department: str, storage_name: str, storage_code: str) -> tuple[list[Tool], list[Toolkit]]:
    """Current tools and toolkits of one storage, in insertion order."""
    key = dict(department=department, storage_name=storage_name, storage_code=storage_code)
    tools = db.session.query(Tool).filter_by(**key).order_by(Tool.id.asc()).all()
    toolkits = db.session.query(Toolkit).filter_by(**key).order_by(Toolkit.id.asc()).all()
    return tools, toolkits


def get_storage_dashboard(department: str | None = None, *, now: datetime | None = None) -> list[dict]:
    """
    Audit progress for every storage that holds tools or toolkits.

    Args:
        department: optional exact-match filter

    Returns:
        List of storage rows sorted by storage name (empty list if nothing matches).
    """
    tool_query = db.session.query(Tool)
    kit_query = db.session.query(Toolkit)
    if department:
        tool_query = tool_query.filter(Tool.department == department)
        kit_query = kit_query.filter(Toolkit.department == department)

    return summarize_storages(
        tool_query.order_by(Tool.id.asc()).all(),
        kit_query.order_by(Toolkit.id.asc()).all(),
        cycles_by_storage_key(department),
        now=now or utcnow(),
    )


def get_storage_detail(
    department: str,
    storage_name: str,
    storage_code: str,
    *,
    now: datetime | None = None,
) -> dict | None:
    """
    Detailed audit progress for one storage.

    Returns:
        Detail dict, or None when the storage holds no tools or toolkits.

    Raises:
        ValidationError: if any part of the storage key is missing
    """
    key = require_storage_key(department, storage_name, storage_code)
    tools, toolkits = load_storage_items(*key)
    if not tools and not toolkits:
        return None

    return build_storage_detail(
        key,
        tools,
        toolkits,
        find_cycle_for_storage(*key),
        threshold_days=_threshold_days(),
        now=now or utcnow(),
    )
