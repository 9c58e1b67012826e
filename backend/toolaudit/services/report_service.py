# Overview: EQ5044 tool audit report assembly (storage summary + audit history matrix).

"""
EQ5044 report.

The printed form lists every item currently in a storage, grouped by QR
location, against the most recent audit snapshots of that storage. Every
sixth audit column carries a supervisor sign-off box.

Read-only: nothing here writes to the database.
"""
from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import AuditCycle
from ..time_utils import to_utc_z, utcnow
from ..validation import require_storage_key
from .audit_history import DEFAULT_MAX_AUDIT_COLUMNS, DEFAULT_SIGNOFF_INTERVAL, build_history_matrix
from .audit_progress import build_storage_detail
from .calibration import DEFAULT_CAL_THRESHOLD_DAYS
from .cycle_service import find_cycle_for_storage
from .dashboard_service import load_storage_items
from .snapshot_service import load_storage_snapshots


class ReportError(Exception):
    """Raised when the report cannot be produced with the current configuration."""
    pass


def _config_int(name: str, default: int) -> int:
    value = current_app.config.get(name, default)
    try:
        value = int(value)
    except (TypeError, ValueError) as exc:
        raise ReportError(f"{name} must be an integer") from exc
    return value


def _cycle_numbers(snapshots) -> dict[int, int | None]:
    ids = {s.cycle_id for s in snapshots if s.cycle_id is not None}
    if not ids:
        return {}
    rows = db.session.query(AuditCycle.id, AuditCycle.cycle_number).filter(AuditCycle.id.in_(ids)).all()
    return {cycle_id: number for cycle_id, number in rows}


def get_eq5044_report(
    department: str,
    storage_name: str,
    storage_code: str,
    *,
    now: datetime | None = None,
) -> dict | None:
    """
    Build the EQ5044 report for one storage location.

    Returns:
        Report dict (header, summary, audit_meta, columns, locations,
        generated_at), or None when the storage holds no current items.

    Raises:
        ValidationError: if any part of the storage key is missing
        ReportError: if the column cap or sign-off interval is misconfigured
    """
    key = require_storage_key(department, storage_name, storage_code)

    max_columns = _config_int("EQ5044_MAX_AUDIT_COLUMNS", DEFAULT_MAX_AUDIT_COLUMNS)
    if max_columns < 1:
        raise ReportError("EQ5044_MAX_AUDIT_COLUMNS must be at least 1")
    signoff_interval = _config_int("SUPERVISOR_SIGNOFF_INTERVAL", DEFAULT_SIGNOFF_INTERVAL)
    threshold = _config_int("CALIBRATION_THRESHOLD_DAYS", DEFAULT_CAL_THRESHOLD_DAYS)

    tools, toolkits = load_storage_items(*key)
    if not tools and not toolkits:
        return None

    now = now or utcnow()
    cycle = find_cycle_for_storage(*key)
    detail = build_storage_detail(key, tools, toolkits, cycle, threshold_days=threshold, now=now)

    snapshots = load_storage_snapshots(*key)
    matrix = build_history_matrix(
        tools,
        toolkits,
        snapshots,
        cycle_numbers=_cycle_numbers(snapshots),
        max_columns=max_columns,
        signoff_interval=signoff_interval,
    )

    if matrix.dropped_history_items:
        current_app.logger.warning(
            "EQ5044 %s / %s / %s: %d snapshot item(s) have no current inventory record",
            *key,
            matrix.dropped_history_items,
        )

    return {
        "header": {
            "department": detail["department"],
            "storage_name": detail["storage_name"],
            "storage_code": detail["storage_code"],
            "storage_type": detail["storage_type"],
        },
        "summary": {
            "total_tools": detail["total_tools"],
            "tools_audited": detail["tools_audited"],
            "remaining_tools": detail["remaining_tools"],
            "completion_percent": detail["completion_percent"],
            "individual_tools_total": detail["individual_tools_total"],
            "toolkits_total": detail["toolkits_total"],
            "status_counts": detail["status_counts"],
        },
        "audit_meta": {
            "cycle_number": detail.get("cycle_number"),
            "max_cycles": detail.get("max_cycles"),
            "audit_status": detail.get("audit_status"),
            "next_audit_date": detail.get("next_audit_date"),
        },
        **matrix.to_dict(),
        "dropped_history_items": matrix.dropped_history_items,
        "generated_at": to_utc_z(now),
    }
