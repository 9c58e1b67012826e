# Overview: Audit progress aggregation per storage location (dashboard rows and storage detail).

"""
Audit progress aggregation.

Pure functions over already-loaded tool / toolkit records (ORM rows or
dicts). dashboard_service does the querying and hands the records in here.

COUNTING RULES:
- A tool is "checked" once its audit_status is anything but pending.
- A toolkit is "checked" only when its audit_status is exactly completed
  (its contents all had to be audited first).
- One audit unit per tool and per toolkit; kit contents are not units.
"""
from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Iterable

from toolaudit.services.calibration import (
    DEFAULT_CAL_THRESHOLD_DAYS,
    effective_status,
    effective_toolkit_status,
    item_field,
)
from toolaudit.time_utils import coerce_datetime, to_utc_z, utcnow
from toolaudit.validation import TOOL_STATUSES


UNASSIGNED_LOCATION = "UNASSIGNED"

AUDIT_STATUS_NOT_STARTED = "not_started"
AUDIT_STATUS_IN_PROGRESS = "in_progress"
AUDIT_STATUS_COMPLETED = "completed"
AUDIT_STATUS_OVERDUE = "overdue"

StorageKey = tuple[str, str, str]


def storage_key_of(item: Any) -> StorageKey:
    return (
        item_field(item, "department"),
        item_field(item, "storage_name"),
        item_field(item, "storage_code"),
    )


def is_tool_checked(tool: Any) -> bool:
    status = item_field(tool, "audit_status")
    return bool(status) and status != "pending"


def is_toolkit_checked(toolkit: Any) -> bool:
    return item_field(toolkit, "audit_status") == "completed"


def progress_percent(checked: int, total: int) -> int:
    if not total or total <= 0:
        return 0
    raw = checked / total * 100
    # Half-up, not banker's rounding: 12.5% shows as 13%
    return max(0, min(100, math.floor(raw + 0.5)))


def derive_audit_status(
    *,
    cycle: Any | None,
    checked: int,
    total: int,
    now: datetime | None = None,
) -> str:
    """
    Storage audit status from the stored cycle status plus live counts.

    Overdue wins over everything except a fully completed audit.
    """
    status = item_field(cycle, "status") if cycle is not None else None
    status = status or AUDIT_STATUS_NOT_STARTED

    if 0 < checked < total:
        status = AUDIT_STATUS_IN_PROGRESS
    elif total > 0 and checked == total:
        status = AUDIT_STATUS_COMPLETED

    next_audit = coerce_datetime(item_field(cycle, "next_audit_date")) if cycle is not None else None
    now = now or utcnow()
    if next_audit is not None and next_audit < now and status != AUDIT_STATUS_COMPLETED:
        status = AUDIT_STATUS_OVERDUE

    return status


def _cycle_meta(cycle: Any | None) -> dict:
    if cycle is None:
        return {"cycle_number": None, "max_cycles": None, "next_audit_date": None}
    next_audit = coerce_datetime(item_field(cycle, "next_audit_date"))
    return {
        "cycle_number": item_field(cycle, "cycle_number"),
        "max_cycles": item_field(cycle, "max_cycles"),
        "next_audit_date": to_utc_z(next_audit) if next_audit else None,
    }


class _StorageGroup:
    __slots__ = (
        "storage_type",
        "tools_total",
        "tools_checked",
        "toolkits_total",
        "toolkits_checked",
        "qr_locations",
    )

    def __init__(self, storage_type: str):
        self.storage_type = storage_type
        self.tools_total = 0
        self.tools_checked = 0
        self.toolkits_total = 0
        self.toolkits_checked = 0
        self.qr_locations: set[str] = set()


def summarize_storages(
    tools: Iterable[Any],
    toolkits: Iterable[Any],
    cycles: dict[StorageKey, Any],
    *,
    now: datetime | None = None,
) -> list[dict]:
    """
    One dashboard row per storage that holds at least one tool or toolkit.

    cycles maps (department, storage_name, storage_code) to that storage's
    audit cycle; storages without one get null cycle fields.
    """
    groups: dict[StorageKey, _StorageGroup] = {}

    def _group(item: Any) -> _StorageGroup:
        key = storage_key_of(item)
        group = groups.get(key)
        if group is None:
            group = _StorageGroup(item_field(item, "storage_type") or "")
            groups[key] = group
        elif not group.storage_type:
            group.storage_type = item_field(item, "storage_type") or ""
        qr = item_field(item, "qr_location")
        if qr:
            group.qr_locations.add(qr)
        return group

    for tool in tools:
        group = _group(tool)
        group.tools_total += 1
        if is_tool_checked(tool):
            group.tools_checked += 1

    for kit in toolkits:
        group = _group(kit)
        group.toolkits_total += 1
        if is_toolkit_checked(kit):
            group.toolkits_checked += 1

    rows = []
    for key, group in groups.items():
        department, storage_name, storage_code = key
        total = group.tools_total + group.toolkits_total
        checked = group.tools_checked + group.toolkits_checked
        cycle = cycles.get(key)

        rows.append(
            {
                "department": department,
                "storage_name": storage_name,
                "storage_code": storage_code,
                "storage_type": group.storage_type,
                "storage_units_count": len(group.qr_locations),
                "individual_tools_total": group.tools_total,
                "individual_tools_checked": group.tools_checked,
                "toolkits_total": group.toolkits_total,
                "toolkits_checked": group.toolkits_checked,
                "tools_total": total,
                "tools_checked": checked,
                "progress_percent": progress_percent(checked, total),
                "audit_status": derive_audit_status(cycle=cycle, checked=checked, total=total, now=now),
                **_cycle_meta(cycle),
            }
        )

    rows.sort(key=lambda r: (r["storage_name"] or "").casefold())
    return rows


def empty_status_counts() -> dict[str, int]:
    return {status: 0 for status in TOOL_STATUSES}


def _toolkit_phase(kit: Any) -> str:
    status = item_field(kit, "audit_status")
    if status == "completed":
        return "completed"
    if not status or status in ("pending", "not_started"):
        return "not_started"
    return "in_progress"


def build_storage_detail(
    key: StorageKey,
    tools: list[Any],
    toolkits: list[Any],
    cycle: Any | None,
    *,
    threshold_days: int = DEFAULT_CAL_THRESHOLD_DAYS,
    now: datetime | None = None,
) -> dict | None:
    """
    Detailed progress for one storage, or None when it holds nothing.

    Status counts use the effective status, so a tool whose calibration is
    due shows under for_calibration whatever its stored status says.
    """
    if not tools and not toolkits:
        return None

    now = now or utcnow()
    department, storage_name, storage_code = key

    status_counts = empty_status_counts()
    for tool in tools:
        status = effective_status(
            item_field(tool, "status"),
            item_field(tool, "calibration_due_date"),
            threshold_days,
            now=now,
        )
        if status in status_counts:
            status_counts[status] += 1
    for kit in toolkits:
        status = effective_toolkit_status(kit, threshold_days, now=now)
        if status in status_counts:
            status_counts[status] += 1

    individual_tools_total = len(tools)
    toolkits_total = len(toolkits)
    audited_tools = sum(1 for t in tools if is_tool_checked(t))
    completed_kits = sum(1 for k in toolkits if is_toolkit_checked(k))

    total_tools = individual_tools_total + toolkits_total
    tools_audited = audited_tools + completed_kits

    # Toolkit summary: only kits that still need work are listed
    in_progress_kits = [k for k in toolkits if _toolkit_phase(k) == "in_progress"]
    not_started_kits = [k for k in toolkits if _toolkit_phase(k) == "not_started"]
    pending_items = [
        {
            "id": item_field(k, "id"),
            "name": item_field(k, "name") or item_field(k, "kit_number") or "Unnamed toolkit",
            "qr_code": item_field(k, "qr_code"),
            "audit_status": item_field(k, "audit_status") or "pending",
            "contents_count": len(item_field(k, "contents") or []),
        }
        for k in in_progress_kits + not_started_kits
    ]

    qr_progress: dict[str, dict[str, int]] = {}

    def _bump(item: Any, audited: bool) -> None:
        location = item_field(item, "qr_location") or UNASSIGNED_LOCATION
        entry = qr_progress.setdefault(location, {"total": 0, "audited": 0})
        entry["total"] += 1
        if audited:
            entry["audited"] += 1

    for tool in tools:
        _bump(tool, is_tool_checked(tool))
    for kit in toolkits:
        _bump(kit, is_toolkit_checked(kit))

    qr_locations = [
        {
            "qr_location": location,
            "total_units": v["total"],
            "audited_units": v["audited"],
            "percent": progress_percent(v["audited"], v["total"]),
        }
        for location, v in sorted(qr_progress.items())
    ]

    first = tools[0] if tools else toolkits[0]

    return {
        "department": department,
        "storage_name": storage_name,
        "storage_code": storage_code,
        "storage_type": item_field(first, "storage_type") or "",
        "audit_status": derive_audit_status(cycle=cycle, checked=tools_audited, total=total_tools, now=now),
        **_cycle_meta(cycle),
        "total_tools": total_tools,
        "tools_audited": tools_audited,
        "remaining_tools": max(0, total_tools - tools_audited),
        "completion_percent": progress_percent(tools_audited, total_tools),
        "individual_tools_total": individual_tools_total,
        "toolkits_total": toolkits_total,
        "status_counts": status_counts,
        "toolkits_summary": {
            "total": toolkits_total,
            "completed": completed_kits,
            "in_progress": len(in_progress_kits),
            "not_started": len(not_started_kits),
            "pending_items": pending_items,
        },
        "qr_locations": qr_locations,
    }
