# Overview: Rebuilds the EQ5044 item x audit-snapshot presence matrix for one storage location.

"""
Audit history reconstruction.

Rows    = current tools / toolkits / kit contents, grouped by QR location
Columns = audit snapshots (one per completed audit run), oldest first
Cell    = True / False: was the item marked present in that run

JOIN: history is matched on item identity only. A frozen item whose id no
longer exists in the live inventory gets no row; it is counted in
dropped_history_items so drift between inventory and history is visible.
Deleted items are NOT resurrected as "retired" rows.

No database access here; report_service loads the records.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

from toolaudit.services.audit_progress import UNASSIGNED_LOCATION
from toolaudit.services.calibration import item_field
from toolaudit.time_utils import coerce_datetime, format_short_date, to_utc_z


ROW_TOOL = "tool"
ROW_TOOLKIT = "toolkit"
ROW_KIT_CONTENT = "kit_content"

DEFAULT_MAX_AUDIT_COLUMNS = 12
DEFAULT_SIGNOFF_INTERVAL = 6

# Only an explicit "present" mark puts a tick in the box, for every row type
_PRESENT_ITEM = frozenset({"present"})


@dataclass
class HistoryRow:
    row_type: str
    id: str
    description: str
    qty: int | float = 1
    eq_number: str | None = None
    # Only kit_content rows point back at their toolkit
    parent_kit_id: str | None = None
    history: dict[Any, bool] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = {
            "row_type": self.row_type,
            "id": self.id,
            "description": self.description,
            "eq_number": self.eq_number,
            "qty": self.qty,
            "history": dict(self.history),
        }
        if self.row_type == ROW_KIT_CONTENT:
            data["parent_kit_id"] = self.parent_kit_id
        return data


@dataclass
class LocationSection:
    qr_location: str
    items: list[HistoryRow] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "qr_location": self.qr_location,
            "items": [row.to_dict() for row in self.items],
        }


@dataclass(frozen=True)
class AuditColumn:
    id: Any
    date: str | None
    label: str
    cycle_number: int | None
    supervisor_required: bool
    supervisor: dict | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.date,
            "label": self.label,
            "cycle_number": self.cycle_number,
            "supervisor_required": self.supervisor_required,
            "supervisor": self.supervisor,
        }


@dataclass
class HistoryMatrix:
    columns: list[AuditColumn]
    locations: list[LocationSection]
    dropped_history_items: int = 0

    def to_dict(self) -> dict:
        return {
            "columns": [c.to_dict() for c in self.columns],
            "locations": [s.to_dict() for s in self.locations],
        }


def normalize_qty(value: Any) -> int | float:
    """Quantity is at least 1; missing, non-numeric and non-positive become 1."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 1
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value) or value <= 0:
            return 1
        return int(value) if value.is_integer() else value
    return value if value > 0 else 1


def _frozen_id(item: Any) -> str | None:
    value = item_field(item, "id")
    if value is None:
        # legacy exports keyed by document id
        value = item_field(item, "_id")
    if value is None or value == "":
        return None
    return str(value)


def _frozen_audit_status(item: Any) -> str | None:
    return item_field(item, "audit_status") or item_field(item, "auditStatus")


def _content_id(content: Any, kit_id: str, index: int) -> str:
    return _frozen_id(content) or f"{kit_id}::{index}"


def row_key(row_type: str, item_id: str, parent_kit_id: str | None = None) -> str:
    if row_type == ROW_KIT_CONTENT and parent_kit_id:
        return f"{row_type}:{parent_kit_id}:{item_id}"
    return f"{row_type}:{item_id}"


def is_supervisor_required(cycle_number: int | None, interval: int = DEFAULT_SIGNOFF_INTERVAL) -> bool:
    return cycle_number is not None and interval > 0 and cycle_number % interval == 0


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


class _RowIndex:
    """Row materialization: sections in discovery order plus a key -> row map."""

    def __init__(self):
        self.sections: dict[str, LocationSection] = {}
        self.rows: dict[str, HistoryRow] = {}

    def _section(self, qr_location: str | None) -> LocationSection:
        name = qr_location or UNASSIGNED_LOCATION
        section = self.sections.get(name)
        if section is None:
            section = LocationSection(qr_location=name)
            self.sections[name] = section
        return section

    def add(self, row: HistoryRow, qr_location: str | None) -> None:
        self.rows[row_key(row.row_type, row.id, row.parent_kit_id)] = row
        self._section(qr_location).items.append(row)

    def add_tool(self, tool: Any) -> None:
        self.add(
            HistoryRow(
                row_type=ROW_TOOL,
                id=str(item_field(tool, "id")),
                description=item_field(tool, "name") or "",
                eq_number=item_field(tool, "eq_number") or None,
                qty=normalize_qty(item_field(tool, "qty")),
            ),
            item_field(tool, "qr_location"),
        )

    def add_toolkit(self, kit: Any) -> None:
        kit_id = str(item_field(kit, "id"))
        qr_location = item_field(kit, "qr_location")
        self.add(
            HistoryRow(
                row_type=ROW_TOOLKIT,
                id=kit_id,
                description=item_field(kit, "name") or "",
                eq_number=item_field(kit, "kit_number") or None,
                qty=1,
            ),
            qr_location,
        )
        # Contents have no location of their own: they sit under the kit
        for index, content in enumerate(list(item_field(kit, "contents") or [])):
            self.add(
                HistoryRow(
                    row_type=ROW_KIT_CONTENT,
                    id=_content_id(content, kit_id, index),
                    parent_kit_id=kit_id,
                    description=item_field(content, "name") or "",
                    eq_number=item_field(content, "eq_number") or None,
                    qty=normalize_qty(item_field(content, "qty")),
                ),
                qr_location,
            )

    def mark(self, key: str, snapshot_id: Any, present: bool) -> bool:
        row = self.rows.get(key)
        if row is None:
            return False
        row.history[snapshot_id] = present
        return True


def select_snapshots(snapshots: Iterable[Any], max_columns: int) -> list[Any]:
    """
    Oldest-first ordering by snapshot date, then creation time; input order
    breaks remaining ties. Only the newest max_columns are kept.
    """
    def _sort_key(snap: Any):
        return (
            coerce_datetime(item_field(snap, "snapshot_date")) or datetime.min,
            coerce_datetime(item_field(snap, "created_at")) or datetime.min,
        )

    ordered = sorted(snapshots, key=_sort_key)
    if max_columns is not None and max_columns >= 0 and len(ordered) > max_columns:
        ordered = ordered[len(ordered) - max_columns:]
    return ordered


def resolve_cycle_number(snapshot: Any, cycle_numbers: dict[Any, int | None]) -> int | None:
    """
    The audit run number printed on a column.

    The snapshot's own number wins; the linked audit cycle's counter is the
    fallback for snapshots that do not carry one.
    """
    for name in ("cycle_number", "sequence_number"):
        value = item_field(snapshot, name)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    cycle_id = item_field(snapshot, "cycle_id")
    if cycle_id is not None:
        value = cycle_numbers.get(cycle_id)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def build_column(snapshot: Any, cycle_numbers: dict[Any, int | None], signoff_interval: int) -> AuditColumn:
    when = coerce_datetime(item_field(snapshot, "snapshot_date")) or coerce_datetime(
        item_field(snapshot, "created_at")
    )
    cycle_number = resolve_cycle_number(snapshot, cycle_numbers)

    date_label = format_short_date(when) if when else "Undated"
    label = f"Cycle {cycle_number} – {date_label}" if cycle_number is not None else date_label

    supervisor = item_field(snapshot, "supervisor")
    return AuditColumn(
        id=item_field(snapshot, "id"),
        date=to_utc_z(when) if when else None,
        label=label,
        cycle_number=cycle_number,
        supervisor_required=is_supervisor_required(cycle_number, signoff_interval),
        supervisor=supervisor if isinstance(supervisor, dict) else None,
    )


def _fill_history(index: _RowIndex, snapshot: Any) -> int:
    """Copy one snapshot's presence marks onto the live rows; returns items dropped."""
    snap_id = item_field(snapshot, "id")
    dropped = 0

    for frozen in _as_list(item_field(snapshot, "tool_data")):
        tool_id = _frozen_id(frozen) if isinstance(frozen, dict) else None
        if tool_id is None:
            continue
        present = _frozen_audit_status(frozen) in _PRESENT_ITEM
        if not index.mark(row_key(ROW_TOOL, tool_id), snap_id, present):
            dropped += 1

    for frozen_kit in _as_list(item_field(snapshot, "toolkit_data")):
        kit_id = _frozen_id(frozen_kit) if isinstance(frozen_kit, dict) else None
        if kit_id is None:
            continue
        present = _frozen_audit_status(frozen_kit) in _PRESENT_ITEM
        if not index.mark(row_key(ROW_TOOLKIT, kit_id), snap_id, present):
            dropped += 1

        for position, frozen_content in enumerate(_as_list(frozen_kit.get("contents"))):
            if not isinstance(frozen_content, dict):
                continue
            content_id = _content_id(frozen_content, kit_id, position)
            present = _frozen_audit_status(frozen_content) in _PRESENT_ITEM
            if not index.mark(row_key(ROW_KIT_CONTENT, content_id, kit_id), snap_id, present):
                dropped += 1

    return dropped


def build_history_matrix(
    tools: Iterable[Any],
    toolkits: Iterable[Any],
    snapshots: Iterable[Any],
    *,
    cycle_numbers: dict[Any, int | None] | None = None,
    max_columns: int = DEFAULT_MAX_AUDIT_COLUMNS,
    signoff_interval: int = DEFAULT_SIGNOFF_INTERVAL,
) -> HistoryMatrix | None:
    """
    Build the presence matrix for one storage location.

    Returns None when the storage has no current tools or toolkits, even if
    snapshots exist: the report is driven by today's inventory.
    """
    tools = list(tools)
    toolkits = list(toolkits)
    if not tools and not toolkits:
        return None

    index = _RowIndex()
    for tool in tools:
        index.add_tool(tool)
    for kit in toolkits:
        index.add_toolkit(kit)

    cycle_numbers = cycle_numbers or {}
    selected = select_snapshots(snapshots, max_columns)
    columns = [build_column(snap, cycle_numbers, signoff_interval) for snap in selected]

    dropped = 0
    for snap in selected:
        dropped += _fill_history(index, snap)

    locations = sorted(index.sections.values(), key=lambda s: s.qr_location.casefold())
    return HistoryMatrix(columns=columns, locations=locations, dropped_history_items=dropped)
