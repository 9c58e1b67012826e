"""
Audit history matrix tests (the EQ5044 join).

Pure: current items and snapshots are dicts.
"""

from datetime import datetime, timedelta

from toolaudit.services.audit_history import (
    build_history_matrix,
    normalize_qty,
    select_snapshots,
)


BASE = datetime(2026, 1, 1, 8, 0)


def _tool(tool_id, name="Tool", qr="R1", **fields):
    return {"id": tool_id, "name": name, "eq_number": f"EQ-{tool_id}", "qty": 1, "qr_location": qr, **fields}


def _snapshot(snap_id, *, day=0, tools=(), kits=(), sequence_number=None, **fields):
    return {
        "id": snap_id,
        "snapshot_date": BASE + timedelta(days=day),
        "created_at": BASE + timedelta(days=day),
        "sequence_number": sequence_number if sequence_number is not None else snap_id,
        "tool_data": list(tools),
        "toolkit_data": list(kits),
        **fields,
    }


def _rows(matrix):
    return [row for section in matrix.locations for row in section.items]


class TestRowJoin:

    def test_no_current_items_returns_none(self):
        snaps = [_snapshot(1, tools=[{"id": 1, "audit_status": "present"}])]
        assert build_history_matrix([], [], snaps) is None

    def test_deleted_tool_history_is_dropped(self):
        tools = [_tool(1, "Wrench"), _tool(2, "Driver")]
        snaps = [
            _snapshot(10, day=0, tools=[{"id": 1, "audit_status": "present"}, {"id": 2, "audit_status": "present"}]),
            _snapshot(11, day=1, tools=[{"id": 1, "audit_status": "present"}, {"id": 99, "audit_status": "present"}]),
            _snapshot(12, day=2, tools=[{"id": 2, "audit_status": "needs_update"}]),
        ]
        matrix = build_history_matrix(tools, [], snaps)

        rows = _rows(matrix)
        assert [r.id for r in rows] == ["1", "2"]
        assert all(r.row_type == "tool" for r in rows)
        assert rows[0].history == {10: True, 11: True}
        assert rows[1].history == {10: True, 12: False}
        assert matrix.dropped_history_items == 1

    def test_toolkit_present_only_and_contents(self):
        kit = {
            "id": 5,
            "name": "Kit",
            "kit_number": "K-5",
            "qr_location": "R2",
            "contents": [{"id": 50, "name": "Socket", "qty": 2}, {"id": 51, "name": "Bit"}],
        }
        snap = _snapshot(
            1,
            kits=[{
                "id": 5,
                "audit_status": "completed",
                "contents": [{"id": 50, "audit_status": "present"}, {"id": 51, "audit_status": "pending"}],
            }],
        )
        matrix = build_history_matrix([], [kit], [snap])

        rows = _rows(matrix)
        assert [r.row_type for r in rows] == ["toolkit", "kit_content", "kit_content"]
        assert rows[0].eq_number == "K-5"
        assert rows[0].history == {1: False}
        assert rows[1].parent_kit_id == "5"
        assert rows[1].qty == 2
        assert rows[1].history == {1: True}
        assert rows[2].history == {1: False}
        assert "parent_kit_id" not in rows[0].to_dict()
        assert rows[1].to_dict()["parent_kit_id"] == "5"

    def test_toolkit_ticked_only_when_frozen_present(self):
        kit = {"id": 1, "name": "K1", "contents": [{"id": 10, "name": "C1"}]}
        snaps = [
            _snapshot(10, day=0, kits=[{"id": 1, "audit_status": "completed", "contents": []}]),
            _snapshot(11, day=1, kits=[{"id": 1, "audit_status": "present", "contents": []}]),
            _snapshot(12, day=2, kits=[{"id": 1, "audit_status": "in_progress", "contents": []}]),
        ]
        kit_row = _rows(build_history_matrix([], [kit], snaps))[0]
        assert kit_row.history == {10: False, 11: True, 12: False}

    def test_content_without_id_uses_position(self):
        kit = {"id": 7, "name": "Kit", "contents": [{"name": "A"}, {"name": "B"}]}
        snap = _snapshot(
            3,
            kits=[{"id": 7, "audit_status": "in_progress", "contents": [{"audit_status": "pending"}, {"audit_status": "present"}]}],
        )
        matrix = build_history_matrix([], [kit], [snap])

        rows = _rows(matrix)
        assert rows[1].id == "7::0"
        assert rows[2].id == "7::1"
        assert rows[0].history == {3: False}
        assert rows[2].history == {3: True}

    def test_legacy_frozen_keys(self):
        snap = _snapshot(1, tools=[{"_id": "4", "auditStatus": "present"}])
        matrix = build_history_matrix([_tool(4)], [], [snap])
        assert _rows(matrix)[0].history == {1: True}

    def test_sections_sorted_with_unassigned_bucket(self):
        tools = [_tool(1, qr="ZZ"), _tool(2, qr=None), _tool(3, qr="AA")]
        matrix = build_history_matrix(tools, [], [])
        assert [s.qr_location for s in matrix.locations] == ["AA", "UNASSIGNED", "ZZ"]
        assert matrix.columns == []

    def test_non_list_snapshot_data_is_ignored(self):
        snap = _snapshot(1)
        snap["tool_data"] = {"id": 1}
        matrix = build_history_matrix([_tool(1)], [], [snap])
        assert _rows(matrix)[0].history == {}


class TestColumns:

    def test_cap_keeps_most_recent_in_order(self):
        snaps = [_snapshot(i, day=i) for i in range(1, 16)]
        matrix = build_history_matrix([_tool(1)], [], list(reversed(snaps)), max_columns=12)

        assert [c.id for c in matrix.columns] == list(range(4, 16))

    def test_supervisor_required_every_sixth(self):
        snaps = [_snapshot(i, day=i) for i in range(1, 8)]
        matrix = build_history_matrix([_tool(1)], [], snaps)

        flags = [c.supervisor_required for c in matrix.columns]
        assert flags == [False, False, False, False, False, True, False]

    def test_label_uses_cycle_number_and_short_date(self):
        matrix = build_history_matrix([_tool(1)], [], [_snapshot(1, day=6, sequence_number=3)])
        column = matrix.columns[0]
        assert column.label == "Cycle 3 – 07/01/26"
        assert column.cycle_number == 3
        assert column.date == "2026-01-07T08:00:00Z"

    def test_cycle_fallback_from_cycle_map(self):
        snap = _snapshot(1, cycle_id=9)
        snap["sequence_number"] = None
        matrix = build_history_matrix([_tool(1)], [], [snap], cycle_numbers={9: 6})
        assert matrix.columns[0].cycle_number == 6
        assert matrix.columns[0].supervisor_required is True

    def test_label_without_cycle_number(self):
        snap = _snapshot(1)
        snap["sequence_number"] = None
        matrix = build_history_matrix([_tool(1)], [], [snap])
        assert matrix.columns[0].label == "01/01/26"
        assert matrix.columns[0].supervisor_required is False

    def test_ties_broken_by_created_at(self):
        later = _snapshot(2, day=0)
        later["created_at"] = BASE + timedelta(hours=1)
        earlier = _snapshot(1, day=0)
        assert [s["id"] for s in select_snapshots([later, earlier], 12)] == [1, 2]


class TestQuantity:

    def test_defaults(self):
        assert normalize_qty(None) == 1
        assert normalize_qty("3") == 1
        assert normalize_qty(0) == 1
        assert normalize_qty(-2) == 1
        assert normalize_qty(float("nan")) == 1
        assert normalize_qty(True) == 1

    def test_valid(self):
        assert normalize_qty(4) == 4
        assert normalize_qty(2.0) == 2
        assert normalize_qty(1.5) == 1.5
