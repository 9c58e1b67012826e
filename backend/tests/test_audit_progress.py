"""
Audit progress aggregation tests (dashboard rows and storage detail).

Records are plain dicts, the same shape the ORM rows expose.
"""

from datetime import date, datetime, timedelta

from toolaudit.services.audit_progress import (
    build_storage_detail,
    derive_audit_status,
    progress_percent,
    summarize_storages,
)


NOW = datetime(2026, 3, 10, 12, 0)
MAIN = ("Dept A", "Main Shelf", "MS-01")


def _item(key=MAIN, **fields):
    department, storage_name, storage_code = key
    return {
        "department": department,
        "storage_name": storage_name,
        "storage_code": storage_code,
        "storage_type": "Shelf",
        "qr_location": "R1",
        "audit_status": "pending",
        "status": "available",
        "calibration_due_date": None,
        **fields,
    }


class TestProgressPercent:

    def test_zero_total(self):
        assert progress_percent(0, 0) == 0

    def test_rounds_half_up(self):
        assert progress_percent(1, 8) == 13
        assert progress_percent(1, 3) == 33
        assert progress_percent(2, 3) == 67

    def test_clamped(self):
        assert progress_percent(5, 4) == 100


class TestDeriveAuditStatus:

    def test_no_cycle_defaults_to_not_started(self):
        assert derive_audit_status(cycle=None, checked=0, total=3, now=NOW) == "not_started"

    def test_partial_is_in_progress(self):
        assert derive_audit_status(cycle=None, checked=1, total=3, now=NOW) == "in_progress"

    def test_all_checked_is_completed_even_when_overdue(self):
        cycle = {"status": "in_progress", "next_audit_date": NOW - timedelta(days=3)}
        assert derive_audit_status(cycle=cycle, checked=3, total=3, now=NOW) == "completed"

    def test_past_next_audit_is_overdue(self):
        cycle = {"status": "not_started", "next_audit_date": NOW - timedelta(days=1)}
        assert derive_audit_status(cycle=cycle, checked=1, total=3, now=NOW) == "overdue"

    def test_cycle_status_kept_when_nothing_counted(self):
        cycle = {"status": "in_progress", "next_audit_date": NOW + timedelta(days=10)}
        assert derive_audit_status(cycle=cycle, checked=0, total=0, now=NOW) == "in_progress"


class TestSummarizeStorages:

    def test_toolkit_only_storage_still_listed(self):
        kits = [
            _item(audit_status="completed"),
            _item(audit_status="in_progress", qr_location="R2"),
        ]
        rows = summarize_storages([], kits, {}, now=NOW)

        assert len(rows) == 1
        row = rows[0]
        assert row["individual_tools_total"] == 0
        assert row["toolkits_total"] == 2
        assert row["toolkits_checked"] == 1
        assert row["tools_total"] == 2
        assert row["progress_percent"] == 50
        assert row["storage_units_count"] == 2
        assert row["cycle_number"] is None
        assert row["next_audit_date"] is None

    def test_groups_by_storage_key_and_sorts_by_name(self):
        cage = ("Dept A", "Cage", "CG-01")
        tools = [
            _item(audit_status="present"),
            _item(audit_status="needs_update"),
            _item(),
            _item(key=cage, qr_location=None),
        ]
        rows = summarize_storages(tools, [], {}, now=NOW)

        assert [r["storage_name"] for r in rows] == ["Cage", "Main Shelf"]
        main = rows[1]
        assert main["individual_tools_total"] == 3
        # needs_update still counts as checked
        assert main["individual_tools_checked"] == 2
        assert main["audit_status"] == "in_progress"
        assert rows[0]["storage_units_count"] == 0

    def test_toolkit_present_is_not_checked(self):
        rows = summarize_storages([], [_item(audit_status="present")], {}, now=NOW)
        assert rows[0]["toolkits_checked"] == 0

    def test_cycle_meta_attached(self):
        cycle = {
            "status": "not_started",
            "cycle_number": 4,
            "max_cycles": 12,
            "next_audit_date": datetime(2026, 4, 1),
        }
        rows = summarize_storages([_item()], [], {MAIN: cycle}, now=NOW)

        assert rows[0]["cycle_number"] == 4
        assert rows[0]["max_cycles"] == 12
        assert rows[0]["next_audit_date"] == "2026-04-01T00:00:00Z"

    def test_empty_input(self):
        assert summarize_storages([], [], {}, now=NOW) == []


class TestBuildStorageDetail:

    def test_none_when_empty(self):
        assert build_storage_detail(MAIN, [], [], None, now=NOW) is None

    def test_status_counts_use_effective_status(self):
        tools = [
            _item(status="damaged", calibration_due_date=date(2026, 3, 12)),
            _item(status="in_use"),
        ]
        detail = build_storage_detail(MAIN, tools, [], None, now=NOW)

        assert detail["status_counts"]["for_calibration"] == 1
        assert detail["status_counts"]["in_use"] == 1
        assert detail["status_counts"]["damaged"] == 0

    def test_toolkit_summary_and_qr_locations(self):
        tools = [_item(audit_status="present"), _item(qr_location=None)]
        kits = [
            _item(id=1, name="Kit A", audit_status="completed", contents=[{}, {}]),
            _item(id=2, name="Kit B", audit_status="in_progress", qr_location="R2", contents=[{}]),
            _item(id=3, name="Kit C", audit_status="pending", qr_location="R2"),
        ]
        detail = build_storage_detail(MAIN, tools, kits, None, now=NOW)

        assert detail["total_tools"] == 5
        assert detail["tools_audited"] == 2
        assert detail["remaining_tools"] == 3
        assert detail["completion_percent"] == 40
        assert detail["individual_tools_total"] == 2
        assert detail["toolkits_total"] == 3

        summary = detail["toolkits_summary"]
        assert summary["completed"] == 1
        assert summary["in_progress"] == 1
        assert summary["not_started"] == 1
        assert [p["name"] for p in summary["pending_items"]] == ["Kit B", "Kit C"]
        assert summary["pending_items"][0]["contents_count"] == 1

        by_location = {q["qr_location"]: q for q in detail["qr_locations"]}
        assert by_location["R1"] == {"qr_location": "R1", "total_units": 2, "audited_units": 2, "percent": 100}
        assert by_location["R2"]["total_units"] == 2
        assert by_location["R2"]["audited_units"] == 0
        assert by_location["UNASSIGNED"]["total_units"] == 1
