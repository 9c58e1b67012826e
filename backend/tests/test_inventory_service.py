"""
Inventory, audit marking, cycle and scan service tests.
"""

from datetime import date, timedelta

import pytest

from toolaudit.models import Tool
from toolaudit.services import cycle_service, inventory_service, scan_service
from toolaudit.validation import ConflictError, ValidationError


MAIN_SHELF = {"department": "Dept A", "storage_name": "Main Shelf", "storage_code": "MS-01"}


class TestCreateInventory:

    def test_create_tool_normalizes_placement(self, db_session):
        tool = inventory_service.create_tool(
            patch={"name": "Wrench", **MAIN_SHELF, "department": " Dept A ", "qr_location": ""}
        )
        db_session.commit()

        assert tool.department == "Dept A"
        assert tool.qr_location is None
        assert tool.qty == 1
        assert tool.audit_status == "pending"

    def test_duplicate_eq_number_conflicts(self, db_session, make_tool):
        make_tool("Wrench", eq_number="EQ-1")
        with pytest.raises(ConflictError):
            inventory_service.create_tool(patch={"name": "Other", "eq_number": "EQ-1", **MAIN_SHELF})

    def test_missing_storage_key(self, db_session):
        with pytest.raises(ValidationError):
            inventory_service.create_tool(patch={"name": "Wrench", "department": "Dept A"})

    def test_create_toolkit_with_contents(self, db_session):
        kit = inventory_service.create_toolkit(
            patch={"name": "Kit", "kit_number": "K-1", **MAIN_SHELF},
            contents=[{"name": "Socket", "qty": 2}, {"name": "Bit"}],
        )
        db_session.commit()

        assert [c.name for c in kit.contents] == ["Socket", "Bit"]
        assert kit.contents[0].qty == 2

        content = inventory_service.add_kit_content(toolkit_id=kit.id, patch={"name": "Ratchet"})
        db_session.commit()
        assert content.toolkit_id == kit.id
        assert inventory_service.add_kit_content(toolkit_id=9999, patch={"name": "X"}) is None

    def test_storage_location_with_qr_rows(self, db_session):
        location = inventory_service.create_storage_location(
            patch={**MAIN_SHELF, "storage_type": "Shelf"},
            qr_locations=[{"row_name": "Row 1", "qr_code": "MS-01-R1"}],
        )
        db_session.commit()
        assert location.qr_locations[0].qr_code == "MS-01-R1"

        with pytest.raises(ConflictError):
            inventory_service.create_storage_location(patch={**MAIN_SHELF, "storage_type": "Shelf"})
        with pytest.raises(ConflictError):
            inventory_service.create_storage_location(
                patch={**MAIN_SHELF, "storage_code": "MS-02", "storage_type": "Shelf"},
                qr_locations=[{"row_name": "Row 1", "qr_code": "MS-01-R1"}],
            )


class TestListings:

    def test_effective_status_is_derived_not_stored(self, db_session, make_tool):
        tool = make_tool("Gauge", status="in_use", calibration_due_date=date.today() - timedelta(days=1))

        items = inventory_service.list_tools(**MAIN_SHELF)

        assert items[0]["effective_status"] == "for_calibration"
        assert items[0]["status"] == "in_use"
        assert db_session.get(Tool, tool.id).status == "in_use"

    def test_toolkit_due_through_content(self, db_session, make_toolkit):
        make_toolkit(
            "Kit",
            contents=[{"name": "Meter", "calibration_due_date": date.today() + timedelta(days=3)}],
        )
        items = inventory_service.list_toolkits(**MAIN_SHELF)
        assert items[0]["effective_status"] == "for_calibration"
        assert items[0]["contents"][0]["effective_status"] == "for_calibration"


class TestAuditMarking:

    def test_mark_tool(self, db_session, make_tool):
        tool = make_tool()
        marked = inventory_service.mark_tool_audit(tool_id=tool.id, audit_status="present")
        db_session.commit()
        assert marked.audit_status == "present"
        assert marked.last_audited_at is not None

        assert inventory_service.mark_tool_audit(tool_id=9999, audit_status="present") is None

    def test_invalid_tool_status(self, db_session, make_tool):
        tool = make_tool()
        with pytest.raises(ValidationError):
            inventory_service.mark_tool_audit(tool_id=tool.id, audit_status="completed")

    def test_content_marks_roll_up(self, db_session, make_toolkit):
        kit = make_toolkit(contents=[{"name": "A"}, {"name": "B"}])
        first, second = [c.id for c in kit.contents]

        kit = inventory_service.mark_kit_content_audit(toolkit_id=kit.id, content_id=first, audit_status="present")
        assert kit.audit_status == "in_progress"

        kit = inventory_service.mark_kit_content_audit(toolkit_id=kit.id, content_id=second, audit_status="needs_update")
        assert kit.audit_status == "in_progress"

        kit = inventory_service.mark_kit_content_audit(toolkit_id=kit.id, content_id=second, audit_status="present")
        assert kit.audit_status == "completed"
        db_session.commit()

        assert inventory_service.mark_kit_content_audit(
            toolkit_id=kit.id, content_id=9999, audit_status="present"
        ) is None

    def test_toolkit_direct_and_derived(self, db_session, make_toolkit):
        kit = make_toolkit(contents=[{"name": "A"}])
        assert inventory_service.mark_toolkit_audit(toolkit_id=kit.id, audit_status="completed").audit_status == "completed"
        assert inventory_service.mark_toolkit_audit(toolkit_id=kit.id).audit_status == "pending"

        with pytest.raises(ValidationError):
            inventory_service.mark_toolkit_audit(toolkit_id=kit.id, audit_status="lost")

    def test_reset_storage_audit(self, db_session, make_tool, make_toolkit):
        make_tool(audit_status="present")
        make_toolkit(audit_status="completed", contents=[{"name": "A", "audit_status": "present"}])

        assert inventory_service.reset_storage_audit(**MAIN_SHELF) == 2
        db_session.commit()

        assert {t["audit_status"] for t in inventory_service.list_tools(**MAIN_SHELF)} == {"pending"}
        kit = inventory_service.list_toolkits(**MAIN_SHELF)[0]
        assert kit["audit_status"] == "pending"
        assert kit["contents"][0]["audit_status"] == "pending"

        with pytest.raises(inventory_service.InventoryError):
            inventory_service.reset_storage_audit("Dept A", "Empty", "E-1")


class TestCycles:

    @pytest.mark.parametrize("frequency,expected", [("monthly", 12), ("quarterly", 4), ("custom", 1)])
    def test_default_max_cycles(self, db_session, frequency, expected):
        cycle = cycle_service.create_audit_cycle(
            **MAIN_SHELF, frequency=frequency, next_audit_date="2026-05-01"
        )
        assert cycle.max_cycles == expected
        assert cycle.cycle_number == 0
        assert cycle.status == "not_started"

    def test_next_audit_date_required(self, db_session):
        with pytest.raises(cycle_service.CycleError):
            cycle_service.create_audit_cycle(**MAIN_SHELF, next_audit_date=None)

    def test_bad_frequency(self, db_session):
        with pytest.raises(cycle_service.CycleError):
            cycle_service.create_audit_cycle(**MAIN_SHELF, frequency="weekly", next_audit_date="2026-05-01")

    def test_run_counter_wraps(self, db_session, make_cycle):
        cycle = make_cycle(frequency="quarterly", max_cycles=4, cycle_number=4)
        cycle_service.record_audit_run(cycle, when=cycle.next_audit_date)
        assert cycle.cycle_number == 1


class TestScan:

    def test_storage_row_code(self, db_session, make_tool, make_toolkit):
        inventory_service.create_storage_location(
            patch={**MAIN_SHELF, "storage_type": "Shelf"},
            qr_locations=[{"row_name": "Row 1", "qr_code": "MS-01-R1"}],
        )
        db_session.commit()
        make_tool("Wrench")
        make_tool("Elsewhere", qr_location="MS-01-R2")
        make_toolkit("Kit")

        context = scan_service.resolve_scan(" MS-01-R1 ")

        assert context["type"] == "storage"
        assert context["storage"]["row_name"] == "Row 1"
        assert [t["name"] for t in context["tools"]] == ["Wrench"]
        assert [k["name"] for k in context["toolkits"]] == ["Kit"]

    def test_toolkit_code(self, db_session, make_toolkit):
        make_toolkit("Kit", qr_code="KIT-7", contents=[{"name": "A"}])
        context = scan_service.resolve_scan("KIT-7")
        assert context["type"] == "toolkit"
        assert context["toolkit"]["name"] == "Kit"
        assert len(context["toolkit"]["contents"]) == 1

    def test_unknown_and_blank(self, db_session):
        assert scan_service.resolve_scan("NOPE") is None
        with pytest.raises(scan_service.ScanError):
            scan_service.resolve_scan("  ")
