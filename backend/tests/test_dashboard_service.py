"""
Storage dashboard tests against the database.
"""

from datetime import date, datetime, timedelta

import pytest

from toolaudit.services import dashboard_service
from toolaudit.time_utils import utcnow
from toolaudit.validation import ValidationError


MAIN_SHELF = {"department": "Dept A", "storage_name": "Main Shelf", "storage_code": "MS-01"}


class TestStorageDashboard:

    def test_toolkit_only_storage_appears(self, db_session, make_toolkit):
        make_toolkit("Kit 1", storage_code="KT-01", storage_name="Kit Cage", audit_status="completed")
        make_toolkit("Kit 2", storage_code="KT-01", storage_name="Kit Cage", qr_code="KIT-2")

        rows = dashboard_service.get_storage_dashboard()

        assert len(rows) == 1
        assert rows[0]["storage_name"] == "Kit Cage"
        assert rows[0]["individual_tools_total"] == 0
        assert rows[0]["toolkits_total"] == 2
        assert rows[0]["progress_percent"] == 50

    def test_department_filter(self, db_session, make_tool):
        make_tool("Wrench")
        make_tool("Meter", department="Dept B")

        rows = dashboard_service.get_storage_dashboard("Dept B")
        assert [r["department"] for r in rows] == ["Dept B"]
        assert len(dashboard_service.get_storage_dashboard()) == 2

    def test_newest_cycle_wins(self, db_session, make_tool, make_cycle):
        make_tool("Wrench")
        make_cycle(cycle_number=1)
        make_cycle(cycle_number=7)

        rows = dashboard_service.get_storage_dashboard()
        assert rows[0]["cycle_number"] == 7

    def test_overdue_storage(self, db_session, make_tool, make_cycle):
        make_tool("Wrench")
        make_cycle(next_audit_date=utcnow() - timedelta(days=2))

        rows = dashboard_service.get_storage_dashboard()
        assert rows[0]["audit_status"] == "overdue"

    def test_no_items_means_empty_list(self, db_session, make_cycle):
        make_cycle()
        assert dashboard_service.get_storage_dashboard() == []


class TestStorageDetail:

    def test_detail_counts(self, db_session, make_tool, make_toolkit):
        make_tool("Wrench", audit_status="present", calibration_due_date=date.today() + timedelta(days=2))
        make_tool("Driver", status="damaged")
        make_toolkit("Kit", status="in_use", contents=[{"name": "Socket"}])

        detail = dashboard_service.get_storage_detail(**MAIN_SHELF)

        assert detail["total_tools"] == 3
        assert detail["tools_audited"] == 1
        assert detail["status_counts"]["for_calibration"] == 1
        assert detail["status_counts"]["damaged"] == 1
        assert detail["status_counts"]["in_use"] == 1
        assert detail["toolkits_summary"]["not_started"] == 1

    def test_unknown_storage_is_none(self, db_session):
        assert dashboard_service.get_storage_detail("Dept A", "Nowhere", "X-0") is None

    def test_malformed_key_raises(self, db_session):
        with pytest.raises(ValidationError):
            dashboard_service.get_storage_detail("Dept A", None, "MS-01")

    def test_threshold_from_config(self, app, db_session, make_tool):
        make_tool("Wrench", calibration_due_date=date.today() + timedelta(days=20))
        now = datetime.combine(date.today(), datetime.min.time())

        assert dashboard_service.get_storage_detail(**MAIN_SHELF, now=now)["status_counts"]["for_calibration"] == 0

        app.config["CALIBRATION_THRESHOLD_DAYS"] = 30
        try:
            detail = dashboard_service.get_storage_detail(**MAIN_SHELF, now=now)
        finally:
            app.config["CALIBRATION_THRESHOLD_DAYS"] = 7
        assert detail["status_counts"]["for_calibration"] == 1
