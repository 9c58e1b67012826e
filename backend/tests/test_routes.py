"""
HTTP-level tests for the API blueprints.

Status code mapping: 400 validation, 404 not found, 409 conflict.
"""

import pytest


MAIN_SHELF = {"department": "Dept A", "storage_name": "Main Shelf", "storage_code": "MS-01"}
SUPERVISOR = {"name": "Jane", "employee_id": "E9"}


def _ids(db_session, *objs):
    ids = [o.id for o in objs]
    # Release the test session's read transaction before the request runs
    db_session.commit()
    return ids


class TestSystemRoutes:

    def test_health(self, client, db_session):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["details"]["tools"] == 0

    def test_cors_for_known_origin(self, client, db_session):
        response = client.get("/health", headers={"Origin": "http://localhost:5173"})
        assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

        response = client.get("/health", headers={"Origin": "http://evil.example"})
        assert "Access-Control-Allow-Origin" not in response.headers


class TestInventoryRoutes:

    def test_create_tool(self, client, db_session):
        response = client.post("/api/tools", json={"name": "Wrench", "eq_number": "EQ-1", **MAIN_SHELF})
        assert response.status_code == 201
        assert response.get_json()["eq_number"] == "EQ-1"

        response = client.post("/api/tools", json={"name": "Other", "eq_number": "EQ-1", **MAIN_SHELF})
        assert response.status_code == 409

    @pytest.mark.parametrize(
        "payload",
        [
            {"name": "Wrench"},
            {"name": "Wrench", **MAIN_SHELF, "qty": 0},
            {"name": "Wrench", **MAIN_SHELF, "status": "borrowed"},
            {"name": "Wrench", **MAIN_SHELF, "owner": "me"},
        ],
    )
    def test_create_tool_rejects_bad_payload(self, client, db_session, payload):
        response = client.post("/api/tools", json=payload)
        assert response.status_code == 400

    def test_create_toolkit_with_contents(self, client, db_session):
        response = client.post(
            "/api/toolkits",
            json={"name": "Kit", "qr_code": "KIT-1", **MAIN_SHELF, "contents": [{"name": "Socket", "qty": 2}]},
        )
        assert response.status_code == 201

        listing = client.get("/api/toolkits", query_string=MAIN_SHELF).get_json()
        assert listing["count"] == 1
        assert listing["items"][0]["contents"][0]["qty"] == 2

    def test_mark_tool_audit(self, client, db_session, make_tool):
        (tool_id,) = _ids(db_session, make_tool())

        response = client.patch(f"/api/tools/{tool_id}/audit", json={"audit_status": "present"})
        assert response.status_code == 200
        assert response.get_json()["audit_status"] == "present"

        assert client.patch(f"/api/tools/{tool_id}/audit", json={"audit_status": "gone"}).status_code == 400
        assert client.patch(f"/api/tools/{tool_id}/audit", json={}).status_code == 400
        assert client.patch("/api/tools/9999/audit", json={"audit_status": "present"}).status_code == 404

    def test_mark_kit_content_audit(self, client, db_session, make_toolkit):
        kit = make_toolkit(contents=[{"name": "Socket"}])
        kit_id, content_id = kit.id, kit.contents[0].id
        db_session.commit()

        response = client.patch(
            f"/api/toolkits/{kit_id}/contents/{content_id}/audit", json={"audit_status": "present"}
        )
        assert response.status_code == 200
        assert response.get_json()["audit_status"] == "completed"

        response = client.patch(
            f"/api/toolkits/{kit_id}/contents/9999/audit", json={"audit_status": "present"}
        )
        assert response.status_code == 404


class TestCycleRoutes:

    def test_create_and_list(self, client, db_session):
        response = client.post(
            "/api/audit-cycles",
            json={**MAIN_SHELF, "frequency": "quarterly", "next_audit_date": "2026-11-01"},
        )
        assert response.status_code == 201
        assert response.get_json()["max_cycles"] == 4

        listing = client.get("/api/audit-cycles", query_string={"department": "Dept A"}).get_json()
        assert listing["count"] == 1

    def test_missing_date(self, client, db_session):
        response = client.post("/api/audit-cycles", json=MAIN_SHELF)
        assert response.status_code == 400


class TestSnapshotRoutes:

    def test_sixth_snapshot_needs_supervisor(self, client, db_session):
        for expected in range(1, 6):
            response = client.post("/api/audit-snapshots", json={**MAIN_SHELF, "sequence_number": 99})
            assert response.status_code == 201
            assert response.get_json()["sequence_number"] == expected

        response = client.post("/api/audit-snapshots", json=MAIN_SHELF)
        assert response.status_code == 400

        response = client.post("/api/audit-snapshots", json={**MAIN_SHELF, "supervisor": SUPERVISOR})
        assert response.status_code == 201
        assert response.get_json()["supervisor"] == SUPERVISOR

        listing = client.get("/api/audit-snapshots", query_string=MAIN_SHELF).get_json()
        assert [s["sequence_number"] for s in listing["items"]] == [1, 2, 3, 4, 5, 6]
        assert "tool_data" not in listing["items"][0]

    def test_complete_audit(self, client, db_session, make_tool):
        make_tool(audit_status="present")
        db_session.commit()

        response = client.post("/api/audit-snapshots/complete", json=MAIN_SHELF)
        assert response.status_code == 201
        assert response.get_json()["present_tools"] == 1

        listing = client.get(
            "/api/audit-snapshots", query_string={**MAIN_SHELF, "include_data": "true"}
        ).get_json()
        assert listing["items"][0]["tool_data"][0]["name"] == "Torque Wrench"

    def test_complete_empty_storage(self, client, db_session):
        response = client.post("/api/audit-snapshots/complete", json=MAIN_SHELF)
        assert response.status_code == 400


class TestAuditRoutes:

    def test_scan_context(self, client, db_session, make_toolkit):
        make_toolkit(qr_code="KIT-9")
        db_session.commit()

        response = client.get("/api/audits/context", query_string={"code": "KIT-9"})
        assert response.status_code == 200
        assert response.get_json()["type"] == "toolkit"

        assert client.get("/api/audits/context", query_string={"code": "NOPE"}).status_code == 404
        assert client.get("/api/audits/context").status_code == 400

    def test_reset(self, client, db_session, make_tool):
        make_tool(audit_status="present")
        db_session.commit()

        response = client.post("/api/audits/reset", json=MAIN_SHELF)
        assert response.status_code == 200
        assert response.get_json() == {"reset": 1}

        assert client.post("/api/audits/reset", json={"department": "Dept A"}).status_code == 400
        assert client.post("/api/audits/reset", json={**MAIN_SHELF, "storage_code": "X"}).status_code == 404


class TestDashboardRoutes:

    def test_storages(self, client, db_session, make_tool):
        make_tool()
        db_session.commit()

        body = client.get("/api/dashboard/storages").get_json()
        assert body["count"] == 1
        assert body["items"][0]["storage_code"] == "MS-01"

    def test_storage_detail(self, client, db_session, make_tool):
        make_tool()
        db_session.commit()

        assert client.get("/api/dashboard/storage-detail", query_string=MAIN_SHELF).status_code == 200
        assert client.get(
            "/api/dashboard/storage-detail", query_string={"department": "Dept A"}
        ).status_code == 400

    def test_eq5044_report(self, client, db_session, make_tool):
        make_tool()
        db_session.commit()

        response = client.get("/api/dashboard/eq5044-report", query_string=MAIN_SHELF)
        assert response.status_code == 200
        body = response.get_json()
        assert body["header"]["storage_code"] == "MS-01"
        assert body["locations"][0]["items"][0]["row_type"] == "tool"

    def test_eq5044_report_errors(self, client, db_session):
        assert client.get(
            "/api/dashboard/eq5044-report", query_string={"department": "Dept A", "storage_name": "Main Shelf"}
        ).status_code == 400
        assert client.get("/api/dashboard/eq5044-report", query_string=MAIN_SHELF).status_code == 404
