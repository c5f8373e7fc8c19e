"""
API tests: routes, status codes and the error envelope.

Runs the FastAPI app in process over httpx.ASGITransport with the database,
collaborators and clock overridden by the test fixtures.
"""
import httpx
import pytest

from qc_engine.api.deps import get_clock, get_inspector_directory, get_notifier, get_production_orders
from qc_engine.database import get_db
from qc_engine.main import app

API = "/api/v1/qc"


@pytest.fixture
async def client(session_factory, production_orders, inspectors, notifier, clock):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_production_orders] = lambda: production_orders
    app.dependency_overrides[get_inspector_directory] = lambda: inspectors
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_clock] = lambda: clock

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def all_pass(inspection):
    return {
        "checklist_results": [
            {"checkpoint_id": item["checkpoint_id"], "status": "PASS", "actual_value": "ok"}
            for item in inspection["checklist_items"]
        ]
    }


async def create(client, production_order_id="PO-1001", stage="CUTTING", **extra):
    response = await client.post(f"{API}/inspections", json={
        "production_order_id": production_order_id, "stage": stage, **extra
    })
    assert response.status_code == 201, response.text
    return response.json()


class TestInspectionRoutes:

    @pytest.mark.asyncio
    async def test_create_and_record(self, client):
        inspection = await create(client)
        assert inspection["inspection_number"] == "QC2026100001"
        assert inspection["status"] == "PENDING"
        assert len(inspection["checklist_items"]) == 3

        response = await client.put(f"{API}/inspections/{inspection['id']}/record", json=all_pass(inspection))
        assert response.status_code == 200
        assert response.json()["status"] == "PASSED"
        assert response.json()["overall_score"] == 100

        response = await client.get(f"{API}/inspections", params={"status": "PASSED"})
        assert response.json()["total"] == 1

    @pytest.mark.asyncio
    async def test_unknown_production_order(self, client):
        response = await client.post(f"{API}/inspections", json={
            "production_order_id": "PO-404", "stage": "CUTTING"
        })
        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "PRODUCTION_ORDER_NOT_FOUND"
        assert body["error"]["details"] == {"production_order_id": "PO-404"}

    @pytest.mark.asyncio
    async def test_unknown_checkpoint(self, client):
        inspection = await create(client)
        response = await client.put(f"{API}/inspections/{inspection['id']}/record", json={
            "checklist_results": [{"checkpoint_id": "XYZ_001", "status": "PASS"}]
        })
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "UNKNOWN_CHECKPOINT"

    @pytest.mark.asyncio
    async def test_recording_completed_inspection(self, client):
        inspection = await create(client)
        await client.put(f"{API}/inspections/{inspection['id']}/record", json=all_pass(inspection))

        response = await client.put(f"{API}/inspections/{inspection['id']}/record", json=all_pass(inspection))
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INSPECTION_ALREADY_COMPLETED"

    @pytest.mark.asyncio
    async def test_stale_version(self, client):
        inspection = await create(client)
        body = {
            "checklist_results": [{"checkpoint_id": "CUT_001", "status": "PASS"}],
            "expected_version": inspection["version_id"],
        }
        assert (await client.put(f"{API}/inspections/{inspection['id']}/record", json=body)).status_code == 200

        response = await client.put(f"{API}/inspections/{inspection['id']}/record", json=body)
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONCURRENT_MODIFICATION"

    @pytest.mark.asyncio
    async def test_invalid_status_value(self, client):
        inspection = await create(client)
        response = await client.put(f"{API}/inspections/{inspection['id']}/record", json={
            "checklist_results": [{"checkpoint_id": "CUT_001", "status": "MAYBE"}]
        })
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_assign_unknown_inspector(self, client):
        inspection = await create(client)
        response = await client.put(
            f"{API}/inspections/{inspection['id']}/assign-inspector", json={"inspector_id": "INS-404"}
        )
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "INSPECTOR_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_checklist_template(self, client):
        response = await client.get(f"{API}/checklists/COATING")
        assert response.status_code == 200
        assert [i["checkpoint_id"] for i in response.json()["items"]] == ["COT_001", "COT_002", "COT_003"]

    @pytest.mark.asyncio
    async def test_report_and_delivery_link(self, client):
        inspection = await create(client)
        await client.put(f"{API}/inspections/{inspection['id']}/record", json=all_pass(inspection))

        report = await client.get(f"{API}/reports/{inspection['id']}")
        assert report.status_code == 200
        assert report.json()["production_order"]["customer"] == "Premium Customer"

        link = await client.post(f"{API}/link-delivery", json={
            "production_order_id": "PO-1001", "document_ids": ["DC-1"]
        })
        assert link.status_code == 200
        assert link.json()["inspection_ids"] == [inspection["id"]]

        no_pass = await client.post(f"{API}/link-delivery", json={
            "production_order_id": "PO-1002", "document_ids": ["DC-2"]
        })
        assert no_pass.status_code == 422
        assert no_pass.json()["error"]["code"] == "NO_PASSED_INSPECTIONS"

    @pytest.mark.asyncio
    async def test_production_integration(self, client, production_orders):
        response = await client.post(f"{API}/production-integration", json={
            "production_order_id": "PO-1002", "stage": "FABRICATION"
        })
        assert response.status_code == 201
        assert response.json()["stage"] == "FABRICATION"
        assert production_orders.orders["PO-1002"].current_status == "QC_REQUIRED"


class TestReworkAndCertificateRoutes:

    @pytest.mark.asyncio
    async def test_rework_card_route(self, client):
        inspection = await create(client)
        recorded = await client.put(f"{API}/inspections/{inspection['id']}/record", json={
            "checklist_results": [
                {"checkpoint_id": item["checkpoint_id"], "status": "FAIL"}
                for item in inspection["checklist_items"]
            ]
        })
        card_id = recorded.json()["rework_card_id"]

        card = await client.get(f"{API}/rework/{card_id}")
        assert card.status_code == 200
        assert card.json()["rework_number"] == "RW2026100001"

        again = await client.post(f"{API}/rework", json={"inspection_id": inspection["id"]})
        assert again.status_code == 422
        assert again.json()["error"]["code"] == "REWORK_ALREADY_GENERATED"

    @pytest.mark.asyncio
    async def test_certificate_approval_flow(self, client, notifier):
        inspection = await create(client)
        await client.put(f"{API}/inspections/{inspection['id']}/record", json=all_pass(inspection))

        issued = await client.post(f"{API}/certificates", json={
            "production_order_id": "PO-1001",
            "issued_by": "QC-MGR",
            "customer_approval_required": True,
        })
        assert issued.status_code == 201
        certificate = issued.json()
        assert certificate["status"] == "ISSUED"
        assert certificate["customer_approval_status"] == "PENDING"

        submitted = await client.post(f"{API}/certificates/{certificate['id']}/submit-approval")
        assert submitted.status_code == 200

        approval = {"approved": True, "approved_by": "Customer"}
        approved = await client.post(f"{API}/certificates/{certificate['id']}/customer-approval", json=approval)
        assert approved.status_code == 200
        assert approved.json()["status"] == "APPROVED"

        again = await client.post(f"{API}/certificates/{certificate['id']}/customer-approval", json=approval)
        assert again.status_code == 422
        assert again.json()["error"]["code"] == "APPROVAL_ALREADY_RESOLVED"

        listed = await client.get(f"{API}/certificates", params={"production_order_id": "PO-1001"})
        assert [c["id"] for c in listed.json()] == [certificate["id"]]

    @pytest.mark.asyncio
    async def test_certificate_without_passed_inspections(self, client):
        response = await client.post(f"{API}/certificates", json={
            "production_order_id": "PO-1001", "issued_by": "QC-MGR"
        })
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "NO_PASSED_INSPECTIONS"


class TestViewRoutes:

    @pytest.mark.asyncio
    async def test_analytics(self, client):
        await create(client)
        response = await client.get(f"{API}/analytics", params={
            "start_date": "2026-10-13T00:00:00Z", "end_date": "2026-10-19T23:59:59Z"
        })
        assert response.status_code == 200
        assert response.json()["overview"]["total_inspections"] == 1
        assert len(response.json()["trend"]) == 7

    @pytest.mark.asyncio
    async def test_analytics_invalid_range(self, client):
        response = await client.get(f"{API}/analytics", params={
            "start_date": "2026-10-19T00:00:00Z", "end_date": "2026-10-13T00:00:00Z"
        })
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_DATE_RANGE"

    @pytest.mark.asyncio
    async def test_dashboard_and_alerts(self, client, clock):
        await create(client)
        clock.advance(hours=25)

        dashboard = await client.get(f"{API}/dashboard")
        assert dashboard.status_code == 200
        assert dashboard.json()["real_time_metrics"]["pending_inspections"] == 1
        assert dashboard.json()["real_time_metrics"]["alert_count"] == 1

        alerts = await client.get(f"{API}/alerts", params={"severity": "HIGH"})
        assert alerts.status_code == 200
        assert alerts.json()["summary"]["by_severity"]["HIGH"] == 1

    @pytest.mark.asyncio
    async def test_inspector_workload(self, client):
        await create(client, inspector_id="INS-1")
        response = await client.get(f"{API}/inspector-workload/INS-1")
        assert response.status_code == 200
        assert response.json()["pending_count"] == 1
