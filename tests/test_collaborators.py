"""
Tests for the httpx-backed collaborator clients.
"""
import json
import uuid
from types import SimpleNamespace

import httpx
import pytest

from qc_engine.core.exceptions import CollaboratorError, ProductionOrderNotFound
from qc_engine.services.collaborators import (
    HttpProductionOrderGateway, HttpInspectorDirectory, WebhookNotifier,
)

BASE_URL = "http://production.test/api/v1"


def transport(handler):
    return httpx.MockTransport(handler)


class TestHttpProductionOrderGateway:

    @pytest.mark.asyncio
    async def test_get_unwraps_envelope(self):
        def handler(request):
            assert request.url.path == "/api/v1/production-orders/PO-1001"
            return httpx.Response(200, json={"success": True, "data": {
                "id": "PO-1001", "order_number": "PO/2026/1001", "quantity": "12",
                "customer_name": "Premium Customer", "status": "COMPLETED", "branch_id": "BR-1",
            }})

        gateway = HttpProductionOrderGateway(BASE_URL, transport=transport(handler))
        order = await gateway.get("PO-1001")

        assert order.order_number == "PO/2026/1001"
        assert order.quantity == 12
        assert order.current_status == "COMPLETED"
        assert order.specifications == {}

    @pytest.mark.asyncio
    async def test_get_missing_order(self):
        gateway = HttpProductionOrderGateway(
            BASE_URL, transport=transport(lambda request: httpx.Response(404, json={"detail": "Not found"}))
        )
        assert await gateway.get("PO-404") is None

    @pytest.mark.asyncio
    async def test_set_status(self):
        seen = []

        def handler(request):
            seen.append((request.method, request.url.path, json.loads(request.content)))
            return httpx.Response(200, json={"id": "PO-1001", "status": "QC_REQUIRED"})

        gateway = HttpProductionOrderGateway(BASE_URL, transport=transport(handler))
        await gateway.set_status("PO-1001", "QC_REQUIRED")

        assert seen == [("PUT", "/api/v1/production-orders/PO-1001/status", {"status": "QC_REQUIRED"})]

    @pytest.mark.asyncio
    async def test_set_status_on_missing_order(self):
        gateway = HttpProductionOrderGateway(
            BASE_URL, transport=transport(lambda request: httpx.Response(404))
        )
        with pytest.raises(ProductionOrderNotFound):
            await gateway.set_status("PO-404", "QC_REQUIRED")

    @pytest.mark.asyncio
    async def test_server_error(self):
        gateway = HttpProductionOrderGateway(
            BASE_URL, transport=transport(lambda request: httpx.Response(500, text="boom"))
        )
        with pytest.raises(CollaboratorError) as exc:
            await gateway.get("PO-1001")
        assert exc.value.status_code == 500

    @pytest.mark.asyncio
    async def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        gateway = HttpProductionOrderGateway(BASE_URL, transport=transport(handler))
        with pytest.raises(CollaboratorError) as exc:
            await gateway.list_orders()
        assert exc.value.status_code == 503

    @pytest.mark.asyncio
    async def test_list_orders_paginated_payload(self):
        def handler(request):
            assert request.url.params["branch_id"] == "BR-1"
            return httpx.Response(200, json={"items": [{"id": "PO-1"}, {"id": "PO-2"}], "total": 2})

        gateway = HttpProductionOrderGateway(BASE_URL, transport=transport(handler))
        orders = await gateway.list_orders("BR-1")
        assert [o.id for o in orders] == ["PO-1", "PO-2"]
        assert orders[0].order_number == "PO-1"


class TestHttpInspectorDirectory:

    @pytest.mark.asyncio
    async def test_name_from_first_and_last(self):
        def handler(request):
            return httpx.Response(200, json={"id": "INS-1", "first_name": "Asha", "last_name": "Rao"})

        directory = HttpInspectorDirectory(BASE_URL, transport=transport(handler))
        inspector = await directory.get("INS-1")
        assert inspector.name == "Asha Rao"

    @pytest.mark.asyncio
    async def test_list_filters_qc_department(self):
        def handler(request):
            assert request.url.params["department"] == "QC"
            return httpx.Response(200, json=[{"id": "INS-1", "name": "Asha Rao"}])

        directory = HttpInspectorDirectory(BASE_URL, transport=transport(handler))
        assert [i.id for i in await directory.list_inspectors()] == ["INS-1"]


class TestWebhookNotifier:

    certificate = SimpleNamespace(
        id=uuid.uuid4(),
        certificate_number="QC2026100002",
        production_order_id="PO-1001",
        certificate_type="QUALITY",
    )

    @pytest.mark.asyncio
    async def test_delivered(self):
        payloads = []

        def handler(request):
            payloads.append(json.loads(request.content))
            return httpx.Response(202)

        notifier = WebhookNotifier("http://hooks.test/qc", transport=transport(handler))
        assert await notifier.certificate_submitted(self.certificate, "Please review") is True
        assert payloads[0]["event"] == "certificate_submitted"
        assert payloads[0]["notes"] == "Please review"
        assert payloads[0]["certificate_number"] == "QC2026100002"

    @pytest.mark.asyncio
    async def test_failure_reported_not_raised(self):
        notifier = WebhookNotifier(
            "http://hooks.test/qc", transport=transport(lambda request: httpx.Response(500))
        )
        assert await notifier.delivery_triggered(self.certificate) is False
