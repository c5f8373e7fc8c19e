"""
External collaborators of the QC engine.

The engine references production orders and inspectors by id only; these
contracts are how it looks them up and pushes status back. Each contract has
an in-process registry (local runs, tests) and an httpx-backed client.

USAGE:
    gateway = HttpProductionOrderGateway("http://production:8000/api/v1")
    order = await gateway.get("PO-1001")
    await gateway.set_status("PO-1001", "QC_REQUIRED")
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import httpx

from qc_engine.config import settings
from qc_engine.core.clock import system_clock
from qc_engine.core.exceptions import CollaboratorError, ProductionOrderNotFound

logger = logging.getLogger(__name__)


# ==================== DATA TYPES ====================

@dataclass
class ProductionOrderInfo:
    """Production order fields the QC engine reads."""
    id: str
    order_number: str
    quantity: int = 0
    customer_name: Optional[str] = None
    current_status: Optional[str] = None
    branch_id: Optional[str] = None
    product_code: Optional[str] = None
    product_name: Optional[str] = None
    specifications: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ProductionOrderInfo":
        return cls(
            id=str(data["id"]),
            order_number=data.get("order_number") or str(data["id"]),
            quantity=int(data.get("quantity") or 0),
            customer_name=data.get("customer_name"),
            current_status=data.get("status") or data.get("current_status"),
            branch_id=data.get("branch_id"),
            product_code=data.get("product_code"),
            product_name=data.get("product_name"),
            specifications=data.get("specifications") or {},
        )


@dataclass
class InspectorInfo:
    id: str
    name: str
    branch_id: Optional[str] = None
    department: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "InspectorInfo":
        name = data.get("name") or " ".join(
            part for part in (data.get("first_name"), data.get("last_name")) if part
        )
        return cls(
            id=str(data["id"]),
            name=name or str(data["id"]),
            branch_id=data.get("branch_id"),
            department=data.get("department"),
        )


# ==================== CONTRACTS ====================

class ProductionOrderGateway:
    """Production order lookup and status push."""

    async def get(self, order_id: str) -> Optional[ProductionOrderInfo]:
        raise NotImplementedError

    async def set_status(self, order_id: str, status: str) -> None:
        raise NotImplementedError

    async def list_orders(self, branch_id: Optional[str] = None) -> List[ProductionOrderInfo]:
        raise NotImplementedError


class InspectorDirectory:
    """Employee directory lookup for QC inspectors."""

    async def get(self, inspector_id: str) -> Optional[InspectorInfo]:
        raise NotImplementedError

    async def list_inspectors(self, branch_id: Optional[str] = None) -> List[InspectorInfo]:
        raise NotImplementedError


class QCNotifier:
    """Fire-and-forget signals for certificate submission and delivery."""

    async def certificate_submitted(
        self, certificate, notes: Optional[str] = None, sent_at: Optional[datetime] = None
    ) -> bool:
        raise NotImplementedError

    async def delivery_triggered(self, certificate, sent_at: Optional[datetime] = None) -> bool:
        raise NotImplementedError


def _certificate_event(
    event: str, certificate, sent_at: Optional[datetime] = None, **extra
) -> Dict[str, Any]:
    return {
        "event": event,
        "certificate_id": str(certificate.id),
        "certificate_number": certificate.certificate_number,
        "production_order_id": certificate.production_order_id,
        "certificate_type": certificate.certificate_type,
        "sent_at": (sent_at or system_clock.now()).isoformat(),
        **extra,
    }


# ==================== IN-PROCESS REGISTRIES ====================

class InMemoryProductionOrderGateway(ProductionOrderGateway):
    """Production orders held in process; records every status push."""

    def __init__(self, orders: Optional[List[ProductionOrderInfo]] = None):
        self.orders: Dict[str, ProductionOrderInfo] = {}
        self.status_history: List[Tuple[str, str]] = []
        for order in orders or []:
            self.add(order)

    def add(self, order: ProductionOrderInfo) -> ProductionOrderInfo:
        self.orders[order.id] = order
        return order

    async def get(self, order_id: str) -> Optional[ProductionOrderInfo]:
        return self.orders.get(order_id)

    async def set_status(self, order_id: str, status: str) -> None:
        order = self.orders.get(order_id)
        if not order:
            raise ProductionOrderNotFound(order_id)
        order.current_status = status
        self.status_history.append((order_id, status))
        logger.info(f"Production order {order.order_number} status -> {status}")

    async def list_orders(self, branch_id: Optional[str] = None) -> List[ProductionOrderInfo]:
        return [
            o for o in self.orders.values()
            if branch_id is None or o.branch_id == branch_id
        ]


class InMemoryInspectorDirectory(InspectorDirectory):

    def __init__(self, inspectors: Optional[List[InspectorInfo]] = None):
        self.inspectors: Dict[str, InspectorInfo] = {i.id: i for i in inspectors or []}

    def add(self, inspector: InspectorInfo) -> InspectorInfo:
        self.inspectors[inspector.id] = inspector
        return inspector

    async def get(self, inspector_id: str) -> Optional[InspectorInfo]:
        return self.inspectors.get(inspector_id)

    async def list_inspectors(self, branch_id: Optional[str] = None) -> List[InspectorInfo]:
        return [
            i for i in self.inspectors.values()
            if branch_id is None or i.branch_id == branch_id
        ]


class LoggingNotifier(QCNotifier):
    """Logs signals and keeps them for inspection; used when no webhook is configured."""

    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    async def certificate_submitted(
        self, certificate, notes: Optional[str] = None, sent_at: Optional[datetime] = None
    ) -> bool:
        event = _certificate_event("certificate_submitted", certificate, sent_at, notes=notes)
        self.events.append(event)
        logger.info(f"Certificate {certificate.certificate_number} submitted for customer approval")
        return True

    async def delivery_triggered(self, certificate, sent_at: Optional[datetime] = None) -> bool:
        event = _certificate_event("delivery_triggered", certificate, sent_at)
        self.events.append(event)
        logger.info(
            f"Delivery triggered for production order {certificate.production_order_id} "
            f"(certificate {certificate.certificate_number})"
        )
        return True


# ==================== HTTP CLIENTS ====================

class _HttpCollaborator:
    """Shared request handling for JSON collaborators."""

    service_name = "collaborator"

    def __init__(
        self,
        base_url: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self.transport = transport

    async def _request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict] = None,
        params: Optional[Dict] = None,
        allow_not_found: bool = False,
    ) -> Optional[Any]:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            try:
                response = await client.request(method.upper(), url, json=data, params=params)
            except httpx.HTTPError as e:
                logger.error(f"{self.service_name} unreachable: {method} {url}: {e}")
                raise CollaboratorError(self.service_name, 503, str(e)) from e

        if response.status_code == 404 and allow_not_found:
            return None
        if response.status_code >= 400:
            logger.error(f"{self.service_name} API error: {response.status_code} - {response.text}")
            raise CollaboratorError(self.service_name, response.status_code, response.text)

        if not response.text:
            return {}
        body = response.json()
        # Accept both bare payloads and {"success": true, "data": ...} envelopes
        if isinstance(body, dict) and "data" in body and "success" in body:
            return body["data"]
        return body


class HttpProductionOrderGateway(_HttpCollaborator, ProductionOrderGateway):
    service_name = "production-orders"

    async def get(self, order_id: str) -> Optional[ProductionOrderInfo]:
        data = await self._request("GET", f"/production-orders/{order_id}", allow_not_found=True)
        if data is None:
            return None
        return ProductionOrderInfo.from_payload(data)

    async def set_status(self, order_id: str, status: str) -> None:
        result = await self._request(
            "PUT", f"/production-orders/{order_id}/status",
            data={"status": status}, allow_not_found=True
        )
        if result is None:
            raise ProductionOrderNotFound(order_id)
        logger.info(f"Production order {order_id} status -> {status}")

    async def list_orders(self, branch_id: Optional[str] = None) -> List[ProductionOrderInfo]:
        params = {"branch_id": branch_id} if branch_id else None
        data = await self._request("GET", "/production-orders", params=params) or []
        if isinstance(data, dict):
            data = data.get("items", [])
        return [ProductionOrderInfo.from_payload(row) for row in data]


class HttpInspectorDirectory(_HttpCollaborator, InspectorDirectory):
    service_name = "employee-directory"

    async def get(self, inspector_id: str) -> Optional[InspectorInfo]:
        data = await self._request("GET", f"/employees/{inspector_id}", allow_not_found=True)
        if data is None:
            return None
        return InspectorInfo.from_payload(data)

    async def list_inspectors(self, branch_id: Optional[str] = None) -> List[InspectorInfo]:
        params = {"department": "QC"}
        if branch_id:
            params["branch_id"] = branch_id
        data = await self._request("GET", "/employees", params=params) or []
        if isinstance(data, dict):
            data = data.get("items", [])
        return [InspectorInfo.from_payload(row) for row in data]


class WebhookNotifier(QCNotifier):
    """
    Posts certificate events to a webhook.

    Delivery failures are logged and reported through the return value; they
    never fail the operation that fired the signal.
    """

    def __init__(
        self,
        url: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self.transport = transport

    async def _post(self, payload: Dict[str, Any]) -> bool:
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
                response = await client.post(self.url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"QC webhook delivery failed for {payload['event']}: {e}")
            return False
        logger.info(f"QC webhook delivered {payload['event']} for {payload['certificate_number']}")
        return True

    async def certificate_submitted(
        self, certificate, notes: Optional[str] = None, sent_at: Optional[datetime] = None
    ) -> bool:
        return await self._post(_certificate_event("certificate_submitted", certificate, sent_at, notes=notes))

    async def delivery_triggered(self, certificate, sent_at: Optional[datetime] = None) -> bool:
        return await self._post(_certificate_event("delivery_triggered", certificate, sent_at))
