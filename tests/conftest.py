"""
Pytest configuration and fixtures for the QC engine test suite.

Every test gets a fresh in-memory SQLite database, a clock pinned to
2026-10-19 09:00 UTC and in-process collaborators.
"""
from datetime import datetime, timezone
from typing import List, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from qc_engine import models  # noqa: F401  (registers tables)
from qc_engine.core.clock import FixedClock
from qc_engine.database import Base
from qc_engine.models.quality_control import QCStage
from qc_engine.schemas.quality_control import InspectionCreate, InspectionRecord, ChecklistResult
from qc_engine.services.certificate_service import CertificateService
from qc_engine.services.collaborators import (
    InMemoryProductionOrderGateway, InMemoryInspectorDirectory, LoggingNotifier,
    ProductionOrderInfo, InspectorInfo,
)
from qc_engine.services.inspection_service import InspectionService
from qc_engine.services.qc_alerts import QCAlertService
from qc_engine.services.qc_analytics import QCAnalyticsService
from qc_engine.services.qc_dashboard_service import QCDashboardService
from qc_engine.services.rework_service import ReworkService


NOW = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
async def engine():
    """In-memory database shared by every connection of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ============================================================================
# Collaborator Fixtures
# ============================================================================

@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def production_orders():
    return InMemoryProductionOrderGateway([
        ProductionOrderInfo(
            id="PO-1001", order_number="PO/2026/1001", quantity=12,
            customer_name="Premium Customer", branch_id="BR-1",
            product_code="WIN-CAS-01", product_name="Casement window",
            specifications={"frame": "uPVC", "glass": "6mm toughened"},
        ),
        ProductionOrderInfo(
            id="PO-1002", order_number="PO/2026/1002", quantity=4,
            customer_name="Acme Builders", branch_id="BR-2",
        ),
        ProductionOrderInfo(
            id="PO-1003", order_number="PO/2026/1003", quantity=8,
            customer_name="Acme Builders", branch_id="BR-1",
            current_status="COMPLETED",
        ),
    ])


@pytest.fixture
def inspectors():
    return InMemoryInspectorDirectory([
        InspectorInfo(id="INS-1", name="Asha Rao", branch_id="BR-1", department="QC"),
        InspectorInfo(id="INS-2", name="Vikram Singh", branch_id="BR-2", department="QC"),
    ])


@pytest.fixture
def notifier():
    return LoggingNotifier()


# ============================================================================
# Service Fixtures
# ============================================================================

@pytest.fixture
def inspection_service(db, production_orders, inspectors, clock):
    return InspectionService(db, production_orders, inspectors, clock)


@pytest.fixture
def rework_service(db, production_orders, clock):
    return ReworkService(db, production_orders, clock)


@pytest.fixture
def certificate_service(db, production_orders, notifier, clock):
    return CertificateService(db, production_orders, notifier, clock)


@pytest.fixture
def analytics_service(db, inspectors, clock):
    return QCAnalyticsService(db, inspectors, clock)


@pytest.fixture
def alert_service(db, inspectors, clock):
    return QCAlertService(db, inspectors, clock)


@pytest.fixture
def dashboard_service(db, production_orders, inspectors, clock):
    return QCDashboardService(db, production_orders, inspectors, clock)


# ============================================================================
# Workflow Helpers
# ============================================================================

@pytest.fixture
def create_inspection(inspection_service):
    """Create a PENDING inspection from the stage template."""
    async def _create(
        production_order_id: str = "PO-1001",
        stage: QCStage = QCStage.CUTTING,
        inspector_id: Optional[str] = None,
        **kwargs
    ):
        return await inspection_service.create_inspection(InspectionCreate(
            production_order_id=production_order_id,
            stage=stage,
            inspector_id=inspector_id,
            **kwargs
        ))
    return _create


@pytest.fixture
def complete_inspection(inspection_service, create_inspection):
    """Create an inspection and record a result for every checkpoint (all PASS by default)."""
    async def _complete(
        production_order_id: str = "PO-1001",
        stage: QCStage = QCStage.CUTTING,
        statuses: Optional[List[str]] = None,
        inspector_id: Optional[str] = None,
    ):
        inspection = await create_inspection(production_order_id, stage, inspector_id)
        statuses = statuses or ["PASS"] * len(inspection.checklist_items)
        results = [
            ChecklistResult(checkpoint_id=item.checkpoint_id, status=status, actual_value="measured")
            for item, status in zip(inspection.checklist_items, statuses)
        ]
        return await inspection_service.record_results(
            inspection.id, InspectionRecord(checklist_results=results)
        )
    return _complete
