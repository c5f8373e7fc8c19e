"""
Quality Control API Endpoints - stage inspections, rework and certificates.

API endpoints for quality control including:
- Inspections, checklist templates and reports
- Rework job cards
- Certificates and customer approval
- Production pipeline hooks
- Analytics, dashboard and alerts

Engine errors (QCError) are mapped to HTTP responses by the app-level handler.
"""
from datetime import datetime
from typing import Optional, List
from uuid import UUID

from fastapi import APIRouter, Query, status

from qc_engine.api.deps import DB, ProductionOrders, Inspectors, Notifier, CurrentClock
from qc_engine.models.quality_control import QCStage, InspectionStatus
from qc_engine.schemas.quality_control import (
    InspectionCreate, InspectionRecord, InspectionResponse, InspectionListResponse,
    AssignInspectorRequest, CustomerRequirementsUpdate, ChecklistTemplateResponse,
    InspectionReport, DeliveryLinkRequest, DeliveryLinkResponse,
    ProductionIntegrationRequest, ProductionStatusUpdate,
    ReworkCreate, ReworkJobCardResponse,
    CertificateCreate, CertificateSubmit, CustomerApprovalRequest, CertificateResponse,
    QCAnalyticsResponse, InspectorWorkloadDetail, QCDashboardResponse,
    PerformanceMetricsResponse, AlertListResponse, AlertSeverity,
)
from qc_engine.services.certificate_service import CertificateService
from qc_engine.services.inspection_service import InspectionService
from qc_engine.services.qc_alerts import QCAlertService
from qc_engine.services.qc_analytics import QCAnalyticsService
from qc_engine.services.qc_dashboard_service import QCDashboardService
from qc_engine.services.rework_service import ReworkService

router = APIRouter()


# ============================================================================
# INSPECTIONS
# ============================================================================

@router.post(
    "/inspections",
    response_model=InspectionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Inspection"
)
async def create_inspection(
    data: InspectionCreate,
    db: DB,
    production_orders: ProductionOrders,
    inspectors: Inspectors,
    clock: CurrentClock,
):
    """Create a PENDING QC inspection from the stage checklist template."""
    service = InspectionService(db, production_orders, inspectors, clock)
    return await service.create_inspection(data)


@router.get(
    "/inspections",
    response_model=InspectionListResponse,
    summary="List Inspections"
)
async def list_inspections(
    db: DB,
    production_orders: ProductionOrders,
    inspectors: Inspectors,
    clock: CurrentClock,
    production_order_id: Optional[str] = None,
    stage: Optional[QCStage] = None,
    inspection_status: Optional[InspectionStatus] = Query(None, alias="status"),
    inspector_id: Optional[str] = None,
    branch_id: Optional[str] = None,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    """List QC inspections."""
    service = InspectionService(db, production_orders, inspectors, clock)
    inspections, total = await service.list_inspections(
        production_order_id=production_order_id,
        stage=stage,
        status=inspection_status,
        inspector_id=inspector_id,
        branch_id=branch_id,
        from_date=from_date,
        to_date=to_date,
        skip=skip,
        limit=limit
    )
    return InspectionListResponse(
        items=[InspectionResponse.model_validate(i) for i in inspections],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get(
    "/inspections/{inspection_id}",
    response_model=InspectionResponse,
    summary="Get Inspection"
)
async def get_inspection(
    inspection_id: UUID,
    db: DB,
    production_orders: ProductionOrders,
    inspectors: Inspectors,
    clock: CurrentClock,
):
    service = InspectionService(db, production_orders, inspectors, clock)
    return await service.get_inspection(inspection_id)


@router.put(
    "/inspections/{inspection_id}/record",
    response_model=InspectionResponse,
    summary="Record Inspection Results"
)
async def record_inspection(
    inspection_id: UUID,
    data: InspectionRecord,
    db: DB,
    production_orders: ProductionOrders,
    inspectors: Inspectors,
    clock: CurrentClock,
):
    """Record checklist results; scores the inspection once every checkpoint has a result."""
    service = InspectionService(db, production_orders, inspectors, clock)
    return await service.record_results(inspection_id, data)


@router.put(
    "/inspections/{inspection_id}/assign-inspector",
    response_model=InspectionResponse,
    summary="Assign Inspector"
)
async def assign_inspector(
    inspection_id: UUID,
    data: AssignInspectorRequest,
    db: DB,
    production_orders: ProductionOrders,
    inspectors: Inspectors,
    clock: CurrentClock,
):
    service = InspectionService(db, production_orders, inspectors, clock)
    return await service.assign_inspector(inspection_id, data.inspector_id)


@router.put(
    "/inspections/{inspection_id}/customer-requirements",
    response_model=InspectionResponse,
    summary="Update Customer Requirements"
)
async def update_customer_requirements(
    inspection_id: UUID,
    data: CustomerRequirementsUpdate,
    db: DB,
    production_orders: ProductionOrders,
    inspectors: Inspectors,
    clock: CurrentClock,
):
    service = InspectionService(db, production_orders, inspectors, clock)
    return await service.update_customer_requirements(inspection_id, data.requirements)


@router.put(
    "/inspections/{inspection_id}/update-production",
    response_model=ProductionStatusUpdate,
    summary="Update Production Order From QC"
)
async def update_production_from_qc(
    inspection_id: UUID,
    db: DB,
    production_orders: ProductionOrders,
    inspectors: Inspectors,
    clock: CurrentClock,
):
    """Push the production order status implied by the inspection result."""
    service = InspectionService(db, production_orders, inspectors, clock)
    return await service.update_production_order_from_qc(inspection_id)


@router.get(
    "/checklists/{stage}",
    response_model=ChecklistTemplateResponse,
    summary="Get Stage Checklist Template"
)
async def get_checklist_template(
    stage: QCStage,
    db: DB,
    production_orders: ProductionOrders,
    inspectors: Inspectors,
):
    service = InspectionService(db, production_orders, inspectors)
    return ChecklistTemplateResponse(stage=stage, items=service.get_checklist_template(stage))


@router.get(
    "/reports/{inspection_id}",
    response_model=InspectionReport,
    summary="Generate Inspection Report"
)
async def generate_report(
    inspection_id: UUID,
    db: DB,
    production_orders: ProductionOrders,
    inspectors: Inspectors,
    clock: CurrentClock,
):
    service = InspectionService(db, production_orders, inspectors, clock)
    return await service.generate_report(inspection_id)


@router.post(
    "/link-delivery",
    response_model=DeliveryLinkResponse,
    summary="Link QC Reports To Delivery"
)
async def link_delivery(
    data: DeliveryLinkRequest,
    db: DB,
    production_orders: ProductionOrders,
    inspectors: Inspectors,
    clock: CurrentClock,
):
    """Attach delivery documents to every PASSED inspection of a production order."""
    service = InspectionService(db, production_orders, inspectors, clock)
    return await service.link_delivery_documents(data.production_order_id, data.document_ids)


@router.get(
    "/production-order/{production_order_id}/inspections",
    response_model=List[InspectionResponse],
    summary="List Production Order Inspections"
)
async def list_production_order_inspections(
    production_order_id: str,
    db: DB,
    production_orders: ProductionOrders,
    inspectors: Inspectors,
    clock: CurrentClock,
):
    service = InspectionService(db, production_orders, inspectors, clock)
    return await service.list_for_production_order(production_order_id)


@router.post(
    "/production-integration",
    response_model=InspectionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Production Stage Completed"
)
async def production_integration(
    data: ProductionIntegrationRequest,
    db: DB,
    production_orders: ProductionOrders,
    inspectors: Inspectors,
    clock: CurrentClock,
):
    """Stage-completion hook: create the stage inspection and mark the order QC_REQUIRED."""
    service = InspectionService(db, production_orders, inspectors, clock)
    return await service.integrate_with_production(
        data.production_order_id, data.stage, data.trigger_type
    )


# ============================================================================
# REWORK
# ============================================================================

@router.post(
    "/rework",
    response_model=ReworkJobCardResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate Rework Job Card"
)
async def generate_rework(
    data: ReworkCreate,
    db: DB,
    production_orders: ProductionOrders,
    clock: CurrentClock,
):
    service = ReworkService(db, production_orders, clock)
    return await service.generate_for_inspection(data.inspection_id)


@router.get(
    "/rework/{rework_card_id}",
    response_model=ReworkJobCardResponse,
    summary="Get Rework Job Card"
)
async def get_rework(
    rework_card_id: UUID,
    db: DB,
    production_orders: ProductionOrders,
    clock: CurrentClock,
):
    service = ReworkService(db, production_orders, clock)
    return await service.get_rework_card(rework_card_id)


# ============================================================================
# CERTIFICATES
# ============================================================================

@router.post(
    "/certificates",
    response_model=CertificateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Issue QC Certificate"
)
async def issue_certificate(
    data: CertificateCreate,
    db: DB,
    production_orders: ProductionOrders,
    notifier: Notifier,
    clock: CurrentClock,
):
    """Issue a certificate covering every PASSED inspection of a production order."""
    service = CertificateService(db, production_orders, notifier, clock)
    certificate = await service.issue_certificate(
        data.production_order_id,
        data.certificate_type,
        data.issued_by,
        data.customer_approval_required,
    )
    return CertificateResponse.from_certificate(certificate, clock.now())


@router.get(
    "/certificates",
    response_model=List[CertificateResponse],
    summary="List Production Order Certificates"
)
async def list_certificates(
    production_order_id: str,
    db: DB,
    production_orders: ProductionOrders,
    notifier: Notifier,
    clock: CurrentClock,
):
    service = CertificateService(db, production_orders, notifier, clock)
    now = clock.now()
    return [
        CertificateResponse.from_certificate(c, now)
        for c in await service.list_certificates(production_order_id)
    ]


@router.get(
    "/certificates/{certificate_id}",
    response_model=CertificateResponse,
    summary="Get QC Certificate"
)
async def get_certificate(
    certificate_id: UUID,
    db: DB,
    production_orders: ProductionOrders,
    notifier: Notifier,
    clock: CurrentClock,
):
    service = CertificateService(db, production_orders, notifier, clock)
    certificate = await service.get_certificate(certificate_id)
    return CertificateResponse.from_certificate(certificate, clock.now())


@router.post(
    "/certificates/{certificate_id}/submit-approval",
    response_model=CertificateResponse,
    summary="Submit Certificate For Customer Approval"
)
async def submit_certificate(
    certificate_id: UUID,
    db: DB,
    production_orders: ProductionOrders,
    notifier: Notifier,
    clock: CurrentClock,
    data: Optional[CertificateSubmit] = None,
):
    service = CertificateService(db, production_orders, notifier, clock)
    certificate = await service.submit_for_approval(certificate_id, data.notes if data else None)
    return CertificateResponse.from_certificate(certificate, clock.now())


@router.post(
    "/certificates/{certificate_id}/customer-approval",
    response_model=CertificateResponse,
    summary="Process Customer Approval"
)
async def customer_approval(
    certificate_id: UUID,
    data: CustomerApprovalRequest,
    db: DB,
    production_orders: ProductionOrders,
    notifier: Notifier,
    clock: CurrentClock,
):
    """Approve or reject a certificate; approval hands the order over to delivery."""
    service = CertificateService(db, production_orders, notifier, clock)
    certificate = await service.process_customer_approval(
        certificate_id, data.approved, data.approved_by, data.comments
    )
    return CertificateResponse.from_certificate(certificate, clock.now())


# ============================================================================
# ANALYTICS, DASHBOARD & ALERTS
# ============================================================================

@router.get(
    "/analytics",
    response_model=QCAnalyticsResponse,
    summary="QC Analytics"
)
async def get_analytics(
    start_date: datetime,
    end_date: datetime,
    db: DB,
    inspectors: Inspectors,
    clock: CurrentClock,
    branch_id: Optional[str] = None,
    stage: Optional[QCStage] = None,
):
    service = QCAnalyticsService(db, inspectors, clock)
    return await service.get_analytics(start_date, end_date, branch_id, stage)


@router.get(
    "/inspector-workload/{inspector_id}",
    response_model=InspectorWorkloadDetail,
    summary="Inspector Workload"
)
async def get_inspector_workload(
    inspector_id: str,
    db: DB,
    inspectors: Inspectors,
    clock: CurrentClock,
):
    service = QCAnalyticsService(db, inspectors, clock)
    return await service.inspector_workload_detail(inspector_id)


@router.get(
    "/dashboard",
    response_model=QCDashboardResponse,
    summary="QC Dashboard"
)
async def get_dashboard(
    db: DB,
    production_orders: ProductionOrders,
    inspectors: Inspectors,
    clock: CurrentClock,
    branch_id: Optional[str] = None,
):
    service = QCDashboardService(db, production_orders, inspectors, clock)
    return await service.get_dashboard(branch_id)


@router.get(
    "/performance-metrics",
    response_model=PerformanceMetricsResponse,
    summary="QC Performance Metrics"
)
async def get_performance_metrics(
    start_date: datetime,
    end_date: datetime,
    db: DB,
    production_orders: ProductionOrders,
    inspectors: Inspectors,
    clock: CurrentClock,
    branch_id: Optional[str] = None,
):
    service = QCDashboardService(db, production_orders, inspectors, clock)
    return await service.get_performance_metrics(start_date, end_date, branch_id)


@router.get(
    "/alerts",
    response_model=AlertListResponse,
    summary="QC Alerts"
)
async def get_alerts(
    db: DB,
    inspectors: Inspectors,
    clock: CurrentClock,
    branch_id: Optional[str] = None,
    severity: Optional[AlertSeverity] = None,
    acknowledged: Optional[bool] = None,
):
    service = QCAlertService(db, inspectors, clock)
    return await service.list_alerts(branch_id, severity, acknowledged)
