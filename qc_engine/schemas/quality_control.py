"""
Quality Control Schemas.

Pydantic schemas for quality control including:
- Inspections and checklist results
- Rework job cards
- Certificates and customer approval
- Analytics, dashboard and alerts
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from qc_engine.models.quality_control import (
    QCStage, InspectionStatus, ChecklistItemStatus, CertificateType, QCCertificate
)
from qc_engine.schemas.base import BaseCreateSchema, BaseResponseSchema


# ============================================================================
# INSPECTION SCHEMAS
# ============================================================================

class ChecklistItemInput(BaseCreateSchema):
    """Checklist item supplied at creation; overrides the template item with the same checkpoint_id."""
    checkpoint_id: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=500)
    expected_value: Optional[str] = Field(None, max_length=500)
    actual_value: Optional[str] = Field(None, max_length=500)
    status: Optional[ChecklistItemStatus] = None
    photos: Optional[List[str]] = None
    comments: Optional[str] = None


class InspectionCreate(BaseCreateSchema):
    production_order_id: str = Field(..., min_length=1, max_length=64)
    stage: QCStage
    inspector_id: Optional[str] = None
    customer_requirements: Optional[List[str]] = None
    checklist_items: List[ChecklistItemInput] = Field(default_factory=list)


class ChecklistResult(BaseCreateSchema):
    """Recorded result for one checkpoint. Description and expected value are not writable here."""
    checkpoint_id: str = Field(..., min_length=1, max_length=50)
    status: ChecklistItemStatus
    actual_value: Optional[str] = Field(None, max_length=500)
    photos: Optional[List[str]] = None
    comments: Optional[str] = None


class InspectionRecord(BaseCreateSchema):
    checklist_results: List[ChecklistResult] = Field(..., min_length=1)
    photos: List[str] = Field(default_factory=list)
    remarks: Optional[str] = None
    expected_version: Optional[int] = Field(
        None, description="Reject the update if the inspection has moved past this version"
    )


class AssignInspectorRequest(BaseCreateSchema):
    inspector_id: str = Field(..., min_length=1, max_length=64)


class CustomerRequirementsUpdate(BaseCreateSchema):
    requirements: List[str]


class ChecklistItemResponse(BaseResponseSchema):
    id: UUID
    checkpoint_id: str
    description: str
    expected_value: str
    actual_value: Optional[str] = None
    status: ChecklistItemStatus
    photos: List[str] = []
    comments: Optional[str] = None


class InspectionResponse(BaseResponseSchema):
    id: UUID
    inspection_number: str
    production_order_id: str
    branch_id: Optional[str] = None
    stage: QCStage
    inspector_id: Optional[str] = None
    inspection_date: datetime
    overall_score: Optional[int] = None
    status: InspectionStatus
    customer_requirements: List[str] = []
    photos: List[str] = []
    remarks: Optional[str] = None
    rework_card_id: Optional[UUID] = None
    delivery_documents: List[Dict[str, Any]] = []
    delivery_linked_at: Optional[datetime] = None
    version_id: int
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    checklist_items: List[ChecklistItemResponse] = []


class InspectionListResponse(BaseModel):
    items: List[InspectionResponse]
    total: int
    skip: int
    limit: int


class ChecklistTemplateResponse(BaseModel):
    stage: QCStage
    items: List[Dict[str, Any]]


class ProductionOrderSummary(BaseModel):
    order_number: str
    quantity: int
    customer: Optional[str] = None


class InspectionReport(BaseModel):
    inspection_id: UUID
    inspection_number: str
    production_order: ProductionOrderSummary
    stage: QCStage
    inspection_date: datetime
    inspector: Optional[str] = None
    overall_score: int
    status: InspectionStatus
    checklist_items: List[ChecklistItemResponse]
    photos: List[str]
    customer_requirements: List[str]
    delivery_documents: List[Dict[str, Any]]


class DeliveryLinkRequest(BaseCreateSchema):
    production_order_id: str = Field(..., min_length=1, max_length=64)
    document_ids: List[str] = Field(..., min_length=1)


class DeliveryLinkResponse(BaseModel):
    production_order_id: str
    inspection_ids: List[UUID]
    document_ids: List[str]
    linked_at: datetime


# ============================================================================
# PRODUCTION INTEGRATION SCHEMAS
# ============================================================================

class ProductionIntegrationRequest(BaseCreateSchema):
    production_order_id: str = Field(..., min_length=1, max_length=64)
    stage: QCStage
    trigger_type: Literal["STAGE_COMPLETION", "MANUAL_TRIGGER"] = "STAGE_COMPLETION"


class ProductionStatusUpdate(BaseModel):
    inspection_id: UUID
    production_order_id: str
    production_status: str


# ============================================================================
# REWORK SCHEMAS
# ============================================================================

class ReworkCreate(BaseCreateSchema):
    inspection_id: UUID


class ReworkJobCardResponse(BaseResponseSchema):
    id: UUID
    rework_number: str
    inspection_id: UUID
    production_order_id: str
    stage: QCStage
    failure_reasons: List[str]
    instructions: str
    assigned_to: Optional[str] = None
    estimated_hours: Decimal
    status: str
    created_at: datetime
    completed_at: Optional[datetime] = None


# ============================================================================
# CERTIFICATE SCHEMAS
# ============================================================================

class CertificateCreate(BaseCreateSchema):
    production_order_id: str = Field(..., min_length=1, max_length=64)
    certificate_type: CertificateType = CertificateType.QUALITY
    issued_by: str = Field(..., min_length=1, max_length=64)
    customer_approval_required: bool = False


class CertificateSubmit(BaseCreateSchema):
    notes: Optional[str] = None


class CustomerApprovalRequest(BaseCreateSchema):
    approved: bool
    approved_by: str = Field(..., min_length=1, max_length=255)
    comments: Optional[str] = None


class CertificateResponse(BaseModel):
    id: UUID
    certificate_number: str
    production_order_id: str
    inspection_ids: List[str]
    certificate_type: CertificateType
    issued_at: datetime
    valid_until: datetime
    issued_by: str
    approved_by: Optional[str] = None
    customer_approval_required: bool
    status: str
    customer_approval_status: Optional[str] = None
    customer_approved_by: Optional[str] = None
    customer_approved_at: Optional[datetime] = None
    customer_comments: Optional[str] = None
    submitted_at: Optional[datetime] = None
    submission_notes: Optional[str] = None
    certificate_data: Dict[str, Any]

    @classmethod
    def from_certificate(cls, certificate: QCCertificate, now: datetime) -> "CertificateResponse":
        return cls(
            id=certificate.id,
            certificate_number=certificate.certificate_number,
            production_order_id=certificate.production_order_id,
            inspection_ids=certificate.inspection_ids,
            certificate_type=certificate.certificate_type,
            issued_at=certificate.issued_at,
            valid_until=certificate.valid_until,
            issued_by=certificate.issued_by,
            approved_by=certificate.approved_by,
            customer_approval_required=certificate.customer_approval_required,
            status=certificate.effective_status(now),
            customer_approval_status=certificate.customer_approval_status,
            customer_approved_by=certificate.customer_approved_by,
            customer_approved_at=certificate.customer_approved_at,
            customer_comments=certificate.customer_comments,
            submitted_at=certificate.submitted_at,
            submission_notes=certificate.submission_notes,
            certificate_data=certificate.certificate_data,
        )


# ============================================================================
# ANALYTICS SCHEMAS
# ============================================================================

class RateMetrics(BaseModel):
    total_inspections: int = 0
    passed: int = 0
    failed: int = 0
    rework_required: int = 0
    pass_rate: float = 0
    fail_rate: float = 0
    rework_rate: float = 0
    average_score: float = 0


class StageMetrics(RateMetrics):
    stage: str


class InspectorPerformance(BaseModel):
    inspector_id: str
    inspector_name: Optional[str] = None
    total_inspections: int
    passed: int
    pass_rate: float
    average_score: float
    efficiency: float


class TrendPoint(BaseModel):
    day: date
    total_inspections: int = 0
    passed: int = 0
    pass_rate: float = 0
    average_score: float = 0


class QCAnalyticsResponse(BaseModel):
    start_date: datetime
    end_date: datetime
    branch_id: Optional[str] = None
    stage: Optional[QCStage] = None
    overview: RateMetrics
    stage_metrics: List[StageMetrics]
    inspector_performance: List[InspectorPerformance]
    trend: List[TrendPoint]


class PendingInspectionRef(BaseModel):
    id: UUID
    inspection_number: str
    production_order_id: str
    stage: str
    created_at: datetime


class InspectorWorkloadDetail(BaseModel):
    inspector_id: str
    inspector_name: Optional[str] = None
    pending_inspections: List[PendingInspectionRef]
    pending_count: int
    completed_today: int
    completed_this_week: int
    weekly_pass_rate: float
    weekly_average_score: float


# ============================================================================
# ALERT SCHEMAS
# ============================================================================

AlertType = Literal["SLA_BREACH", "QUALITY_ISSUE", "INSPECTOR_OVERLOAD", "EQUIPMENT_ISSUE"]
AlertSeverity = Literal["LOW", "MEDIUM", "HIGH", "CRITICAL"]


class QCAlert(BaseModel):
    id: str
    type: AlertType
    severity: AlertSeverity
    message: str
    inspection_id: Optional[UUID] = None
    inspector_id: Optional[str] = None
    production_order_id: Optional[str] = None
    created_at: datetime
    acknowledged: bool = False


class AlertSummary(BaseModel):
    total: int
    by_severity: Dict[str, int]
    unacknowledged: int


class AlertListResponse(BaseModel):
    alerts: List[QCAlert]
    summary: AlertSummary


# ============================================================================
# DASHBOARD SCHEMAS
# ============================================================================

class RealTimeMetrics(BaseModel):
    active_inspections: int
    pending_inspections: int
    completed_today: int
    current_pass_rate: float
    alert_count: int


class ProductionIntegrationMetrics(BaseModel):
    orders_awaiting_qc: int
    orders_in_qc: int
    orders_passed_qc: int
    orders_failed_qc: int
    average_qc_time_hours: float


class InspectorWorkload(BaseModel):
    inspector_id: str
    inspector_name: str
    pending_inspections: int
    in_progress_inspections: int
    completed_today: int


class InspectorStatus(BaseModel):
    total_inspectors: int
    active_inspectors: int
    inspector_workload: List[InspectorWorkload]


class QualityTrends(BaseModel):
    daily_pass_rate: List[float]
    weekly_trends: List[TrendPoint]
    stage_performance: List[StageMetrics]


class QCDashboardResponse(BaseModel):
    generated_at: datetime
    real_time_metrics: RealTimeMetrics
    production_integration: ProductionIntegrationMetrics
    inspector_status: InspectorStatus
    quality_trends: QualityTrends
    alerts: List[QCAlert]


class PerformanceMetricsResponse(BaseModel):
    overview: RateMetrics
    stage_performance: List[StageMetrics]
    inspector_performance: List[InspectorPerformance]
    trends: List[TrendPoint]
    real_time_metrics: RealTimeMetrics
    production_integration: ProductionIntegrationMetrics
    alerts: List[QCAlert]
