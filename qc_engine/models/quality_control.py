"""
Quality Control Models - stage inspections for production orders.

This module implements quality control records:
- QCInspection: One QC pass at one production stage
- QCChecklistItem: Checkpoint results owned by an inspection
- ReworkJobCard: Corrective action raised from a failing inspection
- QCCertificate: Quality/compliance attestation for a production order
- QCInspectorLock: Per-inspector row used to serialise assignments
"""
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List, Dict, Any

from sqlalchemy import (
    String, Boolean, ForeignKey, Integer, Text,
    Numeric, Index, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from qc_engine.database import Base
from qc_engine.db_types import JSONType, UUIDType, UTCDateTime, utc_now


# ============================================================================
# ENUMS
# ============================================================================

class QCStage(str, Enum):
    """Production stages that require inspection."""
    CUTTING = "CUTTING"
    FABRICATION = "FABRICATION"
    COATING = "COATING"
    ASSEMBLY = "ASSEMBLY"
    DISPATCH = "DISPATCH"
    INSTALLATION = "INSTALLATION"


class InspectionStatus(str, Enum):
    """Status of QC inspection. Everything but PENDING is terminal."""
    PENDING = "PENDING"
    PASSED = "PASSED"
    FAILED = "FAILED"
    REWORK_REQUIRED = "REWORK_REQUIRED"


class ChecklistItemStatus(str, Enum):
    """Result of a single checkpoint."""
    PENDING = "PENDING"
    PASS = "PASS"
    FAIL = "FAIL"
    NA = "NA"


class ReworkStatus(str, Enum):
    """Status of rework job card (owned by production scheduling)."""
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class CertificateType(str, Enum):
    """Types of QC certificate."""
    QUALITY = "QUALITY"
    COMPLIANCE = "COMPLIANCE"
    TEST = "TEST"


class CertificateState(str, Enum):
    """Stored certificate lifecycle state. EXPIRED is derived from valid_until."""
    DRAFT = "DRAFT"
    AWAITING_APPROVAL = "AWAITING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class CertificateStatus(str, Enum):
    """Externally reported certificate status."""
    DRAFT = "DRAFT"
    ISSUED = "ISSUED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class CustomerApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


# ============================================================================
# MODELS
# ============================================================================

class QCInspection(Base):
    """
    QC inspection record.

    Created PENDING when a production stage needs inspection; scored and
    closed once every checklist item has a result.
    """
    __tablename__ = "qc_inspections"
    __table_args__ = (
        Index('ix_qc_inspections_date', 'inspection_date'),
        Index('ix_qc_inspections_inspector_status', 'inspector_id', 'status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Inspection Identity
    inspection_number: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        unique=True,
        index=True
    )
    status: Mapped[str] = mapped_column(
        String(30),
        default=InspectionStatus.PENDING.value,
        nullable=False,
        index=True
    )

    # External references
    production_order_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    branch_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    stage: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    inspector_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Timing
    inspection_date: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        nullable=False,
        comment="Set at creation, moved to the recording time when results are recorded"
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # Results
    overall_score: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="0-100, null until all items recorded"
    )
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    customer_requirements: Mapped[List[str]] = mapped_column(JSONType, default=list, nullable=False)
    photos: Mapped[List[str]] = mapped_column(JSONType, default=list, nullable=False)

    # Delivery linkage
    delivery_documents: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSONType,
        default=list,
        nullable=False,
        comment="[{document_id, linked_at}]"
    )
    delivery_linked_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # Rework
    rework_card_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        nullable=True,
        comment="Back-reference to rework_job_cards.id"
    )

    # Optimistic lock
    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        onupdate=utc_now,
        nullable=False
    )

    # Relationships
    checklist_items: Mapped[List["QCChecklistItem"]] = relationship(
        "QCChecklistItem",
        back_populates="inspection",
        cascade="all, delete-orphan",
        order_by="QCChecklistItem.sequence"
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_terminal(self) -> bool:
        return self.status != InspectionStatus.PENDING.value

    def __repr__(self) -> str:
        return f"<QCInspection({self.inspection_number}: {self.stage} {self.status})>"


class QCChecklistItem(Base):
    """One checkpoint within an inspection."""
    __tablename__ = "qc_checklist_items"
    __table_args__ = (
        UniqueConstraint('inspection_id', 'checkpoint_id', name='uq_qc_checklist_checkpoint'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    inspection_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("qc_inspections.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    checkpoint_id: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    expected_value: Mapped[str] = mapped_column(String(500), nullable=False)
    actual_value: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        default=ChecklistItemStatus.PENDING.value,
        nullable=False
    )
    photos: Mapped[List[str]] = mapped_column(JSONType, default=list, nullable=False)
    comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    inspection: Mapped["QCInspection"] = relationship(
        "QCInspection",
        back_populates="checklist_items"
    )


class ReworkJobCard(Base):
    """
    Corrective action record.

    Exactly one card per failing inspection; only status/assignment/completion
    change after creation.
    """
    __tablename__ = "rework_job_cards"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    rework_number: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        unique=True,
        index=True
    )
    inspection_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("qc_inspections.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True
    )
    production_order_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    stage: Mapped[str] = mapped_column(String(30), nullable=False)

    failure_reasons: Mapped[List[str]] = mapped_column(JSONType, default=list, nullable=False)
    instructions: Mapped[str] = mapped_column(Text, nullable=False)
    assigned_to: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    estimated_hours: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=ReworkStatus.PENDING.value,
        nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)


class QCCertificate(Base):
    """
    QC certificate for a production order.

    Lifecycle lives in ``state``; the reported status and customer approval
    status are both derived from it.
    """
    __tablename__ = "qc_certificates"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    certificate_number: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        unique=True,
        index=True
    )
    production_order_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    inspection_ids: Mapped[List[str]] = mapped_column(JSONType, default=list, nullable=False)
    certificate_type: Mapped[str] = mapped_column(String(20), nullable=False)

    issued_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    valid_until: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    issued_by: Mapped[str] = mapped_column(String(64), nullable=False)
    approved_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    customer_approval_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    state: Mapped[str] = mapped_column(
        String(30),
        default=CertificateState.DRAFT.value,
        nullable=False,
        index=True
    )
    customer_approved_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_approved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    customer_comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    submitted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    submission_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    certificate_data: Mapped[Dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        onupdate=utc_now,
        nullable=False
    )

    def effective_status(self, now: datetime) -> str:
        if self.state == CertificateState.APPROVED.value and self.valid_until < now:
            return CertificateStatus.EXPIRED.value
        return {
            CertificateState.DRAFT.value: CertificateStatus.DRAFT.value,
            CertificateState.AWAITING_APPROVAL.value: CertificateStatus.ISSUED.value,
            CertificateState.APPROVED.value: CertificateStatus.APPROVED.value,
            CertificateState.REJECTED.value: CertificateStatus.REJECTED.value,
        }[self.state]

    @property
    def customer_approval_status(self) -> Optional[str]:
        if self.state == CertificateState.REJECTED.value:
            return CustomerApprovalStatus.REJECTED.value
        if self.state == CertificateState.APPROVED.value:
            return CustomerApprovalStatus.APPROVED.value
        if self.state == CertificateState.AWAITING_APPROVAL.value:
            return CustomerApprovalStatus.PENDING.value
        return None

    def __repr__(self) -> str:
        return f"<QCCertificate({self.certificate_number}: {self.state})>"


class QCInspectorLock(Base):
    """
    Per-inspector lock row.

    Assignment locks this row FOR UPDATE before re-counting the inspector's
    pending inspections, so concurrent assignments queue behind each other.
    """
    __tablename__ = "qc_inspector_locks"

    inspector_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    last_assigned_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
