from qc_engine.models.document_sequence import DocumentSequence, DocumentPrefix
from qc_engine.models.quality_control import (
    QCStage,
    InspectionStatus,
    ChecklistItemStatus,
    ReworkStatus,
    CertificateType,
    CertificateState,
    CertificateStatus,
    CustomerApprovalStatus,
    QCInspection,
    QCChecklistItem,
    ReworkJobCard,
    QCCertificate,
    QCInspectorLock,
)

__all__ = [
    "DocumentSequence",
    "DocumentPrefix",
    "QCStage",
    "InspectionStatus",
    "ChecklistItemStatus",
    "ReworkStatus",
    "CertificateType",
    "CertificateState",
    "CertificateStatus",
    "CustomerApprovalStatus",
    "QCInspection",
    "QCChecklistItem",
    "ReworkJobCard",
    "QCCertificate",
    "QCInspectorLock",
]
