"""
Typed errors raised by the QC engine.

Every error carries a stable ``code`` that callers can surface to users.
The four category classes map onto transport status codes in the API layer:

- NotFoundError            -> 404
- ValidationFailedError    -> 400
- PreconditionFailedError  -> 422
- ConflictError            -> 409
"""
from typing import Any, Dict, Optional


class QCError(Exception):
    """Base exception for QC engine errors."""
    code = "QC_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


# ============================================================================
# CATEGORIES
# ============================================================================

class NotFoundError(QCError):
    code = "NOT_FOUND"


class ValidationFailedError(QCError):
    code = "VALIDATION_FAILED"


class PreconditionFailedError(QCError):
    code = "PRECONDITION_FAILED"


class ConflictError(QCError):
    code = "CONFLICT"


# ============================================================================
# NOT FOUND
# ============================================================================

class ProductionOrderNotFound(NotFoundError):
    code = "PRODUCTION_ORDER_NOT_FOUND"

    def __init__(self, production_order_id: str):
        super().__init__(
            "Production order not found",
            {"production_order_id": str(production_order_id)}
        )


class InspectionNotFound(NotFoundError):
    code = "INSPECTION_NOT_FOUND"

    def __init__(self, inspection_id):
        super().__init__("QC inspection not found", {"inspection_id": str(inspection_id)})


class CertificateNotFound(NotFoundError):
    code = "CERTIFICATE_NOT_FOUND"

    def __init__(self, certificate_id):
        super().__init__("QC certificate not found", {"certificate_id": str(certificate_id)})


class InspectorNotFound(NotFoundError):
    code = "INSPECTOR_NOT_FOUND"

    def __init__(self, inspector_id: str):
        super().__init__("Inspector not found", {"inspector_id": str(inspector_id)})


class ReworkCardNotFound(NotFoundError):
    code = "REWORK_CARD_NOT_FOUND"

    def __init__(self, rework_card_id):
        super().__init__("Rework job card not found", {"rework_card_id": str(rework_card_id)})


# ============================================================================
# VALIDATION
# ============================================================================

class InvalidChecklistInput(ValidationFailedError):
    code = "INVALID_CHECKLIST_INPUT"


class UnknownCheckpoint(ValidationFailedError):
    code = "UNKNOWN_CHECKPOINT"

    def __init__(self, checkpoint_ids):
        super().__init__(
            "Checklist results reference checkpoints that are not on the inspection",
            {"checkpoint_ids": sorted(checkpoint_ids)}
        )


class InvalidDateRange(ValidationFailedError):
    code = "INVALID_DATE_RANGE"


# ============================================================================
# PRECONDITIONS
# ============================================================================

class NoPassedInspections(PreconditionFailedError):
    code = "NO_PASSED_INSPECTIONS"

    def __init__(self, production_order_id: str):
        super().__init__(
            "No passed QC inspections found for production order",
            {"production_order_id": str(production_order_id)}
        )


class ApprovalAlreadyResolved(PreconditionFailedError):
    code = "APPROVAL_ALREADY_RESOLVED"


class InspectorOverloaded(PreconditionFailedError):
    code = "INSPECTOR_OVERLOADED"

    def __init__(self, inspector_id: str, pending_count: int, ceiling: int):
        super().__init__(
            "Inspector has too many pending inspections",
            {"inspector_id": str(inspector_id), "pending_count": pending_count, "ceiling": ceiling}
        )


class InspectionAlreadyCompleted(PreconditionFailedError):
    code = "INSPECTION_ALREADY_COMPLETED"


class ReworkAlreadyGenerated(PreconditionFailedError):
    code = "REWORK_ALREADY_GENERATED"


class InspectionNotReworkable(PreconditionFailedError):
    code = "INSPECTION_NOT_REWORKABLE"


class CertificateNotAwaitingApproval(PreconditionFailedError):
    code = "CERTIFICATE_NOT_AWAITING_APPROVAL"


class InvalidStateTransition(PreconditionFailedError):
    code = "INVALID_STATE_TRANSITION"


# ============================================================================
# CONFLICTS
# ============================================================================

class ConcurrentModification(ConflictError):
    code = "CONCURRENT_MODIFICATION"


# ============================================================================
# COLLABORATORS
# ============================================================================

class CollaboratorError(QCError):
    """An external collaborator (production orders, directory) answered with an error."""
    code = "COLLABORATOR_ERROR"

    def __init__(self, service: str, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(
            f"{service} request failed: {message}",
            {"service": service, "status_code": status_code}
        )
