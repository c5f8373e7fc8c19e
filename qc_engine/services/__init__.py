# Services module
from qc_engine.services.document_sequence_service import DocumentSequenceService
from qc_engine.services.inspection_service import InspectionService
from qc_engine.services.rework_service import ReworkService
from qc_engine.services.certificate_service import CertificateService

# Read-only views
from qc_engine.services.qc_analytics import QCAnalyticsService
from qc_engine.services.qc_alerts import QCAlertService
from qc_engine.services.qc_dashboard_service import QCDashboardService

__all__ = [
    "DocumentSequenceService",
    "InspectionService",
    "ReworkService",
    "CertificateService",
    # Read-only views
    "QCAnalyticsService",
    "QCAlertService",
    "QCDashboardService",
]
