"""
Certificate Service - quality certificates for production orders.

A certificate attests the PASSED inspections of one production order. When
customer approval is required it waits in AWAITING_APPROVAL until the
customer approves or rejects it; approval hands the order over to delivery.
"""
import logging
import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from qc_engine.config import settings
from qc_engine.core.clock import Clock, system_clock
from qc_engine.core.exceptions import (
    CertificateNotFound, ProductionOrderNotFound, NoPassedInspections,
    ApprovalAlreadyResolved, CertificateNotAwaitingApproval,
)
from qc_engine.models.document_sequence import DocumentPrefix
from qc_engine.models.quality_control import (
    QCCertificate, QCInspection, QCStage, CertificateType, CertificateState, InspectionStatus
)
from qc_engine.services import certificate_state_machine
from qc_engine.services.collaborators import ProductionOrderGateway, QCNotifier, ProductionOrderInfo
from qc_engine.services.document_sequence_service import DocumentSequenceService
from qc_engine.services.inspection_service import ProductionStatus

logger = logging.getLogger(__name__)

CERTIFICATE_PREFIXES: Dict[str, str] = {
    CertificateType.QUALITY.value: DocumentPrefix.QUALITY_CERTIFICATE.value,
    CertificateType.COMPLIANCE.value: DocumentPrefix.COMPLIANCE_CERTIFICATE.value,
    CertificateType.TEST.value: DocumentPrefix.TEST_CERTIFICATE.value,
}

COMPLIANCE_INFO: Dict[str, Any] = {
    "standards": ["ISO 9001:2015", "IS 4351", "BIS Standards"],
    "certifications": ["Quality Management System", "Product Certification"],
    "test_results": {
        "Dimensional Accuracy": "Within Tolerance",
        "Surface Finish": "As Per Specification",
        "Material Quality": "Approved Grade",
    },
}

STAGE_ORDER = [stage.value for stage in QCStage]


def build_certificate_data(
    order: ProductionOrderInfo,
    inspections: List[QCInspection]
) -> Dict[str, Any]:
    """Structured certificate payload from the order and its PASSED inspections."""
    passed_stages = {i.stage for i in inspections}
    inspectors = list(dict.fromkeys(i.inspector_id for i in inspections if i.inspector_id))
    requirements = list(dict.fromkeys(
        requirement
        for inspection in inspections
        for requirement in inspection.customer_requirements or []
    ))
    overall_score = sum(i.overall_score or 0 for i in inspections) / len(inspections)

    return {
        "product_details": {
            "order_number": order.order_number,
            "product_code": order.product_code,
            "description": order.product_name,
            "quantity": order.quantity,
            "customer": order.customer_name,
            "specifications": order.specifications or {},
        },
        "quality_results": {
            "overall_score": overall_score,
            "passed_stages": [s for s in STAGE_ORDER if s in passed_stages],
            "failed_stages": [],
            "reworked_stages": [],
        },
        "inspection_summary": {
            "total_inspections": len(inspections),
            "passed_inspections": len(inspections),
            "inspection_dates": [i.inspection_date.isoformat() for i in inspections],
            "inspectors": inspectors,
        },
        "compliance_info": COMPLIANCE_INFO,
        "customer_requirements": requirements,
    }


class CertificateService:
    """Service for QC certificate issue and customer approval."""

    def __init__(
        self,
        db: AsyncSession,
        production_orders: ProductionOrderGateway,
        notifier: QCNotifier,
        clock: Clock = system_clock,
    ):
        self.db = db
        self.production_orders = production_orders
        self.notifier = notifier
        self.clock = clock
        self.sequences = DocumentSequenceService(db)

    async def get_certificate(self, certificate_id: uuid.UUID) -> QCCertificate:
        result = await self.db.execute(
            select(QCCertificate)
            .where(QCCertificate.id == certificate_id)
            .execution_options(populate_existing=True)
        )
        certificate = result.scalar_one_or_none()
        if not certificate:
            raise CertificateNotFound(certificate_id)
        return certificate

    async def list_certificates(self, production_order_id: str) -> List[QCCertificate]:
        result = await self.db.execute(
            select(QCCertificate)
            .where(QCCertificate.production_order_id == production_order_id)
            .order_by(QCCertificate.issued_at.desc())
        )
        return list(result.scalars().all())

    async def issue_certificate(
        self,
        production_order_id: str,
        certificate_type: CertificateType,
        issued_by: str,
        customer_approval_required: bool = False
    ) -> QCCertificate:
        """
        Issue a certificate over every PASSED inspection of the order.

        Raises:
            ProductionOrderNotFound: unknown production order
            NoPassedInspections: the order has no PASSED inspection
        """
        order = await self.production_orders.get(production_order_id)
        if not order:
            raise ProductionOrderNotFound(production_order_id)

        try:
            result = await self.db.execute(
                select(QCInspection)
                .where(
                    QCInspection.production_order_id == production_order_id,
                    QCInspection.status == InspectionStatus.PASSED.value,
                )
                .order_by(QCInspection.inspection_date)
            )
            inspections = list(result.scalars().all())
            if not inspections:
                raise NoPassedInspections(production_order_id)

            now = self.clock.now()
            validity_days = (
                settings.QC_QUALITY_CERTIFICATE_VALIDITY_DAYS
                if certificate_type == CertificateType.QUALITY
                else settings.QC_DEFAULT_CERTIFICATE_VALIDITY_DAYS
            )
            state = certificate_state_machine.initial_state(customer_approval_required)

            certificate = QCCertificate(
                id=uuid.uuid4(),
                certificate_number=await self.sequences.get_next_number(
                    CERTIFICATE_PREFIXES[certificate_type.value], now
                ),
                production_order_id=production_order_id,
                inspection_ids=[str(i.id) for i in inspections],
                certificate_type=certificate_type.value,
                issued_at=now,
                valid_until=now + timedelta(days=validity_days),
                issued_by=issued_by,
                approved_by=None if customer_approval_required else issued_by,
                customer_approval_required=customer_approval_required,
                state=state,
                certificate_data=build_certificate_data(order, inspections),
                created_at=now,
                updated_at=now,
            )
            self.db.add(certificate)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            f"QC certificate {certificate.certificate_number} issued for production order "
            f"{order.order_number} ({len(inspections)} inspections, state {state})"
        )
        return certificate

    async def submit_for_approval(
        self,
        certificate_id: uuid.UUID,
        notes: Optional[str] = None
    ) -> QCCertificate:
        """Record submission of an issued certificate to the customer and notify."""
        try:
            result = await self.db.execute(
                select(QCCertificate)
                .where(QCCertificate.id == certificate_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            certificate = result.scalar_one_or_none()
            if not certificate:
                raise CertificateNotFound(certificate_id)
            if certificate.state != CertificateState.AWAITING_APPROVAL.value:
                raise CertificateNotAwaitingApproval(
                    f"Certificate {certificate.certificate_number} is not awaiting customer approval",
                    {"certificate_id": str(certificate_id), "state": certificate.state}
                )

            certificate.submitted_at = self.clock.now()
            certificate.submission_notes = notes
            certificate.updated_at = certificate.submitted_at
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"QC certificate {certificate.certificate_number} submitted for customer approval")
        await self._notify("certificate_submitted", certificate, notes)
        return certificate

    async def process_customer_approval(
        self,
        certificate_id: uuid.UUID,
        approved: bool,
        approved_by: str,
        comments: Optional[str] = None
    ) -> QCCertificate:
        """
        Resolve the customer approval exactly once.

        The state moves with a compare-and-swap from AWAITING_APPROVAL, so a
        second call (or a concurrent one) fails with ApprovalAlreadyResolved.
        """
        target = CertificateState.APPROVED.value if approved else CertificateState.REJECTED.value
        certificate_state_machine.validate_transition(CertificateState.AWAITING_APPROVAL.value, target)
        now = self.clock.now()

        try:
            result = await self.db.execute(
                update(QCCertificate)
                .where(
                    QCCertificate.id == certificate_id,
                    QCCertificate.state == CertificateState.AWAITING_APPROVAL.value,
                )
                .values(
                    state=target,
                    customer_approved_by=approved_by,
                    customer_approved_at=now,
                    customer_comments=comments,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await self._raise_not_awaiting(certificate_id)

            certificate = await self.get_certificate(certificate_id)
            if approved:
                await self.production_orders.set_status(
                    certificate.production_order_id, ProductionStatus.READY_FOR_DELIVERY
                )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            f"QC certificate {certificate.certificate_number} "
            f"{'approved' if approved else 'rejected'} by customer ({approved_by})"
        )
        if approved:
            await self._notify("delivery_triggered", certificate)
        return certificate

    async def _raise_not_awaiting(self, certificate_id: uuid.UUID) -> None:
        certificate = await self.get_certificate(certificate_id)
        if certificate.state in (CertificateState.APPROVED.value, CertificateState.REJECTED.value):
            raise ApprovalAlreadyResolved(
                f"Customer approval for certificate {certificate.certificate_number} "
                f"is already {certificate.state}",
                {"certificate_id": str(certificate_id), "state": certificate.state}
            )
        raise CertificateNotAwaitingApproval(
            f"Certificate {certificate.certificate_number} is not awaiting customer approval",
            {"certificate_id": str(certificate_id), "state": certificate.state}
        )

    async def _notify(self, event: str, certificate: QCCertificate, *args) -> None:
        # Signals are fire-and-forget; a failing notifier never undoes a committed change
        try:
            await getattr(self.notifier, event)(certificate, *args, sent_at=self.clock.now())
        except Exception as e:
            logger.error(f"QC notifier {event} failed for {certificate.certificate_number}: {e}")
