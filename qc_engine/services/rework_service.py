"""
Rework Service - corrective action job cards for failing inspections.

A card is derived once per FAILED / REWORK_REQUIRED inspection: failure
reasons from the FAIL checkpoints, stage instructions and an hours estimate.
Creating it pushes REWORK_REQUIRED to the production order.
"""
import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from qc_engine.core.clock import Clock, system_clock
from qc_engine.core.exceptions import (
    InspectionNotFound, InspectionNotReworkable, ReworkAlreadyGenerated, ReworkCardNotFound
)
from qc_engine.models.document_sequence import DocumentPrefix
from qc_engine.models.quality_control import (
    QCInspection, ReworkJobCard, ReworkStatus, InspectionStatus, ChecklistItemStatus
)
from qc_engine.services.collaborators import ProductionOrderGateway
from qc_engine.services.document_sequence_service import DocumentSequenceService
from qc_engine.services.qc_scoring import (
    failure_reason, rework_instructions, estimate_rework_hours
)

logger = logging.getLogger(__name__)

REWORKABLE_STATUSES = (InspectionStatus.FAILED.value, InspectionStatus.REWORK_REQUIRED.value)
PRODUCTION_STATUS_REWORK_REQUIRED = "REWORK_REQUIRED"


class ReworkService:
    """Service for rework job cards."""

    def __init__(
        self,
        db: AsyncSession,
        production_orders: ProductionOrderGateway,
        clock: Clock = system_clock,
    ):
        self.db = db
        self.production_orders = production_orders
        self.clock = clock
        self.sequences = DocumentSequenceService(db)

    async def get_rework_card(self, rework_card_id: uuid.UUID) -> ReworkJobCard:
        card = await self.db.get(ReworkJobCard, rework_card_id)
        if not card:
            raise ReworkCardNotFound(rework_card_id)
        return card

    async def generate_for_inspection(self, inspection_id: uuid.UUID) -> ReworkJobCard:
        """
        Generate the rework card of a failing inspection and commit it.

        Raises:
            InspectionNotFound: unknown inspection
            InspectionNotReworkable: inspection is PENDING or PASSED
            ReworkAlreadyGenerated: a card already exists for the inspection
        """
        result = await self.db.execute(
            select(QCInspection)
            .where(QCInspection.id == inspection_id)
            .options(selectinload(QCInspection.checklist_items))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        inspection = result.scalar_one_or_none()
        if not inspection:
            raise InspectionNotFound(inspection_id)

        try:
            card = await self.create_card(inspection)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ReworkAlreadyGenerated(
                "Rework job card already generated for inspection",
                {"inspection_id": str(inspection_id)}
            ) from e
        except Exception:
            await self.db.rollback()
            raise
        return card

    async def create_card(self, inspection: QCInspection) -> ReworkJobCard:
        """
        Build and flush the rework card for a loaded inspection.

        Runs inside the caller's transaction; the caller commits or rolls back.
        """
        if inspection.status not in REWORKABLE_STATUSES:
            raise InspectionNotReworkable(
                "Rework can only be generated for FAILED or REWORK_REQUIRED inspections",
                {"inspection_id": str(inspection.id), "status": inspection.status}
            )
        if inspection.rework_card_id is not None or await self._card_exists(inspection.id):
            raise ReworkAlreadyGenerated(
                "Rework job card already generated for inspection",
                {"inspection_id": str(inspection.id)}
            )

        failed_items = [
            item for item in inspection.checklist_items
            if item.status == ChecklistItemStatus.FAIL.value
        ]
        reasons = [
            failure_reason(item.description, item.expected_value, item.actual_value)
            for item in failed_items
        ]

        now = self.clock.now()
        card = ReworkJobCard(
            id=uuid.uuid4(),
            rework_number=await self.sequences.get_next_number(DocumentPrefix.REWORK_JOB_CARD.value, now),
            inspection_id=inspection.id,
            production_order_id=inspection.production_order_id,
            stage=inspection.stage,
            failure_reasons=reasons,
            instructions=rework_instructions(inspection.stage, reasons),
            estimated_hours=estimate_rework_hours(inspection.stage, len(failed_items)),
            status=ReworkStatus.PENDING.value,
            created_at=now,
        )
        self.db.add(card)
        inspection.rework_card_id = card.id
        inspection.updated_at = now
        await self.db.flush()

        await self.production_orders.set_status(
            inspection.production_order_id, PRODUCTION_STATUS_REWORK_REQUIRED
        )
        logger.info(
            f"Rework job card {card.rework_number} generated for inspection "
            f"{inspection.inspection_number} ({len(failed_items)} failed checkpoints, "
            f"{card.estimated_hours}h estimated)"
        )
        return card

    async def _card_exists(self, inspection_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            select(ReworkJobCard.id).where(ReworkJobCard.inspection_id == inspection_id)
        )
        return result.scalar_one_or_none() is not None
