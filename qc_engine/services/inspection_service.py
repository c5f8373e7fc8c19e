"""
Inspection Service - lifecycle of stage QC inspections.

Business logic for:
- Inspection creation from stage checklist templates
- Result recording, scoring and status derivation
- Inspector assignment with a pending-workload ceiling
- Reports and delivery document linking
- Production pipeline hooks (stage completion, status push)

State machine: PENDING → PASSED | FAILED | REWORK_REQUIRED (terminal).
"""
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from qc_engine.config import settings
from qc_engine.core.clock import Clock, system_clock
from qc_engine.core.exceptions import (
    ProductionOrderNotFound, InspectionNotFound, InspectorNotFound,
    InspectorOverloaded, InspectionAlreadyCompleted, UnknownCheckpoint,
    NoPassedInspections, ConcurrentModification,
)
from qc_engine.models.document_sequence import DocumentPrefix
from qc_engine.models.quality_control import (
    QCInspection, QCChecklistItem, QCInspectorLock, QCStage, InspectionStatus
)
from qc_engine.schemas.quality_control import (
    InspectionCreate, InspectionRecord, InspectionReport, ProductionOrderSummary,
    ChecklistItemResponse, DeliveryLinkResponse, ProductionStatusUpdate,
)
from qc_engine.services.checklist_catalog import (
    merge_checklist, get_customer_requirements, get_checklist_template
)
from qc_engine.services.collaborators import (
    ProductionOrderGateway, InspectorDirectory, ProductionOrderInfo
)
from qc_engine.services.document_sequence_service import DocumentSequenceService
from qc_engine.services.qc_scoring import ScoreResult, score_checklist
from qc_engine.services.rework_service import ReworkService, REWORKABLE_STATUSES

logger = logging.getLogger(__name__)

# Stages that must all pass before the production order is QC approved
REQUIRED_PRODUCTION_STAGES = (
    QCStage.CUTTING.value,
    QCStage.FABRICATION.value,
    QCStage.COATING.value,
    QCStage.ASSEMBLY.value,
)


class ProductionStatus:
    """Production order statuses pushed by the QC engine."""
    QC_REQUIRED = "QC_REQUIRED"
    IN_PROGRESS = "IN_PROGRESS"
    QC_APPROVED = "QC_APPROVED"
    REWORK_REQUIRED = "REWORK_REQUIRED"
    READY_FOR_DELIVERY = "READY_FOR_DELIVERY"


async def pending_inspection_counts(
    db: AsyncSession,
    branch_id: Optional[str] = None,
    inspector_id: Optional[str] = None,
) -> Dict[str, int]:
    """PENDING inspections per assigned inspector."""
    query = (
        select(QCInspection.inspector_id, func.count(QCInspection.id))
        .where(
            QCInspection.status == InspectionStatus.PENDING.value,
            QCInspection.inspector_id.is_not(None),
        )
        .group_by(QCInspection.inspector_id)
    )
    if branch_id:
        query = query.where(QCInspection.branch_id == branch_id)
    if inspector_id:
        query = query.where(QCInspection.inspector_id == inspector_id)
    result = await db.execute(query)
    return {row[0]: row[1] for row in result.all()}


class InspectionService:
    """Service for QC inspection workflow."""

    def __init__(
        self,
        db: AsyncSession,
        production_orders: ProductionOrderGateway,
        inspectors: InspectorDirectory,
        clock: Clock = system_clock,
        max_pending_per_inspector: Optional[int] = None,
    ):
        self.db = db
        self.production_orders = production_orders
        self.inspectors = inspectors
        self.clock = clock
        self.max_pending_per_inspector = (
            max_pending_per_inspector
            if max_pending_per_inspector is not None
            else settings.QC_MAX_PENDING_PER_INSPECTOR
        )
        self.sequences = DocumentSequenceService(db)
        self.rework = ReworkService(db, production_orders, clock)

    # ========================================================================
    # LOOKUPS
    # ========================================================================

    async def _get_production_order(self, production_order_id: str) -> ProductionOrderInfo:
        order = await self.production_orders.get(production_order_id)
        if not order:
            raise ProductionOrderNotFound(production_order_id)
        return order

    async def _load(self, inspection_id: uuid.UUID, for_update: bool = False) -> QCInspection:
        query = (
            select(QCInspection)
            .where(QCInspection.id == inspection_id)
            .options(selectinload(QCInspection.checklist_items))
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        inspection = result.scalar_one_or_none()
        if not inspection:
            raise InspectionNotFound(inspection_id)
        return inspection

    async def get_inspection(self, inspection_id: uuid.UUID) -> QCInspection:
        """Get inspection by ID with its checklist."""
        return await self._load(inspection_id)

    async def list_inspections(
        self,
        production_order_id: Optional[str] = None,
        stage: Optional[QCStage] = None,
        status: Optional[InspectionStatus] = None,
        inspector_id: Optional[str] = None,
        branch_id: Optional[str] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 100
    ) -> Tuple[List[QCInspection], int]:
        """List inspections with filters."""
        query = select(QCInspection)

        if production_order_id:
            query = query.where(QCInspection.production_order_id == production_order_id)
        if stage:
            query = query.where(QCInspection.stage == stage.value)
        if status:
            query = query.where(QCInspection.status == status.value)
        if inspector_id:
            query = query.where(QCInspection.inspector_id == inspector_id)
        if branch_id:
            query = query.where(QCInspection.branch_id == branch_id)
        if from_date:
            query = query.where(QCInspection.inspection_date >= from_date)
        if to_date:
            query = query.where(QCInspection.inspection_date <= to_date)

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_query)).scalar() or 0

        query = (
            query.options(selectinload(QCInspection.checklist_items))
            .order_by(QCInspection.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def list_for_production_order(self, production_order_id: str) -> List[QCInspection]:
        """All inspections of a production order, newest first."""
        result = await self.db.execute(
            select(QCInspection)
            .where(QCInspection.production_order_id == production_order_id)
            .options(selectinload(QCInspection.checklist_items))
            .order_by(QCInspection.created_at.desc())
        )
        return list(result.scalars().all())

    def get_checklist_template(self, stage: QCStage) -> List[dict]:
        return get_checklist_template(stage.value)

    # ========================================================================
    # CREATION
    # ========================================================================

    async def create_inspection(self, data: InspectionCreate) -> QCInspection:
        """
        Create a PENDING inspection from the stage template.

        Raises:
            ProductionOrderNotFound: unknown production order
            InvalidChecklistInput: malformed custom checklist item
            InspectorNotFound / InspectorOverloaded: when an inspector is given
        """
        async with self._transaction():
            inspection = await self._build_inspection(data)
        return await self._load(inspection.id)

    async def _build_inspection(self, data: InspectionCreate) -> QCInspection:
        order = await self._get_production_order(data.production_order_id)

        items = merge_checklist(
            data.stage.value,
            [item.model_dump(exclude_unset=True, mode="json") for item in data.checklist_items]
        )
        if data.customer_requirements is not None:
            requirements = list(data.customer_requirements)
        else:
            requirements = get_customer_requirements(order.customer_name)

        now = self.clock.now()
        if data.inspector_id:
            await self._reserve_inspector(data.inspector_id, now)

        inspection = QCInspection(
            id=uuid.uuid4(),
            inspection_number=await self.sequences.get_next_number(
                DocumentPrefix.QC_INSPECTION.value, now
            ),
            production_order_id=order.id,
            branch_id=order.branch_id,
            stage=data.stage.value,
            inspector_id=data.inspector_id,
            inspection_date=now,
            status=InspectionStatus.PENDING.value,
            customer_requirements=requirements,
            photos=[],
            delivery_documents=[],
            created_at=now,
            updated_at=now,
            checklist_items=[
                QCChecklistItem(id=uuid.uuid4(), sequence=position, **item)
                for position, item in enumerate(items)
            ],
        )
        self.db.add(inspection)
        await self.db.flush()

        logger.info(
            f"QC inspection {inspection.inspection_number} created for production order "
            f"{order.order_number} at stage {inspection.stage} ({len(items)} checkpoints)"
        )
        return inspection

    async def update_customer_requirements(
        self,
        inspection_id: uuid.UUID,
        requirements: List[str]
    ) -> QCInspection:
        async with self._transaction():
            inspection = await self._load(inspection_id, for_update=True)
            inspection.customer_requirements = list(requirements)
            inspection.updated_at = self.clock.now()
        logger.info(f"Customer requirements updated for inspection {inspection.inspection_number}")
        return await self._load(inspection_id)

    # ========================================================================
    # RECORDING
    # ========================================================================

    async def record_results(
        self,
        inspection_id: uuid.UUID,
        data: InspectionRecord
    ) -> QCInspection:
        """
        Record checklist results and, once every item has a result, score the inspection.

        The checklist update, scoring, status and rework card are one unit:
        any failure rolls all of it back.

        Raises:
            InspectionNotFound, UnknownCheckpoint, InspectionAlreadyCompleted,
            ConcurrentModification
        """
        async with self._transaction():
            inspection = await self._load(inspection_id, for_update=True)
            score = self._apply_results(inspection, data)
            await self.db.flush()
            if inspection.status in REWORKABLE_STATUSES:
                await self.rework.create_card(inspection)

        if score.pending:
            logger.info(
                f"QC inspection {inspection.inspection_number} partially recorded "
                f"({score.pending} checkpoints pending)"
            )
        else:
            logger.info(
                f"QC inspection {inspection.inspection_number} recorded: "
                f"score {score.score}, status {score.status} "
                f"({score.passed} pass / {score.failed} fail / {score.not_applicable} n/a)"
            )
        return await self._load(inspection_id)

    def _apply_results(self, inspection: QCInspection, data: InspectionRecord) -> ScoreResult:
        if data.expected_version is not None and inspection.version_id != data.expected_version:
            raise ConcurrentModification(
                "Inspection was modified by another request",
                {"inspection_id": str(inspection.id),
                 "expected_version": data.expected_version,
                 "current_version": inspection.version_id}
            )
        if inspection.is_terminal:
            raise InspectionAlreadyCompleted(
                f"Inspection {inspection.inspection_number} is already {inspection.status}",
                {"inspection_id": str(inspection.id), "status": inspection.status}
            )

        items = {item.checkpoint_id: item for item in inspection.checklist_items}
        unknown = {r.checkpoint_id for r in data.checklist_results} - items.keys()
        if unknown:
            raise UnknownCheckpoint(unknown)

        for recorded in data.checklist_results:
            item = items[recorded.checkpoint_id]
            item.status = recorded.status.value
            if recorded.actual_value is not None:
                item.actual_value = recorded.actual_value
            if recorded.photos is not None:
                item.photos = list(recorded.photos)
            if recorded.comments is not None:
                item.comments = recorded.comments

        score = score_checklist(item.status for item in inspection.checklist_items)
        now = self.clock.now()

        inspection.inspection_date = now
        inspection.updated_at = now
        # Checklist-only changes still have to bump version_id
        flag_modified(inspection, "updated_at")
        inspection.overall_score = score.score
        inspection.status = score.status
        if data.photos:
            inspection.photos = list(data.photos)
        if data.remarks is not None:
            inspection.remarks = data.remarks
        if inspection.is_terminal:
            inspection.completed_at = now
        return score

    # ========================================================================
    # INSPECTOR ASSIGNMENT
    # ========================================================================

    async def assign_inspector(self, inspection_id: uuid.UUID, inspector_id: str) -> QCInspection:
        """
        Assign an inspector, enforcing the pending-inspection ceiling.

        Re-assigning the current inspector only re-checks that the inspector exists.
        """
        async with self._transaction():
            inspection = await self._load(inspection_id, for_update=True)
            if inspection.is_terminal:
                raise InspectionAlreadyCompleted(
                    f"Inspection {inspection.inspection_number} is already {inspection.status}",
                    {"inspection_id": str(inspection_id), "status": inspection.status}
                )

            reassigned = inspection.inspector_id != inspector_id
            if reassigned:
                now = self.clock.now()
                await self._reserve_inspector(inspector_id, now)
                inspection.inspector_id = inspector_id
                inspection.updated_at = now
            elif not await self.inspectors.get(inspector_id):
                raise InspectorNotFound(inspector_id)

        if reassigned:
            logger.info(f"Inspector {inspector_id} assigned to QC inspection {inspection.inspection_number}")
        return await self._load(inspection_id)

    async def _reserve_inspector(self, inspector_id: str, now: datetime) -> None:
        """
        Check the inspector exists and is under the ceiling, holding the
        inspector's lock row until the caller's transaction ends.
        """
        if not await self.inspectors.get(inspector_id):
            raise InspectorNotFound(inspector_id)

        result = await self.db.execute(
            select(QCInspectorLock)
            .where(QCInspectorLock.inspector_id == inspector_id)
            .with_for_update()
        )
        lock = result.scalar_one_or_none()
        if not lock:
            lock = QCInspectorLock(inspector_id=inspector_id)
            self.db.add(lock)
        lock.last_assigned_at = now
        await self.db.flush()

        counts = await pending_inspection_counts(self.db, inspector_id=inspector_id)
        pending = counts.get(inspector_id, 0)
        if pending >= self.max_pending_per_inspector:
            raise InspectorOverloaded(inspector_id, pending, self.max_pending_per_inspector)

    # ========================================================================
    # REPORTS AND DELIVERY
    # ========================================================================

    async def generate_report(self, inspection_id: uuid.UUID) -> InspectionReport:
        inspection = await self._load(inspection_id)
        order = await self._get_production_order(inspection.production_order_id)

        logger.info(f"QC report generated for inspection {inspection.inspection_number}")
        return InspectionReport(
            inspection_id=inspection.id,
            inspection_number=inspection.inspection_number,
            production_order=ProductionOrderSummary(
                order_number=order.order_number,
                quantity=order.quantity,
                customer=order.customer_name,
            ),
            stage=inspection.stage,
            inspection_date=inspection.inspection_date,
            inspector=inspection.inspector_id,
            overall_score=inspection.overall_score or 0,
            status=inspection.status,
            checklist_items=[
                ChecklistItemResponse.model_validate(item) for item in inspection.checklist_items
            ],
            photos=inspection.photos or [],
            customer_requirements=inspection.customer_requirements or [],
            delivery_documents=inspection.delivery_documents or [],
        )

    async def link_delivery_documents(
        self,
        production_order_id: str,
        document_ids: List[str]
    ) -> DeliveryLinkResponse:
        """Attach delivery document ids to every PASSED inspection of the order."""
        now = self.clock.now()
        unique_ids = list(dict.fromkeys(document_ids))

        async with self._transaction():
            result = await self.db.execute(
                select(QCInspection)
                .where(
                    QCInspection.production_order_id == production_order_id,
                    QCInspection.status == InspectionStatus.PASSED.value,
                )
                .order_by(QCInspection.created_at)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            inspections = list(result.scalars().all())
            if not inspections:
                raise NoPassedInspections(production_order_id)

            for inspection in inspections:
                linked = {doc["document_id"] for doc in inspection.delivery_documents or []}
                inspection.delivery_documents = list(inspection.delivery_documents or []) + [
                    {"document_id": doc_id, "linked_at": now.isoformat()}
                    for doc_id in unique_ids if doc_id not in linked
                ]
                inspection.delivery_linked_at = now
                inspection.updated_at = now

        logger.info(
            f"QC reports linked to delivery for production order {production_order_id}: "
            f"{len(inspections)} inspections, {len(unique_ids)} documents"
        )
        return DeliveryLinkResponse(
            production_order_id=production_order_id,
            inspection_ids=[i.id for i in inspections],
            document_ids=unique_ids,
            linked_at=now,
        )

    # ========================================================================
    # PRODUCTION HOOKS
    # ========================================================================

    async def integrate_with_production(
        self,
        production_order_id: str,
        stage: QCStage,
        trigger_type: str = "STAGE_COMPLETION"
    ) -> QCInspection:
        """Stage-completed hook: create the stage inspection and flag the order QC_REQUIRED."""
        async with self._transaction():
            inspection = await self._build_inspection(
                InspectionCreate(production_order_id=production_order_id, stage=stage)
            )
            await self.production_orders.set_status(production_order_id, ProductionStatus.QC_REQUIRED)

        logger.info(
            f"QC inspection {inspection.inspection_number} auto-created for production order "
            f"{production_order_id} ({trigger_type})"
        )
        return await self._load(inspection.id)

    async def update_production_order_from_qc(self, inspection_id: uuid.UUID) -> ProductionStatusUpdate:
        """Inspection-recorded hook: push the production status implied by the inspection."""
        inspection = await self._load(inspection_id)

        if inspection.status == InspectionStatus.PASSED.value:
            result = await self.db.execute(
                select(QCInspection.stage).where(
                    QCInspection.production_order_id == inspection.production_order_id,
                    QCInspection.status == InspectionStatus.PASSED.value,
                ).distinct()
            )
            passed_stages = set(result.scalars().all())
            if all(stage in passed_stages for stage in REQUIRED_PRODUCTION_STAGES):
                production_status = ProductionStatus.QC_APPROVED
            else:
                production_status = ProductionStatus.IN_PROGRESS
        elif inspection.status in REWORKABLE_STATUSES:
            production_status = ProductionStatus.REWORK_REQUIRED
        else:
            production_status = ProductionStatus.QC_REQUIRED

        await self.production_orders.set_status(inspection.production_order_id, production_status)
        logger.info(
            f"Production order {inspection.production_order_id} status updated from QC "
            f"inspection {inspection.inspection_number}: {inspection.status} -> {production_status}"
        )
        return ProductionStatusUpdate(
            inspection_id=inspection.id,
            production_order_id=inspection.production_order_id,
            production_status=production_status,
        )

    @asynccontextmanager
    async def _transaction(self):
        """Commit the block's changes, or roll all of them back and re-raise."""
        try:
            yield
            await self.db.commit()
        except StaleDataError as e:
            await self.db.rollback()
            raise ConcurrentModification("Inspection was modified by another request") from e
        except IntegrityError as e:
            # Lock or sequence row created concurrently for the first time
            await self.db.rollback()
            raise ConcurrentModification("Concurrent update detected, retry the request") from e
        except Exception:
            await self.db.rollback()
            raise
