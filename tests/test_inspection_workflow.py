"""
Tests for the inspection workflow: creation, recording, assignment and production hooks.
"""
import uuid

import pytest
from sqlalchemy import select

from qc_engine.core.exceptions import (
    ProductionOrderNotFound, InspectionNotFound, InspectorNotFound, InspectorOverloaded,
    InspectionAlreadyCompleted, UnknownCheckpoint, ConcurrentModification,
    NoPassedInspections, InvalidChecklistInput,
)
from qc_engine.models.quality_control import QCStage, InspectionStatus, ReworkJobCard
from qc_engine.schemas.quality_control import (
    InspectionCreate, InspectionRecord, ChecklistResult, ChecklistItemInput,
)
from qc_engine.services.inspection_service import InspectionService


def results(*pairs, **extra):
    return InspectionRecord(
        checklist_results=[ChecklistResult(checkpoint_id=c, status=s) for c, s in pairs],
        **extra
    )


class TestCreateInspection:

    @pytest.mark.asyncio
    async def test_create_from_template(self, create_inspection):
        inspection = await create_inspection()

        assert inspection.inspection_number == "QC2026100001"
        assert inspection.status == InspectionStatus.PENDING.value
        assert inspection.overall_score is None
        assert inspection.branch_id == "BR-1"
        assert [i.checkpoint_id for i in inspection.checklist_items] == ["CUT_001", "CUT_002", "CUT_003"]
        # Registered customer requirements are the fallback
        assert len(inspection.customer_requirements) == 3

    @pytest.mark.asyncio
    async def test_numbers_are_sequential(self, create_inspection):
        first = await create_inspection()
        second = await create_inspection(stage=QCStage.COATING)
        assert first.inspection_number == "QC2026100001"
        assert second.inspection_number == "QC2026100002"

    @pytest.mark.asyncio
    async def test_custom_items_and_requirements(self, create_inspection):
        inspection = await create_inspection(
            "PO-1002",
            QCStage.ASSEMBLY,
            customer_requirements=["Soft-close hinges"],
            checklist_items=[
                ChecklistItemInput(checkpoint_id="ASM_002", expected_value="Silent operation"),
                ChecklistItemInput(checkpoint_id="ASM_X01", description="Handle torque",
                                   expected_value="2-3 Nm"),
            ],
        )
        items = {i.checkpoint_id: i for i in inspection.checklist_items}
        assert len(items) == 4
        assert items["ASM_002"].expected_value == "Silent operation"
        assert items["ASM_002"].description == "Hardware operation"
        assert inspection.checklist_items[-1].checkpoint_id == "ASM_X01"
        assert inspection.customer_requirements == ["Soft-close hinges"]

    @pytest.mark.asyncio
    async def test_unregistered_customer_has_no_requirements(self, create_inspection):
        inspection = await create_inspection("PO-1002")
        assert inspection.customer_requirements == []

    @pytest.mark.asyncio
    async def test_unknown_production_order(self, create_inspection):
        with pytest.raises(ProductionOrderNotFound):
            await create_inspection("PO-404")

    @pytest.mark.asyncio
    async def test_invalid_custom_item(self, create_inspection):
        with pytest.raises(InvalidChecklistInput):
            await create_inspection(checklist_items=[ChecklistItemInput(checkpoint_id="NEW_1")])


class TestRecordResults:

    @pytest.mark.asyncio
    async def test_all_pass(self, inspection_service, create_inspection, clock):
        inspection = await create_inspection()
        clock.advance(hours=2)

        recorded = await inspection_service.record_results(
            inspection.id,
            results(("CUT_001", "PASS"), ("CUT_002", "PASS"), ("CUT_003", "PASS"),
                     photos=["photo-1.jpg"], remarks="Clean batch")
        )

        assert recorded.status == InspectionStatus.PASSED.value
        assert recorded.overall_score == 100
        assert recorded.rework_card_id is None
        assert recorded.photos == ["photo-1.jpg"]
        assert recorded.remarks == "Clean batch"
        assert recorded.inspection_date == clock.now()
        assert recorded.completed_at == clock.now()

    @pytest.mark.asyncio
    async def test_description_not_overwritten(self, inspection_service, create_inspection):
        inspection = await create_inspection()
        recorded = await inspection_service.record_results(inspection.id, InspectionRecord(
            checklist_results=[ChecklistResult(checkpoint_id="CUT_001", status="PASS", actual_value="+1mm")]
        ))
        item = recorded.checklist_items[0]
        assert item.actual_value == "+1mm"
        assert item.description == "Material dimensions accuracy"
        assert item.expected_value == "Within ±2mm tolerance"

    @pytest.mark.asyncio
    async def test_partial_recording_stays_pending(self, inspection_service, create_inspection):
        inspection = await create_inspection()

        partial = await inspection_service.record_results(inspection.id, results(("CUT_001", "PASS")))
        assert partial.status == InspectionStatus.PENDING.value
        assert partial.overall_score is None

        done = await inspection_service.record_results(
            inspection.id, results(("CUT_002", "PASS"), ("CUT_003", "NA"))
        )
        assert done.status == InspectionStatus.PASSED.value
        assert done.overall_score == 100

    @pytest.mark.asyncio
    async def test_rework_required_creates_card(
        self, inspection_service, create_inspection, production_orders, db
    ):
        extra = [
            ChecklistItemInput(checkpoint_id=f"CUT_X0{n}", description=f"Extra check {n}", expected_value="OK")
            for n in range(1, 8)
        ]
        inspection = await create_inspection(checklist_items=extra)
        assert len(inspection.checklist_items) == 10

        statuses = ["PASS"] * 8 + ["FAIL", "NA"]
        recorded = await inspection_service.record_results(inspection.id, results(
            *[(item.checkpoint_id, status) for item, status in zip(inspection.checklist_items, statuses)]
        ))

        assert recorded.overall_score == 89
        assert recorded.status == InspectionStatus.REWORK_REQUIRED.value
        assert recorded.rework_card_id is not None

        card = (await db.execute(
            select(ReworkJobCard).where(ReworkJobCard.inspection_id == inspection.id)
        )).scalar_one()
        assert card.id == recorded.rework_card_id
        assert card.rework_number == "RW2026100001"
        assert float(card.estimated_hours) == 2.5
        assert card.failure_reasons == ["Extra check 6: Expected OK, Got N/A"]
        assert production_orders.status_history[-1] == ("PO-1001", "REWORK_REQUIRED")

    @pytest.mark.asyncio
    async def test_unknown_checkpoint_rolls_back(self, inspection_service, create_inspection):
        inspection = await create_inspection()
        inspection_id = inspection.id
        with pytest.raises(UnknownCheckpoint):
            await inspection_service.record_results(
                inspection_id, results(("CUT_001", "PASS"), ("NOPE_1", "PASS"))
            )
        reloaded = await inspection_service.get_inspection(inspection_id)
        assert reloaded.checklist_items[0].status == "PENDING"

    @pytest.mark.asyncio
    async def test_terminal_inspection_rejects_recording(self, inspection_service, complete_inspection):
        inspection = await complete_inspection()
        with pytest.raises(InspectionAlreadyCompleted):
            await inspection_service.record_results(inspection.id, results(("CUT_001", "FAIL")))

    @pytest.mark.asyncio
    async def test_stale_expected_version(self, inspection_service, create_inspection):
        inspection = await create_inspection()
        version = inspection.version_id

        await inspection_service.record_results(
            inspection.id, results(("CUT_001", "PASS"), expected_version=version)
        )
        with pytest.raises(ConcurrentModification):
            await inspection_service.record_results(
                inspection.id, results(("CUT_002", "PASS"), expected_version=version)
            )

    @pytest.mark.asyncio
    async def test_partial_recording_bumps_version(self, inspection_service, create_inspection):
        inspection = await create_inspection()
        version = inspection.version_id

        # Same clock reading both times, so only checklist rows change
        first = await inspection_service.record_results(inspection.id, results(("CUT_001", "PASS")))
        assert first.version_id == version + 1
        second = await inspection_service.record_results(inspection.id, results(("CUT_001", "PASS")))
        assert second.version_id == version + 2

        current = await inspection_service.record_results(
            inspection.id, results(("CUT_002", "PASS"), expected_version=version + 2)
        )
        assert current.version_id == version + 3

    @pytest.mark.asyncio
    async def test_unknown_inspection(self, inspection_service):
        with pytest.raises(InspectionNotFound):
            await inspection_service.record_results(uuid.uuid4(), results(("CUT_001", "PASS")))


class TestAssignInspector:

    @pytest.mark.asyncio
    async def test_assign(self, inspection_service, create_inspection):
        inspection = await create_inspection()
        assigned = await inspection_service.assign_inspector(inspection.id, "INS-1")
        assert assigned.inspector_id == "INS-1"

        # Re-assigning the same inspector is allowed
        again = await inspection_service.assign_inspector(inspection.id, "INS-1")
        assert again.inspector_id == "INS-1"

    @pytest.mark.asyncio
    async def test_unknown_inspector(self, inspection_service, create_inspection):
        inspection = await create_inspection()
        with pytest.raises(InspectorNotFound):
            await inspection_service.assign_inspector(inspection.id, "INS-404")

    @pytest.mark.asyncio
    async def test_eleventh_assignment_is_rejected(self, inspection_service, create_inspection):
        for _ in range(10):
            await create_inspection(inspector_id="INS-1")
        inspection = await create_inspection()
        inspection_id = inspection.id

        with pytest.raises(InspectorOverloaded) as exc:
            await inspection_service.assign_inspector(inspection_id, "INS-1")
        assert exc.value.details["pending_count"] == 10

        # Another inspector still takes it
        assigned = await inspection_service.assign_inspector(inspection_id, "INS-2")
        assert assigned.inspector_id == "INS-2"

    @pytest.mark.asyncio
    async def test_completed_inspections_free_capacity(
        self, inspection_service, create_inspection, complete_inspection
    ):
        for _ in range(9):
            await create_inspection(inspector_id="INS-1")
        await complete_inspection(inspector_id="INS-1")
        inspection = await create_inspection()

        assigned = await inspection_service.assign_inspector(inspection.id, "INS-1")
        assert assigned.inspector_id == "INS-1"

    @pytest.mark.asyncio
    async def test_terminal_inspection_cannot_be_reassigned(self, inspection_service, complete_inspection):
        inspection = await complete_inspection()
        with pytest.raises(InspectionAlreadyCompleted):
            await inspection_service.assign_inspector(inspection.id, "INS-2")


class TestListingAndReports:

    @pytest.mark.asyncio
    async def test_list_with_filters(self, inspection_service, create_inspection, complete_inspection):
        await create_inspection()
        await create_inspection("PO-1002", QCStage.COATING)
        await complete_inspection()

        items, total = await inspection_service.list_inspections(production_order_id="PO-1001")
        assert total == 2
        assert len(items) == 2

        items, total = await inspection_service.list_inspections(status=InspectionStatus.PASSED)
        assert total == 1

        items, total = await inspection_service.list_inspections(limit=1)
        assert total == 3
        assert len(items) == 1

    @pytest.mark.asyncio
    async def test_report(self, inspection_service, complete_inspection):
        inspection = await complete_inspection(inspector_id="INS-1")
        report = await inspection_service.generate_report(inspection.id)

        assert report.production_order.order_number == "PO/2026/1001"
        assert report.production_order.customer == "Premium Customer"
        assert report.overall_score == 100
        assert report.inspector == "INS-1"
        assert len(report.checklist_items) == 3

    @pytest.mark.asyncio
    async def test_update_customer_requirements(self, inspection_service, create_inspection):
        inspection = await create_inspection()
        updated = await inspection_service.update_customer_requirements(inspection.id, ["Gloss finish"])
        assert updated.customer_requirements == ["Gloss finish"]


class TestDeliveryLinking:

    @pytest.mark.asyncio
    async def test_link_to_passed_inspections(self, inspection_service, create_inspection, complete_inspection):
        passed = await complete_inspection()
        await create_inspection()

        link = await inspection_service.link_delivery_documents("PO-1001", ["DC-1", "DC-2", "DC-1"])
        assert link.inspection_ids == [passed.id]
        assert link.document_ids == ["DC-1", "DC-2"]

        await inspection_service.link_delivery_documents("PO-1001", ["DC-2", "DC-3"])
        reloaded = await inspection_service.get_inspection(passed.id)
        assert [d["document_id"] for d in reloaded.delivery_documents] == ["DC-1", "DC-2", "DC-3"]
        assert reloaded.delivery_linked_at is not None

    @pytest.mark.asyncio
    async def test_no_passed_inspections(self, inspection_service, create_inspection):
        await create_inspection()
        with pytest.raises(NoPassedInspections):
            await inspection_service.link_delivery_documents("PO-1001", ["DC-1"])


class TestProductionHooks:

    @pytest.mark.asyncio
    async def test_stage_completion_creates_inspection(self, inspection_service, production_orders):
        inspection = await inspection_service.integrate_with_production("PO-1002", QCStage.FABRICATION)
        assert inspection.stage == QCStage.FABRICATION.value
        assert inspection.status == InspectionStatus.PENDING.value
        assert production_orders.orders["PO-1002"].current_status == "QC_REQUIRED"

    @pytest.mark.asyncio
    async def test_status_push_after_pass(self, inspection_service, complete_inspection, production_orders):
        inspection = await complete_inspection()
        update = await inspection_service.update_production_order_from_qc(inspection.id)
        assert update.production_status == "IN_PROGRESS"

        for stage in (QCStage.FABRICATION, QCStage.COATING, QCStage.ASSEMBLY):
            last = await complete_inspection(stage=stage)
        update = await inspection_service.update_production_order_from_qc(last.id)
        assert update.production_status == "QC_APPROVED"
        assert production_orders.orders["PO-1001"].current_status == "QC_APPROVED"

    @pytest.mark.asyncio
    async def test_status_push_after_failure(self, inspection_service, complete_inspection):
        inspection = await complete_inspection(statuses=["FAIL", "FAIL", "FAIL"])
        assert inspection.status == InspectionStatus.FAILED.value
        update = await inspection_service.update_production_order_from_qc(inspection.id)
        assert update.production_status == "REWORK_REQUIRED"


class TestInspectorCeilingOverride:

    @pytest.mark.asyncio
    async def test_custom_ceiling(self, db, production_orders, inspectors, clock):
        service = InspectionService(db, production_orders, inspectors, clock, max_pending_per_inspector=1)
        await service.create_inspection(
            InspectionCreate(production_order_id="PO-1001", stage=QCStage.CUTTING, inspector_id="INS-1")
        )
        with pytest.raises(InspectorOverloaded):
            await service.create_inspection(
                InspectionCreate(production_order_id="PO-1001", stage=QCStage.COATING, inspector_id="INS-1")
            )
