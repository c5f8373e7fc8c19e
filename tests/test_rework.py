"""
Tests for rework job card generation.
"""
import uuid

import pytest

from qc_engine.core.exceptions import (
    InspectionNotFound, InspectionNotReworkable, ReworkAlreadyGenerated, ReworkCardNotFound
)
from qc_engine.models.quality_control import QCStage, ReworkStatus


class TestReworkCards:

    @pytest.mark.asyncio
    async def test_card_generated_on_recording(self, rework_service, complete_inspection):
        inspection = await complete_inspection(stage=QCStage.COATING, statuses=["FAIL", "FAIL", "FAIL"])
        card = await rework_service.get_rework_card(inspection.rework_card_id)

        assert card.rework_number == "RW2026100001"
        assert card.inspection_id == inspection.id
        assert card.stage == QCStage.COATING.value
        assert card.status == ReworkStatus.PENDING.value
        assert len(card.failure_reasons) == 3
        assert card.failure_reasons[0] == "Surface preparation: Expected Clean, dry, and properly prepared, Got measured"
        assert card.instructions.endswith("; ".join(card.failure_reasons))
        assert float(card.estimated_hours) == 7.5

    @pytest.mark.asyncio
    async def test_second_generation_is_rejected(self, rework_service, complete_inspection):
        inspection = await complete_inspection(statuses=["PASS", "FAIL", "PASS"])
        with pytest.raises(ReworkAlreadyGenerated):
            await rework_service.generate_for_inspection(inspection.id)

    @pytest.mark.asyncio
    async def test_passed_inspection_not_reworkable(self, rework_service, complete_inspection):
        inspection = await complete_inspection()
        with pytest.raises(InspectionNotReworkable):
            await rework_service.generate_for_inspection(inspection.id)

    @pytest.mark.asyncio
    async def test_pending_inspection_not_reworkable(self, rework_service, create_inspection):
        inspection = await create_inspection()
        with pytest.raises(InspectionNotReworkable):
            await rework_service.generate_for_inspection(inspection.id)

    @pytest.mark.asyncio
    async def test_unknown_inspection(self, rework_service):
        with pytest.raises(InspectionNotFound):
            await rework_service.generate_for_inspection(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_unknown_card(self, rework_service):
        with pytest.raises(ReworkCardNotFound):
            await rework_service.get_rework_card(uuid.uuid4())
