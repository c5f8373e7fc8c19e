"""
QC Analytics - read-only metrics over inspections.

Rates are percentages of the inspection count (0 when there are none);
average score is taken over scored inspections only. The trend is gap-free:
one point per UTC calendar day in the requested range.
"""
import logging
import math
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from qc_engine.core.clock import Clock, system_clock, as_utc
from qc_engine.core.exceptions import InvalidDateRange
from qc_engine.models.quality_control import QCInspection, QCStage, InspectionStatus
from qc_engine.schemas.quality_control import (
    RateMetrics, StageMetrics, InspectorPerformance, TrendPoint,
    QCAnalyticsResponse, InspectorWorkloadDetail, PendingInspectionRef,
)
from qc_engine.services.collaborators import InspectorDirectory

logger = logging.getLogger(__name__)

COMPLETED_STATUSES = (
    InspectionStatus.PASSED.value,
    InspectionStatus.FAILED.value,
    InspectionStatus.REWORK_REQUIRED.value,
)


# ==================== PURE AGGREGATES ====================

def percentage(part: int, total: int) -> float:
    return part / total * 100 if total else 0.0


def average_score(inspections: Sequence[QCInspection]) -> float:
    scored = [i.overall_score for i in inspections if i.overall_score is not None]
    return sum(scored) / len(scored) if scored else 0.0


def rate_metrics(inspections: Sequence[QCInspection]) -> RateMetrics:
    total = len(inspections)
    passed = sum(1 for i in inspections if i.status == InspectionStatus.PASSED.value)
    failed = sum(1 for i in inspections if i.status == InspectionStatus.FAILED.value)
    rework = sum(1 for i in inspections if i.status == InspectionStatus.REWORK_REQUIRED.value)
    return RateMetrics(
        total_inspections=total,
        passed=passed,
        failed=failed,
        rework_required=rework,
        pass_rate=percentage(passed, total),
        fail_rate=percentage(failed, total),
        rework_rate=percentage(rework, total),
        average_score=average_score(inspections),
    )


def stage_metrics(inspections: Iterable[QCInspection]) -> List[StageMetrics]:
    """Per-stage metrics, in production stage order, for stages that have inspections."""
    groups: Dict[str, List[QCInspection]] = defaultdict(list)
    for inspection in inspections:
        groups[inspection.stage].append(inspection)

    return [
        StageMetrics(stage=stage.value, **rate_metrics(groups[stage.value]).model_dump())
        for stage in QCStage
        if stage.value in groups
    ]


def range_days(start: datetime, end: datetime) -> int:
    return math.ceil((end - start) / timedelta(days=1))


def inspector_performance(
    inspections: Iterable[QCInspection],
    start: datetime,
    end: datetime,
    names: Optional[Dict[str, str]] = None
) -> List[InspectorPerformance]:
    names = names or {}
    groups: Dict[str, List[QCInspection]] = defaultdict(list)
    for inspection in inspections:
        if inspection.inspector_id:
            groups[inspection.inspector_id].append(inspection)

    days = range_days(start, end)
    performance = []
    for inspector_id, group in groups.items():
        passed = sum(1 for i in group if i.status == InspectionStatus.PASSED.value)
        performance.append(InspectorPerformance(
            inspector_id=inspector_id,
            inspector_name=names.get(inspector_id),
            total_inspections=len(group),
            passed=passed,
            pass_rate=percentage(passed, len(group)),
            average_score=average_score(group),
            efficiency=len(group) / days if days > 0 else 0.0,
        ))
    return sorted(performance, key=lambda p: (-p.total_inspections, p.inspector_id))


def trend(inspections: Iterable[QCInspection], start: datetime, end: datetime) -> List[TrendPoint]:
    """One point per calendar day from start to end inclusive, zeros for empty days."""
    by_day: Dict[date, List[QCInspection]] = defaultdict(list)
    for inspection in inspections:
        by_day[as_utc(inspection.inspection_date).date()].append(inspection)

    first, last = as_utc(start).date(), as_utc(end).date()
    points = []
    for offset in range((last - first).days + 1):
        day = first + timedelta(days=offset)
        group = by_day.get(day, [])
        passed = sum(1 for i in group if i.status == InspectionStatus.PASSED.value)
        points.append(TrendPoint(
            day=day,
            total_inspections=len(group),
            passed=passed,
            pass_rate=percentage(passed, len(group)),
            average_score=average_score(group),
        ))
    return points


# ==================== SERVICE ====================

class QCAnalyticsService:
    """Analytics over persisted inspections."""

    def __init__(
        self,
        db: AsyncSession,
        inspectors: InspectorDirectory,
        clock: Clock = system_clock,
    ):
        self.db = db
        self.inspectors = inspectors
        self.clock = clock

    async def inspections_between(
        self,
        start: datetime,
        end: datetime,
        branch_id: Optional[str] = None,
        stage: Optional[QCStage] = None,
    ) -> List[QCInspection]:
        query = select(QCInspection).where(
            QCInspection.inspection_date >= start,
            QCInspection.inspection_date <= end,
        )
        if branch_id:
            query = query.where(QCInspection.branch_id == branch_id)
        if stage:
            query = query.where(QCInspection.stage == stage.value)

        result = await self.db.execute(query.order_by(QCInspection.inspection_date))
        return list(result.scalars().all())

    async def inspector_names(self, branch_id: Optional[str] = None) -> Dict[str, str]:
        inspectors = await self.inspectors.list_inspectors(branch_id)
        return {i.id: i.name for i in inspectors}

    async def get_analytics(
        self,
        start_date: datetime,
        end_date: datetime,
        branch_id: Optional[str] = None,
        stage: Optional[QCStage] = None,
    ) -> QCAnalyticsResponse:
        """
        Overview, stage and inspector breakdowns and daily trend for a date range.

        Raises:
            InvalidDateRange: end_date is before start_date
        """
        start, end = as_utc(start_date), as_utc(end_date)
        if end < start:
            raise InvalidDateRange(
                "End date must not be before start date",
                {"start_date": start.isoformat(), "end_date": end.isoformat()}
            )

        inspections = await self.inspections_between(start, end, branch_id, stage)
        names = await self.inspector_names(branch_id)

        logger.debug(
            f"QC analytics {start.date()}..{end.date()} branch={branch_id} stage={stage}: "
            f"{len(inspections)} inspections"
        )
        return QCAnalyticsResponse(
            start_date=start,
            end_date=end,
            branch_id=branch_id,
            stage=stage,
            overview=rate_metrics(inspections),
            stage_metrics=stage_metrics(inspections),
            inspector_performance=inspector_performance(inspections, start, end, names),
            trend=trend(inspections, start, end),
        )

    async def inspector_workload_detail(self, inspector_id: str) -> InspectorWorkloadDetail:
        """Pending queue plus today's and the last 7 days' completed work of one inspector."""
        now = self.clock.now()
        day_start, day_end = self.clock.day_bounds()

        pending_result = await self.db.execute(
            select(QCInspection)
            .where(
                QCInspection.inspector_id == inspector_id,
                QCInspection.status == InspectionStatus.PENDING.value,
            )
            .order_by(QCInspection.created_at)
        )
        pending = list(pending_result.scalars().all())

        weekly_result = await self.db.execute(
            select(QCInspection).where(
                QCInspection.inspector_id == inspector_id,
                QCInspection.status.in_(COMPLETED_STATUSES),
                QCInspection.inspection_date >= now - timedelta(days=7),
            )
        )
        weekly = list(weekly_result.scalars().all())
        completed_today = sum(1 for i in weekly if day_start <= i.inspection_date < day_end)
        weekly_passed = sum(1 for i in weekly if i.status == InspectionStatus.PASSED.value)

        inspector = await self.inspectors.get(inspector_id)
        return InspectorWorkloadDetail(
            inspector_id=inspector_id,
            inspector_name=inspector.name if inspector else None,
            pending_inspections=[
                PendingInspectionRef(
                    id=i.id,
                    inspection_number=i.inspection_number,
                    production_order_id=i.production_order_id,
                    stage=i.stage,
                    created_at=i.created_at,
                )
                for i in pending
            ],
            pending_count=len(pending),
            completed_today=completed_today,
            completed_this_week=len(weekly),
            weekly_pass_rate=percentage(weekly_passed, len(weekly)),
            weekly_average_score=(
                sum(i.overall_score or 0 for i in weekly) / len(weekly) if weekly else 0.0
            ),
        )
