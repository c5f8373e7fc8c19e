"""
QC Dashboard - real-time composition of inspection, workload, trend and alert views.

Read-only; holds no state of its own. Production-order outcome counts are
computed independently and may overlap (an order can be both in QC and failed).
"""
import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from qc_engine.config import settings
from qc_engine.core.clock import Clock, system_clock
from qc_engine.models.quality_control import QCInspection, InspectionStatus
from qc_engine.schemas.quality_control import (
    RealTimeMetrics, ProductionIntegrationMetrics, InspectorWorkload, InspectorStatus,
    QualityTrends, QCDashboardResponse, PerformanceMetricsResponse,
)
from qc_engine.services.collaborators import ProductionOrderGateway, InspectorDirectory
from qc_engine.services.inspection_service import pending_inspection_counts
from qc_engine.services.qc_alerts import QCAlertService
from qc_engine.services.qc_analytics import (
    QCAnalyticsService, COMPLETED_STATUSES, percentage, stage_metrics, trend
)

logger = logging.getLogger(__name__)

# Production order status meaning "stage work finished, QC not yet raised"
ORDER_STATUS_AWAITING_QC = "COMPLETED"


class QCDashboardService:
    """Composes the QC dashboard and performance views."""

    def __init__(
        self,
        db: AsyncSession,
        production_orders: ProductionOrderGateway,
        inspectors: InspectorDirectory,
        clock: Clock = system_clock,
        trend_days: Optional[int] = None,
        average_time_sample: Optional[int] = None,
    ):
        self.db = db
        self.production_orders = production_orders
        self.inspectors = inspectors
        self.clock = clock
        self.trend_days = trend_days
        if trend_days is None:
            self.trend_days = settings.QC_DASHBOARD_TREND_DAYS
        self.average_time_sample = average_time_sample
        if average_time_sample is None:
            self.average_time_sample = settings.QC_AVERAGE_TIME_SAMPLE_SIZE
        self.analytics = QCAnalyticsService(db, inspectors, clock)
        self.alerts = QCAlertService(db, inspectors, clock)

    async def get_dashboard(self, branch_id: Optional[str] = None) -> QCDashboardResponse:
        now = self.clock.now()
        alerts = await self.alerts.generate_alerts(branch_id)

        return QCDashboardResponse(
            generated_at=now,
            real_time_metrics=await self.real_time_metrics(branch_id, alert_count=len(alerts)),
            production_integration=await self.production_integration(branch_id),
            inspector_status=await self.inspector_status(branch_id),
            quality_trends=await self.quality_trends(branch_id),
            alerts=alerts,
        )

    async def get_performance_metrics(
        self,
        start_date: datetime,
        end_date: datetime,
        branch_id: Optional[str] = None,
    ) -> PerformanceMetricsResponse:
        """Range analytics joined with the live dashboard metrics and alerts."""
        analytics = await self.analytics.get_analytics(start_date, end_date, branch_id)
        alerts = await self.alerts.generate_alerts(branch_id)

        return PerformanceMetricsResponse(
            overview=analytics.overview,
            stage_performance=analytics.stage_metrics,
            inspector_performance=analytics.inspector_performance,
            trends=analytics.trend,
            real_time_metrics=await self.real_time_metrics(branch_id, alert_count=len(alerts)),
            production_integration=await self.production_integration(branch_id),
            alerts=alerts,
        )

    # ==================== SECTIONS ====================

    async def real_time_metrics(self, branch_id: Optional[str], alert_count: int) -> RealTimeMetrics:
        day_start, day_end = self.clock.day_bounds()
        completed_today_filter = (
            QCInspection.status.in_(COMPLETED_STATUSES)
            & (QCInspection.inspection_date >= day_start)
            & (QCInspection.inspection_date < day_end)
        )

        query = select(
            func.count(QCInspection.id).filter(
                (QCInspection.status == InspectionStatus.PENDING.value)
                & QCInspection.inspector_id.is_not(None)
            ).label('active'),
            func.count(QCInspection.id).filter(
                (QCInspection.status == InspectionStatus.PENDING.value)
                & QCInspection.inspector_id.is_(None)
            ).label('pending'),
            func.count(QCInspection.id).filter(completed_today_filter).label('completed_today'),
            func.count(QCInspection.id).filter(
                completed_today_filter & (QCInspection.status == InspectionStatus.PASSED.value)
            ).label('passed_today'),
        )
        if branch_id:
            query = query.where(QCInspection.branch_id == branch_id)
        row = (await self.db.execute(query)).one()

        return RealTimeMetrics(
            active_inspections=row.active or 0,
            pending_inspections=row.pending or 0,
            completed_today=row.completed_today or 0,
            current_pass_rate=percentage(row.passed_today or 0, row.completed_today or 0),
            alert_count=alert_count,
        )

    async def production_integration(self, branch_id: Optional[str]) -> ProductionIntegrationMetrics:
        query = select(QCInspection.production_order_id, QCInspection.status)
        if branch_id:
            query = query.where(QCInspection.branch_id == branch_id)
        result = await self.db.execute(query)

        statuses: Dict[str, Set[str]] = defaultdict(set)
        for order_id, status in result.all():
            statuses[order_id].add(status)

        orders = await self.production_orders.list_orders(branch_id)
        awaiting = sum(
            1 for order in orders
            if order.current_status == ORDER_STATUS_AWAITING_QC and order.id not in statuses
        )
        failed_statuses = {InspectionStatus.FAILED.value, InspectionStatus.REWORK_REQUIRED.value}

        return ProductionIntegrationMetrics(
            orders_awaiting_qc=awaiting,
            orders_in_qc=sum(1 for s in statuses.values() if InspectionStatus.PENDING.value in s),
            orders_passed_qc=sum(1 for s in statuses.values() if s == {InspectionStatus.PASSED.value}),
            orders_failed_qc=sum(1 for s in statuses.values() if s & failed_statuses),
            average_qc_time_hours=await self.average_qc_time_hours(branch_id),
        )

    async def average_qc_time_hours(self, branch_id: Optional[str] = None) -> float:
        """Mean creation-to-recording time over the most recently completed inspections."""
        query = select(QCInspection.created_at, QCInspection.inspection_date).where(
            QCInspection.status.in_(COMPLETED_STATUSES)
        )
        if branch_id:
            query = query.where(QCInspection.branch_id == branch_id)
        query = query.order_by(QCInspection.inspection_date.desc()).limit(self.average_time_sample)
        rows = (await self.db.execute(query)).all()
        if not rows:
            return 0.0

        total = sum((recorded - created for created, recorded in rows), timedelta())
        return total / len(rows) / timedelta(hours=1)

    async def inspector_status(self, branch_id: Optional[str]) -> InspectorStatus:
        inspectors = await self.inspectors.list_inspectors(branch_id)
        pending = await pending_inspection_counts(self.db, branch_id=branch_id)
        completed = await self._completed_today_counts(branch_id)

        workload: List[InspectorWorkload] = []
        for inspector in inspectors:
            pending_count = pending.get(inspector.id, 0)
            workload.append(InspectorWorkload(
                inspector_id=inspector.id,
                inspector_name=inspector.name,
                pending_inspections=pending_count,
                # No separate in-progress sub-state exists; reported from the same pending count
                in_progress_inspections=pending_count,
                completed_today=completed.get(inspector.id, 0),
            ))

        return InspectorStatus(
            total_inspectors=len(inspectors),
            active_inspectors=sum(
                1 for w in workload if w.pending_inspections or w.completed_today
            ),
            inspector_workload=workload,
        )

    async def quality_trends(self, branch_id: Optional[str]) -> QualityTrends:
        now = self.clock.now()
        day_start, _ = self.clock.day_bounds()
        window_start = day_start - timedelta(days=self.trend_days - 1)

        inspections = await self.analytics.inspections_between(window_start, now, branch_id)
        completed = [i for i in inspections if i.status in COMPLETED_STATUSES]
        weekly = trend(completed, window_start, now)

        return QualityTrends(
            daily_pass_rate=[point.pass_rate for point in weekly],
            weekly_trends=weekly,
            stage_performance=stage_metrics(completed),
        )

    async def _completed_today_counts(self, branch_id: Optional[str]) -> Dict[str, int]:
        day_start, day_end = self.clock.day_bounds()
        query = (
            select(QCInspection.inspector_id, func.count(QCInspection.id))
            .where(
                QCInspection.inspector_id.is_not(None),
                QCInspection.status.in_(COMPLETED_STATUSES),
                QCInspection.inspection_date >= day_start,
                QCInspection.inspection_date < day_end,
            )
            .group_by(QCInspection.inspector_id)
        )
        if branch_id:
            query = query.where(QCInspection.branch_id == branch_id)
        result = await self.db.execute(query)
        return {row[0]: row[1] for row in result.all()}
