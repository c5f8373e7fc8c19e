"""
QC Alerts - derived, non-persistent signals.

Recomputed on every call from the current inspection snapshot:
- SLA_BREACH (HIGH): a PENDING inspection older than the SLA window
- INSPECTOR_OVERLOAD (MEDIUM): an inspector with more pending inspections than the threshold
"""
import logging
from collections import Counter
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from qc_engine.config import settings
from qc_engine.core.clock import Clock, system_clock
from qc_engine.models.quality_control import QCInspection, InspectionStatus
from qc_engine.schemas.quality_control import QCAlert, AlertSummary, AlertListResponse
from qc_engine.services.collaborators import InspectorDirectory
from qc_engine.services.inspection_service import pending_inspection_counts

logger = logging.getLogger(__name__)

SEVERITIES = ("CRITICAL", "HIGH", "MEDIUM", "LOW")


def summarize_alerts(alerts: List[QCAlert]) -> AlertSummary:
    counts = Counter(alert.severity for alert in alerts)
    return AlertSummary(
        total=len(alerts),
        by_severity={severity: counts.get(severity, 0) for severity in SEVERITIES},
        unacknowledged=sum(1 for alert in alerts if not alert.acknowledged),
    )


class QCAlertService:
    """Generates QC alerts on demand."""

    def __init__(
        self,
        db: AsyncSession,
        inspectors: InspectorDirectory,
        clock: Clock = system_clock,
        sla_breach_hours: Optional[int] = None,
        overload_threshold: Optional[int] = None,
    ):
        self.db = db
        self.inspectors = inspectors
        self.clock = clock
        self.sla_breach_hours = sla_breach_hours
        if sla_breach_hours is None:
            self.sla_breach_hours = settings.QC_SLA_BREACH_HOURS
        self.overload_threshold = overload_threshold
        if overload_threshold is None:
            self.overload_threshold = settings.QC_INSPECTOR_OVERLOAD_THRESHOLD

    async def generate_alerts(self, branch_id: Optional[str] = None) -> List[QCAlert]:
        now = self.clock.now()
        alerts = await self._sla_breach_alerts(now, branch_id)
        alerts.extend(await self._overload_alerts(now, branch_id))
        if alerts:
            logger.debug(f"Generated {len(alerts)} QC alerts (branch={branch_id})")
        return alerts

    async def list_alerts(
        self,
        branch_id: Optional[str] = None,
        severity: Optional[str] = None,
        acknowledged: Optional[bool] = None,
    ) -> AlertListResponse:
        alerts = await self.generate_alerts(branch_id)
        if severity:
            alerts = [a for a in alerts if a.severity == severity]
        if acknowledged is not None:
            alerts = [a for a in alerts if a.acknowledged == acknowledged]
        return AlertListResponse(alerts=alerts, summary=summarize_alerts(alerts))

    async def _sla_breach_alerts(self, now, branch_id: Optional[str]) -> List[QCAlert]:
        query = select(QCInspection).where(
            QCInspection.status == InspectionStatus.PENDING.value,
            QCInspection.created_at < now - timedelta(hours=self.sla_breach_hours),
        )
        if branch_id:
            query = query.where(QCInspection.branch_id == branch_id)
        result = await self.db.execute(query.order_by(QCInspection.created_at))

        return [
            QCAlert(
                id=f"alert_{inspection.id}",
                type="SLA_BREACH",
                severity="HIGH",
                message=f"QC inspection {inspection.inspection_number} is overdue",
                inspection_id=inspection.id,
                inspector_id=inspection.inspector_id,
                production_order_id=inspection.production_order_id,
                created_at=now,
            )
            for inspection in result.scalars().all()
        ]

    async def _overload_alerts(self, now, branch_id: Optional[str]) -> List[QCAlert]:
        counts = await pending_inspection_counts(self.db, branch_id=branch_id)
        overloaded = {
            inspector_id: count for inspector_id, count in counts.items()
            if count > self.overload_threshold
        }
        if not overloaded:
            return []

        names = {i.id: i.name for i in await self.inspectors.list_inspectors()}
        return [
            QCAlert(
                id=f"alert_inspector_{inspector_id}",
                type="INSPECTOR_OVERLOAD",
                severity="MEDIUM",
                message=f"Inspector {names.get(inspector_id, inspector_id)} has {count} pending inspections",
                inspector_id=inspector_id,
                created_at=now,
            )
            for inspector_id, count in sorted(overloaded.items())
        ]
