from functools import lru_cache
from typing import Annotated
import logging

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from qc_engine.config import settings
from qc_engine.core.clock import Clock, system_clock
from qc_engine.database import get_db
from qc_engine.services.collaborators import (
    ProductionOrderGateway, InspectorDirectory, QCNotifier,
    HttpProductionOrderGateway, HttpInspectorDirectory, WebhookNotifier,
    InMemoryProductionOrderGateway, InMemoryInspectorDirectory, LoggingNotifier,
)


logger = logging.getLogger(__name__)


@lru_cache()
def get_production_orders() -> ProductionOrderGateway:
    """Production order gateway; in-process registry when no service URL is configured."""
    if settings.PRODUCTION_API_URL:
        return HttpProductionOrderGateway(settings.PRODUCTION_API_URL)
    logger.warning("PRODUCTION_API_URL not set - using in-process production order registry")
    return InMemoryProductionOrderGateway()


@lru_cache()
def get_inspector_directory() -> InspectorDirectory:
    if settings.DIRECTORY_API_URL:
        return HttpInspectorDirectory(settings.DIRECTORY_API_URL)
    logger.warning("DIRECTORY_API_URL not set - using in-process inspector directory")
    return InMemoryInspectorDirectory()


@lru_cache()
def get_notifier() -> QCNotifier:
    if settings.QC_NOTIFICATION_WEBHOOK_URL:
        return WebhookNotifier(settings.QC_NOTIFICATION_WEBHOOK_URL)
    return LoggingNotifier()


def get_clock() -> Clock:
    return system_clock


# Type aliases for cleaner dependency injection
DB = Annotated[AsyncSession, Depends(get_db)]
ProductionOrders = Annotated[ProductionOrderGateway, Depends(get_production_orders)]
Inspectors = Annotated[InspectorDirectory, Depends(get_inspector_directory)]
Notifier = Annotated[QCNotifier, Depends(get_notifier)]
CurrentClock = Annotated[Clock, Depends(get_clock)]
