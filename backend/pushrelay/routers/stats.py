"""Delivery statistics API for the dashboard."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas.stats import NotificationStats
from ..services.factory import Services
from ..services.stats import get_notification_stats
from .deps import get_services

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("", response_model=NotificationStats)
async def get_stats(
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    """Notification counts, device counts and the last cycle's counters."""
    return await get_notification_stats(
        db,
        services.processor,
        stale_token_days=services.settings.stale_token_days,
    )
