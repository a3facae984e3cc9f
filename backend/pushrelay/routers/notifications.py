"""Notification enqueue and processing API endpoints."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..exceptions import StoreError
from ..models import PendingNotification
from ..schemas.notification import NotificationCreate, NotificationQueued, NotificationResponse
from ..schemas.stats import CycleStatsResponse
from ..services.factory import Services
from .deps import get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.post("", response_model=NotificationQueued, status_code=202)
async def enqueue_notification(
    request: NotificationCreate,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    """Queue a notification for delivery on the next processing cycle.

    A notification carrying the same tag for the same device within the
    deduplication window is not queued again.
    """
    notification = await services.queue.enqueue(
        db,
        device_id=request.device_id,
        title=request.title,
        body=request.body,
        data=request.data,
        tag=request.tag,
        delivery_method=request.delivery_method,
    )
    if notification is None:
        return NotificationQueued(queued=False, reason="duplicate")
    return NotificationQueued(queued=True, id=notification.id)


@router.post("/process", response_model=CycleStatsResponse)
async def process_notifications(services: Services = Depends(get_services)):
    """Run one processing cycle now.

    Returns zero counters if a cycle is already running.
    """
    try:
        stats = await services.processor.run_cycle()
    except StoreError as e:
        logger.error(f"On-demand cycle failed: {e}")
        raise HTTPException(status_code=503, detail="Notification store unavailable")
    return CycleStatsResponse(**stats.as_dict())


@router.get("/{notification_id}", response_model=NotificationResponse)
async def get_notification(notification_id: int, db: AsyncSession = Depends(get_db)):
    """Get a notification and its delivery state."""
    notification = await db.get(PendingNotification, notification_id)
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification
