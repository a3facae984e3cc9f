"""Delivery statistics and the maintenance report."""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Device, DeliveryLog, PendingNotification, NotificationState
from ..schemas.stats import CycleStatsResponse, NotificationStats
from .dispatch import Outcome
from .processor import BatchProcessor

logger = logging.getLogger(__name__)


async def _count(session: AsyncSession, column, *criteria) -> int:
    query = select(func.count(column))
    if criteria:
        query = query.where(and_(*criteria))
    result = await session.execute(query)
    return result.scalar() or 0


async def count_stale_fcm_tokens(session: AsyncSession, stale_days: int, now: Optional[datetime] = None) -> int:
    """Active devices whose FCM token has not been refreshed for stale_days."""
    now = now or datetime.utcnow()
    cutoff = now - timedelta(days=stale_days)
    return await _count(
        session,
        Device.id,
        Device.is_active.is_(True),
        Device.fcm_token.is_not(None),
        Device.fcm_token_updated_at < cutoff,
    )


async def get_notification_stats(
    session: AsyncSession,
    processor: Optional[BatchProcessor] = None,
    stale_token_days: int = 30,
    now: Optional[datetime] = None,
) -> NotificationStats:
    """Queue, registry and last-cycle overview."""
    now = now or datetime.utcnow()

    state_rows = await session.execute(
        select(PendingNotification.state, func.count(PendingNotification.id))
        .group_by(PendingNotification.state)
    )
    by_state = {state: count for state, count in state_rows.all()}

    method_rows = await session.execute(
        select(PendingNotification.delivery_method, func.count(PendingNotification.id))
        .group_by(PendingNotification.delivery_method)
    )
    by_method = {(method or "unassigned"): count for method, count in method_rows.all()}

    last_cycle = None
    last_cycle_at = None
    if processor is not None and processor.last_stats is not None:
        last_cycle = CycleStatsResponse(**processor.last_stats.as_dict())
        last_cycle_at = processor.last_run_at

    return NotificationStats(
        total_notifications=sum(by_state.values()),
        pending=by_state.get(NotificationState.PENDING, 0),
        delivered=by_state.get(NotificationState.DELIVERED, 0),
        failed=by_state.get(NotificationState.FAILED, 0),
        by_delivery_method=by_method,
        devices_total=await _count(session, Device.id),
        devices_active=await _count(session, Device.id, Device.is_active.is_(True)),
        devices_with_fcm=await _count(session, Device.id, Device.fcm_token.is_not(None)),
        devices_with_webpush=await _count(session, Device.id, Device.webpush_endpoint.is_not(None)),
        stale_fcm_tokens=await count_stale_fcm_tokens(session, stale_token_days, now),
        deliveries_last_24h=await _count(
            session,
            DeliveryLog.id,
            DeliveryLog.outcome == Outcome.DELIVERED.value,
            DeliveryLog.created_at >= now - timedelta(hours=24),
        ),
        last_cycle=last_cycle,
        last_cycle_at=last_cycle_at,
    )
