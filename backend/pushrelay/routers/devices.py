"""Device registration API endpoints for push notifications."""
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.device import Device
from ..schemas.device import DeviceRegister, DeviceRegisterResponse, DeviceResponse, DeviceCount
from ..utils.db_utils import retry_on_lock

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/devices", tags=["devices"])


async def _get_device(db: AsyncSession, device_id: str) -> Device:
    result = await db.execute(select(Device).where(Device.device_id == device_id))
    device = result.scalar_one_or_none()
    if not device:
        raise HTTPException(status_code=404, detail="Device not found")
    return device


def _to_response(device: Device) -> DeviceResponse:
    return DeviceResponse(
        device_id=device.device_id,
        has_webpush=device.has_webpush,
        has_fcm_token=bool(device.fcm_token),
        is_active=device.is_active,
        is_mobile=device.is_mobile,
        is_ios=device.is_ios,
        platform=device.platform,
        last_seen=device.last_seen,
        created_at=device.created_at,
    )


@router.post("/register", response_model=DeviceRegisterResponse)
async def register_device(
    request: DeviceRegister,
    db: AsyncSession = Depends(get_db),
):
    """Register a device or refresh its credentials.

    Upsert keyed by device_id. Credentials omitted from the request are left
    untouched so a client can refresh its FCM token without resending its
    Web Push subscription (and vice versa). Clients call this on every launch.
    """
    result = await db.execute(
        select(Device).where(Device.device_id == request.device_id)
    )
    device = result.scalar_one_or_none()
    created = device is None
    now = datetime.utcnow()

    if created:
        device = Device(device_id=request.device_id, created_at=now)
        db.add(device)

    if request.webpush_subscription is not None:
        device.set_webpush(request.webpush_subscription.to_credential())
    if request.fcm_token is not None and request.fcm_token != device.fcm_token:
        device.fcm_token = request.fcm_token
        device.fcm_token_updated_at = now

    device.is_active = request.is_active
    device.is_mobile = request.is_mobile
    device.is_ios = request.is_ios
    if request.platform is not None:
        device.platform = request.platform
    if request.user_agent is not None:
        device.user_agent = request.user_agent
    device.last_seen = now

    await retry_on_lock(db.commit)

    logger.info(
        f"Device {'registered' if created else 'updated'}: {request.device_id} "
        f"(webpush={device.has_webpush}, fcm={bool(device.fcm_token)})"
    )
    return DeviceRegisterResponse(
        success=True,
        created=created,
        device_id=device.device_id,
        message=f"Device {'registered' if created else 'updated'} successfully",
    )


@router.get("/count", response_model=DeviceCount)
async def get_device_count(db: AsyncSession = Depends(get_db)):
    """Get count of registered devices (for admin dashboard)."""
    total = (await db.execute(select(func.count(Device.id)))).scalar() or 0
    active = (await db.execute(
        select(func.count(Device.id)).where(Device.is_active.is_(True))
    )).scalar() or 0
    with_fcm = (await db.execute(
        select(func.count(Device.id)).where(Device.fcm_token.is_not(None))
    )).scalar() or 0
    with_webpush = (await db.execute(
        select(func.count(Device.id)).where(Device.webpush_endpoint.is_not(None))
    )).scalar() or 0

    return DeviceCount(total=total, active=active, with_fcm=with_fcm, with_webpush=with_webpush)


@router.get("/{device_id}", response_model=DeviceResponse)
async def get_device(device_id: str, db: AsyncSession = Depends(get_db)):
    """Get a device; credentials are reported as presence flags only."""
    return _to_response(await _get_device(db, device_id))


@router.post("/{device_id}/heartbeat", response_model=DeviceResponse)
async def device_heartbeat(device_id: str, db: AsyncSession = Depends(get_db)):
    """Liveness signal from an active client session."""
    device = await _get_device(db, device_id)
    device.last_seen = datetime.utcnow()
    await retry_on_lock(db.commit)
    return _to_response(device)


@router.delete("/{device_id}", response_model=DeviceResponse)
async def unregister_device(device_id: str, db: AsyncSession = Depends(get_db)):
    """Unregister a device from push notifications.

    This doesn't delete the record but marks it as inactive.
    """
    device = await _get_device(db, device_id)
    device.is_active = False
    await retry_on_lock(db.commit)

    logger.info(f"Device unregistered: {device_id}")
    return _to_response(device)
