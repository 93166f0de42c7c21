"""Routes suivi de position / Location tracking routes."""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from guardian.api.deps import get_current_user_id, get_engine
from guardian.config import settings
from guardian.exceptions import LocationPermissionDenied, LocationServicesDisabled
from guardian.rate_limit import limiter
from guardian.schemas.location import (
    DeviceFixIn,
    DeviceStateIn,
    HistoryRecordRead,
    Position,
    PositionFix,
    PresenceRead,
    SharingUpdate,
    TrackingStart,
    TrackingStatus,
)
from guardian.services.engine import LocationEngine
from guardian.services.geolocator import DeviceState
from guardian.utils.clock import from_iso
from guardian.utils.last_seen import format_last_seen, is_presence_online

router = APIRouter()


def _status(engine: LocationEngine, user_id: str) -> TrackingStatus:
    session = engine.tracking.get_session(user_id)
    return TrackingStatus(
        user_id=user_id,
        active=session is not None,
        share_location=session.share_location if session else None,
        emergency_mode=session.emergency_mode if session else False,
        last_known=session.last_known_position if session else None,
    )


@router.post("/start", response_model=TrackingStatus)
async def start_tracking(
    data: TrackingStart,
    user_id: str = Depends(get_current_user_id),
    engine: LocationEngine = Depends(get_engine),
):
    """Demarrer le suivi (idempotent) / Start tracking (idempotent)."""
    try:
        await engine.tracking.start(
            user_id,
            share_location=data.share_location,
            family_group_id=data.family_group_id,
            history_write_frequency_minutes=data.history_write_frequency_minutes,
        )
    except LocationPermissionDenied as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    except LocationServicesDisabled as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return _status(engine, user_id)


@router.post("/stop", response_model=TrackingStatus)
async def stop_tracking(
    user_id: str = Depends(get_current_user_id),
    engine: LocationEngine = Depends(get_engine),
):
    await engine.tracking.stop(user_id)
    return _status(engine, user_id)


@router.get("/status", response_model=TrackingStatus)
async def tracking_status(
    user_id: str = Depends(get_current_user_id),
    engine: LocationEngine = Depends(get_engine),
):
    return _status(engine, user_id)


@router.put("/sharing", response_model=TrackingStatus)
async def update_sharing(
    data: SharingUpdate,
    user_id: str = Depends(get_current_user_id),
    engine: LocationEngine = Depends(get_engine),
):
    await engine.tracking.update_sharing_status(user_id, data.share_location)
    return _status(engine, user_id)


@router.post("/fix", status_code=status.HTTP_202_ACCEPTED)
@limiter.limit(settings.RATE_LIMIT_FIX)
async def submit_fix(
    request: Request,
    data: DeviceFixIn,
    user_id: str = Depends(get_current_user_id),
    engine: LocationEngine = Depends(get_engine),
):
    """Fix pousse par l'appareil / Fix pushed by the device."""
    push_fix = getattr(engine.geolocator, "push_fix", None)
    if push_fix is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Geolocator does not accept device fixes")
    fix = PositionFix(
        position=Position(latitude=data.latitude, longitude=data.longitude),
        battery_level=data.battery_level,
        accuracy=data.accuracy,
        captured_at=from_iso(data.timestamp) if data.timestamp else engine.clock(),
    )
    delivered = await push_fix(user_id, fix)
    return {"accepted": True, "delivered": delivered}


@router.put("/device-state", status_code=status.HTTP_204_NO_CONTENT)
async def report_device_state(
    data: DeviceStateIn,
    user_id: str = Depends(get_current_user_id),
    engine: LocationEngine = Depends(get_engine),
):
    """Permission / GPS declares par l'appareil / Permission / GPS state reported by the device."""
    set_state = getattr(engine.geolocator, "set_device_state", None)
    if set_state is not None:
        set_state(user_id, DeviceState(data.state))


@router.get("/position", response_model=Position)
async def current_position(
    fast: bool = True,
    user_id: str = Depends(get_current_user_id),
    engine: LocationEngine = Depends(get_engine),
):
    """Position via la chaine de repli / Position through the fallback chain."""
    resolved = await engine.tracking.get_current_position(user_id, fast=fast)
    if resolved is None:
        raise HTTPException(status_code=404, detail="No position available")
    return resolved.position


@router.get("/history", response_model=list[HistoryRecordRead])
async def location_history(
    hours: int = Query(default=24, ge=1, le=24 * 30),
    user_id: str = Depends(get_current_user_id),
    engine: LocationEngine = Depends(get_engine),
):
    return await engine.tracking.get_location_history(user_id, hours)


@router.get("/presence/{owner_id}", response_model=list[PresenceRead])
async def group_presence(
    owner_id: str,
    user_id: str = Depends(get_current_user_id),
    engine: LocationEngine = Depends(get_engine),
):
    """Presence d'un groupe, statut en ligne derive / Group presence, derived online status."""
    now = engine.clock()
    rows = await engine.store.list_presence(owner_id)
    result = []
    for row in rows:
        item = PresenceRead.model_validate(row)
        online = is_presence_online(row.share_location, row.updated_at, now)
        seen_at = row.updated_at or row.last_seen
        text = None
        if seen_at:
            text = format_last_seen(seen_at, online, now, row.address, row.battery_level).primary_text
        result.append(item.model_copy(update={"is_online": online, "last_seen_text": text}))
    return result
