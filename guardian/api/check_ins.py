"""Routes check-in / Check-in routes."""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from guardian.api.deps import get_current_user_id, get_engine
from guardian.config import settings
from guardian.rate_limit import limiter
from guardian.schemas.check_in import (
    CheckInCreate,
    CheckInRead,
    CheckInSettingsRead,
    CheckInSettingsUpdate,
    PushTokenCreate,
)
from guardian.services.engine import LocationEngine
from guardian.utils.clock import to_iso

router = APIRouter()


@router.post("/", response_model=CheckInRead, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.RATE_LIMIT_DEFAULT)
async def create_check_in(
    request: Request,
    data: CheckInCreate,
    user_id: str = Depends(get_current_user_id),
    engine: LocationEngine = Depends(get_engine),
):
    """Ecrit tout de suite, notifie en arriere-plan / Written now, notified in the background."""
    return await engine.check_ins.check_in(user_id, data.status, data.message, data.is_emergency)


@router.get("/", response_model=list[CheckInRead])
async def recent_check_ins(
    limit: int = Query(default=10, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    engine: LocationEngine = Depends(get_engine),
):
    return await engine.check_ins.get_recent_check_ins(user_id, limit)


@router.get("/last", response_model=CheckInRead)
async def last_check_in(
    user_id: str = Depends(get_current_user_id),
    engine: LocationEngine = Depends(get_engine),
):
    record = await engine.check_ins.get_last_check_in(user_id)
    if record is None:
        raise HTTPException(status_code=404, detail="No check-in yet")
    return record


@router.get("/settings", response_model=CheckInSettingsRead)
async def get_settings(
    user_id: str = Depends(get_current_user_id),
    engine: LocationEngine = Depends(get_engine),
):
    return await engine.check_ins.get_settings(user_id)


@router.put("/settings", response_model=CheckInSettingsRead)
async def update_settings(
    data: CheckInSettingsUpdate,
    user_id: str = Depends(get_current_user_id),
    engine: LocationEngine = Depends(get_engine),
):
    return await engine.check_ins.update_settings(user_id, **data.model_dump(exclude_unset=True))


push_router = APIRouter()


@push_router.post("/", status_code=status.HTTP_201_CREATED)
async def register_push_token(
    data: PushTokenCreate,
    user_id: str = Depends(get_current_user_id),
    engine: LocationEngine = Depends(get_engine),
):
    """Enregistrer le jeton Expo de l'appareil / Register the device's Expo token."""
    await engine.store.add_push_token(user_id, data.token, to_iso(engine.clock()))
    return {"registered": True}
