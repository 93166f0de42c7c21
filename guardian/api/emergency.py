"""Routes urgence (SOS) / Emergency (SOS) routes."""

from fastapi import APIRouter, Depends

from guardian.api.deps import get_current_user_id, get_engine
from guardian.services.engine import LocationEngine

router = APIRouter()


@router.post("/start")
async def start_emergency(
    user_id: str = Depends(get_current_user_id),
    engine: LocationEngine = Depends(get_engine),
):
    """Declarer une urgence : echantillon immediat puis horaire / Declare an emergency: immediate then hourly sample."""
    already_active = engine.emergency.is_active(user_id)
    position = await engine.emergency.start_emergency(user_id)
    buffer = engine.sos.buffer(user_id)
    return {
        "active": True,
        "already_active": already_active,
        "position": position.model_dump() if position else None,
        "sos_rows": list(buffer.row_ids) if buffer else [],
    }


@router.post("/stop")
async def stop_emergency(
    user_id: str = Depends(get_current_user_id),
    engine: LocationEngine = Depends(get_engine),
):
    stopped = await engine.emergency.stop_emergency(user_id)
    return {"active": False, "stopped": stopped}
