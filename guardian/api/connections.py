"""Routes synchro des connexions / Connection sync routes."""

from fastapi import APIRouter, Depends

from guardian.api.deps import get_current_user_id, get_engine
from guardian.schemas.location import ConnectionEdgeRead, SharingUpdate
from guardian.services.engine import LocationEngine

router = APIRouter()


@router.get("/", response_model=list[ConnectionEdgeRead])
async def list_connections(
    user_id: str = Depends(get_current_user_id),
    engine: LocationEngine = Depends(get_engine),
):
    """Positions des utilisateurs suivis / Locations of the users this user follows."""
    return await engine.store.list_connections(user_id)


@router.post("/sync/start")
async def start_sync(
    user_id: str = Depends(get_current_user_id),
    engine: LocationEngine = Depends(get_engine),
):
    await engine.connections.start(user_id)
    return {"running": engine.connections.is_running(user_id)}


@router.post("/sync/stop")
async def stop_sync(
    user_id: str = Depends(get_current_user_id),
    engine: LocationEngine = Depends(get_engine),
):
    await engine.connections.stop(user_id)
    return {"running": False}


@router.put("/sharing")
async def update_sharing(
    data: SharingUpdate,
    user_id: str = Depends(get_current_user_id),
    engine: LocationEngine = Depends(get_engine),
):
    """Activer / couper le partage vers les connexions / Enable / disable sharing with connections."""
    await engine.connections.set_sharing(user_id, data.share_location)
    return {"share_location": data.share_location, "running": engine.connections.is_running(user_id)}
