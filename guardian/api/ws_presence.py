"""WebSocket temps reel pour la presence / Real-time WebSocket for presence."""

import json
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from guardian.utils.auth import user_id_from_token

log = logging.getLogger(__name__)

router = APIRouter()


class PresenceConnectionManager:
    """Connexions WebSocket par groupe observe / WebSocket connections per watched group."""

    def __init__(self):
        self.active_connections: dict[str, list[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, owner_id: str):
        await websocket.accept()
        self.active_connections.setdefault(owner_id, []).append(websocket)

    def disconnect(self, websocket: WebSocket, owner_id: str):
        connections = self.active_connections.get(owner_id, [])
        if websocket in connections:
            connections.remove(websocket)
        if not connections:
            self.active_connections.pop(owner_id, None)

    async def broadcast(self, message: dict):
        """Envoyer aux observateurs du groupe / Send to the group's watchers."""
        owner_id = message.get("owner_id")
        data = json.dumps(message, ensure_ascii=False)
        disconnected = []
        for connection in list(self.active_connections.get(owner_id, [])):
            try:
                await connection.send_text(data)
            except Exception:
                disconnected.append(connection)
        for conn in disconnected:
            self.disconnect(conn, owner_id)

    def count(self, owner_id: str) -> int:
        return len(self.active_connections.get(owner_id, []))


# Singleton global / Global singleton
manager = PresenceConnectionManager()


@router.websocket("/ws/presence")
async def websocket_presence(
    websocket: WebSocket,
    token: str = Query(default=""),
    owner_id: str | None = Query(default=None),
):
    """Connexion WebSocket authentifiee / Authenticated WebSocket connection.

    owner_id = groupe familial observe, par defaut l'utilisateur lui-meme.
    owner_id = watched family group, defaults to the user itself.
    Type de message : presence_update
    """
    user_id = user_id_from_token(token)
    if user_id is None:
        await websocket.close(code=4001, reason="Invalid token")
        return

    owner_id = owner_id or user_id
    await manager.connect(websocket, owner_id)
    log.debug("Presence watcher %s connected to %s", user_id, owner_id)
    try:
        while True:
            # Garder la connexion ouverte, recevoir pings / Keep connection alive
            await websocket.receive_text()
    except WebSocketDisconnect:
        manager.disconnect(websocket, owner_id)
