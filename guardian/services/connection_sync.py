"""
Synchronisation de la position vers les connexions.
Pushes the latest known position onto every outgoing connection edge.

Distinct de la presence du groupe familial ecrite par le coeur de suivi.
Distinct from the family-group presence written by the tracking core.
"""

import asyncio
import logging

from guardian.exceptions import GuardianError
from guardian.services.data_store import DataStore
from guardian.services.tracking_core import DEFAULT_BATTERY_LEVEL, TrackingCore
from guardian.utils.clock import Clock, system_clock, to_iso

log = logging.getLogger(__name__)

DEFAULT_FREQUENCY_MINUTES = 60


class ConnectionPresenceSync:
    """Tache periodique par utilisateur / Per-user periodic task."""

    def __init__(self, store: DataStore, tracking: TrackingCore, clock: Clock = system_clock):
        self.store = store
        self.tracking = tracking
        self._clock = clock
        self._tasks: dict[str, asyncio.Task] = {}

    def is_running(self, user_id: str) -> bool:
        return user_id in self._tasks

    async def start(self, user_id: str) -> None:
        """Synchro immediate puis periodique / Immediate then periodic sync."""
        await self.stop(user_id)
        user_settings = await self.store.get_user_settings(user_id)
        if not user_settings.location_sharing_enabled:
            await self.clear(user_id)
            return
        minutes = user_settings.location_update_frequency_minutes or DEFAULT_FREQUENCY_MINUTES
        await self._safe_sync(user_id)
        self._tasks[user_id] = asyncio.create_task(
            self._loop(user_id, minutes * 60), name=f"connection-sync-{user_id}",
        )
        log.info("Connection sync started for %s (every %s min)", user_id, minutes)

    async def stop(self, user_id: str) -> bool:
        task = self._tasks.pop(user_id, None)
        if task is None:
            return False
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return True

    async def stop_all(self) -> None:
        for user_id in list(self._tasks):
            await self.stop(user_id)

    async def _loop(self, user_id: str, interval_s: float) -> None:
        while True:
            await asyncio.sleep(interval_s)
            await self._safe_sync(user_id)

    async def _safe_sync(self, user_id: str) -> int:
        try:
            return await self.sync_once(user_id)
        except GuardianError as exc:
            log.warning("Connection sync skipped for %s: %s", user_id, exc)
            return 0

    async def sync_once(self, user_id: str) -> int:
        """Un cycle ; retourne le nb d'aretes mises a jour / One cycle; returns the number of edges updated."""
        user_settings = await self.store.get_user_settings(user_id)
        if not user_settings.location_sharing_enabled:
            return 0

        resolved = await self.tracking.get_current_position(user_id, fast=True)
        if resolved is None:
            return 0
        position = resolved.position

        if self.tracking.is_stationary_blocked(user_id, position):
            log.debug("Skipping connection location update for %s: stationary for 1h+", user_id)
            return 0

        battery = resolved.battery_level
        if battery is None:
            session = self.tracking.get_session(user_id)
            battery = session.last_battery_level if session and session.last_battery_level is not None else DEFAULT_BATTERY_LEVEL

        updated = await self.store.update_connection_locations(
            user_id, position, to_iso(self._clock()), battery,
        )
        self.tracking.notify_location_updated(user_id, position)
        log.debug("Connection location updated for %s on %s edges", user_id, updated)
        return updated

    async def clear(self, user_id: str) -> int:
        """Effacer la position sur toutes les aretes / Null the location on every edge."""
        cleared = await self.store.update_connection_locations(user_id, None, None)
        log.info("Location cleared on %s connections of %s", cleared, user_id)
        return cleared

    async def set_sharing(self, user_id: str, enabled: bool) -> None:
        """Basculer le partage / Toggle sharing."""
        await self.store.save_user_settings(user_id, location_sharing_enabled=enabled)
        await self.tracking.update_sharing_status(user_id, enabled)
        if enabled:
            await self.start(user_id)
        else:
            await self.stop(user_id)
            await self.clear(user_id)
