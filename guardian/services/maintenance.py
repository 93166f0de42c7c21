"""
Maintenance periodique de l'historique / Periodic history maintenance.

  - purge des positions plus anciennes que la retention / purge of positions older than the retention
  - rappel unique aux utilisateurs sans position recente / one-time reminder to users without a recent position
"""

import asyncio
import logging

from guardian.config import settings
from guardian.exceptions import GuardianError
from guardian.services.data_store import DataStore
from guardian.services.notifier import NotificationQueue, NotifyCommand
from guardian.utils.clock import Clock, system_clock, to_iso

log = logging.getLogger(__name__)

REMINDER_TITLE = "Are you safe?"
REMINDER_BODY = (
    "Reminder: Your location sharing is not active. Please update your location "
    "so your trusted family can be aware of your safety. We care about you! 💙"
)


class HistoryMaintenance:
    def __init__(
        self,
        store: DataStore,
        notifications: NotificationQueue,
        clock: Clock = system_clock,
        retention_hours: int = settings.HISTORY_RETENTION_HOURS,
        missing_hours: int = settings.MISSING_LOCATION_HOURS,
        interval_s: float = settings.MAINTENANCE_INTERVAL_S,
    ):
        self.store = store
        self.notifications = notifications
        self._clock = clock
        self.retention_hours = retention_hours
        self.missing_hours = missing_hours
        self.interval_s = interval_s
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._loop(), name="history-maintenance")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            try:
                await self.run_once()
            except GuardianError as exc:
                log.warning("History maintenance skipped: %s", exc)

    async def run_once(self) -> dict:
        removed = await self.purge_history()
        reminded = await self.remind_missing_location()
        return {"removed": removed, "reminded": len(reminded)}

    async def purge_history(self) -> int:
        """Supprimer l'historique expire / Delete expired history. 0 h = no purge."""
        if self.retention_hours <= 0:
            return 0
        cutoff = to_iso(self._clock() - self.retention_hours * 3600)
        removed = await self.store.delete_history_before(cutoff)
        if removed:
            log.info("[cleanup] %s location_history rows removed (before %s)", removed, cutoff)
        return removed

    async def remind_missing_location(self) -> list[str]:
        """Rappel unique par fenetre / One reminder per window."""
        now = self._clock()
        since = to_iso(now - self.missing_hours * 3600)
        user_ids = await self.store.users_missing_location(since)
        if not user_ids:
            return []

        sent_at = to_iso(now)
        for user_id in user_ids:
            await self.store.save_user_settings(user_id, location_reminder_sent_at=sent_at)
        self.notifications.submit(NotifyCommand(
            user_ids=tuple(user_ids),
            title=REMINDER_TITLE,
            body=REMINDER_BODY,
            data={
                "type": "location_reminder",
                "action": "update_location",
                "reminder_type": f"missing_location_{self.missing_hours}hrs",
            },
        ))
        log.info("Location reminder queued for %s users without a position in %s h", len(user_ids), self.missing_hours)
        return user_ids
