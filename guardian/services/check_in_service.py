"""
Check-ins : enregistrement localise puis notification des proches.
Check-ins: located record, then notification of connections.
"""

import asyncio
import logging

from guardian.models.check_in import CheckIn, CheckInStatus, CheckInType
from guardian.schemas.location import Position
from guardian.services.data_store import DataStore
from guardian.services.notifier import NotificationQueue, NotifyCommand
from guardian.services.tracking_core import TrackingCore
from guardian.utils.clock import Clock, system_clock, to_iso

log = logging.getLogger(__name__)

EMERGENCY_FIX_BUDGET_MS = 20_000
FAST_FIX_BUDGET_MS = 2_000

DEFAULT_SETTINGS = {
    "enabled": True,
    "check_in_interval_minutes": 60,
    "auto_check_in_enabled": False,
    "travel_speed_threshold_kmh": 20.0,
    "missed_check_in_alert_minutes": 30,
    "emergency_contacts": [],
}

# Statuts qui declenchent une notification / Statuses that trigger a notification
NOTIFY_STATUSES = {
    CheckInStatus.SAFE: ("✅", "I'm Safe"),
    CheckInStatus.DELAYED: ("⏰", "Delayed"),
    CheckInStatus.EMERGENCY: ("🚨", "Emergency"),
}


def build_notification(name: str, status: CheckInStatus, message: str | None, address: str | None) -> tuple[str, str]:
    """Titre et corps du message / Message title and body."""
    emoji, status_text = NOTIFY_STATUSES[status]
    title = f"{emoji} {name} - {status_text}"
    body = f"{name} checked in: {status_text}"
    if message:
        body += f"\n{message}"
    if address:
        body += f"\n📍 {address}"
    return title, body


class CheckInOrchestrator:

    def __init__(
        self,
        store: DataStore,
        tracking: TrackingCore,
        notifications: NotificationQueue,
        clock: Clock = system_clock,
        emergency_budget_ms: int = EMERGENCY_FIX_BUDGET_MS,
        fast_budget_ms: int = FAST_FIX_BUDGET_MS,
    ):
        self.store = store
        self.tracking = tracking
        self.notifications = notifications
        self._clock = clock
        self.emergency_budget_ms = emergency_budget_ms
        self.fast_budget_ms = fast_budget_ms
        self._auto_tasks: dict[str, asyncio.Task] = {}

    # ─── Reglages / Settings ───

    async def get_settings(self, user_id: str) -> dict:
        row = await self.store.get_check_in_settings(user_id)
        if row is None:
            return {"user_id": user_id, **DEFAULT_SETTINGS}
        return {
            "user_id": user_id,
            "enabled": row.enabled,
            "check_in_interval_minutes": row.check_in_interval_minutes,
            "auto_check_in_enabled": row.auto_check_in_enabled,
            "travel_speed_threshold_kmh": row.travel_speed_threshold_kmh,
            "missed_check_in_alert_minutes": row.missed_check_in_alert_minutes,
            "emergency_contacts": list(row.emergency_contacts or []),
        }

    async def update_settings(self, user_id: str, **updates) -> dict:
        """Sauver puis relancer l'auto check-in / Save then restart auto check-in."""
        fields = {k: v for k, v in updates.items() if v is not None}
        await self.store.save_check_in_settings(user_id, **fields)
        current = await self.get_settings(user_id)
        await self.stop_auto_check_in(user_id)
        if current["enabled"] and current["auto_check_in_enabled"]:
            self.start_auto_check_in(user_id, current["check_in_interval_minutes"])
        return current

    # ─── Check-in ───

    async def _snapshot(self, user_id: str, is_emergency: bool) -> Position | None:
        if is_emergency:
            resolved = await self.tracking.get_current_position(
                user_id, fast=False, timeout_ms=self.emergency_budget_ms,
            )
        else:
            resolved = await self.tracking.get_current_position(
                user_id, fast=True, timeout_ms=self.fast_budget_ms,
            )
        if resolved is None:
            return self.tracking.last_known_position(user_id)
        return resolved.position

    async def check_in(
        self,
        user_id: str,
        status: CheckInStatus = CheckInStatus.SAFE,
        message: str | None = None,
        is_emergency: bool = False,
        check_in_type: CheckInType | None = None,
    ) -> CheckIn:
        """Ecrit le check-in tout de suite ; les notifications partent en arriere-plan.
        Writes the check-in right away; notifications go out in the background.
        """
        settings = await self.get_settings(user_id)
        location = await self._snapshot(user_id, is_emergency)

        now = self._clock()
        if check_in_type is None:
            check_in_type = CheckInType.EMERGENCY if is_emergency else CheckInType.MANUAL
        record = await self.store.insert_check_in(
            user_id=user_id,
            status=status,
            message=message or None,
            latitude=location.latitude if location else None,
            longitude=location.longitude if location else None,
            address=location.address if location else None,
            check_in_type=check_in_type,
            is_emergency=is_emergency,
            next_check_in_due_at=to_iso(now + settings["check_in_interval_minutes"] * 60),
            created_at=to_iso(now),
        )
        log.info("Check-in %s for %s (%s)", record.id, user_id, status.value)

        try:
            await self._enqueue_notifications(record, settings, location)
        except Exception:
            log.exception("Could not queue notifications for check-in %s", record.id)
        return record

    async def _enqueue_notifications(self, record: CheckIn, settings: dict, location: Position | None) -> None:
        status = CheckInStatus.EMERGENCY if record.is_emergency else record.status
        if status not in NOTIFY_STATUSES:
            return
        recipients = set(await self.store.list_connected_user_ids(record.user_id))
        if record.is_emergency:
            recipients.update(settings["emergency_contacts"])
        recipients.discard(record.user_id)
        if not recipients:
            log.info("No recipients for check-in %s", record.id)
            return

        user_settings = await self.store.get_user_settings(record.user_id)
        name = user_settings.display_name or "Someone"
        title, body = build_notification(name, status, record.message, location.address if location else None)
        data = {
            "type": "check_in",
            "checkInStatus": record.status.value,
            "userId": record.user_id,
            "userName": name,
            "checkInId": record.id,
            "message": record.message,
            "timestamp": record.created_at,
        }
        if location is not None:
            data["location"] = location.model_dump()
        self.notifications.submit(NotifyCommand(tuple(sorted(recipients)), title, body, data))

    async def get_recent_check_ins(self, user_id: str, limit: int = 10) -> list[CheckIn]:
        return await self.store.recent_check_ins(user_id, limit)

    async def get_last_check_in(self, user_id: str) -> CheckIn | None:
        rows = await self.store.recent_check_ins(user_id, 1)
        return rows[0] if rows else None

    # ─── Auto check-in ───

    async def auto_check_in(self, user_id: str) -> CheckIn:
        return await self.check_in(user_id, CheckInStatus.SAFE, check_in_type=CheckInType.AUTOMATIC)

    def start_auto_check_in(self, user_id: str, interval_minutes: int) -> None:
        if user_id in self._auto_tasks:
            return
        self._auto_tasks[user_id] = asyncio.create_task(
            self._auto_loop(user_id, interval_minutes * 60), name=f"auto-check-in-{user_id}",
        )

    async def stop_auto_check_in(self, user_id: str) -> bool:
        task = self._auto_tasks.pop(user_id, None)
        if task is None:
            return False
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return True

    async def stop_all(self) -> None:
        for user_id in list(self._auto_tasks):
            await self.stop_auto_check_in(user_id)

    async def _auto_loop(self, user_id: str, interval_s: float) -> None:
        while True:
            await asyncio.sleep(interval_s)
            try:
                await self.auto_check_in(user_id)
            except Exception:
                log.exception("Auto check-in failed for %s", user_id)
