"""
Notifications push et file de diffusion / Push notifications and dispatch queue.

Le chemin d'ecriture depose une commande dans la file ; un worker unique
possede toute la logique d'envoi et d'echec.
The write path drops a command into the queue; a single worker owns all of
the delivery and failure logic.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from guardian.config import settings
from guardian.services.data_store import DataStore

log = logging.getLogger(__name__)

EXPO_CHUNK_SIZE = 100  # limite de l'API Expo / Expo API limit


class Notifier(Protocol):
    async def notify(self, user_ids: list[str], title: str, body: str, data: dict | None = None) -> dict: ...


class ExpoPushNotifier:
    """Envoi via l'API Expo Push / Delivery through the Expo Push API.

    Tolere les echecs partiels : chaque jeton est compte separement.
    Tolerates partial failure: each token is counted separately.
    """

    def __init__(
        self,
        store: DataStore,
        client: httpx.AsyncClient | None = None,
        push_url: str = settings.EXPO_PUSH_URL,
        timeout_s: float = settings.PUSH_TIMEOUT_S,
    ):
        self.store = store
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._push_url = push_url

    async def notify(self, user_ids: list[str], title: str, body: str, data: dict | None = None) -> dict:
        tokens_by_user = await self.store.list_push_tokens(sorted(set(user_ids)))
        tokens = [t for uid in sorted(tokens_by_user) for t in tokens_by_user[uid]]
        if not tokens:
            log.info("No push tokens for %s recipients", len(user_ids))
            return {"sent": 0, "failed": 0}

        sent = failed = 0
        stale: list[str] = []
        for start in range(0, len(tokens), EXPO_CHUNK_SIZE):
            chunk = tokens[start:start + EXPO_CHUNK_SIZE]
            messages = [
                {"to": token, "title": title, "body": body, "data": data or {}, "sound": "default"}
                for token in chunk
            ]
            try:
                resp = await self._client.post(self._push_url, json=messages)
                resp.raise_for_status()
                tickets = resp.json().get("data", [])
            except (httpx.HTTPError, ValueError) as exc:
                log.warning("Push batch of %s failed: %s", len(chunk), exc)
                failed += len(chunk)
                continue

            for token, ticket in zip(chunk, tickets):
                if ticket.get("status") == "ok":
                    sent += 1
                    continue
                failed += 1
                details = ticket.get("details") or {}
                if details.get("error") == "DeviceNotRegistered":
                    stale.append(token)
            # Tickets manquants = echecs / Missing tickets count as failures
            failed += max(0, len(chunk) - len(tickets))

        if stale:
            removed = await self.store.delete_push_tokens(stale)
            log.info("Removed %s unregistered push tokens", removed)
        log.info("Push '%s': %s sent, %s failed", title, sent, failed)
        return {"sent": sent, "failed": failed}

    async def aclose(self) -> None:
        await self._client.aclose()


@dataclass(frozen=True)
class NotifyCommand:
    user_ids: tuple[str, ...]
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)


class NotificationQueue:
    """Frontiere fire-and-forget / Fire-and-forget boundary."""

    def __init__(self, notifier: Notifier):
        self.notifier = notifier
        self._queue: asyncio.Queue[NotifyCommand] = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self.sent = 0
        self.failed = 0

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="notification-worker")

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

    def submit(self, command: NotifyCommand) -> None:
        """Ne bloque jamais, ne leve jamais / Never blocks, never raises."""
        if not command.user_ids:
            return
        self.start()
        self._queue.put_nowait(command)

    async def join(self) -> None:
        """Attendre que la file soit videe / Wait until the queue is drained."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            command = await self._queue.get()
            try:
                result = await self.notifier.notify(list(command.user_ids), command.title, command.body, command.data)
                self.sent += result.get("sent", 0)
                self.failed += result.get("failed", 0)
            except Exception:
                log.exception("Notification '%s' to %s recipients failed", command.title, len(command.user_ids))
                self.failed += len(command.user_ids)
            finally:
                self._queue.task_done()
