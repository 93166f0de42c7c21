"""
Enregistreur SOS : anneau de 5 lignes d'historique pendant une urgence.
SOS recorder: a 5-row history ring during a declared emergency.

Tant que le tampon n'est pas plein on insere, ensuite on reecrit la plus
ancienne ligne (FIFO). Cadence fixe d'une heure, independante du suivi normal.
Until the buffer is full we insert, then we rewrite the oldest row (FIFO).
Fixed one-hour cadence, independent of regular tracking.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from guardian.exceptions import GuardianError
from guardian.schemas.location import Position
from guardian.services.address_resolver import AddressResolver
from guardian.services.data_store import DataStore
from guardian.utils.clock import Clock, system_clock, to_iso

log = logging.getLogger(__name__)

SOS_BUFFER_SIZE = 5
SOS_INTERVAL_S = 3600.0  # 1 h


@dataclass
class SOSBuffer:
    row_ids: list[int] = field(default_factory=list)
    insert_count: int = 0
    cursor: int = 0

    @property
    def full(self) -> bool:
        return self.insert_count >= SOS_BUFFER_SIZE

    def append(self, row_id: int) -> None:
        self.row_ids.append(row_id)
        self.insert_count += 1

    def advance(self) -> None:
        self.cursor = (self.cursor + 1) % SOS_BUFFER_SIZE


class SOSRecorder:
    """Anneau SOS par utilisateur / Per-user SOS ring."""

    def __init__(self, store: DataStore, clock: Clock = system_clock):
        self.store = store
        self._clock = clock
        self._buffers: dict[str, SOSBuffer] = {}

    def buffer(self, user_id: str) -> SOSBuffer | None:
        return self._buffers.get(user_id)

    def begin(self, user_id: str) -> SOSBuffer:
        """Nouvelle urgence, tampon vide / New emergency, empty buffer."""
        buffer = SOSBuffer()
        self._buffers[user_id] = buffer
        return buffer

    async def recover(self, user_id: str) -> SOSBuffer:
        """Reprise apres redemarrage : tampon reconstruit depuis la base (plus ancien d'abord).
        Resume after a restart: buffer rebuilt from the store (oldest first).
        """
        ids = await self.store.query_recent_history_ids(user_id, SOS_BUFFER_SIZE)
        buffer = SOSBuffer(row_ids=ids, insert_count=len(ids), cursor=0)
        self._buffers[user_id] = buffer
        if ids:
            log.info("SOS buffer for %s recovered with %s rows", user_id, len(ids))
        return buffer

    async def record(self, user_id: str, position: Position) -> int:
        """Ecrire un echantillon SOS ; retourne l'id de ligne / Write one SOS sample; returns the row id.

        Sans tampon en memoire, l'urgence est reprise depuis la base.
        Without an in-memory buffer, the emergency is resumed from the store.
        """
        buffer = self._buffers.get(user_id)
        if buffer is None:
            buffer = await self.recover(user_id)

        now_iso = to_iso(self._clock())
        if not buffer.full:
            row_id = await self.store.insert_history(user_id, position, now_iso)
            buffer.append(row_id)
            log.info("SOS location inserted for %s (%s/%s)", user_id, buffer.insert_count, SOS_BUFFER_SIZE)
            return row_id

        slot = buffer.cursor
        row_id = buffer.row_ids[slot]
        if not await self.store.update_history(row_id, position, now_iso):
            # Ligne purgee entre-temps : la remplacer / Row purged meanwhile: replace it
            row_id = await self.store.insert_history(user_id, position, now_iso)
            buffer.row_ids[slot] = row_id
        buffer.advance()
        log.info("SOS location updated for %s (slot %s)", user_id, slot)
        return row_id

    def reset(self, user_id: str) -> None:
        self._buffers.pop(user_id, None)


class EmergencyTracker:
    """Suivi d'urgence : echantillon SOS immediat puis toutes les heures.
    Emergency tracking: immediate SOS sample, then hourly.
    """

    def __init__(
        self,
        tracking,
        recorder: SOSRecorder,
        resolver: AddressResolver,
        interval_s: float = SOS_INTERVAL_S,
    ):
        self.tracking = tracking
        self.recorder = recorder
        self.resolver = resolver
        self.interval_s = interval_s
        self._tasks: dict[str, asyncio.Task] = {}
        # Derniere adresse obtenue en urgence / Last address obtained during an emergency
        self._last_address: dict[str, str] = {}

    def is_active(self, user_id: str) -> bool:
        return user_id in self._tasks

    async def start_emergency(self, user_id: str, resume: bool = False) -> Position | None:
        """Declarer une urgence / Declare an emergency. No-op if already active.

        resume=True reprend l'anneau d'une urgence active avant un redemarrage,
        sinon l'anneau repart vide et n'ecrase jamais l'historique normal.
        resume=True picks up the ring of an emergency active before a restart,
        otherwise the ring starts empty and never overwrites regular history.
        """
        if user_id in self._tasks:
            return None
        if resume:
            await self.recorder.recover(user_id)
        else:
            self.recorder.begin(user_id)
        self._set_emergency_mode(user_id, True)
        position = await self._sample(user_id, force_address=True)
        self._tasks[user_id] = asyncio.create_task(self._loop(user_id), name=f"sos-{user_id}")
        log.warning("Emergency tracking started for %s", user_id)
        return position

    async def stop_emergency(self, user_id: str) -> bool:
        task = self._tasks.pop(user_id, None)
        if task is None:
            return False
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self._set_emergency_mode(user_id, False)
        log.info("Emergency tracking stopped for %s", user_id)
        return True

    async def stop_all(self) -> None:
        for user_id in list(self._tasks):
            await self.stop_emergency(user_id)

    def _set_emergency_mode(self, user_id: str, enabled: bool) -> None:
        session = self.tracking.get_session(user_id)
        if session is not None:
            session.emergency_mode = enabled

    async def _loop(self, user_id: str) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            try:
                await self._sample(user_id, force_address=False)
            except GuardianError as exc:
                log.warning("SOS sample skipped for %s: %s", user_id, exc)

    async def _sample(self, user_id: str, force_address: bool) -> Position | None:
        resolved = await self.tracking.get_current_position(user_id, fast=False)
        if resolved is None:
            log.warning("No position available for SOS sample of %s", user_id)
            return None
        position = resolved.position
        address = await self.resolver.resolve(
            position.latitude, position.longitude, force=force_address, is_emergency=True,
        )
        if address:
            self._last_address[user_id] = address
        else:
            # Limite ou filtre : derniere adresse connue / Rate-limited or gated: last known address
            address = self._last_address.get(user_id)
        if address:
            position = position.with_address(address)
        await self.recorder.record(user_id, position)
        return position
