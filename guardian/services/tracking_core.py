"""
Coeur du suivi : sessions, boucle d'echantillonnage et dispatch vers les puits.
Tracking core: sessions, sampling loop and dispatch to the sinks.

Deux declencheurs alimentent le meme pipeline par session :
Two triggers feed the same per-session pipeline:
  - push : abonnement Geolocator (distance ou intervalle) / Geolocator subscription
  - poll : tache periodique de secours / periodic backstop task

Pipeline : A decision de persistance -> B adresse -> C presence -> D historique.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from guardian.config import settings
from guardian.exceptions import GuardianError, LocationTimeout
from guardian.schemas.location import Position, PositionFix
from guardian.services.address_resolver import AddressResolver
from guardian.services.data_store import DataStore
from guardian.services.geolocator import AccuracyProfile, Geolocator, Subscription
from guardian.services.position_fallback import FallbackSource, ResolvedPosition, resolve_position
from guardian.services.stationary_policy import (
    PersistedPosition,
    StationaryAnchor,
    is_stationary_blocked,
    should_persist,
)
from guardian.utils.clock import Clock, system_clock, to_iso

log = logging.getLogger(__name__)

# Lecture rapide / Fast read
FAST_MAX_AGE_MS = 10_000
FAST_TIMEOUT_MS = 2_000
# Haute precision / High accuracy
HIGH_ACCURACY_MAX_AGE_MS = 0
HIGH_ACCURACY_TIMEOUT_MS = 15_000

DEFAULT_BATTERY_LEVEL = 100

PresenceListener = Callable[[dict], Awaitable[None]]


@dataclass
class TrackingConfig:
    accuracy_profile: AccuracyProfile = AccuracyProfile.BALANCED
    update_interval_ms: int = 600_000
    distance_threshold_m: float = 50.0
    history_write_frequency_minutes: int = 60

    @classmethod
    def from_settings(cls) -> "TrackingConfig":
        return cls(
            accuracy_profile=AccuracyProfile(settings.ACCURACY_PROFILE),
            update_interval_ms=settings.UPDATE_INTERVAL_MS,
            distance_threshold_m=float(settings.DISTANCE_THRESHOLD_M),
            history_write_frequency_minutes=settings.HISTORY_WRITE_FREQUENCY_MINUTES,
        )


@dataclass
class TrackingSession:
    """Etat d'une session active / State of one active session."""
    user_id: str
    owner_id: str  # groupe familial, ou l'utilisateur lui-meme / family group, or the user itself
    share_location: bool = True
    history_write_frequency_minutes: int = 60
    last_known_position: Position | None = None
    last_battery_level: int | None = None
    last_persisted: PersistedPosition | None = None
    stationary_anchor: StationaryAnchor | None = None
    last_history_write_at: float = 0.0
    last_address: str | None = None
    active: bool = True
    emergency_mode: bool = False
    subscription: Subscription | None = None
    poll_task: asyncio.Task | None = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    presence_writes: int = 0
    history_writes: int = 0


class TrackingCore:
    """Gestionnaire des sessions de suivi, une par utilisateur / Tracking session manager, one per user."""

    def __init__(
        self,
        store: DataStore,
        geolocator: Geolocator,
        resolver: AddressResolver,
        config: TrackingConfig | None = None,
        clock: Clock = system_clock,
        on_presence: PresenceListener | None = None,
    ):
        self.store = store
        self.geolocator = geolocator
        self.resolver = resolver
        self.config = config or TrackingConfig()
        self._clock = clock
        self._on_presence = on_presence
        self._sessions: dict[str, TrackingSession] = {}

    # ─── Cycle de vie / Lifecycle ───

    def is_active(self, user_id: str) -> bool:
        return user_id in self._sessions

    def get_session(self, user_id: str) -> TrackingSession | None:
        return self._sessions.get(user_id)

    async def start(
        self,
        user_id: str,
        share_location: bool = True,
        family_group_id: str | None = None,
        history_write_frequency_minutes: int | None = None,
    ) -> TrackingSession:
        """Stopped -> Active. Sans effet si deja actif / No-op if already active.

        Les erreurs de permission / services remontent et la session n'est pas creee.
        Permission / services errors propagate and no session is created.
        """
        existing = self._sessions.get(user_id)
        if existing is not None:
            return existing

        session = TrackingSession(
            user_id=user_id,
            owner_id=family_group_id or user_id,
            share_location=share_location,
            history_write_frequency_minutes=self.config.history_write_frequency_minutes,
        )
        self._sessions[user_id] = session
        self.resolver.reset_session_warnings()

        try:
            if history_write_frequency_minutes is None:
                user_settings = await self.store.get_user_settings(user_id)
                history_write_frequency_minutes = user_settings.location_update_frequency_minutes
            session.history_write_frequency_minutes = (
                history_write_frequency_minutes or self.config.history_write_frequency_minutes
            )
            fix = await self._fetch_live(user_id, self.config.accuracy_profile, FAST_TIMEOUT_MS, FAST_MAX_AGE_MS)
        except LocationTimeout:
            log.info("No initial fix for %s, waiting for the first push", user_id)
            fix = None
        except BaseException:
            if self._sessions.get(user_id) is session:
                del self._sessions[user_id]
            raise

        if fix is not None:
            # Premiere position : presence + historique force / First position: presence + forced history
            session.last_history_write_at = 0.0
            await self._run(session, ResolvedPosition(fix.position, FallbackSource.LIVE, fix.battery_level), True)

        # Arret pendant le premier fix : ne rien abonner / Stopped during the first fix: subscribe nothing
        if not session.active or self._sessions.get(user_id) is not session:
            log.info("Tracking for %s stopped before it finished starting", user_id)
            return session

        session.subscription = self.geolocator.subscribe(
            user_id,
            self.config.accuracy_profile,
            self.config.update_interval_ms,
            self.config.distance_threshold_m,
            lambda new_fix: self.handle_push(user_id, new_fix),
        )
        session.poll_task = asyncio.create_task(self._poll_loop(session), name=f"tracking-poll-{user_id}")
        log.info(
            "Tracking started for %s (owner=%s, share=%s, history every %s min)",
            user_id, session.owner_id, share_location, session.history_write_frequency_minutes,
        )
        return session

    async def stop(self, user_id: str) -> bool:
        """Active -> Stopped : annule push + poll, attend l'ecriture en cours, presence hors ligne.
        Active -> Stopped: cancels push + poll, awaits the in-flight write, marks presence offline.
        """
        session = self._sessions.get(user_id)
        if session is None:
            return False

        session.active = False
        if session.subscription is not None:
            session.subscription.remove()
            session.subscription = None
        if session.poll_task is not None:
            session.poll_task.cancel()
            try:
                await session.poll_task
            except asyncio.CancelledError:
                pass
            session.poll_task = None

        # Attendre la fin du pipeline en cours / Wait for the running pipeline
        async with session.lock:
            self._sessions.pop(user_id, None)

        try:
            await self.store.mark_subject_offline(user_id, to_iso(self._clock()))
        except GuardianError as exc:
            log.warning("Could not mark %s offline: %s", user_id, exc)
        log.info("Tracking stopped for %s", user_id)
        return True

    async def stop_all(self) -> None:
        for user_id in list(self._sessions):
            await self.stop(user_id)

    # ─── Declencheurs / Triggers ───

    async def handle_push(self, user_id: str, fix: PositionFix) -> None:
        """Declencheur push / Push trigger."""
        session = self._sessions.get(user_id)
        if session is None or not session.active:
            return
        await self._run(session, ResolvedPosition(fix.position, FallbackSource.LIVE, fix.battery_level), True)

    async def poll_once(self, user_id: str) -> None:
        """Declencheur poll : chaine de repli, adresse reutilisee / Poll trigger: fallback chain, address reused."""
        session = self._sessions.get(user_id)
        if session is None or not session.active:
            return
        resolved = await self.get_current_position(user_id, fast=True)
        if resolved is None:
            log.debug("Poll for %s: no position this cycle", user_id)
            return
        await self._run(session, resolved, False)

    async def _poll_loop(self, session: TrackingSession) -> None:
        interval_s = self.config.update_interval_ms / 1000
        while session.active:
            await asyncio.sleep(interval_s)
            try:
                await self.poll_once(session.user_id)
            except Exception:
                log.exception("Poll cycle failed for %s", session.user_id)

    # ─── Pipeline ───

    async def _run(self, session: TrackingSession, resolved: ResolvedPosition, from_push: bool) -> None:
        async with session.lock:
            if not session.active:
                return
            try:
                await self._pipeline(session, resolved, from_push)
            except GuardianError as exc:
                # Jamais fatal : on saute ce cycle / Never fatal: skip this cycle
                log.warning("Tracking cycle skipped for %s: %s", session.user_id, exc)

    async def _pipeline(self, session: TrackingSession, resolved: ResolvedPosition, from_push: bool) -> None:
        now = self._clock()
        position = resolved.position
        if resolved.source == FallbackSource.LIVE:
            session.last_known_position = position
        if resolved.battery_level is not None:
            session.last_battery_level = resolved.battery_level

        # A. Decision / Decision
        decision = should_persist(
            session.last_persisted, session.stationary_anchor, position, now, self.config.distance_threshold_m,
        )
        session.stationary_anchor = decision.anchor
        if decision.blocked:
            log.debug("Presence update blocked for %s: stationary for 1h+", session.user_id)

        if decision.persist:
            # B. Adresse / Address
            if from_push:
                address = await self.resolver.resolve(position.latitude, position.longitude, force=False)
            else:
                address = session.last_address
            if address:
                session.last_address = address
            position = position.with_address(address)
            if resolved.source == FallbackSource.LIVE:
                session.last_known_position = position

            # C. Presence
            await self._write_presence(session, position, now)

        # D. Historique, toujours tente / History, always attempted
        await self._maybe_write_history(session, position, now)

    async def _write_presence(self, session: TrackingSession, position: Position, now: float) -> None:
        battery = session.last_battery_level if session.last_battery_level is not None else DEFAULT_BATTERY_LEVEL
        now_iso = to_iso(now)
        fields = {
            "latitude": position.latitude,
            "longitude": position.longitude,
            "address": position.address,
            "battery_level": battery,
            "is_online": session.share_location,
            "share_location": session.share_location,
            "updated_at": now_iso,
            "last_seen": now_iso,
        }
        await self.store.upsert_presence(session.owner_id, session.user_id, fields)
        session.last_persisted = PersistedPosition(position, now)
        session.presence_writes += 1
        log.debug("Presence updated for %s (%.6f, %.6f)", session.user_id, position.latitude, position.longitude)

        if self._on_presence is not None:
            await self._on_presence({
                "type": "presence_update",
                "owner_id": session.owner_id,
                "user_id": session.user_id,
                **fields,
            })

    async def _maybe_write_history(self, session: TrackingSession, position: Position, now: float) -> bool:
        frequency_s = session.history_write_frequency_minutes * 60
        if now - session.last_history_write_at < frequency_s:
            return False

        if not position.address:
            # Best-effort, jamais bloquant / Best-effort, never blocking
            address = await self.resolver.resolve(position.latitude, position.longitude, force=False)
            position = position.with_address(address or session.last_address)

        await self.store.insert_history(session.user_id, position, to_iso(now))
        session.last_history_write_at = now
        session.history_writes += 1
        log.info("Location saved to history for %s (every %s min)", session.user_id, session.history_write_frequency_minutes)
        return True

    # ─── Requetes partagees / Shared queries ───

    def is_stationary_blocked(self, user_id: str, position: Position) -> bool:
        """Blocage 1 h / 30 m, sans modifier la session / 1 h / 30 m block, session untouched."""
        session = self._sessions.get(user_id)
        if session is None:
            return False
        return is_stationary_blocked(session.last_persisted, session.stationary_anchor, position, self._clock())

    def notify_location_updated(self, user_id: str, position: Position) -> None:
        """Une ecriture externe a eu lieu / An external write happened."""
        session = self._sessions.get(user_id)
        if session is not None:
            session.last_persisted = PersistedPosition(position, self._clock())

    async def update_sharing_status(self, user_id: str, share_location: bool) -> None:
        session = self._sessions.get(user_id)
        owner_id = session.owner_id if session else user_id
        if session is not None:
            session.share_location = share_location
        fields = {"share_location": share_location, "is_online": share_location}
        if not share_location:
            fields["last_seen"] = to_iso(self._clock())
        await self.store.upsert_presence(owner_id, user_id, fields)

    async def _fetch_live(self, user_id: str, profile: AccuracyProfile, timeout_ms: int, max_age_ms: int) -> PositionFix:
        """Budget de temps strict / Strict time budget."""
        try:
            return await asyncio.wait_for(
                self.geolocator.get_current_position(user_id, profile, timeout_ms, max_age_ms),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError as exc:
            raise LocationTimeout(f"No fix for {user_id} within {timeout_ms} ms") from exc

    async def get_current_position(
        self, user_id: str, fast: bool = True, timeout_ms: int | None = None,
    ) -> ResolvedPosition | None:
        """Position via la chaine de repli / Position through the fallback chain."""
        if fast:
            profile, max_age_ms = AccuracyProfile.BALANCED, FAST_MAX_AGE_MS
            timeout_ms = timeout_ms or FAST_TIMEOUT_MS
        else:
            profile, max_age_ms = AccuracyProfile.HIGHEST, HIGH_ACCURACY_MAX_AGE_MS
            timeout_ms = timeout_ms or HIGH_ACCURACY_TIMEOUT_MS

        session = self._sessions.get(user_id)

        async def load_history() -> Position | None:
            row = await self.store.query_latest_history(user_id)
            if row is None:
                return None
            return Position(latitude=row.latitude, longitude=row.longitude, address=row.address)

        resolved = await resolve_position(
            lambda: self._fetch_live(user_id, profile, timeout_ms, max_age_ms),
            session.last_known_position if session else None,
            load_history,
        )
        if resolved is not None and resolved.source == FallbackSource.LIVE and session is not None:
            session.last_known_position = resolved.position
            if resolved.battery_level is not None:
                session.last_battery_level = resolved.battery_level
        return resolved

    def last_known_position(self, user_id: str) -> Position | None:
        session = self._sessions.get(user_id)
        return session.last_known_position if session else None

    async def get_location_history(self, user_id: str, hours: int = 24) -> list:
        """Historique des N dernieres heures, plus recent d'abord / Last N hours of history, newest first."""
        since = to_iso(self._clock() - hours * 3600)
        return await self.store.query_history_since(user_id, since)
