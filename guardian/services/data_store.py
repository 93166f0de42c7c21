"""
Data Store : lecture/ecriture des enregistrements par utilisateur et horodatage.
Data Store: read/write records keyed by user and timestamp.

Chaque operation ouvre sa propre session courte ; les erreurs SQL sont traduites
dans la taxonomie du domaine (DuplicateKeyConflict, NetworkUnavailable).
Each operation opens its own short session; SQL errors are translated into the
domain taxonomy (DuplicateKeyConflict, NetworkUnavailable).
"""

import logging
from contextlib import asynccontextmanager

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from guardian.exceptions import DuplicateKeyConflict, NetworkUnavailable
from guardian.models.check_in import CheckIn, CheckInSettings
from guardian.models.connection import Connection, ConnectionStatus
from guardian.models.location_history import LocationHistory
from guardian.models.presence import PresenceRecord
from guardian.models.push_token import PushToken
from guardian.models.user_settings import UserSettings
from guardian.schemas.location import Position

log = logging.getLogger(__name__)

# Champs de presence modifiables / Mutable presence fields
PRESENCE_FIELDS = {
    "latitude", "longitude", "address", "battery_level",
    "is_online", "share_location", "updated_at", "last_seen",
}
CONNECTION_LOCATION_FIELDS = (
    "location_latitude", "location_longitude", "location_address", "location_updated_at",
)


class DataStore:
    """Implementation SQLAlchemy du contrat Data Store / SQLAlchemy implementation of the Data Store contract."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self):
        async with self._session_factory() as db:
            try:
                yield db
                await db.commit()
            except IntegrityError as exc:
                await db.rollback()
                raise DuplicateKeyConflict(str(exc.orig)) from exc
            except OperationalError as exc:
                await db.rollback()
                raise NetworkUnavailable(str(exc.orig)) from exc
            except Exception:
                await db.rollback()
                raise

    # ─── Presence ───

    async def upsert_presence(self, owner_id: str, subject_id: str, fields: dict) -> None:
        """Fusion last-write-wins cle (owner, subject) / Last-write-wins merge keyed by (owner, subject)."""
        unknown = set(fields) - PRESENCE_FIELDS
        if unknown:
            raise ValueError(f"Unknown presence fields: {sorted(unknown)}")

        if await self._update_presence(owner_id, subject_id, fields):
            return
        try:
            async with self._session() as db:
                db.add(PresenceRecord(owner_id=owner_id, subject_user_id=subject_id, **fields))
        except DuplicateKeyConflict:
            # Insert concurrent : relire puis mettre a jour / Concurrent insert: re-query then update
            log.info("Presence insert conflict for %s/%s, retrying as update", owner_id, subject_id)
            await self._update_presence(owner_id, subject_id, fields)

    async def _update_presence(self, owner_id: str, subject_id: str, fields: dict) -> bool:
        async with self._session() as db:
            row = await self._find_presence(db, owner_id, subject_id)
            if row is None:
                return False
            for key, value in fields.items():
                setattr(row, key, value)
            return True

    @staticmethod
    async def _find_presence(db: AsyncSession, owner_id: str, subject_id: str) -> PresenceRecord | None:
        result = await db.execute(
            select(PresenceRecord).where(
                PresenceRecord.owner_id == owner_id,
                PresenceRecord.subject_user_id == subject_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_presence(self, owner_id: str, subject_id: str) -> PresenceRecord | None:
        async with self._session() as db:
            return await self._find_presence(db, owner_id, subject_id)

    async def list_presence(self, owner_id: str) -> list[PresenceRecord]:
        async with self._session() as db:
            result = await db.execute(
                select(PresenceRecord)
                .where(PresenceRecord.owner_id == owner_id)
                .order_by(PresenceRecord.subject_user_id)
            )
            return list(result.scalars().all())

    async def mark_subject_offline(self, subject_id: str, now_iso: str) -> int:
        """Hors ligne dans tous les groupes / Offline in every group."""
        async with self._session() as db:
            result = await db.execute(
                update(PresenceRecord)
                .where(PresenceRecord.subject_user_id == subject_id)
                .values(is_online=False, share_location=False, last_seen=now_iso)
            )
            return result.rowcount or 0

    # ─── History ───

    async def insert_history(self, user_id: str, position: Position, created_at: str) -> int:
        async with self._session() as db:
            row = LocationHistory(
                user_id=user_id,
                latitude=position.latitude,
                longitude=position.longitude,
                address=position.address,
                created_at=created_at,
            )
            db.add(row)
            await db.flush()
            return row.id

    async def update_history(self, row_id: int, position: Position, created_at: str) -> bool:
        """Reecrire une ligne ; False si elle n'existe plus / Rewrite a row; False if it no longer exists."""
        async with self._session() as db:
            result = await db.execute(
                update(LocationHistory)
                .where(LocationHistory.id == row_id)
                .values(
                    latitude=position.latitude,
                    longitude=position.longitude,
                    address=position.address,
                    created_at=created_at,
                )
            )
            return bool(result.rowcount)

    async def query_latest_history(self, user_id: str) -> LocationHistory | None:
        async with self._session() as db:
            result = await db.execute(
                select(LocationHistory)
                .where(LocationHistory.user_id == user_id)
                .order_by(LocationHistory.created_at.desc(), LocationHistory.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def query_recent_history_ids(self, user_id: str, limit: int) -> list[int]:
        """N ids les plus recents, du plus ancien au plus recent / N most recent ids, oldest first."""
        async with self._session() as db:
            result = await db.execute(
                select(LocationHistory.id)
                .where(LocationHistory.user_id == user_id)
                .order_by(LocationHistory.created_at.desc(), LocationHistory.id.desc())
                .limit(limit)
            )
            ids = [row[0] for row in result.all()]
        ids.reverse()
        return ids

    async def query_history_since(self, user_id: str, since_iso: str) -> list[LocationHistory]:
        """Historique depuis une date, plus recent d'abord / History since a date, newest first."""
        async with self._session() as db:
            result = await db.execute(
                select(LocationHistory)
                .where(LocationHistory.user_id == user_id, LocationHistory.created_at >= since_iso)
                .order_by(LocationHistory.created_at.desc(), LocationHistory.id.desc())
            )
            return list(result.scalars().all())

    async def delete_history_before(self, cutoff_iso: str) -> int:
        async with self._session() as db:
            result = await db.execute(delete(LocationHistory).where(LocationHistory.created_at < cutoff_iso))
            return result.rowcount or 0

    async def users_missing_location(self, since_iso: str) -> list[str]:
        """Utilisateurs joignables sans historique ni rappel depuis une date.
        Reachable users with neither history nor a reminder since a date.

        Seuls les jetons enregistres avant la date comptent, pour ignorer les nouveaux comptes.
        Only tokens registered before the date count, so brand new accounts are skipped.
        """
        recent_history = select(LocationHistory.user_id).where(LocationHistory.created_at >= since_iso)
        reminded = select(UserSettings.user_id).where(UserSettings.location_reminder_sent_at >= since_iso)
        async with self._session() as db:
            result = await db.execute(
                select(PushToken.user_id)
                .where(
                    PushToken.created_at < since_iso,
                    PushToken.user_id.not_in(recent_history),
                    PushToken.user_id.not_in(reminded),
                )
                .distinct()
                .order_by(PushToken.user_id)
            )
            return [row[0] for row in result.all()]

    # ─── Connections ───

    async def update_connection_locations(
        self, subject_id: str, position: Position | None, updated_at: str | None, battery_level: int | None = None,
    ) -> int:
        """Position vue par les autres via leurs connexions / Location others see through their connections.

        position=None efface les champs / position=None clears the fields.
        """
        if position is None:
            values = {field: None for field in CONNECTION_LOCATION_FIELDS}
        else:
            values = {
                "location_latitude": position.latitude,
                "location_longitude": position.longitude,
                "location_address": position.address,
                "location_updated_at": updated_at,
                "battery_level": battery_level,
            }
        async with self._session() as db:
            result = await db.execute(
                update(Connection)
                .where(
                    Connection.connected_user_id == subject_id,
                    Connection.status == ConnectionStatus.CONNECTED,
                )
                .values(**values)
            )
            return result.rowcount or 0

    async def list_connected_user_ids(self, user_id: str) -> list[str]:
        """Utilisateurs relies dans un sens ou l'autre / Users connected in either direction."""
        async with self._session() as db:
            result = await db.execute(
                select(Connection.user_id, Connection.connected_user_id).where(
                    Connection.status == ConnectionStatus.CONNECTED,
                    or_(Connection.user_id == user_id, Connection.connected_user_id == user_id),
                )
            )
            ids = set()
            for owner, subject in result.all():
                ids.add(subject if owner == user_id else owner)
        ids.discard(user_id)
        return sorted(ids)

    async def list_connections(self, user_id: str) -> list[Connection]:
        async with self._session() as db:
            result = await db.execute(
                select(Connection)
                .where(Connection.user_id == user_id, Connection.status == ConnectionStatus.CONNECTED)
                .order_by(Connection.id.desc())
            )
            return list(result.scalars().all())

    async def add_connection(self, user_id: str, connected_user_id: str, created_at: str,
                             status: ConnectionStatus = ConnectionStatus.CONNECTED) -> Connection:
        async with self._session() as db:
            row = Connection(
                user_id=user_id, connected_user_id=connected_user_id, status=status, created_at=created_at,
            )
            db.add(row)
            await db.flush()
            return row

    # ─── Settings ───

    async def get_user_settings(self, user_id: str) -> UserSettings:
        """Reglages ou valeurs par defaut (non persistees) / Settings or defaults (not persisted)."""
        async with self._session() as db:
            row = await db.get(UserSettings, user_id)
        if row is None:
            row = UserSettings(user_id=user_id, location_update_frequency_minutes=60, location_sharing_enabled=True)
        return row

    async def save_user_settings(self, user_id: str, **fields) -> UserSettings:
        async with self._session() as db:
            row = await db.get(UserSettings, user_id)
            if row is None:
                row = UserSettings(user_id=user_id, location_update_frequency_minutes=60, location_sharing_enabled=True)
                db.add(row)
            for key, value in fields.items():
                setattr(row, key, value)
            return row

    async def get_check_in_settings(self, user_id: str) -> CheckInSettings | None:
        async with self._session() as db:
            return await db.get(CheckInSettings, user_id)

    async def save_check_in_settings(self, user_id: str, **fields) -> CheckInSettings:
        async with self._session() as db:
            row = await db.get(CheckInSettings, user_id)
            if row is None:
                row = CheckInSettings(
                    user_id=user_id,
                    enabled=True,
                    check_in_interval_minutes=60,
                    auto_check_in_enabled=False,
                    travel_speed_threshold_kmh=20.0,
                    missed_check_in_alert_minutes=30,
                    emergency_contacts=[],
                )
                db.add(row)
            for key, value in fields.items():
                setattr(row, key, value)
            return row

    # ─── Check-ins ───

    async def insert_check_in(self, **fields) -> CheckIn:
        async with self._session() as db:
            row = CheckIn(**fields)
            db.add(row)
            await db.flush()
            return row

    async def recent_check_ins(self, user_id: str, limit: int = 10) -> list[CheckIn]:
        async with self._session() as db:
            result = await db.execute(
                select(CheckIn)
                .where(CheckIn.user_id == user_id)
                .order_by(CheckIn.created_at.desc(), CheckIn.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    # ─── Push tokens ───

    async def add_push_token(self, user_id: str, token: str, created_at: str) -> None:
        try:
            async with self._session() as db:
                db.add(PushToken(user_id=user_id, token=token, created_at=created_at))
        except DuplicateKeyConflict:
            log.debug("Push token already registered for %s", user_id)

    async def list_push_tokens(self, user_ids: list[str]) -> dict[str, list[str]]:
        if not user_ids:
            return {}
        async with self._session() as db:
            result = await db.execute(
                select(PushToken.user_id, PushToken.token).where(PushToken.user_id.in_(user_ids))
            )
            tokens: dict[str, list[str]] = {}
            for uid, token in result.all():
                tokens.setdefault(uid, []).append(token)
            return tokens

    async def delete_push_tokens(self, tokens: list[str]) -> int:
        if not tokens:
            return 0
        async with self._session() as db:
            result = await db.execute(delete(PushToken).where(PushToken.token.in_(tokens)))
            return result.rowcount or 0
