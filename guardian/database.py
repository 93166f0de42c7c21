"""
Connexion a la base de donnees / Database connection.
Supporte SQLite (dev) et PostgreSQL (prod) via SQLAlchemy 2.0 async.
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from guardian.config import settings

log = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Creer un moteur async / Create an async engine.

    SQLite en memoire : une seule connexion partagee / in-memory SQLite: one shared connection.
    """
    kwargs: dict = {"echo": echo}
    if url.startswith("sqlite"):
        if ":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:"):
            kwargs.update({"poolclass": StaticPool, "connect_args": {"check_same_thread": False}})
    else:
        # PostgreSQL : pool de connexions / connection pooling
        kwargs.update({
            "pool_size": 20,
            "max_overflow": 30,
            "pool_timeout": 30,
            "pool_recycle": 1800,
            "pool_pre_ping": True,
        })
    return create_async_engine(url, **kwargs)


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncSession:
    """Dependance FastAPI pour obtenir une session DB / FastAPI dependency for DB session."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db(db_engine: AsyncEngine | None = None, retention_hours: int | None = None):
    """Creer les tables au demarrage / Create tables on startup."""
    import guardian.models  # noqa: F401  enregistre les tables / registers tables

    db_engine = db_engine or engine
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    # Purger l'historique expire / Purge expired history
    hours = settings.HISTORY_RETENTION_HOURS if retention_hours is None else retention_hours
    if hours > 0:
        await cleanup_location_history(db_engine, hours)


async def cleanup_location_history(db_engine: AsyncEngine, hours: int) -> int:
    """Supprimer l'historique plus ancien que N heures / Delete history older than N hours."""
    from guardian.models.location_history import LocationHistory

    cutoff = (datetime.now(timezone.utc) - timedelta(hours=hours)).isoformat(timespec="seconds")
    async with db_engine.begin() as conn:
        result = await conn.execute(delete(LocationHistory).where(LocationHistory.created_at < cutoff))
    if result.rowcount:
        log.info("[cleanup] %s location_history rows removed (before %s)", result.rowcount, cutoff)
    return result.rowcount or 0
