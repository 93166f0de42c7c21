"""Modele Connexion entre utilisateurs / User connection model."""

import enum

from sqlalchemy import Enum, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from guardian.database import Base


class ConnectionStatus(str, enum.Enum):
    """Statut de la relation / Relationship status."""
    PENDING = "pending"
    CONNECTED = "connected"
    BLOCKED = "blocked"


class Connection(Base):
    """Arete user_id -> connected_user_id ; user_id voit la position de connected_user_id.
    Edge user_id -> connected_user_id; user_id sees connected_user_id's location.
    """
    __tablename__ = "connections"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    connected_user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[ConnectionStatus] = mapped_column(Enum(ConnectionStatus), default=ConnectionStatus.PENDING)
    location_latitude: Mapped[float | None] = mapped_column(Float)
    location_longitude: Mapped[float | None] = mapped_column(Float)
    location_address: Mapped[str | None] = mapped_column(String(500))
    location_updated_at: Mapped[str | None] = mapped_column(String(25))  # ISO 8601
    battery_level: Mapped[int | None] = mapped_column(Integer)
    created_at: Mapped[str | None] = mapped_column(String(25))
