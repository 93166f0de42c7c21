"""Modeles Check-in / Check-in models."""

import enum

from sqlalchemy import JSON, Boolean, Enum, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from guardian.database import Base


class CheckInStatus(str, enum.Enum):
    """Statut declare / Declared status."""
    SAFE = "safe"
    DELAYED = "delayed"
    EMERGENCY = "emergency"
    MISSED = "missed"


class CheckInType(str, enum.Enum):
    """Origine du check-in / Check-in origin."""
    MANUAL = "manual"
    AUTOMATIC = "automatic"
    EMERGENCY = "emergency"


class CheckIn(Base):
    """Check-in horodate et localise / Timestamped, located check-in."""
    __tablename__ = "check_ins"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[CheckInStatus] = mapped_column(Enum(CheckInStatus), nullable=False)
    message: Mapped[str | None] = mapped_column(Text)
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)
    address: Mapped[str | None] = mapped_column(String(500))
    check_in_type: Mapped[CheckInType] = mapped_column(Enum(CheckInType), nullable=False)
    is_emergency: Mapped[bool] = mapped_column(Boolean, default=False)
    next_check_in_due_at: Mapped[str | None] = mapped_column(String(25))
    created_at: Mapped[str] = mapped_column(String(25), nullable=False)  # ISO 8601

    __table_args__ = (
        Index("ix_check_ins_user_created", "user_id", "created_at"),
    )


class CheckInSettings(Base):
    """Reglages check-in par utilisateur / Per-user check-in settings."""
    __tablename__ = "check_in_settings"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    check_in_interval_minutes: Mapped[int] = mapped_column(Integer, default=60)
    auto_check_in_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    travel_speed_threshold_kmh: Mapped[float] = mapped_column(Float, default=20.0)
    missed_check_in_alert_minutes: Mapped[int] = mapped_column(Integer, default=30)
    emergency_contacts: Mapped[list] = mapped_column(JSON, default=list)  # user ids
