"""Modele Reglages utilisateur / User settings model."""

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from guardian.database import Base


class UserSettings(Base):
    __tablename__ = "user_settings"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(100))
    location_update_frequency_minutes: Mapped[int] = mapped_column(Integer, default=60)
    location_sharing_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    location_reminder_sent_at: Mapped[str | None] = mapped_column(String(25))  # ISO 8601
