"""Modele Presence / Presence model (current-value projection)."""

from sqlalchemy import Boolean, Float, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from guardian.database import Base


class PresenceRecord(Base):
    """Ou est un membre, vu par son groupe / Where a member is, as seen by their group."""
    __tablename__ = "presence_records"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)  # groupe familial / family group
    subject_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)
    address: Mapped[str | None] = mapped_column(String(500))
    battery_level: Mapped[int | None] = mapped_column(Integer)
    is_online: Mapped[bool] = mapped_column(Boolean, default=False)
    share_location: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[str | None] = mapped_column(String(25))  # ISO 8601
    last_seen: Mapped[str | None] = mapped_column(String(25))

    __table_args__ = (
        UniqueConstraint("owner_id", "subject_user_id", name="uq_presence_owner_subject"),
    )
