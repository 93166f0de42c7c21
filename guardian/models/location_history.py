"""Modele Historique de localisation / Location history model."""

from sqlalchemy import Float, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from guardian.database import Base


class LocationHistory(Base):
    """Trace de positions (journal + anneau SOS) / Position trail (log + SOS ring)."""
    __tablename__ = "location_history"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    address: Mapped[str | None] = mapped_column(String(500))
    created_at: Mapped[str] = mapped_column(String(25), nullable=False)  # ISO 8601

    __table_args__ = (
        Index("ix_location_history_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<LocationHistory {self.user_id} ({self.latitude:.5f}, {self.longitude:.5f}) @ {self.created_at}>"
