"""Modele Jeton push / Push token model."""

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from guardian.database import Base


class PushToken(Base):
    """Jeton Expo d'un appareil / Expo token of one device."""
    __tablename__ = "push_tokens"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    token: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[str | None] = mapped_column(String(25))

    __table_args__ = (
        UniqueConstraint("user_id", "token", name="uq_push_token_user_token"),
    )
