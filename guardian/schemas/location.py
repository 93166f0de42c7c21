"""Schemas localisation / Location schemas: positions, history, presence."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from guardian.models.connection import ConnectionStatus


# ─── Position ───

class Position(BaseModel):
    """Position immuable, bornes validees a la creation / Immutable position, ranges validated on creation."""
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    address: str | None = None

    def with_address(self, address: str | None) -> "Position":
        return self.model_copy(update={"address": address})


class PositionFix(BaseModel):
    """Lecture appareil / Device reading."""
    model_config = ConfigDict(frozen=True)

    position: Position
    battery_level: int | None = Field(default=None, ge=0, le=100)
    accuracy: float | None = None
    captured_at: float  # epoch secondes / epoch seconds


class DeviceFixIn(BaseModel):
    """Fix envoye par le telephone / Fix posted by the phone."""
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: float | None = Field(default=None, ge=0)
    battery_level: int | None = Field(default=None, ge=0, le=100)
    timestamp: str | None = None  # ISO 8601


# ─── History ───

class HistoryRecordRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    user_id: str
    latitude: float
    longitude: float
    address: str | None = None
    created_at: str


# ─── Presence ───

class PresenceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    owner_id: str
    subject_user_id: str
    latitude: float | None = None
    longitude: float | None = None
    address: str | None = None
    battery_level: int | None = None
    is_online: bool
    share_location: bool
    updated_at: str | None = None
    last_seen: str | None = None
    last_seen_text: str | None = None


class ConnectionEdgeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    user_id: str
    connected_user_id: str
    status: ConnectionStatus
    location_latitude: float | None = None
    location_longitude: float | None = None
    location_address: str | None = None
    location_updated_at: str | None = None
    battery_level: int | None = None


# ─── Tracking requests ───

class TrackingStart(BaseModel):
    share_location: bool = True
    family_group_id: str | None = None
    history_write_frequency_minutes: int | None = Field(default=None, ge=1, le=1440)


class DeviceStateIn(BaseModel):
    """Etat declare par l'appareil / State reported by the device."""
    state: Literal["granted", "denied", "services_disabled"]


class SharingUpdate(BaseModel):
    share_location: bool


class TrackingStatus(BaseModel):
    user_id: str
    active: bool
    share_location: bool | None = None
    emergency_mode: bool = False
    last_known: Position | None = None
