"""Schemas check-in / Check-in schemas."""

from pydantic import BaseModel, ConfigDict, Field

from guardian.models.check_in import CheckInStatus, CheckInType


class CheckInCreate(BaseModel):
    status: CheckInStatus
    message: str | None = Field(default=None, max_length=500)
    is_emergency: bool = False


class CheckInRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    user_id: str
    status: CheckInStatus
    message: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    address: str | None = None
    check_in_type: CheckInType
    is_emergency: bool
    next_check_in_due_at: str | None = None
    created_at: str


class CheckInSettingsRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    user_id: str
    enabled: bool = True
    check_in_interval_minutes: int = 60
    auto_check_in_enabled: bool = False
    travel_speed_threshold_kmh: float = 20.0
    missed_check_in_alert_minutes: int = 30
    emergency_contacts: list[str] = []


class CheckInSettingsUpdate(BaseModel):
    enabled: bool | None = None
    check_in_interval_minutes: int | None = Field(default=None, ge=1, le=1440)
    auto_check_in_enabled: bool | None = None
    travel_speed_threshold_kmh: float | None = Field(default=None, ge=0)
    missed_check_in_alert_minutes: int | None = Field(default=None, ge=1)
    emergency_contacts: list[str] | None = None


class PushTokenCreate(BaseModel):
    token: str = Field(min_length=1, max_length=255)
