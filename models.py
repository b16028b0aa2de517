# ─────────────────────────────────────────────────────────────────
# models.py - Data Models (Pydantic Schemas)
#
# All data shapes live here: the normalized DeviceReading, the
# documents the handlers write (alert history, notifications) and
# the request/response bodies of the HTTP API.
#
# Stored documents use camelCase field names, so every model maps
# its snake_case attributes to camelCase aliases.
# ─────────────────────────────────────────────────────────────────

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class Status(str, Enum):
    SAFE = "Safe"
    ALERT = "Alert"


class ButtonEvent(str, Enum):
    """What the physical button on the device last reported."""

    IDLE = "STATE_IDLE"
    ALERT = "STATE_ALERT"
    SPRINKLER = "STATE_SPRINKLER"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class DeviceReading(CamelModel):
    """
    One device payload, normalized.

    Built by normalizer.normalize() from whatever firmware generation
    wrote the raw document. Every field has a default so a reading
    can always be built, even from an empty payload.
    """

    device_id: Optional[str] = None
    timestamp: int                      # epoch milliseconds
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    smoke_analog: float = 0
    smoke_detected: bool = False
    gas_status: str = "normal"
    sensor_error: bool = False
    message: str = ""
    button_state: str = "idle"          # idle | alert | sprinkler
    button_event: ButtonEvent = ButtonEvent.IDLE
    sprinkler_active: bool = False
    last_type: Optional[str] = None


class AlertHistoryEntry(CamelModel):
    id: str
    timestamp: int
    device_id: str
    message: str
    gas_status: str
    smoke_level: float
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    type: str = "alert"


class Notification(CamelModel):
    """
    One notification for one user.

    `read` is the only field that may change after creation.
    Offline-registration notifications carry no sensor values.
    """

    id: str
    user_id: str
    device_id: str
    device_name: str
    type: str                           # alert | offline
    title: str
    message: str
    created_at: int
    read: bool = False
    gas_status: Optional[str] = None
    smoke_level: Optional[float] = None
    temperature: Optional[float] = None
    humidity: Optional[float] = None


class DeviceView(DeviceReading):
    """A reading as the dashboard shows it: status plus online fields."""

    status: Status
    is_online: Optional[bool] = None
    last_checked: Optional[int] = None
    last_seen: Optional[int] = None
    no_sensor_readings: Optional[bool] = None


class StatusCard(CamelModel):
    id: str
    timestamp: int
    smoke_analog: float = 0
    gas_status: str = "normal"
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    message: str = "Alert"
    sensor_error: bool = False
    last_type: str = "alarm"
    status: Status = Status.ALERT


class DeviceList(CamelModel):
    devices: List[DeviceView]
    total: int


# ── Request bodies ──────────────────────────────────────────────

class RegistrationCreate(CamelModel):
    """
    Body for POST /registrations
    {"deviceId": "DEVICE_010", "addedBy": "user-1", "name": "Kitchen"}
    """

    device_id: str
    added_by: str
    name: Optional[str] = None


class OfflineRegistrationRequest(CamelModel):
    """
    Body for POST /notifications/offline-registration

    deviceId is optional here so that a missing id reaches the
    callable and comes back as an invalid-argument error.
    """

    device_id: Optional[str] = None
    device_name: Optional[str] = None
