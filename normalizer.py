# ─────────────────────────────────────────────────────────────────
# normalizer.py - Device Payload Normalizer
#
# Devices in the field run several firmware generations, and each one
# writes its readings under different keys:
#
#   legacy:     {"smoke": 1800, "temperature": 24.1, "lastSeen": ...}
#   DEVICE_010: {"dht": {"temperature": 24.1, "timestamp": ...},
#                "mq2_do": {"smokeDetected": true, "timestamp": ...},
#                "status": {"state": "alert", "lastEventAt": ...}}
#
# normalize() turns any of them into one DeviceReading. It never
# raises and never mutates the payload it is given: a missing or
# garbled field just takes its default.
# ─────────────────────────────────────────────────────────────────

import math
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Optional

from database import now_millis
from models import ButtonEvent, DeviceReading

BUTTON_EVENTS = {
    "alert": ButtonEvent.ALERT,
    "sprinkler": ButtonEvent.SPRINKLER,
}

BUTTON_MESSAGES = {
    ButtonEvent.ALERT: "alert triggered",
    ButtonEvent.SPRINKLER: "sprinkler activated",
}

# Order matters: first match wins
TIMESTAMP_FIELDS = (
    ("status", "lastEventAt"),
    ("lastSeen",),
    ("dht", "timestamp"),
    ("mq2_do", "timestamp"),
    ("timestamp",),
)

# Order matters: first non-zero value wins
SMOKE_FIELDS = ("smokeLevel", "smoke", "smokeAnalog", "mq2")


def lookup(payload: Any, *keys: str) -> Any:
    """Follow keys into nested mappings, returning None on any miss."""
    node = payload
    for key in keys:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node


def as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def to_millis(value: Any) -> Optional[int]:
    """Epoch milliseconds from a number, numeric string or ISO-8601 string."""
    number = as_number(value)
    if number is not None:
        return int(number)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return int(parsed.timestamp() * 1000)
    return None


def resolve_timestamp(payload: Any, now: Optional[int] = None) -> int:
    for keys in TIMESTAMP_FIELDS:
        millis = to_millis(lookup(payload, *keys))
        if millis is not None:
            return millis
    return now if now is not None else now_millis()


def resolve_smoke_analog(payload: Any) -> float:
    # A zero falls through to the next synonym, just like a missing key
    for key in SMOKE_FIELDS:
        value = as_number(lookup(payload, key))
        if value:
            return value
    return 0


def resolve_button_event(state: Any) -> ButtonEvent:
    if not isinstance(state, str):
        return ButtonEvent.IDLE
    return BUTTON_EVENTS.get(state, ButtonEvent.IDLE)


def _sensor_value(payload: Any, field: str) -> Optional[float]:
    # A top-level key, even null, wins; dht is only read when it is absent
    if field in payload:
        return as_number(payload[field])
    return as_number(lookup(payload, "dht", field))


def normalize(payload: Any, device_id: Optional[str] = None,
              now: Optional[int] = None) -> DeviceReading:
    """
    Build a DeviceReading from a raw device document.

    `payload` may be None or any non-mapping value, in which case
    every field takes its default and the timestamp is `now`.
    """

    if not isinstance(payload, Mapping):
        payload = {}

    button_state = lookup(payload, "status", "state")
    if button_state not in ("idle", "alert", "sprinkler"):
        button_state = "idle"
    button_event = resolve_button_event(button_state)

    sensor_error = lookup(payload, "sensorError") is True
    raw_message = lookup(payload, "message")
    message = (
        BUTTON_MESSAGES.get(button_event)
        or (str(raw_message) if raw_message else "")
        or ("Sensor Error" if sensor_error else "")
    )

    gas_status = lookup(payload, "gasStatus")
    last_type = lookup(payload, "lastType")

    return DeviceReading(
        device_id=device_id,
        timestamp=resolve_timestamp(payload, now),
        temperature=_sensor_value(payload, "temperature"),
        humidity=_sensor_value(payload, "humidity"),
        smoke_analog=resolve_smoke_analog(payload),
        smoke_detected=(
            lookup(payload, "smokeDetected") is True
            or lookup(payload, "mq2_do", "smokeDetected") is True
        ),
        gas_status=str(gas_status) if gas_status else "normal",
        sensor_error=sensor_error,
        message=message,
        button_state=button_state,
        button_event=button_event,
        sprinkler_active=(
            lookup(payload, "sprinklerActive") is True
            or button_event == ButtonEvent.SPRINKLER
        ),
        last_type=str(last_type) if last_type is not None else None,
    )
