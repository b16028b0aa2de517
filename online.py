# ─────────────────────────────────────────────────────────────────
# online.py - Online / Offline Tracking
#
# Two separate questions get two separate answers:
#
#   "Are the sensors still reporting?"  -> status.noSensorReadings
#       recomputed whenever the device reports a new button/status
#       event, against a 10 minute threshold.
#
#   "Is the device itself still alive?" -> isOnline / lastChecked
#       swept for every device once a minute against a 2 minute
#       threshold, and promoted to true immediately whenever the
#       device writes real data.
# ─────────────────────────────────────────────────────────────────

import logging
from collections.abc import Mapping
from typing import Any, Dict, Optional, Tuple

from config import settings
from database import DocumentStore, StoreError, join_path, now_millis
from normalizer import lookup, to_millis

logger = logging.getLogger("online")

# Fields written by this module. A change confined to these fields is
# our own write coming back round, not new data from the device.
ONLINE_STATUS_FIELDS = frozenset({"isOnline", "lastChecked", "status.noSensorReadings"})


def flatten(document: Any, prefix: str = "") -> Dict[str, Any]:
    """{"a": {"b": 1}} -> {"a.b": 1}"""
    if not isinstance(document, Mapping):
        return {prefix: document} if prefix else {}
    flat: Dict[str, Any] = {}
    for key, value in document.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping) and value:
            flat.update(flatten(value, path))
        else:
            flat[path] = value
    return flat


def has_data_changes(before: Any, after: Any,
                     ignored=ONLINE_STATUS_FIELDS) -> bool:
    old = {k: v for k, v in flatten(before).items() if k not in ignored}
    new = {k: v for k, v in flatten(after).items() if k not in ignored}
    return old != new


# ── Sensor freshness ────────────────────────────────────────────

def sensor_timestamps(device: Any) -> Tuple[int, int]:
    """(temperature/humidity timestamp, gas/smoke timestamp), 0 when unknown."""
    dht_ts = to_millis(lookup(device, "dht", "timestamp")) or 0
    smoke_ts = (
        to_millis(lookup(device, "mq2_do", "timestamp"))
        or to_millis(lookup(device, "mq2", "timestamp"))
        or 0
    )
    return dht_ts, smoke_ts


def no_sensor_readings(device: Any, now: int,
                       threshold_ms: Optional[int] = None) -> bool:
    if threshold_ms is None:
        threshold_ms = settings.sensor_stale_threshold_seconds * 1000
    latest = max(sensor_timestamps(device))
    return not latest or (now - latest) > threshold_ms


def last_event_changed(before: Any, after: Any) -> bool:
    return lookup(before, "status", "lastEventAt") != lookup(after, "status", "lastEventAt")


def refresh_sensor_freshness(store: DocumentStore, device_id: str,
                             now: Optional[int] = None) -> Optional[bool]:
    """Recompute status.noSensorReadings from the stored sensor timestamps."""
    now = now_millis() if now is None else now
    device = store.get(join_path("devices", device_id))
    if not isinstance(device, Mapping):
        return None

    flag = no_sensor_readings(device, now)
    store.update(join_path("devices", device_id, "status"), {"noSensorReadings": flag})
    if flag:
        logger.info(f"🔇 No recent sensor readings from '{device_id}'")
    return flag


# ── Device online / offline ─────────────────────────────────────

def resolve_last_seen(device: Any) -> int:
    return (
        to_millis(lookup(device, "lastSeen"))
        or to_millis(lookup(device, "timestamp"))
        or to_millis(lookup(device, "dht", "timestamp"))
        or to_millis(lookup(device, "status", "lastEventAt"))
        or 0
    )


def is_online(device: Any, now: int, threshold_ms: Optional[int] = None) -> bool:
    if threshold_ms is None:
        threshold_ms = settings.offline_threshold_seconds * 1000
    return now - resolve_last_seen(device) < threshold_ms


def sweep_online_status(store: DocumentStore, now: Optional[int] = None) -> int:
    """
    Recompute isOnline for every device and write only the ones that changed.

    All writes of one sweep go out as a single batch. A store failure
    is logged and swallowed: the next sweep a minute later tries again.
    Returns the number of devices updated.
    """

    now = now_millis() if now is None else now
    try:
        devices = store.children("devices")
        batch = store.batch()
        updated = 0

        for device_id, device in devices.items():
            if not isinstance(device, Mapping):
                continue

            online = is_online(device, now)
            if device.get("isOnline") == online:
                continue

            batch.update(join_path("devices", device_id), {
                "isOnline": online,
                "lastChecked": now,
            })
            updated += 1
            logger.info(
                f"{'🟢' if online else '🔴'} Device '{device_id}': "
                f"{'online' if online else 'offline'} "
                f"(last seen {now - resolve_last_seen(device)}ms ago)"
            )

        batch.commit()
        if updated:
            logger.info(f"Updated online status of {updated} device(s)")
        return updated

    except StoreError as e:
        logger.error(f"Error updating device online status: {e}")
        return 0


def promote_online(store: DocumentStore, device_id: str, before: Any, after: Any,
                   now: Optional[int] = None) -> bool:
    """
    Mark a device online as soon as it writes real data.

    Only updates of an existing document count, and a change confined
    to ONLINE_STATUS_FIELDS is ignored. Returns True when a write was made.
    """

    if not isinstance(before, Mapping) or not isinstance(after, Mapping):
        return False
    if not has_data_changes(before, after):
        return False

    now = now_millis() if now is None else now
    last_seen = after.get("lastSeen") or after.get("timestamp") or now
    if after.get("isOnline") is True and after.get("lastSeen") == last_seen:
        return False

    store.update(join_path("devices", device_id), {
        "isOnline": True,
        "lastSeen": last_seen,
    })
    logger.info(f"💓 Device '{device_id}' sent data, marked online")
    return True
