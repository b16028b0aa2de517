# ─────────────────────────────────────────────────────────────────
# dashboard.py - Dashboard Views
#
# What the live dashboard shows for a device:
#   device_view()        latest reading + status + online fields
#   build_history()      chart points from the device's readings map
#   build_status_cards() the newest alert history entries as cards
#
# Status is always recomputed here from the stored reading; it is
# never stored.
# ─────────────────────────────────────────────────────────────────

from collections.abc import Mapping
from typing import Any, List, Optional

from classifier import DIGITAL, SmokePolicy, classify, classify_with_button
from config import settings
from models import DeviceView, StatusCard
from normalizer import as_number, lookup, normalize, to_millis


def device_view(device_id: str, document: Any, smoke_policy: SmokePolicy = DIGITAL,
                now: Optional[int] = None) -> DeviceView:
    reading = normalize(document, device_id=device_id, now=now)
    status = classify_with_button(reading, reading.button_event, smoke_policy)
    last_checked = to_millis(lookup(document, "lastChecked"))
    last_seen = to_millis(lookup(document, "lastSeen"))
    is_online = lookup(document, "isOnline")
    no_readings = lookup(document, "status", "noSensorReadings")

    return DeviceView(
        **reading.model_dump(),
        status=status,
        is_online=is_online if isinstance(is_online, bool) else None,
        last_checked=last_checked,
        last_seen=last_seen,
        no_sensor_readings=no_readings if isinstance(no_readings, bool) else None,
    )


def build_history(device_id: str, document: Any, smoke_policy: SmokePolicy = DIGITAL,
                  limit: Optional[int] = None,
                  now: Optional[int] = None) -> List[DeviceView]:
    """
    Chart history, newest first.

    Devices that keep a `readings` map get one point per stored reading;
    other devices get a single point for their latest state.
    """

    limit = settings.chart_history_limit if limit is None else limit
    readings = lookup(document, "readings")

    if not isinstance(readings, Mapping) or not readings:
        if not isinstance(document, Mapping):
            return []
        return [device_view(device_id, document, smoke_policy, now=now)]

    points = []
    for reading in readings.values():
        # Historic readings have no button state, so no override applies
        normalized = normalize(reading, device_id=device_id, now=now)
        points.append(DeviceView(
            **normalized.model_dump(),
            status=classify(normalized, smoke_policy),
        ))

    points.sort(key=lambda point: point.timestamp, reverse=True)
    return points[:limit]


def build_status_cards(entries: Any, limit: Optional[int] = None) -> List[StatusCard]:
    """Alert cards from a device's history entries, newest first."""

    limit = settings.alert_history_limit if limit is None else limit
    if not isinstance(entries, Mapping):
        return []

    cards = []
    for entry_id, entry in entries.items():
        if not isinstance(entry, Mapping):
            continue
        cards.append(StatusCard(
            id=str(entry_id),
            timestamp=to_millis(entry.get("timestamp")) or 0,
            smoke_analog=as_number(entry.get("smokeLevel")) or 0,
            gas_status=str(entry.get("gasStatus") or "normal"),
            temperature=as_number(entry.get("temperature")),
            humidity=as_number(entry.get("humidity")),
            message=str(entry.get("message") or "Alert"),
        ))

    cards.sort(key=lambda card: card.timestamp, reverse=True)
    return cards[:limit]
