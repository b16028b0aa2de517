# ─────────────────────────────────────────────────────────────────
# alerts.py - Logging Setup & Alert Fanout
#
# All alerting side effects live here. When a device enters Alert:
#   1. one entry is appended to the device's alert history, and the
#      history is trimmed back to the newest few entries
#   2. one notification is written for every user who registered
#      the device, all in one batch
#
# The handlers decide WHEN to alert (transitions.py); this file only
# knows WHAT gets written.
# ─────────────────────────────────────────────────────────────────

import logging
import uuid
from typing import Any, List, Optional

from config import settings
from database import DocumentStore, join_path, now_millis
from models import AlertHistoryEntry, Notification
from normalizer import lookup, normalize, to_millis

# ── LOGGING CONFIGURATION ─────────────────────────────────────────
# Global format for every logger in the service
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(levelname)s - [%(name)s] - %(message)s"
)

logger = logging.getLogger("alerts")

ALERT_TITLE = "Alert Triggered"
OFFLINE_TITLE = "Device Registered (Offline)"
OFFLINE_MESSAGE = "Device added without live data. Awaiting first signal."


def derived_id(*parts: Any) -> Optional[str]:
    """
    Deterministic document id for a redelivered event.

    The same event id (and user) always maps to the same document,
    so processing an event twice overwrites instead of duplicating.
    """
    if not parts or parts[0] is None:
        return None
    return uuid.uuid5(uuid.NAMESPACE_URL, "/".join(str(p) for p in parts)).hex


def history_path(device_id: str, entry_id: str = "") -> str:
    return join_path("statusHistory", device_id, entry_id)


def record_alert(store: DocumentStore, device_id: str, payload: Any,
                 event_id: Optional[str] = None,
                 now: Optional[int] = None) -> AlertHistoryEntry:
    """Append an alert history entry, then trim the history to the cap."""

    now = now_millis() if now is None else now
    reading = normalize(payload, device_id=device_id, now=now)

    entry = AlertHistoryEntry(
        id=derived_id(event_id, "history") or store.new_id(),
        timestamp=now,
        device_id=device_id,
        message=str(lookup(payload, "message") or "Alert triggered"),
        gas_status=reading.gas_status,
        smoke_level=reading.smoke_analog,
        temperature=reading.temperature,
        humidity=reading.humidity,
    )
    store.set(history_path(device_id, entry.id), entry.to_document())
    logger.info(f"📝 Alert history entry {entry.id} recorded for '{device_id}'")

    trim_history(store, device_id)
    return entry


def trim_history(store: DocumentStore, device_id: str,
                 limit: Optional[int] = None) -> List[str]:
    """
    Delete every history entry beyond the newest `limit`.

    Entries with equal timestamps keep their insertion order.
    Returns the ids deleted.
    """

    limit = settings.alert_history_limit if limit is None else limit
    entries = store.children(history_path(device_id))
    ordered = sorted(
        entries.items(),
        key=lambda item: to_millis(lookup(item[1], "timestamp")) or 0,
        reverse=True,
    )
    # sorted(reverse=True) keeps equal keys in their original order
    stale = [entry_id for entry_id, _ in ordered[limit:]]

    if stale:
        batch = store.batch()
        for entry_id in stale:
            batch.delete(history_path(device_id, entry_id))
        batch.commit()
        logger.info(f"🧹 Trimmed {len(stale)} old history entries for '{device_id}'")
    return stale


def notify_subscribers(store: DocumentStore, device_id: str, payload: Any,
                       event_id: Optional[str] = None,
                       now: Optional[int] = None) -> List[Notification]:
    """One alert notification per registration of the device, in one batch."""

    registrations = store.query("registrations", "deviceId", device_id)
    if not registrations:
        logger.info(f"No registered users for '{device_id}', nobody to notify")
        return []

    now = now_millis() if now is None else now
    reading = normalize(payload, device_id=device_id, now=now)
    batch = store.batch()
    notifications = []

    for registration_id, registration in registrations:
        user_id = registration.get("addedBy")
        if not user_id:
            logger.warning(f"Registration '{registration_id}' for '{device_id}' has no user, skipping")
            continue
        notification = Notification(
            id=derived_id(event_id, "notification", registration_id) or store.new_id(),
            user_id=str(user_id),
            device_id=device_id,
            device_name=str(registration.get("name") or device_id),
            type="alert",
            title=ALERT_TITLE,
            message=str(lookup(payload, "message") or "An alert was detected"),
            created_at=now,
            read=False,
            gas_status=reading.gas_status,
            smoke_level=reading.smoke_analog,
            temperature=reading.temperature,
            humidity=reading.humidity,
        )
        batch.set(join_path("notifications", notification.id), notification.to_document())
        notifications.append(notification)

    batch.commit()

    logger.critical(f"🚨 ALERT on '{device_id}': notified {len(notifications)} user(s)")
    return notifications


def notify_offline_registration(store: DocumentStore, user_id: str, device_id: str,
                                device_name: Optional[str] = None,
                                now: Optional[int] = None) -> Notification:
    """Tell a user their device was added but has not sent any data yet."""

    notification = Notification(
        id=store.new_id(),
        user_id=user_id,
        device_id=device_id,
        device_name=device_name or device_id,
        type="offline",
        title=OFFLINE_TITLE,
        message=OFFLINE_MESSAGE,
        created_at=now_millis() if now is None else now,
        read=False,
    )
    store.set(join_path("notifications", notification.id), notification.to_document())
    logger.info(f"📨 Offline registration notice for '{device_id}' sent to '{user_id}'")
    return notification
