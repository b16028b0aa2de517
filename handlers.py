# ─────────────────────────────────────────────────────────────────
# handlers.py - Event Handlers & Dispatcher
#
# Everything the service does is a reaction to one of three events:
#
#   DocumentChanged(path, before, after) - a device document changed
#   TimerFired(tick)                     - the periodic sweep is due
#   RequestReceived(name, payload, caller) - a client called a function
#
# The Dispatcher routes each event to plain handler functions. It does
# not schedule anything itself: the store publishes DocumentChanged,
# timer.py fires TimerFired and the HTTP routes send RequestReceived.
# ─────────────────────────────────────────────────────────────────

import logging
import uuid
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, Field

from alerts import notify_offline_registration, notify_subscribers, record_alert
from database import DocumentStore, now_millis, split_path, store
from online import last_event_changed, promote_online, refresh_sensor_freshness, sweep_online_status
from transitions import entered_alert

logger = logging.getLogger("handlers")


# ── Events ──────────────────────────────────────────────────────

class DocumentChanged(BaseModel):
    path: str
    before: Optional[Any] = None
    after: Optional[Any] = None
    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)


class TimerFired(BaseModel):
    tick: int                           # epoch milliseconds


class RequestReceived(BaseModel):
    name: str
    payload: Optional[Dict[str, Any]] = None
    caller: Optional[str] = None        # authenticated user id, None if anonymous


class CallableError(Exception):
    """
    Error returned to the caller of a callable function.

    kind is one of "unauthenticated", "invalid-argument", "not-found".
    """

    def __init__(self, kind: str, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


# ── Device document handlers ────────────────────────────────────

def device_id_from_path(path: str) -> Optional[str]:
    parts = split_path(path)
    if len(parts) == 2 and parts[0] == "devices":
        return parts[1]
    return None


def on_device_alert(store: DocumentStore, event: DocumentChanged,
                    now: Optional[int] = None) -> bool:
    """Record history and notify subscribers when a device enters Alert."""
    device_id = device_id_from_path(event.path)
    if device_id is None or not entered_alert(event.before, event.after):
        return False

    logger.warning(f"⚠️  Device '{device_id}' entered Alert")
    record_alert(store, device_id, event.after, event_id=event.event_id, now=now)
    notify_subscribers(store, device_id, event.after, event_id=event.event_id, now=now)
    return True


def on_device_last_event(store: DocumentStore, event: DocumentChanged,
                         now: Optional[int] = None) -> Optional[bool]:
    """Recompute status.noSensorReadings when status.lastEventAt changes."""
    device_id = device_id_from_path(event.path)
    if device_id is None or event.after is None:
        return None
    if not last_event_changed(event.before, event.after):
        return None
    return refresh_sensor_freshness(store, device_id, now=now)


def on_device_update(store: DocumentStore, event: DocumentChanged,
                     now: Optional[int] = None) -> bool:
    device_id = device_id_from_path(event.path)
    if device_id is None:
        return False
    return promote_online(store, device_id, event.before, event.after, now=now)


def on_timer(store: DocumentStore, event: TimerFired) -> int:
    return sweep_online_status(store, now=event.tick)


# ── Callable functions ──────────────────────────────────────────

def register_offline_device(store: DocumentStore, payload: Optional[Dict[str, Any]],
                            caller: Optional[str], now: Optional[int] = None) -> dict:
    """
    Callable: registerOfflineDevice(deviceId, deviceName)

    Creates one "offline" notification for the calling user.
    """

    if not caller:
        raise CallableError("unauthenticated", "Must be authenticated")

    payload = payload or {}
    device_id = payload.get("deviceId")
    if not device_id:
        raise CallableError("invalid-argument", "deviceId required")

    notify_offline_registration(
        store, caller, str(device_id),
        device_name=payload.get("deviceName"),
        now=now,
    )
    return {"status": "ok"}


CALLABLES: Dict[str, Callable[..., dict]] = {
    "registerOfflineDevice": register_offline_device,
}

DEVICE_HANDLERS = (on_device_alert, on_device_last_event, on_device_update)


# ── Dispatcher ──────────────────────────────────────────────────

class Dispatcher:
    """
    Routes events to handlers.

    Device handlers are independent: each one runs even if an earlier
    one failed. Failures are logged and the first one is re-raised once
    every handler has had its turn.
    """

    def __init__(self, store: DocumentStore, clock: Callable[[], int] = now_millis):
        self.store = store
        self.clock = clock

    def attach(self) -> "Dispatcher":
        """Subscribe to device document changes on the store."""
        self.store.subscribe("devices", self._on_store_change)
        return self

    def _on_store_change(self, path: str, before: Any, after: Any, event_id: str) -> None:
        self.dispatch(DocumentChanged(path=path, before=before, after=after, event_id=event_id))

    def dispatch(self, event):
        if isinstance(event, DocumentChanged):
            return self.handle_document_changed(event)
        if isinstance(event, TimerFired):
            return on_timer(self.store, event)
        if isinstance(event, RequestReceived):
            return self.handle_request(event)
        raise TypeError(f"Unsupported event type: {type(event).__name__}")

    def handle_document_changed(self, event: DocumentChanged) -> None:
        now = self.clock()
        errors = []
        for handler in DEVICE_HANDLERS:
            try:
                handler(self.store, event, now=now)
            except Exception as e:
                logger.exception(f"{handler.__name__} failed for '{event.path}'")
                errors.append(e)
        if errors:
            raise errors[0]

    def handle_request(self, event: RequestReceived) -> dict:
        function = CALLABLES.get(event.name)
        if function is None:
            raise CallableError("not-found", f"Unknown function '{event.name}'")
        return function(self.store, event.payload, event.caller, now=self.clock())

    def tick(self) -> int:
        return self.dispatch(TimerFired(tick=self.clock()))


# The dispatcher wired to the service's store
dispatcher = Dispatcher(store).attach()


def get_dispatcher() -> Dispatcher:
    return dispatcher
