# ─────────────────────────────────────────────────────────────────
# transitions.py - Alert Transition Detection
#
# An alert fires on the EDGE, not the level: only the write that
# takes a device from Safe into Alert counts. Further writes while
# the device stays in Alert produce nothing.
# ─────────────────────────────────────────────────────────────────

from typing import Any, Optional

from classifier import DIGITAL, SmokePolicy, classify
from models import ButtonEvent, Status
from normalizer import normalize


def payload_status(payload: Any, smoke_policy: SmokePolicy = DIGITAL) -> Status:
    """
    Status of a raw payload for alert detection.

    An alert press adds an alert on top of the sensor rules. The
    sprinkler never clears one: that override is a dashboard concern.
    """
    reading = normalize(payload, now=0)
    if reading.button_event == ButtonEvent.ALERT:
        return Status.ALERT
    return classify(reading, smoke_policy)


def entered_alert(previous: Optional[Any], current: Optional[Any],
                  smoke_policy: SmokePolicy = DIGITAL) -> bool:
    """
    True when `current` is Alert and `previous` was not.

    A missing `previous` (the document was just created) counts as Safe,
    so a device whose very first write is already an alert fires.
    A missing `current` (the document was deleted) never fires.
    """

    if current is None:
        return False
    if payload_status(current, smoke_policy) != Status.ALERT:
        return False
    return payload_status(previous, smoke_policy) != Status.ALERT
