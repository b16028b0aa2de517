# ─────────────────────────────────────────────────────────────────
# classifier.py - Safe / Alert Classification
#
# One shared set of rules decides whether a device is in Alert.
# Both the server-side handlers and the dashboard views call it.
#
# Smoke is the one rule with two variants in the field:
#   DigitalSmokePolicy         - trust the sensor's digital output flag
#   AnalogThresholdSmokePolicy - compare the analog reading to a limit
# Call sites choose one explicitly.
# ─────────────────────────────────────────────────────────────────

from abc import ABC, abstractmethod
from typing import Optional

from config import settings
from models import ButtonEvent, DeviceReading, Status

ALERT_MESSAGES = frozenset({"help requested", "alarm has been triggered"})
ALERT_GAS_STATUSES = frozenset({"critical", "detected"})


class SmokePolicy(ABC):
    """Decides whether a reading counts as smoke."""

    @abstractmethod
    def detects(self, reading: DeviceReading) -> bool:
        """True when the reading should be treated as smoke."""


class DigitalSmokePolicy(SmokePolicy):
    def detects(self, reading: DeviceReading) -> bool:
        return reading.smoke_detected

    def __repr__(self):
        return "DigitalSmokePolicy()"


class AnalogThresholdSmokePolicy(SmokePolicy):
    def __init__(self, threshold: Optional[float] = None):
        self.threshold = settings.smoke_analog_threshold if threshold is None else threshold

    def detects(self, reading: DeviceReading) -> bool:
        return reading.smoke_analog > self.threshold

    def __repr__(self):
        return f"AnalogThresholdSmokePolicy(threshold={self.threshold})"


DIGITAL = DigitalSmokePolicy()


def classify(reading: DeviceReading, smoke_policy: SmokePolicy = DIGITAL) -> Status:
    """
    Classify a reading. The first rule that matches wins:

    1. the device reports a sensor error
    2. the message is a help/alarm message
    3. the last event type is "alarm"
    4. the gas status is critical or detected (any case)
    5. the smoke policy detects smoke
    """

    if reading.sensor_error:
        return Status.ALERT
    if reading.message in ALERT_MESSAGES:
        return Status.ALERT
    if reading.last_type == "alarm":
        return Status.ALERT
    if reading.gas_status.lower() in ALERT_GAS_STATUSES:
        return Status.ALERT
    if smoke_policy.detects(reading):
        return Status.ALERT
    return Status.SAFE


def classify_with_button(reading: DeviceReading,
                         button_event: Optional[ButtonEvent] = None,
                         smoke_policy: SmokePolicy = DIGITAL) -> Status:
    """
    Classify with the physical button taking precedence.

    An alert press forces Alert and an active sprinkler forces Safe,
    whatever the sensors say. Without a button event this is classify().
    """

    if button_event == ButtonEvent.ALERT:
        return Status.ALERT
    if button_event == ButtonEvent.SPRINKLER:
        return Status.SAFE
    return classify(reading, smoke_policy)
