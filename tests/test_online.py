import pytest

from database import InMemoryDocumentStore, StoreError
from online import (
    has_data_changes,
    is_online,
    no_sensor_readings,
    promote_online,
    refresh_sensor_freshness,
    resolve_last_seen,
    sweep_online_status,
)

T = 1_700_000_000_000
MINUTE = 60 * 1000


# ── Sensor freshness ────────────────────────────────────────────

def test_never_reported_sensors_are_stale():
    assert no_sensor_readings({}, now=T) is True


def test_recent_dht_reading_is_fresh():
    assert no_sensor_readings({"dht": {"timestamp": T - MINUTE}}, now=T) is False


def test_newest_of_the_two_sensors_counts():
    device = {
        "dht": {"timestamp": T - 30 * MINUTE},
        "mq2_do": {"timestamp": T - 2 * MINUTE},
    }
    assert no_sensor_readings(device, now=T) is False


def test_legacy_mq2_timestamp_is_used():
    assert no_sensor_readings({"mq2": {"timestamp": T - MINUTE}}, now=T) is False


def test_sensors_go_stale_after_ten_minutes():
    device = {"dht": {"timestamp": T}}
    assert no_sensor_readings(device, now=T + 10 * MINUTE) is False
    assert no_sensor_readings(device, now=T + 10 * MINUTE + 1) is True


def test_refresh_sensor_freshness_writes_the_flag(store):
    store.set("devices/d1", {"status": {"lastEventAt": T}, "dht": {"timestamp": T - 20 * MINUTE}})

    assert refresh_sensor_freshness(store, "d1", now=T) is True
    assert store.get("devices/d1/status") == {"lastEventAt": T, "noSensorReadings": True}


def test_refresh_sensor_freshness_ignores_missing_device(store):
    assert refresh_sensor_freshness(store, "ghost", now=T) is None
    assert store.get("devices/ghost") is None


# ── Last seen / sweep ───────────────────────────────────────────

@pytest.mark.parametrize("device, expected", [
    ({"lastSeen": 4, "timestamp": 3, "dht": {"timestamp": 2}, "status": {"lastEventAt": 1}}, 4),
    ({"timestamp": 3, "dht": {"timestamp": 2}, "status": {"lastEventAt": 1}}, 3),
    ({"dht": {"timestamp": 2}, "status": {"lastEventAt": 1}}, 2),
    ({"status": {"lastEventAt": 1}}, 1),
    ({}, 0),
])
def test_resolve_last_seen(device, expected):
    assert resolve_last_seen(device) == expected


def test_online_until_two_minutes_of_silence():
    device = {"lastSeen": T}
    assert is_online(device, now=T + 2 * MINUTE - 1) is True
    assert is_online(device, now=T + 2 * MINUTE) is False


def test_sweep_converges_to_offline(store):
    store.set("devices/d1", {"lastSeen": T})

    assert sweep_online_status(store, now=T + MINUTE) == 1
    assert store.get("devices/d1/isOnline") is True
    assert store.get("devices/d1/lastChecked") == T + MINUTE

    assert sweep_online_status(store, now=T + 2 * MINUTE + 1) == 1
    assert store.get("devices/d1/isOnline") is False
    assert store.get("devices/d1/lastChecked") == T + 2 * MINUTE + 1


def test_sweep_only_writes_changes(store):
    store.set("devices/d1", {"lastSeen": T, "isOnline": True, "lastChecked": T})

    assert sweep_online_status(store, now=T + MINUTE) == 0
    assert store.get("devices/d1/lastChecked") == T


def test_sweep_skips_non_document_entries(store):
    store.set("devices/junk", 12)
    store.set("devices/d1", {"timestamp": T})

    assert sweep_online_status(store, now=T) == 1
    assert store.get("devices/junk") == 12


def test_sweep_with_no_devices(store):
    assert sweep_online_status(store, now=T) == 0


class BrokenStore(InMemoryDocumentStore):
    def children(self, path):
        raise StoreError("connection reset")


def test_sweep_swallows_store_failures():
    assert sweep_online_status(BrokenStore(), now=T) == 0


# ── Immediate promotion ─────────────────────────────────────────

def test_online_fields_alone_are_not_data_changes():
    before = {"gasStatus": "normal", "isOnline": False, "lastChecked": 1}
    after = {"gasStatus": "normal", "isOnline": True, "lastChecked": 2}
    assert has_data_changes(before, after) is False

    before = {"status": {"lastEventAt": 5}}
    after = {"status": {"lastEventAt": 5, "noSensorReadings": True}}
    assert has_data_changes(before, after) is False


def test_value_changes_are_data_changes():
    assert has_data_changes({"dht": {"temperature": 20}}, {"dht": {"temperature": 21}}) is True
    assert has_data_changes({}, {"smoke": 10}) is True


def test_promotion_marks_device_online(store):
    before = {"temperature": 20, "timestamp": T - 5 * MINUTE, "isOnline": False}
    after = {"temperature": 21, "timestamp": T, "isOnline": False}
    store.set("devices/d1", after)

    assert promote_online(store, "d1", before, after, now=T + 1) is True
    assert store.get("devices/d1/isOnline") is True
    assert store.get("devices/d1/lastSeen") == T


def test_promotion_falls_back_to_now(store):
    store.set("devices/d1", {"temperature": 21})

    promote_online(store, "d1", {"temperature": 20}, {"temperature": 21}, now=T)

    assert store.get("devices/d1/lastSeen") == T


def test_promotion_ignores_its_own_writes(store):
    before = {"temperature": 21, "isOnline": False, "lastSeen": T}
    after = {"temperature": 21, "isOnline": True, "lastSeen": T}

    assert promote_online(store, "d1", before, after, now=T) is False
    assert store.get("devices/d1") is None


def test_promotion_skips_creation_and_deletion(store):
    assert promote_online(store, "d1", None, {"temperature": 20}, now=T) is False
    assert promote_online(store, "d1", {"temperature": 20}, None, now=T) is False


def test_promotion_skips_when_already_current(store):
    before = {"temperature": 20, "isOnline": True, "lastSeen": T}
    after = {"temperature": 21, "isOnline": True, "lastSeen": T}

    assert promote_online(store, "d1", before, after, now=T + 5) is False
