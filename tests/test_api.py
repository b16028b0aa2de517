def register(client, device_id, user_id, name=None):
    body = {"deviceId": device_id, "addedBy": user_id}
    if name:
        body["name"] = name
    response = client.post("/registrations", json=body)
    assert response.status_code == 201
    return response.json()


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["message"] == "Safety Pulse API is running"


def test_registration_is_stored(client, store):
    created = register(client, "d1", "alice", name="Kitchen")

    assert created["deviceId"] == "d1"
    assert store.get(f"registrations/{created['id']}") == {
        "deviceId": "d1", "addedBy": "alice", "name": "Kitchen",
    }


def test_registration_requires_device_and_user(client):
    assert client.post("/registrations", json={"deviceId": "d1"}).status_code == 422


def test_device_write_returns_normalized_view(client):
    response = client.put("/devices/d1", json={
        "dht": {"temperature": 23.5, "humidity": 48, "timestamp": 1_700_000_000_000},
        "mq2_do": {"smokeDetected": False},
        "gasStatus": "normal",
    })

    assert response.status_code == 200
    body = response.json()
    assert body["deviceId"] == "d1"
    assert body["temperature"] == 23.5
    assert body["humidity"] == 48
    assert body["timestamp"] == 1_700_000_000_000
    assert body["status"] == "Safe"
    assert body["buttonEvent"] == "STATE_IDLE"


def test_critical_gas_alerts_registered_users(client):
    register(client, "d1", "alice", name="Kitchen")

    response = client.put("/devices/d1", json={"gasStatus": "CRITICAL"})
    assert response.json()["status"] == "Alert"

    notifications = client.get("/notifications", params={"user_id": "alice"}).json()
    assert len(notifications) == 1
    assert notifications[0]["title"] == "Alert Triggered"
    assert notifications[0]["deviceName"] == "Kitchen"
    assert notifications[0]["gasStatus"] == "CRITICAL"
    assert notifications[0]["read"] is False

    cards = client.get("/devices/d1/status-history").json()
    assert len(cards) == 1
    assert cards[0]["status"] == "Alert"
    assert cards[0]["lastType"] == "alarm"


def test_mark_notification_read(client):
    register(client, "d1", "alice")
    client.put("/devices/d1", json={"sensorError": True})
    [notification] = client.get("/notifications", params={"user_id": "alice"}).json()

    response = client.post(f"/notifications/{notification['id']}/read")

    assert response.status_code == 200
    assert response.json()["read"] is True
    assert response.json()["title"] == notification["title"]


def test_mark_unknown_notification_read(client):
    assert client.post("/notifications/nope/read").status_code == 404


def test_notifications_are_per_user(client):
    register(client, "d1", "alice")
    client.put("/devices/d1", json={"sensorError": True})

    assert client.get("/notifications", params={"user_id": "bob"}).json() == []


def test_alert_button_and_sprinkler(client):
    body = client.put("/devices/d1", json={"status": {"state": "alert"}}).json()
    assert body["status"] == "Alert"
    assert body["message"] == "alert triggered"

    body = client.put("/devices/d1", json={
        "sensorError": True, "status": {"state": "sprinkler"},
    }).json()
    assert body["status"] == "Safe"
    assert body["sprinklerActive"] is True


def test_patch_merges_fields(client):
    client.put("/devices/d1", json={"temperature": 20, "gasStatus": "normal"})

    body = client.patch("/devices/d1", json={"temperature": 22}).json()

    assert body["temperature"] == 22
    assert body["gasStatus"] == "normal"
    # Second write to an existing device promotes it online
    assert body["isOnline"] is True


def test_patch_rejects_empty_and_path_keys(client):
    client.put("/devices/d1", json={"temperature": 20})

    assert client.patch("/devices/d1", json={}).status_code == 400
    assert client.patch("/devices/d1", json={"dht/temperature": 1}).status_code == 400


def test_unknown_device(client):
    assert client.get("/devices/ghost").status_code == 404
    assert client.get("/devices/ghost/readings").status_code == 404


def test_status_history_of_quiet_device_is_empty(client):
    client.put("/devices/d1", json={"temperature": 20})
    assert client.get("/devices/d1/status-history").json() == []


def test_list_devices(client):
    client.put("/devices/d1", json={"temperature": 20})
    client.put("/devices/d2", json={"lastType": "alarm"})

    body = client.get("/devices").json()

    assert body["total"] == 2
    statuses = {d["deviceId"]: d["status"] for d in body["devices"]}
    assert statuses == {"d1": "Safe", "d2": "Alert"}


def test_readings_history_newest_first(client):
    client.put("/devices/d1", json={
        "readings": {
            "r1": {"timestamp": 1000, "smoke": 100},
            "r2": {"timestamp": 3000, "gasStatus": "detected"},
            "r3": {"lastSeen": 2000, "temperature": 19},
        },
    })

    points = client.get("/devices/d1/readings").json()

    assert [p["timestamp"] for p in points] == [3000, 2000, 1000]
    assert [p["status"] for p in points] == ["Alert", "Safe", "Safe"]


def test_readings_history_without_readings_map(client):
    client.put("/devices/d1", json={"temperature": 20})

    points = client.get("/devices/d1/readings").json()

    assert len(points) == 1
    assert points[0]["temperature"] == 20


def test_offline_registration_needs_caller(client):
    response = client.post("/notifications/offline-registration", json={"deviceId": "d1"})

    assert response.status_code == 401
    assert response.json()["detail"]["error"] == "unauthenticated"


def test_offline_registration_needs_device_id(client):
    response = client.post("/notifications/offline-registration", json={},
                           headers={"X-User-Id": "alice"})

    assert response.status_code == 400
    assert response.json()["detail"] == {"error": "invalid-argument", "message": "deviceId required"}


def test_offline_registration(client):
    response = client.post("/notifications/offline-registration",
                           json={"deviceId": "d1", "deviceName": "Garage"},
                           headers={"X-User-Id": "alice"})

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}

    [notification] = client.get("/notifications", params={"user_id": "alice"}).json()
    assert notification["type"] == "offline"
    assert notification["deviceName"] == "Garage"
    assert notification["gasStatus"] is None
