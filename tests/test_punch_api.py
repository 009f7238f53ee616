from conftest import API

SHOP = {"latitude": 12.9716, "longitude": 77.5946}
FAR_AWAY = {"latitude": 12.9816, "longitude": 77.5946}


def _punch(client, headers, **payload):
    response = client.post(f"{API}/punches", json=payload, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


def _enable_geofence(client, admin_headers, radius_m=100.0):
    response = client.put(
        f"{API}/settings/geofence",
        json={"enabled": True, "radius_m": radius_m, **SHOP},
        headers=admin_headers,
    )
    assert response.status_code == 200, response.text


def test_rfid_in_cooldown_out_sequence(client, clock, admin_headers, make_worker):
    worker = make_worker("Asha Kumar", rfid="AB1234")

    clock.set(9, 0, 0)
    first = _punch(client, admin_headers, rfid_code="AB1234", method="rfid")
    assert first["accepted"] is True
    assert first["direction"] == "in"
    assert first["worker_id"] == worker["id"]

    clock.set(9, 0, 30)
    second = _punch(client, admin_headers, rfid_code="AB1234", method="rfid")
    assert second == {
        "accepted": False,
        "reason": "COOLDOWN_ACTIVE",
        "remaining_seconds": 30,
        "worker_id": worker["id"],
        "worker_name": "Asha Kumar",
    }

    clock.set(9, 1, 5)
    third = _punch(client, admin_headers, rfid_code="AB1234", method="rfid")
    assert third["accepted"] is True
    assert third["direction"] == "out"
    assert third["record_id"] == first["record_id"]

    records = client.get(f"{API}/attendance", params={"worker_id": worker["id"]}, headers=admin_headers).json()
    assert len(records) == 1
    assert records[0]["check_in"].startswith("2024-03-04T09:00:00")
    assert records[0]["check_out"].startswith("2024-03-04T09:01:05")
    assert records[0]["needs_reconciliation"] is False


def test_cooldown_status_endpoint(client, clock, admin_headers, make_worker):
    worker = make_worker("Ravi", rfid="CD5678")
    _punch(client, admin_headers, rfid_code="cd5678", method="rfid")

    clock.advance(45)
    body = client.get(f"{API}/punches/cooldown/{worker['id']}", headers=admin_headers).json()
    assert body["active"] is True
    assert body["remaining_seconds"] == 15
    assert body["cooldown_seconds"] == 60


def test_cooldown_spans_capture_methods(client, clock, admin_headers, make_worker):
    worker = make_worker("Meena", rfid="EF9012")
    _punch(client, admin_headers, rfid_code="EF9012", method="rfid")

    clock.advance(5)
    body = _punch(client, admin_headers, worker_id=worker["id"], method="face")
    assert body["accepted"] is False
    assert body["reason"] == "COOLDOWN_ACTIVE"
    assert body["remaining_seconds"] == 55


def test_unknown_rfid_is_rejected(client, admin_headers):
    body = _punch(client, admin_headers, rfid_code="ZZ9999", method="rfid")
    assert body == {"accepted": False, "reason": "UNKNOWN_IDENTITY"}


def test_malformed_rfid_is_a_validation_error(client, admin_headers):
    response = client.post(f"{API}/punches", json={"rfid_code": "1234AB", "method": "rfid"}, headers=admin_headers)
    assert response.status_code == 422


def test_exactly_one_identity_required(client, admin_headers, make_worker):
    worker = make_worker("Asha", rfid="AB1234")
    both = {"worker_id": worker["id"], "rfid_code": "AB1234", "method": "rfid"}
    assert client.post(f"{API}/punches", json=both, headers=admin_headers).status_code == 422
    assert client.post(f"{API}/punches", json={"method": "rfid"}, headers=admin_headers).status_code == 422


def test_inactive_worker_is_unknown(client, admin_headers, make_worker):
    worker = make_worker("Asha", rfid="AB1234")
    client.patch(f"{API}/workers/{worker['id']}", json={"is_active": False}, headers=admin_headers)
    body = _punch(client, admin_headers, rfid_code="AB1234", method="rfid")
    assert body["reason"] == "UNKNOWN_IDENTITY"


def test_punch_requires_authentication(client):
    response = client.post(f"{API}/punches", json={"rfid_code": "AB1234", "method": "rfid"})
    assert response.status_code == 401


def test_personal_device_without_location(client, make_worker, worker_headers):
    worker = make_worker("Asha", password="secret123")
    headers = worker_headers(worker["id"])

    body = _punch(client, headers, worker_id=worker["id"], method="face")
    assert body["accepted"] is False
    assert body["reason"] == "LOCATION_UNAVAILABLE"


def test_personal_device_with_geofence_not_configured(client, make_worker, worker_headers):
    worker = make_worker("Asha", password="secret123")
    headers = worker_headers(worker["id"])

    body = _punch(client, headers, worker_id=worker["id"], method="face", location=SHOP)
    assert body["accepted"] is False
    assert body["reason"] == "GEOFENCE_NOT_CONFIGURED"


def test_personal_device_outside_geofence(client, admin_headers, make_worker, worker_headers):
    _enable_geofence(client, admin_headers)
    worker = make_worker("Asha", password="secret123")
    headers = worker_headers(worker["id"])

    body = _punch(client, headers, worker_id=worker["id"], method="face", location=FAR_AWAY)
    assert body["accepted"] is False
    assert body["reason"] == "OUT_OF_RANGE"
    assert 1100 < body["distance_meters"] < 1125

    # A geofence rejection must not start the cooldown.
    inside = _punch(client, headers, worker_id=worker["id"], method="face", location=SHOP)
    assert inside["accepted"] is True
    assert inside["direction"] == "in"


def test_kiosk_rfid_is_exempt_from_geofence(client, admin_headers, make_worker):
    _enable_geofence(client, admin_headers)
    make_worker("Asha", rfid="AB1234")
    body = _punch(client, admin_headers, rfid_code="AB1234", method="rfid")
    assert body["accepted"] is True


def test_worker_cannot_punch_for_someone_else(client, make_worker, worker_headers):
    asha = make_worker("Asha", password="secret123")
    ravi = make_worker("Ravi")
    headers = worker_headers(asha["id"])

    response = client.post(
        f"{API}/punches",
        json={"worker_id": ravi["id"], "method": "face", "location": SHOP},
        headers=headers,
    )
    assert response.status_code == 403


def test_every_attempt_is_audited(client, clock, admin_headers, make_worker):
    make_worker("Asha", rfid="AB1234")
    _punch(client, admin_headers, rfid_code="AB1234", method="rfid")
    clock.advance(10)
    _punch(client, admin_headers, rfid_code="AB1234", method="rfid")
    _punch(client, admin_headers, rfid_code="ZZ0000", method="rfid")

    events = client.get(f"{API}/events/punches", headers=admin_headers).json()
    assert len(events) == 3
    assert sorted(e["reason"] or "" for e in events) == ["", "COOLDOWN_ACTIVE", "UNKNOWN_IDENTITY"]
    rejected = client.get(f"{API}/events/punches", params={"accepted": False}, headers=admin_headers).json()
    assert len(rejected) == 2


def test_punch_from_registered_device(client, admin_headers, make_worker):
    make_worker("Asha", rfid="AB1234")
    device = client.post(
        f"{API}/devices/heartbeat",
        json={"device_name": "frontdesk-kiosk-01"},
        headers=admin_headers,
    ).json()

    body = _punch(client, admin_headers, rfid_code="AB1234", method="rfid", device_id=device["id"])
    assert body["accepted"] is True

    unknown = client.post(
        f"{API}/punches",
        json={"rfid_code": "AB1234", "method": "rfid", "device_id": "00000000-0000-0000-0000-000000000000"},
        headers=admin_headers,
    )
    assert unknown.status_code == 404


def test_second_in_after_full_shift(client, clock, admin_headers, make_worker):
    worker = make_worker("Asha", rfid="AB1234")
    directions = []
    for hour in (9, 13, 14, 18):
        clock.set(hour, 0, 0)
        directions.append(_punch(client, admin_headers, rfid_code="AB1234", method="rfid")["direction"])
    assert directions == ["in", "out", "in", "out"]

    records = client.get(f"{API}/attendance", params={"worker_id": worker["id"], "day": "2024-03-04"}, headers=admin_headers).json()
    assert len(records) == 2
    reconciliation = client.get(f"{API}/attendance/reconciliation", headers=admin_headers).json()
    assert reconciliation == []


def test_punch_is_broadcast_to_dashboards(client, admin_headers, make_worker):
    make_worker("Asha", rfid="AB1234")
    token = admin_headers["Authorization"].split(" ", 1)[1]
    with client.websocket_connect(f"/ws/punches?token={token}") as ws:
        _punch(client, admin_headers, rfid_code="AB1234", method="rfid")
        message = ws.receive_json()
    assert message["type"] == "punch"
    assert message["payload"]["accepted"] is True
    assert message["payload"]["direction"] == "in"


def test_heartbeat_reattaches_by_name_and_goes_offline(client, clock, admin_headers):
    first = client.post(f"{API}/devices/heartbeat", json={"device_name": "bench-kiosk"}, headers=admin_headers).json()
    again = client.post(f"{API}/devices/heartbeat", json={"device_name": "bench-kiosk"}, headers=admin_headers).json()
    assert again["id"] == first["id"]
    assert again["capture_methods"] == ["face", "rfid"]

    clock.advance(600)
    devices = client.get(f"{API}/devices", headers=admin_headers).json()
    assert [(d["device_name"], d["status"]) for d in devices] == [("bench-kiosk", "offline")]


def test_punch_feed_only_sends_workers_their_own_punches():
    from punchclock.schemas.auth import CurrentPrincipal
    from punchclock.ws.manager import PunchFeed

    staff = CurrentPrincipal(subject="1", role="admin")
    asha = CurrentPrincipal(subject="asha-id", role="worker")

    assert PunchFeed._wants(staff, {"worker_id": "ravi-id"})
    assert PunchFeed._wants(asha, {"worker_id": "asha-id"})
    assert not PunchFeed._wants(asha, {"worker_id": "ravi-id"})
    assert not PunchFeed._wants(asha, {"accepted": False, "reason": "UNKNOWN_IDENTITY"})
