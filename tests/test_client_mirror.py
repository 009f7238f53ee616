from conftest import API

from kiosk.api_client import PunchApiClient, PunchOutcome
from kiosk.config import KioskConfig
from kiosk.mirror import ClientMirror


class FakeTime:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_accepted_punch_starts_full_countdown():
    now = FakeTime()
    mirror = ClientMirror(cooldown_seconds=60, clock=now)

    mirror.record_response("w1", PunchOutcome(accepted=True, direction="in"))

    assert mirror.remaining_seconds("w1") == 60
    now.now += 59.5
    assert mirror.is_cooling_down("w1")
    now.now += 0.5
    assert not mirror.is_cooling_down("w1")
    assert mirror.countdown() is None


def test_cooldown_rejection_uses_server_remaining():
    now = FakeTime()
    mirror = ClientMirror(cooldown_seconds=60, clock=now)

    countdown = mirror.record_response(
        "w1", PunchOutcome(accepted=False, reason="COOLDOWN_ACTIVE", remaining_seconds=12)
    )

    assert countdown.worker_id == "w1"
    assert mirror.remaining_seconds("w1") == 12


def test_other_rejections_drop_optimistic_mark():
    mirror = ClientMirror(cooldown_seconds=60, clock=FakeTime())
    mirror.mark_optimistic("w1")
    assert mirror.is_cooling_down("w1")

    mirror.record_response("w1", PunchOutcome(accepted=False, reason="OUT_OF_RANGE", distance_meters=250.0))

    assert not mirror.is_cooling_down("w1")


def test_listeners_receive_countdown_changes():
    mirror = ClientMirror(cooldown_seconds=60, clock=FakeTime())
    seen = []
    unsubscribe = mirror.subscribe(seen.append)

    mirror.mark_optimistic("w1")
    mirror.discard("w1")
    unsubscribe()
    mirror.mark_optimistic("w2")

    assert [c.worker_id if c else None for c in seen] == ["w1", None]


def test_mirror_tracks_several_workers():
    now = FakeTime()
    mirror = ClientMirror(cooldown_seconds=60, clock=now)
    mirror.mark_optimistic("w1")
    now.now += 30
    mirror.mark_optimistic("w2")

    assert mirror.workers_in_cooldown() == {"w1", "w2"}
    now.now += 31
    assert mirror.workers_in_cooldown() == {"w2"}
    assert mirror.countdown().worker_id == "w2"


def test_server_still_blocks_when_mirror_is_cleared(client, clock, make_worker):
    worker = make_worker("Asha", rfid="AB1234")
    cfg = KioskConfig(base_url="http://testserver", api_prefix=API, capture_source="kiosk")
    api = PunchApiClient(cfg, session=client)
    api.heartbeat()
    now = FakeTime()
    mirror = ClientMirror(cooldown_seconds=60, clock=now)

    first = api.submit_punch("rfid", rfid_code="AB1234")
    assert first.accepted
    mirror.record_response(first.worker_id, first)

    mirror.clear()
    assert not mirror.is_cooling_down(worker["id"])

    clock.advance(10)
    now.now += 10
    second = api.submit_punch("rfid", rfid_code="AB1234")
    assert second.accepted is False
    assert second.reason == "COOLDOWN_ACTIVE"
    assert second.remaining_seconds == 50

    mirror.record_response(second.worker_id, second)
    assert mirror.remaining_seconds(worker["id"]) == 50
    status = api.cooldown_status(worker["id"])
    assert status.remaining_seconds == 50
    assert status.cooldown_seconds == 60
