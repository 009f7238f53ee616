import threading
from datetime import datetime, timedelta, timezone

from punchclock.db.models import PunchCooldown, Worker
from punchclock.db.session import SessionLocal
from punchclock.services.cooldown import Accepted, CooldownAuthority, Rejected

T0 = datetime(2024, 3, 4, 9, 0, 0, tzinfo=timezone.utc)


def _worker(db, name="Ravi"):
    worker = Worker(name=name)
    db.add(worker)
    db.commit()
    return worker.id


def test_first_punch_is_accepted_and_recorded(db):
    worker_id = _worker(db)
    authority = CooldownAuthority(cooldown_seconds=60)

    outcome = authority.try_accept_punch(db, worker_id, T0, lambda: "record")

    assert outcome == Accepted("record")
    row = db.get(PunchCooldown, worker_id)
    assert row is not None


def test_punch_inside_window_is_rejected_without_mutation(db):
    worker_id = _worker(db)
    authority = CooldownAuthority(cooldown_seconds=60)
    calls = []

    authority.try_accept_punch(db, worker_id, T0, lambda: calls.append("first"))
    outcome = authority.try_accept_punch(db, worker_id, T0 + timedelta(seconds=30), lambda: calls.append("second"))

    assert outcome == Rejected(30)
    assert calls == ["first"]


def test_remaining_seconds_round_up():
    authority = CooldownAuthority(cooldown_seconds=60)
    assert authority._remaining(T0, T0 + timedelta(seconds=59, milliseconds=200)) == 1
    assert authority._remaining(T0, T0 + timedelta(milliseconds=1)) == 60
    assert authority._remaining(T0, T0 + timedelta(seconds=60)) == 0


def test_punch_at_exact_window_boundary_is_accepted(db):
    worker_id = _worker(db)
    authority = CooldownAuthority(cooldown_seconds=60)

    authority.try_accept_punch(db, worker_id, T0, lambda: None)
    outcome = authority.try_accept_punch(db, worker_id, T0 + timedelta(seconds=60), lambda: "again")

    assert outcome == Accepted("again")
    assert authority.remaining_seconds(db, worker_id, T0 + timedelta(seconds=61)) == 59


def test_failed_mutation_does_not_start_cooldown(db):
    worker_id = _worker(db)
    authority = CooldownAuthority(cooldown_seconds=60)

    def _boom():
        raise RuntimeError("disk full")

    try:
        authority.try_accept_punch(db, worker_id, T0, _boom)
    except RuntimeError:
        pass
    assert authority.remaining_seconds(db, worker_id, T0) == 0
    assert isinstance(authority.try_accept_punch(db, worker_id, T0, lambda: None), Accepted)


def test_workers_have_independent_cooldowns(db):
    first = _worker(db, "Ravi")
    second = _worker(db, "Meena")
    authority = CooldownAuthority(cooldown_seconds=60)

    assert isinstance(authority.try_accept_punch(db, first, T0, lambda: None), Accepted)
    assert isinstance(authority.try_accept_punch(db, second, T0, lambda: None), Accepted)


def test_concurrent_punches_for_same_worker_accept_exactly_one(db):
    worker_id = _worker(db)
    authority = CooldownAuthority(cooldown_seconds=60)
    attempts = 6
    barrier = threading.Barrier(attempts)
    outcomes = []
    committed = []
    guard = threading.Lock()

    def _attempt(offset):
        session = SessionLocal()
        try:
            barrier.wait()
            outcome = authority.try_accept_punch(
                session,
                worker_id,
                T0 + timedelta(milliseconds=offset),
                lambda: committed.append(offset),
            )
            with guard:
                outcomes.append(outcome)
        finally:
            session.close()

    threads = [threading.Thread(target=_attempt, args=(i,)) for i in range(attempts)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    accepted = [o for o in outcomes if isinstance(o, Accepted)]
    rejected = [o for o in outcomes if isinstance(o, Rejected)]
    assert len(outcomes) == attempts
    assert len(accepted) == 1
    assert len(rejected) == attempts - 1
    assert len(committed) == 1
