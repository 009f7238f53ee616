import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

_TMP = Path(tempfile.mkdtemp(prefix="punchclock-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP / 'punchclock.db'}"
os.environ["LOG_DIR"] = str(_TMP / "logs")
os.environ["JWT_SECRET"] = "test-secret-not-for-production"
os.environ["EMBEDDING_CIPHER_KEY"] = "test-embedding-key"
os.environ["COOLDOWN_SECONDS"] = "60"
os.environ["GEOFENCE_ENABLED"] = "false"

from fastapi.testclient import TestClient  # noqa: E402

from punchclock.api.deps import get_clock  # noqa: E402
from punchclock.db.base import Base  # noqa: E402
from punchclock.db.session import SessionLocal, engine  # noqa: E402
from punchclock.main import app  # noqa: E402
from punchclock.services.matcher import get_matcher  # noqa: E402

API = "/api/v1"


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, hour: int, minute: int, second: int = 0) -> None:
        self.now = self.now.replace(hour=hour, minute=minute, second=second, microsecond=0)

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture()
def clock():
    return FrozenClock(datetime(2024, 3, 4, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture()
def client(clock):
    Base.metadata.drop_all(bind=engine)
    get_matcher().invalidate()
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    get_matcher().invalidate()


@pytest.fixture()
def db(client):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def admin_headers(client):
    response = client.post(f"{API}/auth/token", json={"username": "admin", "password": "ChangeMe123!"})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture()
def make_worker(client, admin_headers):
    def _make(name="Asha Kumar", **fields):
        payload = {"name": name, **fields}
        response = client.post(f"{API}/workers", json=payload, headers=admin_headers)
        assert response.status_code == 201, response.text
        return response.json()

    return _make


@pytest.fixture()
def worker_headers(client):
    def _login(worker_id, password="secret123"):
        response = client.post(f"{API}/auth/worker-token", json={"worker_id": worker_id, "password": password})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    return _login
