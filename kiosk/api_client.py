from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Sequence

import requests

from .config import KioskConfig

logger = logging.getLogger("kiosk.api")


@dataclass(frozen=True)
class IdentifyResult:
    worker_id: str
    worker_name: str
    distance: float


@dataclass(frozen=True)
class PunchOutcome:
    accepted: bool
    direction: str | None = None
    record_id: str | None = None
    reason: str | None = None
    remaining_seconds: int | None = None
    distance_meters: float | None = None
    worker_id: str | None = None
    worker_name: str | None = None

    @classmethod
    def from_json(cls, body: dict[str, Any]) -> "PunchOutcome":
        remaining = body.get("remaining_seconds")
        distance = body.get("distance_meters")
        return cls(
            accepted=bool(body.get("accepted")),
            direction=body.get("direction"),
            record_id=body.get("record_id"),
            reason=body.get("reason"),
            remaining_seconds=int(remaining) if remaining is not None else None,
            distance_meters=float(distance) if distance is not None else None,
            worker_id=body.get("worker_id"),
            worker_name=body.get("worker_name"),
        )


@dataclass(frozen=True)
class CooldownStatus:
    active: bool
    remaining_seconds: int
    cooldown_seconds: int


class PunchApiClient:
    """HTTP client for the punch clock server.

    Kiosks log in with staff credentials and register themselves with a
    heartbeat; personal devices log in as the worker and skip registration.
    """

    def __init__(self, cfg: KioskConfig, session: requests.Session | None = None):
        self.cfg = cfg
        self.session = session or requests.Session()
        self._lock = threading.RLock()
        self._token: str | None = None
        self._device_id: str | None = None

    @property
    def device_id(self) -> str | None:
        with self._lock:
            return self._device_id

    def _url(self, path: str) -> str:
        return f"{self.cfg.base_url.rstrip('/')}{self.cfg.api_prefix}{path}"

    def login(self, force: bool = False) -> str:
        with self._lock:
            if self._token and not force:
                return self._token

        if self.cfg.is_personal:
            path = "/auth/worker-token"
            payload = {"email": self.cfg.login_username, "password": self.cfg.login_password}
        else:
            path = "/auth/token"
            payload = {"username": self.cfg.login_username, "password": self.cfg.login_password}

        resp = self.session.post(self._url(path), json=payload, timeout=self.cfg.request_timeout_seconds)
        resp.raise_for_status()
        token = str(resp.json()["access_token"])
        with self._lock:
            self._token = token
        return token

    def _request(self, method: str, path: str, retry_auth: bool = True, **kwargs) -> requests.Response:
        token = self.login()
        headers = {"Authorization": f"Bearer {token}"}
        resp = self.session.request(
            method,
            self._url(path),
            headers=headers,
            timeout=self.cfg.request_timeout_seconds,
            **kwargs,
        )
        if resp.status_code == 401 and retry_auth:
            self.login(force=True)
            return self._request(method, path, retry_auth=False, **kwargs)
        return resp

    def heartbeat(self) -> str | None:
        if self.cfg.is_personal:
            return None
        payload = {
            "device_id": self.device_id,
            "device_name": self.cfg.device_name,
            "device_type": "kiosk",
            "status": "online",
            "metadata": {"client": "kiosk", "version": "1.0.0"},
        }
        resp = self._request("POST", "/devices/heartbeat", json=payload)
        resp.raise_for_status()
        device_id = str(resp.json()["id"])
        with self._lock:
            self._device_id = device_id
        return device_id

    def identify(self, embedding: Sequence[float]) -> IdentifyResult | None:
        payload = {"embedding": [float(v) for v in embedding], "device_id": self.device_id}
        resp = self._request("POST", "/recognitions/identify", json=payload)
        resp.raise_for_status()
        body = resp.json()
        if not body.get("matched"):
            return None
        return IdentifyResult(
            worker_id=str(body["worker_id"]),
            worker_name=str(body.get("worker_name") or ""),
            distance=float(body.get("distance") or 0.0),
        )

    def submit_punch(
        self,
        method: str,
        worker_id: str | None = None,
        rfid_code: str | None = None,
        location: tuple[float, float] | None = None,
    ) -> PunchOutcome:
        payload: dict[str, Any] = {"method": method, "device_id": self.device_id}
        if worker_id is not None:
            payload["worker_id"] = worker_id
        if rfid_code is not None:
            payload["rfid_code"] = rfid_code
        if location is not None:
            payload["location"] = {"latitude": location[0], "longitude": location[1]}

        resp = self._request("POST", "/punches", json=payload)
        resp.raise_for_status()
        return PunchOutcome.from_json(resp.json())

    def cooldown_status(self, worker_id: str) -> CooldownStatus:
        resp = self._request("GET", f"/punches/cooldown/{worker_id}")
        resp.raise_for_status()
        body = resp.json()
        return CooldownStatus(
            active=bool(body.get("active")),
            remaining_seconds=int(body["remaining_seconds"]),
            cooldown_seconds=int(body["cooldown_seconds"]),
        )
