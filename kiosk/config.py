from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _float_env(name: str, default: float | None) -> float | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


@dataclass
class KioskConfig:
    base_url: str = os.getenv("KIOSK_BASE_URL", "http://127.0.0.1:8000")
    api_prefix: str = os.getenv("KIOSK_API_PREFIX", "/api/v1")
    device_name: str = os.getenv("KIOSK_DEVICE_NAME", "frontdesk-kiosk-01")
    # "kiosk" for the admin console, "personal" for a worker's own device.
    capture_source: str = os.getenv("KIOSK_CAPTURE_SOURCE", "kiosk")
    login_username: str = os.getenv("KIOSK_USERNAME", "admin")
    login_password: str = os.getenv("KIOSK_PASSWORD", "ChangeMe123!")
    camera_index: int = int(os.getenv("KIOSK_CAMERA_INDEX", "0"))
    rfid_device: str = os.getenv("KIOSK_RFID_DEVICE", "")
    tick_seconds: float = float(os.getenv("KIOSK_TICK_SECONDS", "1.0"))
    stability_window_ms: int = int(os.getenv("KIOSK_STABILITY_WINDOW_MS", "2000"))
    stability_threshold: int = int(os.getenv("KIOSK_STABILITY_THRESHOLD", "3"))
    cooldown_seconds: int = int(os.getenv("KIOSK_COOLDOWN_SECONDS", "60"))
    camera_ready_timeout_seconds: float = float(os.getenv("KIOSK_CAMERA_READY_TIMEOUT_SECONDS", "3.0"))
    location_timeout_seconds: float = float(os.getenv("KIOSK_LOCATION_TIMEOUT_SECONDS", "15.0"))
    request_timeout_seconds: float = float(os.getenv("KIOSK_REQUEST_TIMEOUT_SECONDS", "8.0"))
    fixed_latitude: float | None = _float_env("KIOSK_LATITUDE", None)
    fixed_longitude: float | None = _float_env("KIOSK_LONGITUDE", None)
    log_level: str = os.getenv("KIOSK_LOG_LEVEL", "INFO")
    log_dir: str = os.getenv("KIOSK_LOG_DIR", str(Path.cwd() / "logs"))

    @property
    def is_personal(self) -> bool:
        return self.capture_source.strip().lower() == "personal"
