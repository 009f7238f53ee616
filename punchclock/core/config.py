from __future__ import annotations

import secrets
from functools import lru_cache
from typing import List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Repair Shop Punch Clock"
    app_env: str = "development"
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"
    log_dir: str = "logs"

    database_url: str = "sqlite:///./data/punchclock.db"

    jwt_secret: str = Field(default_factory=lambda: secrets.token_urlsafe(48))
    jwt_algorithm: str = "HS256"
    access_token_minutes: int = 60

    bootstrap_admin_username: str = "admin"
    bootstrap_admin_password: str = "ChangeMe123!"
    bootstrap_admin_role: str = "admin"

    # Face-api style 128-d descriptors compared by Euclidean distance.
    embedding_cipher_key: str = Field(default_factory=lambda: secrets.token_urlsafe(32))
    embedding_dim: int = 128
    match_threshold: float = 0.4
    match_policy: Literal["first", "best"] = "best"
    gallery_cache_seconds: float = 20.0

    cooldown_seconds: int = 60
    attendance_timezone: str = "UTC"

    # Seed values for the persisted geofence row; admins change it at runtime.
    geofence_enabled: bool = False
    geofence_latitude: float | None = None
    geofence_longitude: float | None = None
    geofence_radius_m: float | None = None

    cors_origins_raw: str = "http://localhost:3000,http://localhost:5173"

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins_raw.split(",") if origin.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
