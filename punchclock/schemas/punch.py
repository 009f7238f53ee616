from __future__ import annotations

import re
import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

from punchclock.core.errors import RejectReason
from punchclock.services.direction import PunchDirection

RFID_PATTERN = re.compile(r"^[A-Z]{2}[0-9]{4}$")


def normalize_rfid(code: str) -> str:
    # Operators type codes by hand at the console; accept "ab1234 " as AB1234.
    value = code.strip().upper()
    if not RFID_PATTERN.fullmatch(value):
        raise ValueError("RFID code must be two letters followed by four digits.")
    return value


class CaptureMethod(str, Enum):
    FACE = "face"
    RFID = "rfid"


class CaptureSource(str, Enum):
    KIOSK = "kiosk"
    PERSONAL = "personal"


class LocationPoint(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy_m: float | None = Field(default=None, ge=0)


class PunchRequest(BaseModel):
    worker_id: uuid.UUID | None = None
    rfid_code: str | None = None
    method: CaptureMethod
    location: LocationPoint | None = None
    device_id: uuid.UUID | None = None

    @field_validator("rfid_code")
    @classmethod
    def _check_rfid(cls, value: str | None) -> str | None:
        return normalize_rfid(value) if value is not None else None

    @model_validator(mode="after")
    def _one_identity(self) -> "PunchRequest":
        if (self.worker_id is None) == (self.rfid_code is None):
            raise ValueError("Provide exactly one of worker_id or rfid_code.")
        return self


class PunchResponse(BaseModel):
    accepted: bool
    direction: PunchDirection | None = None
    record_id: uuid.UUID | None = None
    reason: RejectReason | None = None
    remaining_seconds: int | None = None
    distance_meters: float | None = None
    worker_id: uuid.UUID | None = None
    worker_name: str | None = None


class CooldownStatusResponse(BaseModel):
    worker_id: uuid.UUID
    active: bool
    remaining_seconds: int
    cooldown_seconds: int


class PunchEventResponse(BaseModel):
    id: uuid.UUID
    worker_id: uuid.UUID | None
    device_id: uuid.UUID | None
    method: str
    source: str
    accepted: bool
    reason: str | None
    direction: str | None
    record_id: uuid.UUID | None
    remaining_seconds: int | None
    distance_m: float | None
    timestamp: datetime

    class Config:
        from_attributes = True
