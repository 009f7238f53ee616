from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from .punch import CaptureMethod


class DeviceHeartbeat(BaseModel):
    device_id: uuid.UUID | None = None
    device_name: str = Field(min_length=1, max_length=120)
    device_type: Literal["kiosk", "console"] = "kiosk"
    status: Literal["online", "offline", "maintenance"] = "online"
    capture_methods: list[CaptureMethod] = Field(default_factory=lambda: [CaptureMethod.FACE, CaptureMethod.RFID])
    metadata: dict[str, Any] = Field(default_factory=dict)


class DeviceResponse(BaseModel):
    id: uuid.UUID
    device_name: str
    device_type: str
    status: str
    capture_methods: list[str] = Field(default_factory=list)
    last_seen_at: datetime

    class Config:
        from_attributes = True
