from __future__ import annotations

import uuid

from pydantic import BaseModel, Field


class IdentifyRequest(BaseModel):
    embedding: list[float] = Field(min_length=1)
    device_id: uuid.UUID | None = None


class IdentifyResponse(BaseModel):
    matched: bool
    worker_id: uuid.UUID | None = None
    worker_name: str | None = None
    distance: float | None = None
