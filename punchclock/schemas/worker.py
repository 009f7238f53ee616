from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from .punch import normalize_rfid


class WorkerCreate(BaseModel):
    name: str = Field(min_length=2, max_length=120)
    email: str | None = Field(default=None, max_length=255)
    role: str = "Technician"
    rfid: str | None = None
    password: str | None = Field(default=None, min_length=6)
    embeddings: list[list[float]] = Field(default_factory=list)

    @field_validator("rfid")
    @classmethod
    def _check_rfid(cls, value: str | None) -> str | None:
        return normalize_rfid(value) if value else None


class WorkerUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=120)
    email: str | None = Field(default=None, max_length=255)
    role: str | None = None
    rfid: str | None = None
    password: str | None = Field(default=None, min_length=6)
    is_active: bool | None = None

    @field_validator("rfid")
    @classmethod
    def _check_rfid(cls, value: str | None) -> str | None:
        return normalize_rfid(value) if value else None


class EmbeddingEnrollment(BaseModel):
    embeddings: list[list[float]] = Field(min_length=1)


class WorkerResponse(BaseModel):
    id: uuid.UUID
    name: str
    email: str | None
    role: str
    rfid: str | None
    is_active: bool
    embedding_count: int = 0
    created_at: datetime

    class Config:
        from_attributes = True
