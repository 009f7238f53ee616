from __future__ import annotations

import uuid
from dataclasses import dataclass

from pydantic import BaseModel, Field, model_validator

STAFF_ROLES = ("admin", "manager", "operator")
WORKER_ROLE = "worker"
DEVICE_ROLE = "device"


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=80)
    password: str = Field(min_length=1)


class WorkerLoginRequest(BaseModel):
    worker_id: uuid.UUID | None = None
    email: str | None = None
    password: str = Field(min_length=1)

    @model_validator(mode="after")
    def _one_identity(self) -> "WorkerLoginRequest":
        if self.worker_id is None and not self.email:
            raise ValueError("Provide worker_id or email.")
        return self


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str


@dataclass(frozen=True)
class CurrentPrincipal:
    subject: str
    role: str
    device_id: str | None = None

    @property
    def is_worker(self) -> bool:
        return self.role == WORKER_ROLE
