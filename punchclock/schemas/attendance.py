from __future__ import annotations

import uuid
from datetime import date, datetime

from pydantic import BaseModel


class AttendanceRecordResponse(BaseModel):
    id: uuid.UUID
    worker_id: uuid.UUID
    attendance_date: date
    check_in: datetime | None = None
    check_out: datetime | None = None
    method: str
    needs_reconciliation: bool
    device_id: uuid.UUID | None = None

    class Config:
        from_attributes = True
