from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from enum import Enum
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from punchclock.core.clock import ensure_utc
from punchclock.db.models import AttendanceRecord

logger = logging.getLogger("punchclock.direction")


class PunchDirection(str, Enum):
    IN = "in"
    OUT = "out"


def punch_count(records: Iterable[AttendanceRecord]) -> int:
    return sum(int(record.check_in is not None) + int(record.check_out is not None) for record in records)


def resolve_direction(records_today: Iterable[AttendanceRecord]) -> PunchDirection:
    # Even number of punches so far: the worker is outside, so this one is an arrival.
    return PunchDirection.IN if punch_count(records_today) % 2 == 0 else PunchDirection.OUT


def _sort_key(record: AttendanceRecord) -> datetime:
    return ensure_utc(record.check_in or record.check_out or record.created_at)


def records_for_day(db: Session, worker_id: uuid.UUID, day: date) -> list[AttendanceRecord]:
    rows = db.scalars(
        select(AttendanceRecord).where(
            AttendanceRecord.worker_id == worker_id,
            AttendanceRecord.attendance_date == day,
        )
    ).all()
    return sorted(rows, key=_sort_key)


def apply_direction(
    db: Session,
    worker_id: uuid.UUID,
    direction: PunchDirection,
    now: datetime,
    day: date,
    method: str,
    records_today: list[AttendanceRecord],
    device_id: uuid.UUID | None = None,
) -> AttendanceRecord:
    if direction is PunchDirection.IN:
        record = AttendanceRecord(
            worker_id=worker_id,
            attendance_date=day,
            check_in=now,
            method=method,
            device_id=device_id,
        )
        db.add(record)
        db.flush()
        return record

    open_record = next(
        (
            record
            for record in reversed(records_today)
            if record.check_in is not None
            and record.check_out is None
            and ensure_utc(record.check_in) < now
        ),
        None,
    )
    if open_record is not None:
        open_record.check_out = now
        db.flush()
        return open_record

    # Odd punch count with nothing open: keep the punch and let an admin sort it out.
    record = AttendanceRecord(
        worker_id=worker_id,
        attendance_date=day,
        check_out=now,
        method=method,
        device_id=device_id,
        needs_reconciliation=True,
    )
    db.add(record)
    db.flush()
    logger.warning("Check-out for worker %s had no open record on %s; flagged for reconciliation", worker_id, day)
    return record
