from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from punchclock.api.deps import db_session, get_current_principal, require_roles
from punchclock.db.models import AttendanceRecord
from punchclock.schemas.attendance import AttendanceRecordResponse
from punchclock.schemas.auth import STAFF_ROLES, CurrentPrincipal

router = APIRouter(prefix="/attendance", tags=["attendance"])


def _punch_order():
    return desc(func.coalesce(AttendanceRecord.check_in, AttendanceRecord.check_out))


@router.get("", response_model=list[AttendanceRecordResponse])
def list_attendance(
    day: date | None = None,
    worker_id: uuid.UUID | None = None,
    limit: int = 200,
    principal: CurrentPrincipal = Depends(get_current_principal),
    db: Session = db_session(),
):
    if principal.role not in STAFF_ROLES:
        # Workers only ever see their own history.
        if not principal.is_worker:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role.")
        worker_id = uuid.UUID(principal.subject)

    query = select(AttendanceRecord)
    if day is not None:
        query = query.where(AttendanceRecord.attendance_date == day)
    if worker_id is not None:
        query = query.where(AttendanceRecord.worker_id == worker_id)
    rows = db.scalars(query.order_by(_punch_order()).limit(max(1, min(1000, limit)))).all()
    return rows


@router.get("/reconciliation", response_model=list[AttendanceRecordResponse])
def list_reconciliation(
    limit: int = 200,
    _principal: CurrentPrincipal = Depends(require_roles("admin", "manager")),
    db: Session = db_session(),
):
    rows = db.scalars(
        select(AttendanceRecord)
        .where(AttendanceRecord.needs_reconciliation.is_(True))
        .order_by(_punch_order())
        .limit(max(1, min(1000, limit)))
    ).all()
    return rows
