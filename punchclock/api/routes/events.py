from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from punchclock.api.deps import db_session, require_roles
from punchclock.db.models import PunchEvent
from punchclock.schemas.auth import CurrentPrincipal
from punchclock.schemas.punch import PunchEventResponse

router = APIRouter(prefix="/events", tags=["events"])


@router.get("/punches", response_model=list[PunchEventResponse])
def list_punch_events(
    limit: int = 200,
    accepted: bool | None = None,
    _principal: CurrentPrincipal = Depends(require_roles("admin", "manager", "operator")),
    db: Session = db_session(),
):
    query = select(PunchEvent)
    if accepted is not None:
        query = query.where(PunchEvent.accepted.is_(accepted))
    rows = db.scalars(query.order_by(desc(PunchEvent.timestamp)).limit(max(1, min(1000, limit)))).all()
    return rows
