from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from punchclock.api.deps import Clock, db_session, ensure_self_or_staff, get_clock, require_roles
from punchclock.api.routes.devices import resolve_device_or_404
from punchclock.db.models import Worker
from punchclock.schemas.auth import CurrentPrincipal
from punchclock.schemas.punch import CooldownStatusResponse, PunchRequest, PunchResponse
from punchclock.services.cooldown import get_cooldown_authority
from punchclock.services.punches import PunchContext, PunchForbidden, get_punch_service
from punchclock.ws.manager import punch_feed

router = APIRouter(prefix="/punches", tags=["punches"])

PUNCH_ROLES = ("admin", "manager", "operator", "device", "worker")


@router.post("", response_model=PunchResponse, response_model_exclude_none=True)
async def submit_punch(
    payload: PunchRequest,
    principal: CurrentPrincipal = Depends(require_roles(*PUNCH_ROLES)),
    clock: Clock = Depends(get_clock),
    db: Session = db_session(),
):
    now = clock()
    device_id = resolve_device_or_404(db, payload.device_id, now)
    context = PunchContext.for_principal(principal, device_id=device_id)
    try:
        # The per-worker cooldown lock blocks; keep it off the event loop.
        result = await run_in_threadpool(get_punch_service().submit, db, payload, context, now)
    except PunchForbidden as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    await punch_feed.publish(result.model_dump(mode="json", exclude_none=True))
    return result


@router.get("/cooldown/{worker_id}", response_model=CooldownStatusResponse)
def cooldown_status(
    worker_id: uuid.UUID,
    principal: CurrentPrincipal = Depends(require_roles(*PUNCH_ROLES)),
    clock: Clock = Depends(get_clock),
    db: Session = db_session(),
):
    ensure_self_or_staff(principal, worker_id, allow_devices=True)
    if db.get(Worker, worker_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Worker not found.")

    authority = get_cooldown_authority()
    remaining = authority.remaining_seconds(db, worker_id, clock())
    return CooldownStatusResponse(
        worker_id=worker_id,
        active=remaining > 0,
        remaining_seconds=remaining,
        cooldown_seconds=authority.cooldown_seconds,
    )
