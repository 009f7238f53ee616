from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from punchclock.api.deps import Clock, db_session, get_clock, require_roles
from punchclock.api.routes.devices import resolve_device_or_404
from punchclock.core.security import coerce_embedding
from punchclock.schemas.auth import CurrentPrincipal
from punchclock.schemas.recognition import IdentifyRequest, IdentifyResponse
from punchclock.services.matcher import get_matcher

router = APIRouter(prefix="/recognitions", tags=["recognitions"])
matcher = get_matcher()
logger = logging.getLogger("punchclock.recognitions")


@router.post("/identify", response_model=IdentifyResponse)
def identify(
    payload: IdentifyRequest,
    _principal: CurrentPrincipal = Depends(require_roles("admin", "manager", "operator", "device", "worker")),
    clock: Clock = Depends(get_clock),
    db: Session = db_session(),
):
    try:
        embedding = coerce_embedding(payload.embedding)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    resolve_device_or_404(db, payload.device_id, clock())
    result = matcher.identify(db, embedding)
    db.commit()

    if result is None:
        logger.debug("No gallery match for device %s", payload.device_id)
        return IdentifyResponse(matched=False)
    return IdentifyResponse(
        matched=True,
        worker_id=result.worker_id,
        worker_name=result.worker_name,
        distance=round(result.distance, 4),
    )
