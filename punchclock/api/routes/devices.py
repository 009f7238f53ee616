from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from punchclock.api.deps import Clock, db_session, get_clock, require_roles
from punchclock.core.clock import ensure_utc
from punchclock.db.models import Device
from punchclock.schemas.auth import CurrentPrincipal
from punchclock.schemas.device import DeviceHeartbeat, DeviceResponse

router = APIRouter(prefix="/devices", tags=["devices"])
logger = logging.getLogger("punchclock.devices")

# Kiosks heartbeat on start-up and before each punch; silence longer than this reads as offline.
OFFLINE_AFTER = timedelta(minutes=2)


def resolve_device_or_404(db: Session, device_id: uuid.UUID | None, now: datetime) -> uuid.UUID | None:
    """Check a punch's device id and mark the kiosk as seen."""
    if device_id is None:
        return None
    row = db.get(Device, device_id)
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown device '{device_id}'. Send /devices/heartbeat first.",
        )
    row.last_seen_at = now
    row.status = "online"
    return row.id


@router.post("/heartbeat", response_model=DeviceResponse)
def heartbeat(
    payload: DeviceHeartbeat,
    _principal: CurrentPrincipal = Depends(require_roles("admin", "manager", "operator", "device")),
    clock: Clock = Depends(get_clock),
    db: Session = db_session(),
):
    now = clock()
    row = db.get(Device, payload.device_id) if payload.device_id is not None else None
    if row is None and payload.device_id is None:
        # A kiosk that lost its stored id re-attaches to its previous row by name.
        row = db.scalar(select(Device).where(Device.device_name == payload.device_name))

    if row is None:
        row = Device(id=payload.device_id or uuid.uuid4(), device_name=payload.device_name)
        db.add(row)
        logger.info("Registered device '%s'", payload.device_name)

    row.device_name = payload.device_name
    row.device_type = payload.device_type
    row.status = payload.status
    row.metadata_json = {**payload.metadata, "capture_methods": [m.value for m in payload.capture_methods]}
    row.last_seen_at = now
    db.commit()
    db.refresh(row)
    return row


@router.get("", response_model=list[DeviceResponse])
def list_devices(
    _principal: CurrentPrincipal = Depends(require_roles("admin", "manager", "operator")),
    clock: Clock = Depends(get_clock),
    db: Session = db_session(),
):
    now = clock()
    rows = db.scalars(select(Device).order_by(Device.device_name)).all()
    for row in rows:
        if row.status == "online" and now - ensure_utc(row.last_seen_at) > OFFLINE_AFTER:
            row.status = "offline"
    db.commit()
    return rows
