from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from punchclock.api.deps import db_session, get_current_principal, require_roles
from punchclock.core.config import get_settings
from punchclock.schemas.auth import CurrentPrincipal
from punchclock.schemas.geofence import GeofenceSettings, GeofenceSettingsResponse
from punchclock.services import geofence

router = APIRouter(prefix="/settings", tags=["settings"])
logger = logging.getLogger("punchclock.settings")


@router.get("/geofence", response_model=GeofenceSettingsResponse)
def get_geofence(
    _principal: CurrentPrincipal = Depends(get_current_principal),
    db: Session = db_session(),
):
    row = geofence.load_config(db, get_settings())
    db.commit()
    return row


@router.put("/geofence", response_model=GeofenceSettingsResponse)
def update_geofence(
    payload: GeofenceSettings,
    principal: CurrentPrincipal = Depends(require_roles("admin")),
    db: Session = db_session(),
):
    row = geofence.load_config(db, get_settings())
    row.enabled = payload.enabled
    row.latitude = payload.latitude
    row.longitude = payload.longitude
    row.radius_m = payload.radius_m
    db.commit()
    db.refresh(row)
    logger.info(
        "Geofence updated by %s: enabled=%s centre=(%s, %s) radius=%sm",
        principal.subject,
        row.enabled,
        row.latitude,
        row.longitude,
        row.radius_m,
    )
    return row
