from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.orm import Session

from punchclock.core.config import Settings
from punchclock.db.models import GeofenceConfig

logger = logging.getLogger("punchclock.geofence")

EARTH_RADIUS_M = 6_371_000.0


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float


class GeofenceStatus(str, Enum):
    ALLOWED = "allowed"
    DENIED = "denied"
    NOT_CONFIGURED = "not_configured"


@dataclass(frozen=True)
class GeofenceDecision:
    status: GeofenceStatus
    distance_m: float | None = None

    @property
    def allowed(self) -> bool:
        return self.status is GeofenceStatus.ALLOWED


def haversine_distance_m(a: GeoPoint, b: GeoPoint) -> float:
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    d_phi = math.radians(b.latitude - a.latitude)
    d_lambda = math.radians(b.longitude - a.longitude)

    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def validate(point: GeoPoint, config: GeofenceConfig) -> GeofenceDecision:
    """Decide whether a capture at ``point`` may proceed.

    A disabled or half-filled configuration never lets a capture through.
    """
    if (
        not config.enabled
        or config.latitude is None
        or config.longitude is None
        or config.radius_m is None
        or config.radius_m <= 0
    ):
        return GeofenceDecision(GeofenceStatus.NOT_CONFIGURED)

    distance = haversine_distance_m(GeoPoint(config.latitude, config.longitude), point)
    if distance <= config.radius_m:
        return GeofenceDecision(GeofenceStatus.ALLOWED, distance)
    logger.info("Capture %.1fm from site centre exceeds radius %.1fm", distance, config.radius_m)
    return GeofenceDecision(GeofenceStatus.DENIED, distance)


def load_config(db: Session, settings: Settings) -> GeofenceConfig:
    row = db.get(GeofenceConfig, 1)
    if row is None:
        row = GeofenceConfig(
            id=1,
            enabled=settings.geofence_enabled,
            latitude=settings.geofence_latitude,
            longitude=settings.geofence_longitude,
            radius_m=settings.geofence_radius_m,
        )
        db.add(row)
        db.flush()
    return row
