from __future__ import annotations

from enum import Enum


class PunchClockError(Exception):
    """Base exception for the attendance subsystem."""


class DatabaseError(PunchClockError):
    """Raised when the attendance store cannot be read or written."""


class ConfigurationError(PunchClockError):
    """Raised when a required setting is missing or inconsistent."""


class DeviceFailure(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"


class DeviceUnavailable(PunchClockError):
    """Raised when the camera or RFID reader cannot be acquired."""

    def __init__(self, message: str, kind: DeviceFailure = DeviceFailure.UNAVAILABLE):
        super().__init__(message)
        self.kind = kind


class LocationError(PunchClockError):
    """Base class for geolocation provider failures."""


class LocationDenied(LocationError):
    """The user or OS refused access to the location provider."""


class LocationTimeout(LocationError):
    """No fix arrived before the configured timeout."""


class LocationUnsupported(LocationError):
    """The device has no location provider at all."""


class LocationUnavailable(LocationError):
    """The provider is present but could not produce a position."""


class RejectReason(str, Enum):
    COOLDOWN_ACTIVE = "COOLDOWN_ACTIVE"
    OUT_OF_RANGE = "OUT_OF_RANGE"
    UNKNOWN_IDENTITY = "UNKNOWN_IDENTITY"
    LOCATION_UNAVAILABLE = "LOCATION_UNAVAILABLE"
    GEOFENCE_NOT_CONFIGURED = "GEOFENCE_NOT_CONFIGURED"
