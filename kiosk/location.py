from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Protocol

from punchclock.core.errors import LocationDenied, LocationError, LocationTimeout, LocationUnavailable, LocationUnsupported

logger = logging.getLogger("kiosk.location")


@dataclass(frozen=True)
class GeoFix:
    latitude: float
    longitude: float


class LocationProvider(Protocol):
    def current_position(self) -> GeoFix:
        """Return a fix or raise a ``LocationError`` subclass."""


class FixedLocationProvider:
    """Position configured by hand for devices without a GPS receiver."""

    def __init__(self, latitude: float | None, longitude: float | None) -> None:
        self.latitude = latitude
        self.longitude = longitude

    def current_position(self) -> GeoFix:
        if self.latitude is None or self.longitude is None:
            raise LocationUnsupported("No location provider is configured on this device.")
        return GeoFix(self.latitude, self.longitude)


def resolve_location(provider: LocationProvider, timeout_seconds: float) -> GeoFix:
    """Ask ``provider`` for one fix, giving up after ``timeout_seconds``."""
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="location")
    future = executor.submit(provider.current_position)
    try:
        return future.result(timeout=timeout_seconds)
    except FutureTimeout as exc:
        future.cancel()
        raise LocationTimeout(f"No location fix within {timeout_seconds:.0f}s.") from exc
    except LocationError:
        raise
    except PermissionError as exc:
        raise LocationDenied(f"Location access was refused: {exc}") from exc
    except OSError as exc:
        raise LocationUnavailable(f"Location provider failed: {exc}") from exc
    finally:
        executor.shutdown(wait=False)
