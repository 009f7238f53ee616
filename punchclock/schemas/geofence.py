from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, model_validator


class GeofenceSettings(BaseModel):
    enabled: bool
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    radius_m: float | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _complete_when_enabled(self) -> "GeofenceSettings":
        if self.enabled and None in (self.latitude, self.longitude, self.radius_m):
            raise ValueError("latitude, longitude and radius_m are required when geofencing is enabled.")
        return self


class GeofenceSettingsResponse(BaseModel):
    enabled: bool
    latitude: float | None
    longitude: float | None
    radius_m: float | None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True
