from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache

from sqlalchemy import select
from sqlalchemy.orm import Session

from punchclock.core.clock import local_date
from punchclock.core.config import Settings, get_settings
from punchclock.core.errors import RejectReason
from punchclock.db.models import AttendanceRecord, PunchEvent, Worker
from punchclock.schemas.auth import CurrentPrincipal
from punchclock.schemas.punch import CaptureSource, PunchRequest, PunchResponse
from punchclock.services import geofence
from punchclock.services.cooldown import CooldownAuthority, Rejected, get_cooldown_authority
from punchclock.services.direction import PunchDirection, apply_direction, records_for_day, resolve_direction

logger = logging.getLogger("punchclock.punches")


class PunchForbidden(Exception):
    """A worker session tried to punch on behalf of someone else."""


@dataclass(frozen=True)
class PunchContext:
    principal: CurrentPrincipal
    source: CaptureSource
    device_id: uuid.UUID | None = None

    @classmethod
    def for_principal(cls, principal: CurrentPrincipal, device_id: uuid.UUID | None = None) -> "PunchContext":
        # Worker tokens come from the self-service portal on the worker's own phone.
        source = CaptureSource.PERSONAL if principal.is_worker else CaptureSource.KIOSK
        return cls(principal=principal, source=source, device_id=device_id)


class PunchService:
    def __init__(self, settings: Settings, cooldown: CooldownAuthority) -> None:
        self.settings = settings
        self.cooldown = cooldown

    def _resolve_worker(self, db: Session, request: PunchRequest) -> Worker | None:
        if request.rfid_code is not None:
            worker = db.scalar(select(Worker).where(Worker.rfid == request.rfid_code))
        else:
            worker = db.get(Worker, request.worker_id)
        if worker is None or not worker.is_active:
            return None
        return worker

    def _audit(
        self,
        db: Session,
        request: PunchRequest,
        context: PunchContext,
        now: datetime,
        response: PunchResponse,
    ) -> None:
        db.add(
            PunchEvent(
                worker_id=response.worker_id,
                device_id=context.device_id,
                method=request.method.value,
                source=context.source.value,
                accepted=response.accepted,
                reason=response.reason.value if response.reason else None,
                direction=response.direction.value if response.direction else None,
                record_id=response.record_id,
                remaining_seconds=response.remaining_seconds,
                distance_m=response.distance_meters,
                timestamp=now,
            )
        )
        db.commit()

    def _reject(
        self,
        db: Session,
        request: PunchRequest,
        context: PunchContext,
        now: datetime,
        reason: RejectReason,
        worker: Worker | None = None,
        **extra,
    ) -> PunchResponse:
        response = PunchResponse(
            accepted=False,
            reason=reason,
            worker_id=worker.id if worker else None,
            worker_name=worker.name if worker else None,
            **extra,
        )
        logger.info(
            "Punch rejected: reason=%s worker=%s method=%s source=%s",
            reason.value,
            worker.id if worker else request.rfid_code or request.worker_id,
            request.method.value,
            context.source.value,
        )
        self._audit(db, request, context, now, response)
        return response

    def submit(self, db: Session, request: PunchRequest, context: PunchContext, now: datetime) -> PunchResponse:
        worker = self._resolve_worker(db, request)
        if worker is None:
            return self._reject(db, request, context, now, RejectReason.UNKNOWN_IDENTITY)

        if context.principal.is_worker and context.principal.subject != str(worker.id):
            raise PunchForbidden(f"Worker session {context.principal.subject} cannot punch for {worker.id}.")

        if context.source is CaptureSource.PERSONAL:
            if request.location is None:
                return self._reject(db, request, context, now, RejectReason.LOCATION_UNAVAILABLE, worker)
            config = geofence.load_config(db, self.settings)
            point = geofence.GeoPoint(request.location.latitude, request.location.longitude)
            decision = geofence.validate(point, config)
            if decision.status is geofence.GeofenceStatus.NOT_CONFIGURED:
                return self._reject(db, request, context, now, RejectReason.GEOFENCE_NOT_CONFIGURED, worker)
            if decision.status is geofence.GeofenceStatus.DENIED:
                return self._reject(
                    db,
                    request,
                    context,
                    now,
                    RejectReason.OUT_OF_RANGE,
                    worker,
                    distance_meters=round(decision.distance_m or 0.0, 2),
                )

        day = local_date(now, self.settings.attendance_timezone)

        def _commit() -> tuple[PunchDirection, AttendanceRecord]:
            records = records_for_day(db, worker.id, day)
            direction = resolve_direction(records)
            record = apply_direction(
                db,
                worker_id=worker.id,
                direction=direction,
                now=now,
                day=day,
                method=request.method.value,
                records_today=records,
                device_id=context.device_id,
            )
            return direction, record

        outcome = self.cooldown.try_accept_punch(db, worker.id, now, _commit)
        if isinstance(outcome, Rejected):
            return self._reject(
                db,
                request,
                context,
                now,
                RejectReason.COOLDOWN_ACTIVE,
                worker,
                remaining_seconds=outcome.remaining_seconds,
            )

        direction, record = outcome.result
        response = PunchResponse(
            accepted=True,
            direction=direction,
            record_id=record.id,
            worker_id=worker.id,
            worker_name=worker.name,
        )
        logger.info(
            "Punch accepted: worker=%s direction=%s method=%s source=%s record=%s",
            worker.id,
            direction.value,
            request.method.value,
            context.source.value,
            record.id,
        )
        self._audit(db, request, context, now, response)
        return response


@lru_cache(maxsize=1)
def get_punch_service() -> PunchService:
    return PunchService(settings=get_settings(), cooldown=get_cooldown_authority())
