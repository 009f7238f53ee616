from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

import requests

from punchclock.core.errors import DeviceUnavailable, LocationError, RejectReason
from punchclock.schemas.punch import normalize_rfid

from .api_client import PunchApiClient, PunchOutcome
from .capture import CameraStream, FaceEmbedder, RfidReader
from .config import KioskConfig
from .location import FixedLocationProvider, LocationProvider, resolve_location
from .mirror import ClientMirror
from .stability import Confirmed, StabilityFilter

logger = logging.getLogger("kiosk.session")


class SessionState(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    READY = "ready"
    OBSERVING = "observing"
    CONFIRMING = "confirming"
    COMMITTING = "committing"
    COOLDOWN = "cooldown"
    ERROR = "error"


class FeedbackKind(str, Enum):
    NOT_READY = "not_ready"
    NO_FRAME = "no_frame"
    NO_FACE = "no_face"
    OBSERVING = "observing"
    ACCEPTED = "accepted"
    COOLDOWN_ACTIVE = "cooldown_active"
    OUT_OF_RANGE = "out_of_range"
    UNKNOWN_IDENTITY = "unknown_identity"
    LOCATION_UNAVAILABLE = "location_unavailable"
    GEOFENCE_NOT_CONFIGURED = "geofence_not_configured"
    SERVER_ERROR = "server_error"
    DEVICE_ERROR = "device_error"


_REJECTION_KINDS = {
    RejectReason.COOLDOWN_ACTIVE.value: FeedbackKind.COOLDOWN_ACTIVE,
    RejectReason.OUT_OF_RANGE.value: FeedbackKind.OUT_OF_RANGE,
    RejectReason.UNKNOWN_IDENTITY.value: FeedbackKind.UNKNOWN_IDENTITY,
    RejectReason.LOCATION_UNAVAILABLE.value: FeedbackKind.LOCATION_UNAVAILABLE,
    RejectReason.GEOFENCE_NOT_CONFIGURED.value: FeedbackKind.GEOFENCE_NOT_CONFIGURED,
}


@dataclass(frozen=True)
class Feedback:
    kind: FeedbackKind
    message: str
    worker_id: str | None = None
    worker_name: str | None = None
    direction: str | None = None
    remaining_seconds: int | None = None
    distance_meters: float | None = None
    count: int = 0


class CaptureSession:
    """One face or RFID capture session on a kiosk or a worker's phone.

    The session owns its capture device and its polling thread and releases
    both on every exit path. Each tick returns a ``Feedback`` so the UI always
    has something to show, and every tick that does not advance the state
    machine logs why.
    """

    def __init__(
        self,
        cfg: KioskConfig,
        api: PunchApiClient,
        mirror: ClientMirror,
        method: str = "face",
        camera: CameraStream | None = None,
        embedder: FaceEmbedder | None = None,
        rfid: RfidReader | None = None,
        location_provider: LocationProvider | None = None,
        monotonic: Callable[[], float] = time.monotonic,
        on_feedback: Callable[[Feedback], None] | None = None,
    ) -> None:
        if method not in ("face", "rfid"):
            raise ValueError(f"Unsupported capture method: {method}")
        self.cfg = cfg
        self.api = api
        self.mirror = mirror
        self.method = method
        self.camera = camera
        self.embedder = embedder
        self.rfid = rfid
        self.location_provider = location_provider
        self.stability = StabilityFilter(cfg.stability_window_ms, cfg.stability_threshold)
        self.state = SessionState.IDLE
        self.error: DeviceUnavailable | None = None
        self.last_feedback: Feedback | None = None
        self._monotonic = monotonic
        self._on_feedback = on_feedback
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._tick_lock = threading.Lock()
        self._commit_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._rfid_workers: dict[str, str] = {}
        self._cooldown_worker: str | None = None

    def __enter__(self) -> "CaptureSession":
        self.start(background=False)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _emit(self, feedback: Feedback) -> Feedback:
        self.last_feedback = feedback
        if self._on_feedback is not None:
            self._on_feedback(feedback)
        return feedback

    def _transition(self, state: SessionState) -> bool:
        """Move to ``state`` unless the session has been closed."""
        with self._state_lock:
            if self._stop.is_set():
                return False
            self.state = state
            return True

    def _abandoned(self) -> Feedback:
        logger.debug("Tick abandoned: session closing")
        return Feedback(FeedbackKind.NOT_READY, "Session is closing.")

    def _fail(self, exc: DeviceUnavailable) -> Feedback:
        if self._transition(SessionState.ERROR):
            self.error = exc
        logger.error("Capture session failed (%s): %s", exc.kind.value, exc)
        return self._emit(Feedback(FeedbackKind.DEVICE_ERROR, str(exc)))

    def start(self, background: bool = True) -> Feedback:
        if self.state not in (SessionState.IDLE,):
            logger.warning("start() ignored in state %s; close the session first", self.state.value)
            return self._emit(Feedback(FeedbackKind.NOT_READY, f"Session is {self.state.value}."))
        if self._tick_lock.locked():
            logger.warning("start() refused: a tick from the previous run is still finishing")
            return self._emit(Feedback(FeedbackKind.NOT_READY, "Previous capture is still closing."))

        self.state = SessionState.INITIALIZING
        self.error = None
        self._stop = threading.Event()
        try:
            if self.method == "face":
                if self.camera is None:
                    self.camera = CameraStream(self.cfg.camera_index, self.cfg.camera_ready_timeout_seconds)
                self.camera.open()
                if self.embedder is None:
                    self.embedder = FaceEmbedder()
            else:
                if self.rfid is None:
                    self.rfid = RfidReader(self.cfg.rfid_device)
                self.rfid.open()
        except DeviceUnavailable as exc:
            self._release_devices()
            return self._fail(exc)

        self.state = SessionState.READY
        logger.info("Capture session ready: method=%s source=%s", self.method, self.cfg.capture_source)
        self.state = SessionState.OBSERVING

        if background and self.method == "face":
            self._thread = threading.Thread(target=self._run, args=(self._stop,), name="capture-loop", daemon=True)
            self._thread.start()
        return self._emit(Feedback(FeedbackKind.OBSERVING, "Ready."))

    def _run(self, stop: threading.Event) -> None:
        while not stop.wait(self.cfg.tick_seconds):
            self.tick()
            if self.state is SessionState.ERROR:
                logger.info("Capture loop stopped after a device error")
                return

    def _refresh_cooldown_state(self) -> None:
        if self.state is SessionState.COOLDOWN and not (
            self._cooldown_worker and self.mirror.is_cooling_down(self._cooldown_worker)
        ):
            if self._transition(SessionState.OBSERVING):
                self._cooldown_worker = None

    def tick(self) -> Feedback:
        if not self._tick_lock.acquire(blocking=False):
            logger.debug("Tick skipped: previous tick still running")
            return Feedback(FeedbackKind.NOT_READY, "Previous tick still running.")
        try:
            return self._tick()
        except DeviceUnavailable as exc:
            return self._fail(exc)
        except Exception as exc:
            logger.exception("Capture tick failed in state %s", self.state.value)
            return self._fail(DeviceUnavailable(f"Capture pipeline failed: {exc}"))
        finally:
            self._tick_lock.release()

    def _tick(self) -> Feedback:
        self._refresh_cooldown_state()
        if self.state not in (SessionState.OBSERVING, SessionState.COOLDOWN) or self.method != "face":
            logger.debug("Tick ignored in state %s", self.state.value)
            return self._emit(Feedback(FeedbackKind.NOT_READY, f"Session is {self.state.value}."))
        if self._stop.is_set():
            return self._abandoned()

        try:
            frame = self.camera.read()
        except DeviceUnavailable as exc:
            return self._fail(exc)
        if frame is None:
            logger.debug("Tick idle: camera returned no frame")
            return self._emit(Feedback(FeedbackKind.NO_FRAME, "Waiting for camera."))

        now = self._monotonic()
        observation = self.embedder.extract(frame)
        if observation is None:
            self.stability.observe(None, now)
            logger.debug("Tick idle: no face in frame")
            return self._emit(Feedback(FeedbackKind.NO_FACE, "Look at the camera."))

        try:
            match = self.api.identify(observation.embedding.tolist())
        except requests.RequestException as exc:
            logger.warning("Identify request failed: %s", exc)
            return self._emit(Feedback(FeedbackKind.SERVER_ERROR, "Server unreachable."))

        if self._stop.is_set():
            return self._abandoned()
        if match is None:
            self.stability.observe(None, now)
            logger.info("Tick idle: face did not match any enrolled worker")
            return self._emit(Feedback(FeedbackKind.UNKNOWN_IDENTITY, "Face not recognized."))

        result = self.stability.observe(match.worker_id, now)
        if not isinstance(result, Confirmed):
            logger.debug("Tick pending: worker=%s hits=%d/%d", match.worker_id, result.count, self.stability.threshold)
            return self._emit(
                Feedback(
                    FeedbackKind.OBSERVING,
                    "Hold still.",
                    worker_id=match.worker_id,
                    worker_name=match.worker_name,
                    count=result.count,
                )
            )
        return self._confirm(worker_id=match.worker_id, worker_name=match.worker_name)

    def handle_rfid(self, raw_code: str) -> Feedback:
        self._refresh_cooldown_state()
        if self.state not in (SessionState.OBSERVING, SessionState.COOLDOWN):
            logger.info("RFID scan ignored in state %s", self.state.value)
            return self._emit(Feedback(FeedbackKind.NOT_READY, f"Session is {self.state.value}."))
        try:
            code = normalize_rfid(raw_code)
        except ValueError:
            logger.info("RFID scan rejected: %r is not a valid code", raw_code)
            return self._emit(Feedback(FeedbackKind.UNKNOWN_IDENTITY, "Invalid RFID code."))
        return self._confirm(rfid_code=code)

    def _location(self) -> tuple[float, float] | None:
        if not self.cfg.is_personal:
            return None
        if self.location_provider is None:
            self.location_provider = FixedLocationProvider(self.cfg.fixed_latitude, self.cfg.fixed_longitude)
        fix = resolve_location(self.location_provider, self.cfg.location_timeout_seconds)
        return fix.latitude, fix.longitude

    def _confirm(
        self,
        worker_id: str | None = None,
        worker_name: str | None = None,
        rfid_code: str | None = None,
    ) -> Feedback:
        with self._commit_lock:
            if self._stop.is_set():
                return self._abandoned()
            known_id = worker_id or (self._rfid_workers.get(rfid_code) if rfid_code else None)
            if known_id is not None and self.mirror.is_cooling_down(known_id):
                remaining = self.mirror.remaining_seconds(known_id)
                logger.info("Commit suppressed locally: worker=%s cooling down for %ds", known_id, remaining)
                return self._emit(
                    Feedback(
                        FeedbackKind.COOLDOWN_ACTIVE,
                        f"Already recorded. Try again in {remaining}s.",
                        worker_id=known_id,
                        worker_name=worker_name,
                        remaining_seconds=remaining,
                    )
                )

            if not self._transition(SessionState.CONFIRMING):
                return self._abandoned()
            try:
                location = self._location()
            except LocationError as exc:
                self._transition(SessionState.OBSERVING)
                logger.warning("Location lookup failed (%s): %s", type(exc).__name__, exc)
                return self._emit(Feedback(FeedbackKind.LOCATION_UNAVAILABLE, str(exc), worker_id=known_id))

            if not self._transition(SessionState.COMMITTING):
                return self._abandoned()
            if known_id is not None:
                self.mirror.mark_optimistic(known_id)
            try:
                outcome = self.api.submit_punch(
                    self.method,
                    worker_id=worker_id,
                    rfid_code=rfid_code,
                    location=location,
                )
            except requests.RequestException as exc:
                if known_id is not None:
                    self.mirror.discard(known_id)
                self._transition(SessionState.OBSERVING)
                logger.warning("Punch submission failed: %s", exc)
                return self._emit(Feedback(FeedbackKind.SERVER_ERROR, "Server unreachable.", worker_id=known_id))
            except Exception:
                if known_id is not None:
                    self.mirror.discard(known_id)
                raise

            return self._settle(outcome, known_id, worker_name, rfid_code)

    def _settle(
        self,
        outcome: PunchOutcome,
        known_id: str | None,
        worker_name: str | None,
        rfid_code: str | None,
    ) -> Feedback:
        resolved_id = outcome.worker_id or known_id
        name = outcome.worker_name or worker_name
        if rfid_code and outcome.worker_id:
            self._rfid_workers[rfid_code] = outcome.worker_id
        if outcome.accepted and resolved_id is not None and not self.mirror.synced_with_server:
            self._sync_cooldown_length(resolved_id)
        if resolved_id is not None:
            self.mirror.record_response(resolved_id, outcome)
        if known_id is not None and known_id != resolved_id:
            self.mirror.discard(known_id)

        if outcome.accepted:
            if self._transition(SessionState.COOLDOWN):
                self._cooldown_worker = resolved_id
            logger.info("Punch recorded: worker=%s direction=%s record=%s", resolved_id, outcome.direction, outcome.record_id)
            return self._emit(
                Feedback(
                    FeedbackKind.ACCEPTED,
                    f"Checked {outcome.direction}.",
                    worker_id=resolved_id,
                    worker_name=name,
                    direction=outcome.direction,
                )
            )

        self._transition(SessionState.OBSERVING)
        kind = _REJECTION_KINDS.get(outcome.reason or "", FeedbackKind.SERVER_ERROR)
        if kind is FeedbackKind.COOLDOWN_ACTIVE:
            message = f"Already recorded. Try again in {outcome.remaining_seconds}s."
        elif kind is FeedbackKind.OUT_OF_RANGE:
            message = f"You are {outcome.distance_meters or 0:.0f} m from the shop."
        elif kind is FeedbackKind.UNKNOWN_IDENTITY:
            message = "No worker matches this card." if rfid_code else "Face not recognized."
        elif kind is FeedbackKind.GEOFENCE_NOT_CONFIGURED:
            message = "Shop location is not configured. Ask an administrator."
        elif kind is FeedbackKind.LOCATION_UNAVAILABLE:
            message = "Location is required to punch from this device."
        else:
            message = f"Punch rejected: {outcome.reason}"
        logger.info("Punch rejected by server: worker=%s reason=%s", resolved_id or rfid_code, outcome.reason)
        return self._emit(
            Feedback(
                kind,
                message,
                worker_id=resolved_id,
                worker_name=name,
                remaining_seconds=outcome.remaining_seconds,
                distance_meters=outcome.distance_meters,
            )
        )

    def _sync_cooldown_length(self, worker_id: str) -> None:
        try:
            status = self.api.cooldown_status(worker_id)
        except requests.RequestException as exc:
            logger.warning("Could not read the server cooldown; keeping %ds: %s", self.mirror.cooldown_seconds, exc)
            return
        self.mirror.adopt_server_cooldown(status.cooldown_seconds)

    def _release_devices(self) -> None:
        if self.camera is not None:
            self.camera.close()
        if self.rfid is not None:
            self.rfid.close()

    def close(self) -> None:
        with self._state_lock:
            self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.cfg.tick_seconds + self.cfg.request_timeout_seconds)
            if thread.is_alive():
                logger.warning("Capture loop still finishing a tick; its result will be discarded")
        self._release_devices()
        self.stability.reset()
        with self._state_lock:
            self._cooldown_worker = None
            if self.state is not SessionState.IDLE:
                logger.info("Capture session closed from state %s", self.state.value)
            self.state = SessionState.IDLE
