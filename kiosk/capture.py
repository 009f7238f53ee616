from __future__ import annotations

import logging
import os
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Iterator

import cv2
import numpy as np

from punchclock.core.errors import DeviceFailure, DeviceUnavailable

try:
    import face_recognition
except ImportError:  # pragma: no cover
    face_recognition = None

logger = logging.getLogger("kiosk.capture")


class CameraStream:
    """Owns one ``cv2.VideoCapture`` for the lifetime of a capture session."""

    def __init__(self, camera_index: int = 0, ready_timeout_seconds: float = 3.0, stall_timeout_seconds: float = 10.0):
        self.camera_index = camera_index
        self.ready_timeout_seconds = ready_timeout_seconds
        self.stall_timeout_seconds = stall_timeout_seconds
        self._last_frame_at = 0.0
        self.cap: cv2.VideoCapture | None = None
        self.scored = False

    def __enter__(self) -> "CameraStream":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _check_permissions(self) -> None:
        node = Path(f"/dev/video{self.camera_index}")
        if sys.platform.startswith("linux") and node.exists() and not os.access(node, os.R_OK):
            raise DeviceUnavailable(
                f"No permission to read {node}; add the kiosk user to the 'video' group.",
                DeviceFailure.PERMISSION_DENIED,
            )

    def open(self) -> None:
        self._check_permissions()
        cap = cv2.VideoCapture(self.camera_index)
        if not cap.isOpened():
            cap.release()
            raise DeviceUnavailable(f"Unable to open camera index {self.camera_index}.", DeviceFailure.UNAVAILABLE)

        # Some backends report opened=True but take a while to deliver frames.
        deadline = time.monotonic() + self.ready_timeout_seconds
        self.scored = False
        while time.monotonic() < deadline:
            ok, frame = cap.read()
            if ok and frame is not None:
                self.scored = True
                break
            time.sleep(0.05)
        if not self.scored:
            logger.warning(
                "Camera %d gave no frame within %.1fs; continuing as ready but unscored",
                self.camera_index,
                self.ready_timeout_seconds,
            )
        self.cap = cap
        self._last_frame_at = time.monotonic()

    def read(self) -> np.ndarray | None:
        if self.cap is None:
            raise DeviceUnavailable("Camera stream is not initialized.", DeviceFailure.UNAVAILABLE)
        ok, frame = self.cap.read()
        if not ok or frame is None:
            if time.monotonic() - self._last_frame_at > self.stall_timeout_seconds:
                raise DeviceUnavailable(
                    f"Camera {self.camera_index} stopped delivering frames.",
                    DeviceFailure.TIMEOUT,
                )
            return None
        self.scored = True
        self._last_frame_at = time.monotonic()
        return frame

    def close(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None


@dataclass(frozen=True)
class FaceObservation:
    box: tuple[int, int, int, int]
    embedding: np.ndarray


class FaceEmbedder:
    """128-d face descriptors from dlib via ``face_recognition``."""

    def __init__(self, model: str = "hog", upsample: int = 1) -> None:
        if face_recognition is None:
            raise DeviceUnavailable(
                "face_recognition is required for face capture; install the 'face' extra.",
                DeviceFailure.UNAVAILABLE,
            )
        self.model = model
        self.upsample = upsample

    def extract(self, frame_bgr: np.ndarray) -> FaceObservation | None:
        rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
        boxes = face_recognition.face_locations(rgb, number_of_times_to_upsample=self.upsample, model=self.model)
        if not boxes:
            return None
        # Largest box is the person standing at the kiosk.
        top, right, bottom, left = max(boxes, key=lambda b: (b[2] - b[0]) * (b[1] - b[3]))
        encodings = face_recognition.face_encodings(rgb, [(top, right, bottom, left)])
        if not encodings:
            return None
        return FaceObservation(box=(top, right, bottom, left), embedding=np.asarray(encodings[0], dtype=np.float32))


class RfidReader:
    """Keyboard-wedge RFID reader: each scan arrives as one line of text."""

    def __init__(self, device: str = "", stream: IO[str] | None = None) -> None:
        self.device = device
        self._stream = stream
        self._owns_stream = False

    def open(self) -> None:
        if self._stream is not None:
            return
        if not self.device:
            self._stream = sys.stdin
            return
        try:
            self._stream = open(self.device, "r", encoding="utf-8")
        except PermissionError as exc:
            raise DeviceUnavailable(f"No permission to read RFID device {self.device}.", DeviceFailure.PERMISSION_DENIED) from exc
        except OSError as exc:
            raise DeviceUnavailable(f"RFID device {self.device} is not available: {exc}", DeviceFailure.UNAVAILABLE) from exc
        self._owns_stream = True

    def __iter__(self) -> Iterator[str]:
        if self._stream is None:
            raise DeviceUnavailable("RFID reader is not open.", DeviceFailure.UNAVAILABLE)
        for line in self._stream:
            code = line.strip()
            if code:
                yield code

    def close(self) -> None:
        if self._owns_stream and self._stream is not None:
            self._stream.close()
        self._stream = None
        self._owns_stream = False
