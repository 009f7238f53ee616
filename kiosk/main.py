from __future__ import annotations

import argparse
import logging
import time
from typing import Sequence

import requests

from punchclock.core.errors import DeviceUnavailable
from punchclock.core.logging import configure_logging

from .api_client import PunchApiClient
from .config import KioskConfig
from .mirror import ClientMirror
from .session import CaptureSession, Feedback, FeedbackKind, SessionState

logger = logging.getLogger("kiosk.main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Repair shop punch clock kiosk")
    parser.add_argument("--method", choices=["face", "rfid"], default="face", help="Capture method")
    parser.add_argument(
        "--source",
        choices=["kiosk", "personal"],
        default=None,
        help="Shop kiosk or a worker's personal device (default from KIOSK_CAPTURE_SOURCE)",
    )
    parser.add_argument("--camera", type=int, default=None, help="Camera index override")
    parser.add_argument("--rfid", default=None, help="RFID reader device path (default: stdin)")
    parser.add_argument("--server", default=None, help="Server base URL override")
    return parser


def print_feedback(feedback: Feedback) -> None:
    if feedback.kind in (FeedbackKind.NO_FACE, FeedbackKind.NO_FRAME, FeedbackKind.NOT_READY):
        return
    who = feedback.worker_name or feedback.worker_id or ""
    print(f"[{feedback.kind.value}] {who} {feedback.message}".replace("  ", " "))


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    cfg = KioskConfig()
    if args.source is not None:
        cfg.capture_source = args.source
    if args.camera is not None:
        cfg.camera_index = args.camera
    if args.rfid is not None:
        cfg.rfid_device = args.rfid
    if args.server is not None:
        cfg.base_url = args.server

    configure_logging(cfg.log_level, cfg.log_dir, name="kiosk")
    api = PunchApiClient(cfg)
    mirror = ClientMirror(cooldown_seconds=cfg.cooldown_seconds)

    try:
        api.login()
        device_id = api.heartbeat()
    except requests.RequestException as exc:
        logger.error("Cannot reach punch clock server at %s: %s", cfg.base_url, exc)
        print(f"Error: cannot reach server at {cfg.base_url}")
        return 1
    logger.info("Kiosk started: source=%s method=%s device=%s", cfg.capture_source, args.method, device_id)

    session = CaptureSession(cfg, api, mirror, method=args.method, on_feedback=print_feedback)
    feedback = session.start(background=args.method == "face")
    if feedback.kind is FeedbackKind.DEVICE_ERROR:
        print(f"Error: {feedback.message}")
        session.close()
        return 1

    try:
        if args.method == "rfid":
            print("Scan a card (Ctrl+C to quit).")
            for code in session.rfid:
                session.handle_rfid(code)
        else:
            print("Watching for faces (Ctrl+C to quit).")
            while session.state is not SessionState.ERROR:
                time.sleep(0.5)
            return 1
    except KeyboardInterrupt:
        print("\nStopped by user.")
    except DeviceUnavailable as exc:
        logger.error("Capture device lost: %s", exc)
        print(f"Error: {exc}")
        return 1
    finally:
        session.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
