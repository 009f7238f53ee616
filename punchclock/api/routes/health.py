from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter

from punchclock.ws.manager import punch_feed

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict:
    return {
        "ok": True,
        "service": "punchclock",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "feed_listeners": punch_feed.listener_count(),
    }
