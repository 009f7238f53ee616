from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import WebSocket

from punchclock.schemas.auth import CurrentPrincipal

logger = logging.getLogger("punchclock.ws")


class PunchFeed:
    """Live punch outcomes for dashboards and workers' phones.

    Staff and kiosk connections see every punch. A worker connection only
    receives punches that resolved to that worker.
    """

    def __init__(self) -> None:
        self._listeners: dict[WebSocket, CurrentPrincipal] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, principal: CurrentPrincipal) -> None:
        await websocket.accept()
        async with self._lock:
            self._listeners[websocket] = principal
        logger.info("Punch feed listener connected: role=%s", principal.role)

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._listeners.pop(websocket, None)

    @staticmethod
    def _wants(principal: CurrentPrincipal, payload: dict[str, Any]) -> bool:
        if not principal.is_worker:
            return True
        return payload.get("worker_id") == principal.subject

    async def publish(self, payload: dict[str, Any]) -> int:
        async with self._lock:
            targets = [ws for ws, principal in self._listeners.items() if self._wants(principal, payload)]

        delivered = 0
        stale: list[WebSocket] = []
        for ws in targets:
            try:
                await ws.send_json({"type": "punch", "payload": payload})
                delivered += 1
            except (RuntimeError, ConnectionError) as exc:
                logger.debug("Dropping punch feed listener after send failure: %s", exc)
                stale.append(ws)
        for ws in stale:
            await self.disconnect(ws)
        return delivered

    def listener_count(self) -> int:
        return len(self._listeners)


punch_feed = PunchFeed()
