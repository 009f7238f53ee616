from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from punchclock.core.errors import RejectReason

from .api_client import PunchOutcome

logger = logging.getLogger("kiosk.mirror")


@dataclass(frozen=True)
class Countdown:
    worker_id: str
    ends_at: float

    def remaining_seconds(self, now: float) -> int:
        return max(0, math.ceil(self.ends_at - now))


Listener = Callable[[Countdown | None], None]


class ClientMirror:
    """Local, advisory copy of which workers the server is holding in cooldown.

    It only saves the kiosk from sending punches the server would refuse and
    drives the on-screen countdown. Expiry is a wall-clock comparison, so the
    mirror can outlive any capture session. A stale or cleared mirror never
    lets a duplicate through: the server rejects it regardless.
    """

    def __init__(self, cooldown_seconds: int = 60, clock: Callable[[], float] = time.time) -> None:
        self.cooldown_seconds = cooldown_seconds
        self.synced_with_server = False
        self._clock = clock
        self._lock = threading.Lock()
        self._expiry: dict[str, float] = {}
        self._countdown: Countdown | None = None
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, countdown: Countdown | None) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(countdown)

    def _now(self, now: float | None) -> float:
        return self._clock() if now is None else now

    def _prune(self, now: float) -> None:
        expired = [worker_id for worker_id, ends_at in self._expiry.items() if ends_at <= now]
        for worker_id in expired:
            del self._expiry[worker_id]
        if self._countdown is not None and self._countdown.ends_at <= now:
            self._countdown = None

    def _set(self, worker_id: str, ends_at: float) -> Countdown:
        with self._lock:
            self._expiry[worker_id] = ends_at
            self._countdown = Countdown(worker_id, ends_at)
            countdown = self._countdown
        self._notify(countdown)
        return countdown

    def adopt_server_cooldown(self, cooldown_seconds: int) -> None:
        """Use the server's configured cooldown length for future countdowns."""
        if cooldown_seconds != self.cooldown_seconds:
            logger.info("Cooldown length %ds replaced by server value %ds", self.cooldown_seconds, cooldown_seconds)
        self.cooldown_seconds = cooldown_seconds
        self.synced_with_server = True

    def mark_optimistic(self, worker_id: str, now: float | None = None) -> Countdown:
        return self._set(worker_id, self._now(now) + self.cooldown_seconds)

    def discard(self, worker_id: str) -> None:
        with self._lock:
            self._expiry.pop(worker_id, None)
            cleared = self._countdown is not None and self._countdown.worker_id == worker_id
            if cleared:
                self._countdown = None
        if cleared:
            self._notify(None)

    def record_response(self, worker_id: str, outcome: PunchOutcome, now: float | None = None) -> Countdown | None:
        current = self._now(now)
        if outcome.accepted:
            return self._set(worker_id, current + self.cooldown_seconds)
        if outcome.reason == RejectReason.COOLDOWN_ACTIVE.value and outcome.remaining_seconds is not None:
            return self._set(worker_id, current + outcome.remaining_seconds)
        # Any other rejection means the punch never happened; drop an optimistic mark.
        self.discard(worker_id)
        return None

    def is_cooling_down(self, worker_id: str, now: float | None = None) -> bool:
        return self.remaining_seconds(worker_id, now) > 0

    def remaining_seconds(self, worker_id: str, now: float | None = None) -> int:
        current = self._now(now)
        with self._lock:
            self._prune(current)
            ends_at = self._expiry.get(worker_id)
        if ends_at is None:
            return 0
        return max(0, math.ceil(ends_at - current))

    def countdown(self, now: float | None = None) -> Countdown | None:
        with self._lock:
            self._prune(self._now(now))
            return self._countdown

    def workers_in_cooldown(self, now: float | None = None) -> set[str]:
        with self._lock:
            self._prune(self._now(now))
            return set(self._expiry)

    def clear(self) -> None:
        with self._lock:
            self._expiry.clear()
            self._countdown = None
        self._notify(None)
