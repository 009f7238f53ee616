from __future__ import annotations

from dataclasses import dataclass
from typing import Hashable


@dataclass(frozen=True)
class Confirmed:
    worker_id: Hashable


@dataclass(frozen=True)
class Pending:
    count: int


class StabilityFilter:
    """Debounces per-tick identity matches.

    A single frame is noisy (motion blur, partial occlusion, a momentary
    misclassification), so a worker is only confirmed after ``threshold``
    consecutive hits, each within ``window_ms`` of the previous one. Firing
    resets the counter, so a face that stays in front of the camera confirms
    again only after another full run of hits.
    """

    def __init__(self, window_ms: int = 2000, threshold: int = 3) -> None:
        if threshold < 1:
            raise ValueError("threshold must be at least 1")
        self.window_seconds = window_ms / 1000.0
        self.threshold = threshold
        self.last_worker_id: Hashable | None = None
        self.last_seen: float | None = None
        self.count = 0

    def observe(self, worker_id: Hashable | None, now: float) -> Confirmed | Pending:
        if worker_id is None:
            self.count = 0
            return Pending(0)

        if (
            worker_id == self.last_worker_id
            and self.last_seen is not None
            and now - self.last_seen < self.window_seconds
        ):
            self.count += 1
        else:
            self.count = 1
            self.last_worker_id = worker_id
        self.last_seen = now

        if self.count >= self.threshold:
            self.count = 0
            return Confirmed(worker_id)
        return Pending(self.count)

    def reset(self) -> None:
        self.last_worker_id = None
        self.last_seen = None
        self.count = 0
