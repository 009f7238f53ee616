from __future__ import annotations

import logging
import math
import threading
import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Callable, Generic, Iterator, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from punchclock.core.clock import ensure_utc
from punchclock.core.config import get_settings
from punchclock.db.models import PunchCooldown

logger = logging.getLogger("punchclock.cooldown")

T = TypeVar("T")


@dataclass(frozen=True)
class Accepted(Generic[T]):
    result: T


@dataclass(frozen=True)
class Rejected:
    remaining_seconds: int


class KeyedLocks:
    """One lock per key, created on first use."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[uuid.UUID, threading.Lock] = defaultdict(threading.Lock)

    @contextmanager
    def hold(self, key: uuid.UUID) -> Iterator[None]:
        with self._guard:
            lock = self._locks[key]
        with lock:
            yield


class CooldownAuthority:
    """Server-side gate that refuses a second punch inside the cooldown window.

    The read of ``punch_cooldowns``, the attendance mutation and the write of
    the new cooldown timestamp happen under one per-worker lock and commit in a
    single transaction. The row is also selected ``FOR UPDATE`` so several
    server processes sharing a PostgreSQL database serialise the same way.
    """

    def __init__(self, cooldown_seconds: int) -> None:
        self.cooldown_seconds = cooldown_seconds
        self._locks = KeyedLocks()

    def _load(self, db: Session, worker_id: uuid.UUID) -> PunchCooldown | None:
        return db.scalar(
            select(PunchCooldown)
            .where(PunchCooldown.worker_id == worker_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )

    def _remaining(self, last_punch_at: datetime, now: datetime) -> int:
        elapsed = (now - ensure_utc(last_punch_at)).total_seconds()
        if elapsed >= self.cooldown_seconds:
            return 0
        return min(self.cooldown_seconds, math.ceil(self.cooldown_seconds - elapsed))

    def remaining_seconds(self, db: Session, worker_id: uuid.UUID, now: datetime) -> int:
        row = db.get(PunchCooldown, worker_id, populate_existing=True)
        if row is None:
            return 0
        return self._remaining(row.last_punch_at, now)

    def try_accept_punch(
        self,
        db: Session,
        worker_id: uuid.UUID,
        now: datetime,
        commit: Callable[[], T],
    ) -> Accepted[T] | Rejected:
        with self._locks.hold(worker_id):
            row = self._load(db, worker_id)
            if row is not None:
                remaining = self._remaining(row.last_punch_at, now)
                if remaining > 0:
                    db.rollback()
                    logger.info("Punch for worker %s rejected, %ss of cooldown left", worker_id, remaining)
                    return Rejected(remaining)

            try:
                result = commit()
                if row is None:
                    db.add(PunchCooldown(worker_id=worker_id, last_punch_at=now))
                else:
                    row.last_punch_at = now
                db.commit()
            except Exception:
                db.rollback()
                raise
            return Accepted(result)


@lru_cache(maxsize=1)
def get_cooldown_authority() -> CooldownAuthority:
    return CooldownAuthority(cooldown_seconds=get_settings().cooldown_seconds)
