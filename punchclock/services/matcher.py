from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import Literal, Sequence

import numpy as np
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from punchclock.core.config import get_settings
from punchclock.db.models import Worker
from punchclock.services.encryption import embedding_crypto

logger = logging.getLogger("punchclock.matcher")

MatchPolicy = Literal["first", "best"]


@dataclass(frozen=True)
class WorkerEmbeddings:
    worker_id: uuid.UUID
    name: str
    embeddings: tuple[np.ndarray, ...]


@dataclass(frozen=True)
class MatchResult:
    worker_id: uuid.UUID
    worker_name: str
    distance: float


def euclidean_distance(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.linalg.norm(np.asarray(a, dtype=np.float32) - np.asarray(b, dtype=np.float32)))


def match(
    observed: np.ndarray,
    gallery: Sequence[WorkerEmbeddings],
    threshold: float = 0.4,
    policy: MatchPolicy = "best",
) -> MatchResult | None:
    """Return the worker whose enrolled descriptor lies within ``threshold``.

    ``first`` stops at the first reference under the threshold in gallery
    order. ``best`` scans everything and returns the globally closest
    reference, so two similar-looking workers cannot shadow each other just
    because of enrollment order. Distance equal to the threshold is a miss.
    """
    query = np.asarray(observed, dtype=np.float32)
    if query.ndim != 1:
        raise ValueError("Observed embedding must be a 1D vector.")

    owners: list[WorkerEmbeddings] = []
    references: list[np.ndarray] = []
    for entry in gallery:
        for reference in entry.embeddings:
            if reference.shape != query.shape:
                raise ValueError(
                    f"Reference embedding for worker {entry.worker_id} has shape {reference.shape}, "
                    f"expected {query.shape}."
                )
            if policy == "first":
                distance = euclidean_distance(query, reference)
                if distance < threshold:
                    return MatchResult(entry.worker_id, entry.name, distance)
                continue
            owners.append(entry)
            references.append(reference)

    if policy == "first" or not references:
        return None

    distances = np.linalg.norm(np.vstack(references).astype(np.float32) - query, axis=1)
    idx = int(np.argmin(distances))
    best = float(distances[idx])
    if best >= threshold:
        return None
    owner = owners[idx]
    return MatchResult(owner.worker_id, owner.name, best)


class GalleryMatcher:
    def __init__(self, threshold: float, policy: MatchPolicy, cache_ttl_seconds: float = 20.0) -> None:
        self.threshold = threshold
        self.policy = policy
        self._cache_ttl_seconds = cache_ttl_seconds
        self._cache: tuple[float, list[WorkerEmbeddings]] | None = None
        self._generation = 0
        self._lock = threading.Lock()

    def _load_gallery(self, db: Session) -> list[WorkerEmbeddings]:
        now = time.monotonic()
        with self._lock:
            cached = self._cache
            generation = self._generation
        if cached and (now - cached[0]) <= self._cache_ttl_seconds:
            return cached[1]

        rows = db.scalars(
            select(Worker)
            .where(Worker.is_active.is_(True))
            .options(selectinload(Worker.embeddings))
            .order_by(Worker.created_at, Worker.id)
        ).all()
        gallery = [
            WorkerEmbeddings(
                worker_id=row.id,
                name=row.name,
                embeddings=tuple(embedding_crypto.decrypt(item.ciphertext) for item in row.embeddings),
            )
            for row in rows
            if row.embeddings
        ]
        with self._lock:
            # An enrollment change during the read makes this snapshot stale.
            if generation != self._generation:
                logger.debug("Gallery changed while loading; result not cached")
                return gallery
            self._cache = (now, gallery)
        logger.debug("Gallery reloaded with %d enrolled workers", len(gallery))
        return gallery

    def invalidate(self) -> None:
        with self._lock:
            self._cache = None
            self._generation += 1

    def identify(self, db: Session, embedding: np.ndarray) -> MatchResult | None:
        return match(embedding, self._load_gallery(db), threshold=self.threshold, policy=self.policy)


@lru_cache(maxsize=1)
def get_matcher() -> GalleryMatcher:
    settings = get_settings()
    return GalleryMatcher(
        threshold=settings.match_threshold,
        policy=settings.match_policy,
        cache_ttl_seconds=settings.gallery_cache_seconds,
    )
