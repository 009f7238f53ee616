import uuid

import numpy as np
import pytest

from punchclock.core.security import coerce_embedding
from punchclock.services.matcher import GalleryMatcher, WorkerEmbeddings, euclidean_distance, match


def _vec(value, dim=4):
    return np.full(dim, value, dtype=np.float32)


def _entry(name, *vectors):
    return WorkerEmbeddings(worker_id=uuid.uuid4(), name=name, embeddings=tuple(vectors))


def test_empty_gallery_has_no_match():
    assert match(_vec(0.0), []) is None


def test_match_below_threshold():
    asha = _entry("Asha", _vec(0.0))
    result = match(_vec(0.05), [asha], threshold=0.4)
    assert result is not None
    assert result.worker_id == asha.worker_id
    assert result.distance == pytest.approx(0.1, abs=1e-6)


def test_distance_equal_to_threshold_is_a_miss():
    reference = np.zeros(4, dtype=np.float32)
    observed = np.array([0.5, 0.0, 0.0, 0.0], dtype=np.float32)
    gallery = [_entry("Asha", reference)]
    assert match(observed, gallery, threshold=0.5) is None
    assert match(observed, gallery, threshold=0.5001) is not None


def test_best_policy_prefers_closest_worker_regardless_of_order():
    first = _entry("Ravi", _vec(0.0))
    second = _entry("Meena", _vec(0.1))
    observed = _vec(0.09)

    best = match(observed, [first, second], threshold=0.4, policy="best")
    assert best.worker_id == second.worker_id

    first_hit = match(observed, [first, second], threshold=0.4, policy="first")
    assert first_hit.worker_id == first.worker_id


def test_any_of_several_references_can_match():
    worker = _entry("Asha", _vec(5.0), _vec(0.0))
    result = match(_vec(0.01), [worker])
    assert result.worker_id == worker.worker_id


def test_shape_mismatch_raises():
    with pytest.raises(ValueError):
        match(_vec(0.0, dim=4), [_entry("Asha", _vec(0.0, dim=3))])


def test_euclidean_distance():
    assert euclidean_distance(np.array([0.0, 0.0]), np.array([3.0, 4.0])) == pytest.approx(5.0)


def test_coerce_embedding_rejects_bad_vectors():
    assert coerce_embedding([0.1] * 128).shape == (128,)
    with pytest.raises(ValueError):
        coerce_embedding([0.1] * 127)
    with pytest.raises(ValueError):
        coerce_embedding([float("nan")] + [0.0] * 127)


def test_coerce_embedding_does_not_normalise():
    vector = coerce_embedding([2.0] * 4, dim=4)
    assert np.allclose(vector, 2.0)


class FakeGalleryDb:
    """Returns no workers; optionally runs a callback while the read is in flight."""

    def __init__(self, during_read=None):
        self.during_read = during_read
        self.reads = 0

    def scalars(self, statement):
        self.reads += 1
        if self.during_read is not None:
            self.during_read()
        return self

    def all(self):
        return []


def test_gallery_is_cached_between_reads():
    matcher = GalleryMatcher(threshold=0.4, policy="best", cache_ttl_seconds=60)
    db = FakeGalleryDb()
    matcher.identify(db, _vec(0.1))
    matcher.identify(db, _vec(0.1))
    assert db.reads == 1


def test_invalidate_during_gallery_load_is_not_overwritten():
    matcher = GalleryMatcher(threshold=0.4, policy="best", cache_ttl_seconds=60)
    db = FakeGalleryDb(during_read=matcher.invalidate)

    assert matcher.identify(db, _vec(0.1)) is None
    assert matcher._cache is None

    db.during_read = None
    matcher.identify(db, _vec(0.1))
    assert db.reads == 2
    assert matcher._cache is not None
