import pytest

from kiosk.stability import Confirmed, Pending, StabilityFilter


def test_three_hits_within_window_confirm():
    f = StabilityFilter(window_ms=2000, threshold=3)
    assert f.observe("w1", 0.0) == Pending(1)
    assert f.observe("w1", 1.0) == Pending(2)
    assert f.observe("w1", 2.0) == Confirmed("w1")


def test_counter_resets_after_confirmation():
    f = StabilityFilter(window_ms=2000, threshold=3)
    for t in (0.0, 1.0, 2.0):
        result = f.observe("w1", t)
    assert result == Confirmed("w1")
    assert f.observe("w1", 3.0) == Pending(1)


def test_gap_longer_than_window_restarts_count():
    f = StabilityFilter(window_ms=2000, threshold=3)
    f.observe("w1", 0.0)
    f.observe("w1", 1.0)
    assert f.observe("w1", 3.5) == Pending(1)


def test_gap_equal_to_window_restarts_count():
    f = StabilityFilter(window_ms=2000, threshold=3)
    f.observe("w1", 0.0)
    assert f.observe("w1", 2.0) == Pending(1)


def test_different_worker_restarts_count():
    f = StabilityFilter(window_ms=2000, threshold=3)
    f.observe("w1", 0.0)
    f.observe("w1", 0.5)
    assert f.observe("w2", 1.0) == Pending(1)
    assert f.last_worker_id == "w2"


def test_no_face_clears_count_but_keeps_last_worker():
    f = StabilityFilter(window_ms=2000, threshold=3)
    f.observe("w1", 0.0)
    f.observe("w1", 0.5)
    assert f.observe(None, 1.0) == Pending(0)
    assert f.last_worker_id == "w1"
    assert f.observe("w1", 1.5) == Pending(1)


def test_threshold_of_one_confirms_immediately():
    f = StabilityFilter(window_ms=2000, threshold=1)
    assert f.observe("w1", 0.0) == Confirmed("w1")


def test_invalid_threshold():
    with pytest.raises(ValueError):
        StabilityFilter(threshold=0)


def test_reset():
    f = StabilityFilter()
    f.observe("w1", 0.0)
    f.reset()
    assert f.count == 0
    assert f.last_worker_id is None
