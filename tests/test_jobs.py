import pytest

from holosun_scan.errors import InvariantViolation
from holosun_scan.jobs import JobState, JobTracker


def test_try_start_is_single_flight() -> None:
    tracker = JobTracker()

    assert tracker.try_start(3)
    tracker.record_processed("90001", accepted=2, collected=2)
    assert not tracker.try_start(10)

    state = tracker.snapshot()
    assert state.running
    assert state.total == 3
    assert state.processed == 1


def test_try_start_resets_counters_after_completion() -> None:
    tracker = JobTracker()
    tracker.try_start(1)
    tracker.record_processed("90001", failed=True)
    tracker.finish()

    assert tracker.try_start(5)
    state = tracker.snapshot()
    assert (state.processed, state.errors, state.accepted, state.total) == (0, 0, 0, 5)
    assert state.current_item is None


def test_record_processed_updates_counters() -> None:
    tracker = JobTracker()
    tracker.try_start(3)
    tracker.record_processed("90001", accepted=2, collected=3, duplicates=1)
    tracker.record_processed("90002", failed=True)
    tracker.record_processed("90003", failed=True, write_failed=True, collected=1)

    state = tracker.snapshot()
    assert state.processed == 3
    assert state.accepted == 2
    assert state.errors == 2
    assert state.write_errors == 1
    assert state.dealers_collected == 4
    assert state.duplicates == 1
    assert state.current_item == "90003"


def test_finish_requires_all_items_processed() -> None:
    tracker = JobTracker()
    tracker.try_start(2)
    tracker.record_processed("90001")

    with pytest.raises(InvariantViolation):
        tracker.finish()
    assert not tracker.running


def test_finish_interrupted_skips_invariant() -> None:
    tracker = JobTracker()
    tracker.try_start(2)

    state = tracker.finish(interrupted=True)

    assert state.interrupted
    assert state.status == "completed"


def test_snapshot_is_a_frozen_copy() -> None:
    tracker = JobTracker()
    tracker.try_start(2)
    before = tracker.snapshot()
    tracker.record_processed("90001")

    assert before.processed == 0
    assert tracker.snapshot().processed == 1


def test_status_and_percent_complete() -> None:
    assert JobState().status == "idle"
    assert JobState().percent_complete == 0.0

    tracker = JobTracker()
    tracker.try_start(0)
    assert tracker.snapshot().percent_complete == 0.0
    state = tracker.finish()
    assert state.status == "completed"
    assert state.processed == state.total == 0

    tracker.try_start(3)
    tracker.record_processed("90001")
    running = tracker.snapshot()
    assert running.status == "running"
    assert running.percent_complete == 33.3
    assert running.to_dict()["progress"]["percent_complete"] == "33.3%"
