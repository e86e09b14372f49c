# tests/unit/test_progress.py
"""Unit tests for progress accounting and the periodic reporter."""

import asyncio

import pytest

from partition_sync.progress import ProgressReporter, ProgressSnapshot, ProgressTracker


def test_tracker_snapshot_counts() -> None:
    """
    Tests that planned work accumulates across pairs and completions are
    reflected in immutable snapshots.
    """
    tracker: ProgressTracker = ProgressTracker()
    tracker.reset("20240101")
    tracker.add_planned(2, 300)
    tracker.add_planned(1, 100)
    before: ProgressSnapshot = tracker.snapshot()

    tracker.record_success(200)
    tracker.record_failure()
    after: ProgressSnapshot = tracker.snapshot()

    assert before.tasks_done == 0
    assert after.label == "20240101"
    assert after.tasks_total == 3
    assert after.tasks_done == 2
    assert after.tasks_failed == 1
    assert after.bytes_total == 400
    assert after.bytes_done == 200
    assert not after.finished
    assert "2/3 files (1 failed)" in after.describe()
    assert "200 B/400 B copied" in after.describe()


def test_tracker_reset_clears_counters() -> None:
    tracker: ProgressTracker = ProgressTracker()
    tracker.add_planned(5, 10)
    tracker.record_success(10)
    tracker.reset("20240102")

    snapshot: ProgressSnapshot = tracker.snapshot()
    assert (snapshot.tasks_total, snapshot.tasks_done, snapshot.bytes_done) == (0, 0, 0)


@pytest.mark.asyncio
async def test_reporter_logs_on_interval(caplog: pytest.LogCaptureFixture) -> None:
    """
    Tests that the reporter polls the tracker on its interval and stops cleanly.
    """
    tracker: ProgressTracker = ProgressTracker()
    tracker.reset("20240101")
    tracker.add_planned(4, 4096)
    tracker.record_success(1024)
    reporter: ProgressReporter = ProgressReporter(tracker, interval_s=0.01)

    with caplog.at_level("INFO"):
        reporter.start()
        await asyncio.sleep(0.05)
        await reporter.stop()

    assert "Progress [20240101] 1/4 files (0 failed), 1 KB/4 KB copied" in caplog.text


@pytest.mark.asyncio
async def test_reporter_is_quiet_when_idle(caplog: pytest.LogCaptureFixture) -> None:
    reporter: ProgressReporter = ProgressReporter(ProgressTracker(), interval_s=0.01)

    with caplog.at_level("INFO"):
        reporter.start()
        await asyncio.sleep(0.03)
        await reporter.stop()

    assert "Progress" not in caplog.text
