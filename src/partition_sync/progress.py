# src/partition_sync/progress.py
"""
Progress accounting for copy waves.

Workers only bump counters on a `ProgressTracker`. A separate
`ProgressReporter` task polls immutable snapshots on a fixed interval and logs
them, so reporting never feeds back into scheduling decisions.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

from partition_sync.reporting import format_size

logger: logging.Logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressSnapshot:
    """
    A point-in-time view of the copy wave in flight.

    Attributes:
        label (str): What is being copied, e.g. the partition prefix.
        tasks_total (int): Number of copy tasks submitted for the wave.
        tasks_done (int): Tasks finished, successfully or not.
        tasks_failed (int): Tasks that failed.
        bytes_total (int): Bytes the wave intends to copy.
        bytes_done (int): Bytes copied successfully.
        elapsed_s (float): Seconds since the wave began.
    """

    label: str
    tasks_total: int
    tasks_done: int
    tasks_failed: int
    bytes_total: int
    bytes_done: int
    elapsed_s: float

    @property
    def finished(self) -> bool:
        return self.tasks_done >= self.tasks_total

    def describe(self) -> str:
        """Render the snapshot as a single log line."""
        return (
            f"[{self.label}] {self.tasks_done}/{self.tasks_total} files "
            f"({self.tasks_failed} failed), "
            f"{format_size(self.bytes_done)}/{format_size(self.bytes_total)} copied, "
            f"{self.elapsed_s:.0f}s elapsed"
        )


class ProgressTracker:
    """Shared counters updated as copy tasks complete."""

    def __init__(self) -> None:
        self._label: str = ""
        self._tasks_total: int = 0
        self._tasks_done: int = 0
        self._tasks_failed: int = 0
        self._bytes_total: int = 0
        self._bytes_done: int = 0
        self._started_at: float = time.monotonic()

    def reset(self, label: str) -> None:
        """Start accounting for a new wave."""
        self._label = label
        self._tasks_total = 0
        self._tasks_done = 0
        self._tasks_failed = 0
        self._bytes_total = 0
        self._bytes_done = 0
        self._started_at = time.monotonic()

    def add_planned(self, task_count: int, total_bytes: int) -> None:
        """Add work to the current wave (called once per bucket pair)."""
        self._tasks_total += task_count
        self._bytes_total += total_bytes

    def record_success(self, size: int) -> None:
        self._tasks_done += 1
        self._bytes_done += size

    def record_failure(self) -> None:
        self._tasks_done += 1
        self._tasks_failed += 1

    def snapshot(self) -> ProgressSnapshot:
        """
        Take an immutable snapshot of the counters.

        Returns:
            ProgressSnapshot: The current state.
        """
        return ProgressSnapshot(
            label=self._label,
            tasks_total=self._tasks_total,
            tasks_done=self._tasks_done,
            tasks_failed=self._tasks_failed,
            bytes_total=self._bytes_total,
            bytes_done=self._bytes_done,
            elapsed_s=time.monotonic() - self._started_at,
        )


class ProgressReporter:
    """Periodically logs snapshots of a `ProgressTracker`."""

    def __init__(self, tracker: ProgressTracker, interval_s: float) -> None:
        """
        Initialize the reporter.

        Args:
            tracker (ProgressTracker): The counters to poll.
            interval_s (float): Seconds between log lines.
        """
        self._tracker: ProgressTracker = tracker
        self._interval_s: float = interval_s
        self._stop_event: asyncio.Event = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None

    def start(self) -> None:
        """Start the background polling loop."""
        self._stop_event.clear()
        self._task = asyncio.create_task(self._report_loop())

    async def stop(self) -> None:
        """Stop the polling loop and wait for it to exit."""
        self._stop_event.set()
        if self._task and not self._task.done():
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

    async def _report_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=self._interval_s
                )
                break
            except asyncio.TimeoutError:
                pass

            snapshot: ProgressSnapshot = self._tracker.snapshot()
            if snapshot.tasks_total and not snapshot.finished:
                logger.info(f"Progress {snapshot.describe()}")
