# src/partition_sync/transfer.py
"""
Object copy strategies and the bounded executor that runs them.

A strategy copies one object between stores. The executor admits copy tasks
through a `ConcurrencyLimiter`, so at most `max_concurrency` copies are in
flight, and then waits for the whole wave before returning. A failing copy is
logged and counted; it never cancels its siblings.
"""

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence, Set, Union

from botocore.exceptions import BotoCoreError, ClientError

from partition_sync.config import AppConfig, CopyStrategy
from partition_sync.exceptions import TransferError
from partition_sync.limiter import ConcurrencyLimiter
from partition_sync.models import CopyTask, ObjectRecord, TransferReport
from partition_sync.progress import ProgressTracker
from partition_sync.store import S3ObjectStore

logger: logging.Logger = logging.getLogger(__name__)

SPOOL_FILE_PREFIX: str = "psync-"
SPOOL_FILE_SUFFIX: str = ".part"


class BufferedTransfer:
    """Download the whole body into memory, then upload it."""

    name: str = "buffered"

    async def copy(
        self,
        source: S3ObjectStore,
        destination: S3ObjectStore,
        record: ObjectRecord,
        source_bucket: str,
        destination_bucket: str,
    ) -> int:
        """
        Copy one object through an in-memory buffer.

        Args:
            source (S3ObjectStore): The store to read from.
            destination (S3ObjectStore): The store to write to.
            record (ObjectRecord): The object to copy.
            source_bucket (str): Bucket holding the object.
            destination_bucket (str): Bucket receiving the object.

        Returns:
            int: Number of bytes uploaded.
        """
        body: bytes = await source.get_object(source_bucket, record.key)
        await destination.put_object(destination_bucket, record.key, body, len(body))
        return len(body)


class SpooledTransfer:
    """Download the body to a temporary file, then upload from that file."""

    name: str = "spooled"

    def __init__(self, spool_dir: Optional[Path], chunk_size: int) -> None:
        """
        Args:
            spool_dir (Path, optional): Directory for temp files; None uses
                the system temp directory.
            chunk_size (int): Bytes read from the source per chunk.
        """
        self._spool_dir: Optional[Path] = spool_dir
        self._chunk_size: int = chunk_size
        if self._spool_dir is not None:
            self._spool_dir.mkdir(parents=True, exist_ok=True)

    async def copy(
        self,
        source: S3ObjectStore,
        destination: S3ObjectStore,
        record: ObjectRecord,
        source_bucket: str,
        destination_bucket: str,
    ) -> int:
        """
        Copy one object through a uniquely named temp file.

        The temp file is removed whether the copy succeeds, fails or is
        cancelled.

        Returns:
            int: Number of bytes uploaded.
        """
        loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()
        fd: int
        name: str
        fd, name = tempfile.mkstemp(
            prefix=SPOOL_FILE_PREFIX, suffix=SPOOL_FILE_SUFFIX, dir=self._spool_dir
        )
        spool_path: Path = Path(name)
        try:
            with os.fdopen(fd, "wb") as handle:
                async for chunk in source.iter_object(
                    source_bucket, record.key, self._chunk_size
                ):
                    await loop.run_in_executor(None, handle.write, chunk)

            size: int = spool_path.stat().st_size
            with spool_path.open("rb") as handle:
                await destination.put_object(
                    destination_bucket, record.key, handle, size
                )
            return size
        finally:
            spool_path.unlink(missing_ok=True)


TransferStrategy = Union[BufferedTransfer, SpooledTransfer]


def make_strategy(app_config: AppConfig) -> TransferStrategy:
    """
    Build the copy strategy selected in the configuration.

    Args:
        app_config (AppConfig): The application configuration.

    Returns:
        TransferStrategy: The strategy instance shared by every copy of the run.
    """
    if app_config.copy_strategy is CopyStrategy.SPOOLED:
        return SpooledTransfer(app_config.spool_dir, app_config.chunk_size)
    return BufferedTransfer()


class TransferExecutor:
    """Runs copy waves on a bounded pool of asyncio tasks."""

    def __init__(
        self,
        source: S3ObjectStore,
        destination: S3ObjectStore,
        strategy: TransferStrategy,
        limiter: ConcurrencyLimiter,
        tracker: ProgressTracker,
        shutdown_event: asyncio.Event,
    ) -> None:
        """
        Initializes the executor.

        Args:
            source (S3ObjectStore): The store objects are read from.
            destination (S3ObjectStore): The store objects are written to.
            strategy (TransferStrategy): How each object is copied.
            limiter (ConcurrencyLimiter): The admission gate shared by every
                wave of the run.
            tracker (ProgressTracker): Counters updated on task completion.
            shutdown_event (asyncio.Event): Event to signal graceful shutdown.
        """
        self._source: S3ObjectStore = source
        self._destination: S3ObjectStore = destination
        self._strategy: TransferStrategy = strategy
        self._limiter: ConcurrencyLimiter = limiter
        self._tracker: ProgressTracker = tracker
        self._shutdown_event: asyncio.Event = shutdown_event

    async def run(self, tasks: Sequence[CopyTask]) -> TransferReport:
        """
        Copy every task and wait for all of them to finish.

        Submission suspends whenever the limiter is exhausted. If shutdown is
        signaled, no further tasks are submitted and in-flight copies are
        cancelled.

        Args:
            tasks (Sequence[CopyTask]): The copy wave.

        Returns:
            TransferReport: Counts of copied, failed and cancelled objects.
        """
        report: TransferReport = TransferReport()
        running: List[asyncio.Task[None]] = []

        for index, task in enumerate(tasks):
            if self._shutdown_event.is_set():
                report.cancelled += len(tasks) - index
                logger.warning(
                    f"Shutdown requested, {len(tasks) - index} copy task(s) "
                    "not submitted."
                )
                break
            await self._limiter.acquire()
            running.append(asyncio.create_task(self._copy_one(task, report)))

        if running:
            await self._await_wave(running)
        return report

    async def _await_wave(self, running: List[asyncio.Task[None]]) -> None:
        """Wait for every running copy, cancelling them on shutdown."""
        wave: "asyncio.Future[List[object]]" = asyncio.gather(
            *running, return_exceptions=True
        )
        shutdown_task: asyncio.Task[bool] = asyncio.create_task(
            self._shutdown_event.wait()
        )
        try:
            done: Set["asyncio.Future[object]"]
            done, _ = await asyncio.wait(
                {wave, shutdown_task}, return_when=asyncio.FIRST_COMPLETED
            )
            if wave not in done:
                in_flight: int = sum(1 for task in running if not task.done())
                logger.warning(
                    f"Shutdown requested, cancelling {in_flight} in-flight copy task(s)."
                )
                for task in running:
                    task.cancel()
                await wave
        finally:
            shutdown_task.cancel()

    async def _copy_one(self, task: CopyTask, report: TransferReport) -> None:
        """Copy a single object. The limiter slot is already held."""
        record: ObjectRecord = task.record
        source_uri: str = f"s3://{task.pair.source_bucket}/{record.key}"
        try:
            copied_bytes: int = await self._strategy.copy(
                self._source,
                self._destination,
                record,
                task.pair.source_bucket,
                task.pair.destination_bucket,
            )
        except asyncio.CancelledError:
            report.cancelled += 1
            raise
        except (ClientError, BotoCoreError, TransferError, OSError) as e:
            report.failed.append((record.key, f"{type(e).__name__}: {e}"))
            self._tracker.record_failure()
            logger.error(
                f"Failed to copy '{source_uri}' to bucket "
                f"'{task.pair.destination_bucket}' (partition {task.partition}): "
                f"{type(e).__name__} - {e}"
            )
        except Exception as e:
            report.failed.append((record.key, f"{type(e).__name__}: {e}"))
            self._tracker.record_failure()
            logger.exception(
                f"An unexpected error occurred copying '{source_uri}' "
                f"(partition {task.partition})"
            )
        else:
            report.copied += 1
            report.bytes_copied += copied_bytes
            self._tracker.record_success(copied_bytes)
            logger.debug(
                f"Copied '{source_uri}' to bucket '{task.pair.destination_bucket}'."
            )
        finally:
            self._limiter.release()
