# src/partition_sync/scheduler.py
"""Core orchestration logic for the partition-sync engine."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from partition_sync.cache import ListingCache
from partition_sync.config import AppConfig, BucketPair, Config
from partition_sync.differ import diff, filter_by_apps
from partition_sync.exceptions import ListingError
from partition_sync.limiter import ConcurrencyLimiter
from partition_sync.lister import ObjectLister
from partition_sync.models import (
    CopyTask,
    ObjectRecord,
    TransferReport,
    VerificationResult,
)
from partition_sync.partitions import iter_partitions
from partition_sync.progress import ProgressReporter, ProgressTracker
from partition_sync.reporting import format_size, log_plan
from partition_sync.store import S3ObjectStore, open_store
from partition_sync.transfer import TransferExecutor, make_strategy
from partition_sync.verifier import Verifier

logger: logging.Logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """
    Aggregate outcome of a run.

    Attributes:
        partitions (int): Partitions attempted.
        units (int): (partition, bucket pair) units attempted.
        objects_copied (int): Objects copied successfully.
        bytes_copied (int): Bytes copied successfully.
        copy_failures (int): Objects whose copy failed.
        listing_failures (int): Units aborted by a listing failure.
        verification_mismatches (int): Units whose verification found
            missing keys.
        interrupted (bool): True when the run stopped on a shutdown signal.
    """

    partitions: int = 0
    units: int = 0
    objects_copied: int = 0
    bytes_copied: int = 0
    copy_failures: int = 0
    listing_failures: int = 0
    verification_mismatches: int = 0
    interrupted: bool = False

    @property
    def failure_count(self) -> int:
        return self.copy_failures + self.listing_failures + self.verification_mismatches


class PartitionScheduler:
    """Drives listing, diffing, copying and verification partition by partition."""

    def __init__(
        self,
        config: Config,
        source: S3ObjectStore,
        destination: S3ObjectStore,
        shutdown_event: asyncio.Event,
    ) -> None:
        """
        Initializes the scheduler with the given configuration and stores.

        Args:
            config (Config): The application configuration.
            source (S3ObjectStore): The store objects are read from.
            destination (S3ObjectStore): The store objects are written to.
            shutdown_event (asyncio.Event): Event to signal graceful shutdown.
        """
        self._config: Config = config
        self._shutdown_event: asyncio.Event = shutdown_event

        listings_dir: Path = config.app.data_dir / "listings"
        self._source_lister: ObjectLister = ObjectLister(
            source,
            ListingCache(listings_dir / "source", config.app.cache_max_age_hours),
        )
        self._destination_lister: ObjectLister = ObjectLister(
            destination,
            ListingCache(listings_dir / "destination", config.app.cache_max_age_hours),
        )
        self._verifier: Verifier = Verifier(
            self._source_lister,
            self._destination_lister,
            apps=config.app.apps,
            report_limit=config.app.verify_report_limit,
        )
        self._tracker: ProgressTracker = ProgressTracker()
        self._copy_limiter: ConcurrencyLimiter = ConcurrencyLimiter(
            config.app.max_concurrency
        )
        self._executor: TransferExecutor = TransferExecutor(
            source,
            destination,
            make_strategy(config.app),
            self._copy_limiter,
            self._tracker,
            shutdown_event,
        )
        self._summary: RunSummary = RunSummary()

    @property
    def copy_limiter(self) -> ConcurrencyLimiter:
        """The admission gate bounding concurrent copies."""
        return self._copy_limiter

    async def run(self) -> RunSummary:
        """
        Executes the full synchronization over the configured date range.

        Returns:
            RunSummary: Aggregate counters for the run.
        """
        app: AppConfig = self._config.app
        logger.info(
            f"Starting partition-sync for {len(self._config.bucket_pairs)} bucket "
            f"pair(s), partitions {app.start_date:%Y%m%d}..{app.end_date:%Y%m%d}, "
            f"strategy '{app.copy_strategy.value}', "
            f"max concurrency {app.max_concurrency}."
        )
        if app.apps:
            logger.info(f"Application filter: {', '.join(app.apps)}")
        if app.start_date > app.end_date:
            logger.warning("Start date is after end date, nothing to do.")
            return self._summary

        if app.prescan:
            await self.prescan()

        reporter: ProgressReporter = ProgressReporter(
            self._tracker, app.progress_interval_s
        )
        reporter.start()
        try:
            for partition in iter_partitions(app.start_date, app.end_date):
                if self._shutdown_event.is_set():
                    break
                await self._process_partition(partition)
        finally:
            await reporter.stop()

        self._summary.interrupted = self._shutdown_event.is_set()
        self._log_summary()
        return self._summary

    async def prescan(self) -> List[Tuple[str, List[ObjectRecord]]]:
        """
        List every source bucket in full and log the run plan.

        Listings run concurrently, bounded by `list_concurrency`. A bucket
        that cannot be listed is logged and left out of the plan.

        Returns:
            List[Tuple[str, List[ObjectRecord]]]: `(bucket, records)` for
                each bucket that was listed.
        """
        logger.info("Listing all objects in source buckets...")
        limiter: ConcurrencyLimiter = ConcurrencyLimiter(
            self._config.app.list_concurrency
        )
        buckets: List[str] = list(
            dict.fromkeys(pair.source_bucket for pair in self._config.bucket_pairs)
        )

        async def list_bucket(bucket: str) -> Optional[Tuple[str, List[ObjectRecord]]]:
            async with limiter:
                try:
                    records: List[ObjectRecord] = await self._source_lister.list(bucket)
                except ListingError as e:
                    logger.error(f"Pre-scan skipped bucket '{bucket}': {e}")
                    return None
            records = filter_by_apps(records, self._config.app.apps)
            return bucket, records

        results: Sequence[Optional[Tuple[str, List[ObjectRecord]]]] = (
            await asyncio.gather(*(list_bucket(bucket) for bucket in buckets))
        )
        listings: List[Tuple[str, List[ObjectRecord]]] = [
            result for result in results if result is not None
        ]
        log_plan(listings)
        return listings

    async def _process_partition(self, partition: str) -> None:
        """Run every bucket pair of one partition; returns at the barrier."""
        logger.info(f"Processing date: {partition}")
        self._summary.partitions += 1
        self._tracker.reset(partition)

        pairs: Tuple[BucketPair, ...] = self._config.bucket_pairs
        if self._config.app.parallel_pairs:
            await asyncio.gather(*(self._process_unit(partition, p) for p in pairs))
        else:
            for pair in pairs:
                if self._shutdown_event.is_set():
                    break
                await self._process_unit(partition, pair)

    async def _process_unit(self, partition: str, pair: BucketPair) -> None:
        """List, diff, copy and verify one bucket pair for one partition."""
        self._summary.units += 1
        try:
            to_copy: List[ObjectRecord] = await self._plan_unit(partition, pair)
        except ListingError as e:
            self._summary.listing_failures += 1
            logger.error(f"Error processing {pair} for date {partition}: {e}")
            return

        report: TransferReport = await self._executor.run(
            [CopyTask(pair=pair, record=r, partition=partition) for r in to_copy]
        )
        self._summary.objects_copied += report.copied
        self._summary.bytes_copied += report.bytes_copied
        self._summary.copy_failures += len(report.failed)

        if self._shutdown_event.is_set():
            logger.warning(
                f"Interrupted {pair} for date {partition}: {report.copied} copied, "
                f"{len(report.failed)} failed, {report.cancelled} cancelled."
            )
            return

        logger.info(
            f"Completed copying for date {partition} in {pair}: "
            f"{report.copied} copied ({format_size(report.bytes_copied)}), "
            f"{len(report.failed)} failed."
        )

        if self._config.app.verify:
            await self._verify_unit(partition, pair)

    async def _plan_unit(self, partition: str, pair: BucketPair) -> List[ObjectRecord]:
        """
        List both sides of a unit and compute the objects to copy.

        Args:
            partition (str): The partition prefix.
            pair (BucketPair): The bucket pair.

        Returns:
            List[ObjectRecord]: Source records missing at the destination.
        """
        source_records: List[ObjectRecord] = await self._source_lister.list(
            pair.source_bucket, partition
        )
        source_records = filter_by_apps(source_records, self._config.app.apps)
        total_source_size: int = sum(r.size for r in source_records)

        destination_records: List[ObjectRecord] = await self._destination_lister.list(
            pair.destination_bucket,
            partition,
            use_cache=self._config.app.cache_destination_listings,
        )

        to_copy: List[ObjectRecord] = diff(source_records, destination_records)
        remaining_size: int = sum(r.size for r in to_copy)
        self._tracker.add_planned(len(to_copy), remaining_size)

        logger.info(
            f"[{partition}] {pair}: total files in source: {len(source_records)}, "
            f"total size: {format_size(total_source_size)}; "
            f"files in destination: {len(destination_records)}"
        )
        logger.info(
            f"[{partition}] {pair}: remaining files to copy: {len(to_copy)}, "
            f"remaining size: {format_size(remaining_size)}"
        )
        return to_copy

    async def _verify_unit(self, partition: str, pair: BucketPair) -> None:
        try:
            result: VerificationResult = await self._verifier.verify(pair, partition)
        except ListingError as e:
            self._summary.listing_failures += 1
            logger.error(f"Verification listing failed for {pair} date {partition}: {e}")
            return
        if not result.ok:
            self._summary.verification_mismatches += 1

    def _log_summary(self) -> None:
        summary: RunSummary = self._summary
        logger.info(
            f"Run finished: {summary.partitions} partition(s), {summary.units} unit(s), "
            f"{summary.objects_copied} object(s) copied "
            f"({format_size(summary.bytes_copied)}), peak concurrency "
            f"{self._copy_limiter.peak}/{self._copy_limiter.limit}."
        )
        if summary.failure_count:
            logger.warning(
                f"Failures: {summary.copy_failures} copy, "
                f"{summary.listing_failures} listing, "
                f"{summary.verification_mismatches} verification mismatch."
            )


async def run_sync(config: Config, shutdown_event: asyncio.Event) -> RunSummary:
    """
    Open both stores and run a `PartitionScheduler` to completion.

    Args:
        config (Config): The application configuration.
        shutdown_event (asyncio.Event): Event to signal graceful shutdown.

    Returns:
        RunSummary: Aggregate counters for the run.

    Raises:
        ClientInitError: If either store client cannot be created.
    """
    async with (
        open_store(config.source, config.app, "source") as source,
        open_store(config.destination, config.app, "destination") as destination,
    ):
        scheduler: PartitionScheduler = PartitionScheduler(
            config, source, destination, shutdown_event
        )
        return await scheduler.run()
