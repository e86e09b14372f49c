# src/partition_sync/verifier.py
"""Post-copy verification of a partition."""

import asyncio
import logging
from typing import List, Sequence, Tuple

from partition_sync.config import BucketPair
from partition_sync.differ import diff, filter_by_apps
from partition_sync.lister import ObjectLister
from partition_sync.models import ObjectRecord, VerificationResult

logger: logging.Logger = logging.getLogger(__name__)


class Verifier:
    """
    Re-lists both sides of a bucket pair and reports source keys still
    missing at the destination.

    Listings bypass the cache so the check sees the stores' current state.
    Nothing is re-copied; a mismatch calls for an operator re-run.
    """

    def __init__(
        self,
        source_lister: ObjectLister,
        destination_lister: ObjectLister,
        apps: Sequence[str] = (),
        report_limit: int = 20,
    ) -> None:
        """
        Args:
            source_lister (ObjectLister): Lister for the source store.
            destination_lister (ObjectLister): Lister for the destination store.
            apps (Sequence[str]): Application filter applied to the source.
            report_limit (int): Max missing keys named in the mismatch log.
        """
        self._source_lister: ObjectLister = source_lister
        self._destination_lister: ObjectLister = destination_lister
        self._apps: Tuple[str, ...] = tuple(apps)
        self._report_limit: int = report_limit

    async def verify(self, pair: BucketPair, partition: str) -> VerificationResult:
        """
        Check that every source key of the partition exists at the destination.

        Args:
            pair (BucketPair): The bucket pair to check.
            partition (str): The partition prefix.

        Returns:
            VerificationResult: The (possibly empty) set of missing keys.

        Raises:
            ListingError: If either side cannot be listed.
        """
        source_records: List[ObjectRecord]
        destination_records: List[ObjectRecord]
        source_records, destination_records = await asyncio.gather(
            self._source_lister.list(pair.source_bucket, partition, use_cache=False),
            self._destination_lister.list(
                pair.destination_bucket, partition, use_cache=False
            ),
        )
        source_records = filter_by_apps(source_records, self._apps)
        missing: List[ObjectRecord] = diff(source_records, destination_records)
        result: VerificationResult = VerificationResult(
            pair=pair,
            partition=partition,
            source_count=len(source_records),
            missing=tuple(record.key for record in missing),
        )

        if result.ok:
            logger.info(
                f"Verification succeeded for {pair} partition {partition}: "
                f"all {result.source_count} source objects present."
            )
        else:
            shown: str = ", ".join(result.missing[: self._report_limit])
            more: int = len(result.missing) - self._report_limit
            suffix: str = f" (and {more} more)" if more > 0 else ""
            logger.error(
                f"Verification mismatch for {pair} partition {partition}: "
                f"{len(result.missing)} of {result.source_count} source objects "
                f"missing at destination: {shown}{suffix}"
            )
        return result
