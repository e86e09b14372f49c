# src/partition_sync/__init__.py
"""
partition-sync: a resumable mirror for date-partitioned S3 buckets.

For each `YYYYMMDD` partition in a date range, objects present in a source
bucket and missing from its destination bucket are copied with bounded
concurrency, then the partition is re-listed to verify the copy. Listings are
cached on disk so interrupted runs resume without enumerating everything again.

The primary entry points for programmatic use are `PartitionScheduler` and
`run_sync`.
"""

from typing import List

from partition_sync.scheduler import PartitionScheduler, RunSummary, run_sync

__all__: List[str] = ["PartitionScheduler", "RunSummary", "run_sync"]
