# src/partition_sync/reporting.py
"""
Human-readable reporting helpers.

Includes the byte-size formatter used across log messages and the per
application summary printed as the run plan after a pre-scan.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

import polars as pl

from partition_sync.models import ObjectRecord

logger: logging.Logger = logging.getLogger(__name__)

SIZE_UNITS: Tuple[str, ...] = ("B", "KB", "MB", "GB", "TB")
UNKNOWN_APP: str = "unknown"


def format_size(num_bytes: int) -> str:
    """
    Format a byte count using binary multiples.

    Args:
        num_bytes (int): The size in bytes.

    Returns:
        str: e.g. `"0 B"`, `"1.5 KB"`, `"2.25 GB"`.
    """
    value: float = float(num_bytes)
    order: int = 0
    while value >= 1024 and order < len(SIZE_UNITS) - 1:
        value /= 1024
        order += 1
    text: str = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {SIZE_UNITS[order]}"


@dataclass(frozen=True)
class AppTotals:
    """File count and byte total for one application segment."""

    file_count: int
    total_size: int


def summarize_by_app(records: Iterable[ObjectRecord]) -> Dict[str, AppTotals]:
    """
    Group records by application segment.

    The application is the second `/`-separated segment of the key
    (`20240101/<app>/...`); single-segment keys are grouped as `unknown`.

    Args:
        records (Iterable[ObjectRecord]): Any listing, typically the full
            pre-scan of every source bucket.

    Returns:
        Dict[str, AppTotals]: Totals keyed by application, sorted by name.
    """
    keys: List[str] = []
    sizes: List[int] = []
    for record in records:
        keys.append(record.key)
        sizes.append(record.size)
    if not keys:
        return {}

    frame: pl.DataFrame = pl.DataFrame(
        {"key": keys, "size": sizes}, schema={"key": pl.Utf8, "size": pl.Int64}
    )
    summary: pl.DataFrame = (
        frame.with_columns(
            pl.col("key")
            .str.split("/")
            .list.get(1, null_on_oob=True)
            .fill_null(UNKNOWN_APP)
            .alias("app")
        )
        .group_by("app")
        .agg(
            pl.len().alias("file_count"),
            pl.col("size").sum().alias("total_size"),
        )
        .sort("app")
    )
    return {
        row["app"]: AppTotals(int(row["file_count"]), int(row["total_size"]))
        for row in summary.iter_rows(named=True)
    }


def log_plan(
    bucket_listings: Sequence[Tuple[str, Sequence[ObjectRecord]]],
) -> Dict[str, AppTotals]:
    """
    Log the run plan: total files and size, then a line per application.

    Args:
        bucket_listings (Sequence[Tuple[str, Sequence[ObjectRecord]]]):
            `(bucket, records)` for every pre-scanned source bucket.

    Returns:
        Dict[str, AppTotals]: The per-application summary that was logged.
    """
    all_records: List[ObjectRecord] = [
        record for _, records in bucket_listings for record in records
    ]
    total_size: int = sum(record.size for record in all_records)
    summary: Dict[str, AppTotals] = summarize_by_app(all_records)

    logger.info("Program plan:")
    logger.info(f"  Source buckets scanned: {len(bucket_listings)}")
    logger.info(f"  Total files to consider: {len(all_records)}")
    logger.info(f"  Total size to consider: {format_size(total_size)}")
    logger.info("  Summary by application:")
    for app, totals in summary.items():
        logger.info(
            f"    {app}: {totals.file_count} files, {format_size(totals.total_size)}"
        )
    return summary
