# src/partition_sync/partitions.py
"""Date partition helpers."""

from datetime import date, timedelta
from typing import Iterator, Optional

PARTITION_FORMAT: str = "%Y%m%d"
DEFAULT_START_DATE: date = date(2023, 1, 1)


def default_end_date(today: Optional[date] = None) -> date:
    """
    Return yesterday, so a run never races with same-day writers.

    Args:
        today (date, optional): Reference date; defaults to the local date.

    Returns:
        date: The day before `today`.
    """
    return (today or date.today()) - timedelta(days=1)


def partition_prefix(day: date) -> str:
    """Serialize a date as an 8-digit partition prefix."""
    return day.strftime(PARTITION_FORMAT)


def iter_partitions(start: date, end: date) -> Iterator[str]:
    """
    Yield partition prefixes from `start` to `end`, both inclusive, ascending.

    Args:
        start (date): The first date.
        end (date): The last date.

    Yields:
        str: `YYYYMMDD` prefixes.
    """
    day: date = start
    while day <= end:
        yield partition_prefix(day)
        day += timedelta(days=1)
