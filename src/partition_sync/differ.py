# src/partition_sync/differ.py
"""Key-based comparison of source and destination listings."""

from typing import Iterable, List, Sequence, Set

from partition_sync.models import ObjectRecord


def matches_app(key: str, apps: Sequence[str]) -> bool:
    """Return True if `key` contains `/<app>/` for any of `apps`."""
    return any(f"/{app}/" in key for app in apps)


def filter_by_apps(
    records: Iterable[ObjectRecord], apps: Sequence[str]
) -> List[ObjectRecord]:
    """
    Keep only records belonging to one of the configured applications.

    Args:
        records (Iterable[ObjectRecord]): Source records.
        apps (Sequence[str]): Application segment names; empty keeps everything.

    Returns:
        List[ObjectRecord]: The matching records, order preserved.
    """
    if not apps:
        return list(records)
    return [record for record in records if matches_app(record.key, apps)]


def diff(
    source: Iterable[ObjectRecord], destination: Iterable[ObjectRecord]
) -> List[ObjectRecord]:
    """
    Return the source records whose key is absent at the destination.

    Only keys are compared. An object present on both sides with a different
    size or timestamp counts as already synced.

    Args:
        source (Iterable[ObjectRecord]): Source listing.
        destination (Iterable[ObjectRecord]): Destination listing.

    Returns:
        List[ObjectRecord]: Missing source records, in source order.
    """
    destination_keys: Set[str] = {record.key for record in destination}
    return [record for record in source if record.key not in destination_keys]
