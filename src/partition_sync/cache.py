# src/partition_sync/cache.py
"""
On-disk listing cache.

Each `(bucket, prefix)` listing is persisted as one plain text artifact with a
`key,lastModifiedISO8601,sizeBytes` line per object. Keys are percent-encoded
(`/` kept as is) so commas and line breaks inside a key survive.

An artifact that exists is trusted as the authoritative listing, which is what
lets an interrupted run resume without enumerating large partitions again.
Delete the artifact (or call `invalidate`) to force a fresh listing. Methods
here do blocking file I/O; async callers run them in an executor.
"""

import logging
import os
import tempfile
import time
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional
from urllib.parse import quote, unquote

from partition_sync.models import ObjectRecord

logger: logging.Logger = logging.getLogger(__name__)


def format_line(record: ObjectRecord) -> str:
    """Serialize one record as an artifact line (without newline)."""
    key: str = quote(record.key, safe="/")
    return f"{key},{record.last_modified.isoformat()},{record.size}"


def parse_line(line: str) -> Optional[ObjectRecord]:
    """
    Parse one artifact line.

    The key field is percent-decoded. It is split off at the last two commas,
    so artifacts holding raw comma keys still parse.

    Args:
        line (str): A line from a listing artifact.

    Returns:
        Optional[ObjectRecord]: The record, or None if the line is malformed.
    """
    parts: List[str] = line.rstrip("\r\n").rsplit(",", 2)
    if len(parts) != 3 or not parts[0]:
        return None
    key, raw_timestamp, raw_size = parts
    try:
        size: int = int(raw_size)
        last_modified: datetime = datetime.fromisoformat(raw_timestamp.strip())
    except ValueError:
        return None
    if size < 0:
        return None
    return ObjectRecord(key=unquote(key), last_modified=last_modified, size=size)


class ListingCache:
    """Reads and writes listing artifacts under a working directory."""

    def __init__(self, cache_dir: Path, max_age_hours: Optional[float] = None) -> None:
        """
        Args:
            cache_dir (Path): Directory holding the listing artifacts.
            max_age_hours (float, optional): Treat artifacts older than this as
                absent. None never expires them.
        """
        self._cache_dir: Path = cache_dir
        self._max_age_s: Optional[float] = (
            max_age_hours * 3600 if max_age_hours is not None else None
        )
        self._cache_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, bucket: str, prefix: Optional[str]) -> Path:
        """Return the artifact path for a `(bucket, prefix)` pair."""
        return self._cache_dir / f"{bucket}_{prefix or ''}_listing.txt"

    def exists(self, bucket: str, prefix: Optional[str]) -> bool:
        """Return True if a non-expired artifact is present."""
        path: Path = self.path_for(bucket, prefix)
        return path.is_file() and not self._is_expired(path)

    def _is_expired(self, path: Path) -> bool:
        if self._max_age_s is None:
            return False
        return time.time() - path.stat().st_mtime > self._max_age_s

    def get(self, bucket: str, prefix: Optional[str]) -> Optional[List[ObjectRecord]]:
        """
        Load a cached listing.

        Malformed lines are skipped, so a damaged artifact yields fewer
        records instead of an error.

        Args:
            bucket (str): The listed bucket.
            prefix (str, optional): The listed prefix.

        Returns:
            Optional[List[ObjectRecord]]: The records, or None when there is
                no usable artifact.
        """
        path: Path = self.path_for(bucket, prefix)
        if not path.is_file():
            return None
        if self._is_expired(path):
            logger.info(f"Listing cache '{path.name}' is expired, ignoring it.")
            return None

        records: List[ObjectRecord] = []
        skipped: int = 0
        with path.open(
            "r", encoding="utf-8", errors="replace", newline=""
        ) as handle:
            for line in handle:
                if not line.strip():
                    continue
                record: Optional[ObjectRecord] = parse_line(line)
                if record is None:
                    skipped += 1
                    continue
                records.append(record)

        if skipped:
            logger.warning(
                f"Skipped {skipped} malformed line(s) in listing cache '{path.name}'."
            )
        logger.debug(f"Loaded {len(records)} records from '{path.name}'.")
        return records

    def put(
        self, bucket: str, prefix: Optional[str], records: Iterable[ObjectRecord]
    ) -> Path:
        """
        Persist a listing, replacing any previous artifact.

        The data goes to a sibling temp file first and is then renamed over
        the artifact, so an interrupted write never leaves a truncated
        listing behind.

        Args:
            bucket (str): The listed bucket.
            prefix (str, optional): The listed prefix.
            records (Iterable[ObjectRecord]): The full listing.

        Returns:
            Path: The artifact path.
        """
        path: Path = self.path_for(bucket, prefix)
        fd, name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=self._cache_dir
        )
        tmp_path: Path = Path(name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as handle:
                for record in records:
                    handle.write(format_line(record))
                    handle.write("\n")
            os.replace(tmp_path, path)
        finally:
            tmp_path.unlink(missing_ok=True)
        return path

    def invalidate(self, bucket: str, prefix: Optional[str]) -> bool:
        """
        Delete an artifact so the next listing goes to the store.

        Returns:
            bool: True if an artifact was removed.
        """
        path: Path = self.path_for(bucket, prefix)
        if path.exists():
            path.unlink()
            logger.info(f"Invalidated listing cache '{path.name}'.")
            return True
        return False
