# src/partition_sync/models.py
"""Plain data records shared by the listing, diff and transfer stages."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from partition_sync.config import BucketPair


@dataclass(frozen=True)
class ObjectRecord:
    """
    A single object as seen in a bucket listing.

    Attributes:
        key (str): The object key; identity within a bucket.
        last_modified (datetime): The last modification time reported by the store.
        size (int): The object size in bytes.
    """

    key: str
    last_modified: datetime
    size: int


@dataclass(frozen=True)
class ListPage:
    """
    One page of a paginated listing.

    Attributes:
        records (List[ObjectRecord]): The objects on this page.
        next_token (str, optional): Continuation token for the next page,
            or None when the listing is exhausted.
    """

    records: List[ObjectRecord]
    next_token: Optional[str] = None


@dataclass(frozen=True)
class CopyTask:
    """An object scheduled to be copied for a bucket pair."""

    pair: BucketPair
    record: ObjectRecord
    partition: str = ""


@dataclass
class TransferReport:
    """
    Outcome of one copy wave.

    Attributes:
        copied (int): Number of objects copied successfully.
        bytes_copied (int): Total bytes of the successfully copied objects.
        failed (List[Tuple[str, str]]): `(key, error)` for each failed copy.
        cancelled (int): Number of tasks cancelled or never submitted because
            of a shutdown request.
    """

    copied: int = 0
    bytes_copied: int = 0
    failed: List[Tuple[str, str]] = field(default_factory=list)
    cancelled: int = 0


@dataclass(frozen=True)
class VerificationResult:
    """
    Outcome of re-listing a partition after its copy wave.

    Attributes:
        pair (BucketPair): The verified bucket pair.
        partition (str): The verified partition prefix.
        source_count (int): Number of (filtered) source objects checked.
        missing (Tuple[str, ...]): Source keys absent at the destination.
    """

    pair: BucketPair
    partition: str
    source_count: int
    missing: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        """True when every source key exists at the destination."""
        return not self.missing
