# tests/conftest.py
"""
Pytest configuration and shared fixtures for the partition-sync test suite.

This module provides:
- `FakeObjectStore`, an in-memory stand-in for `S3ObjectStore` that records
  listing calls, tracks concurrent reads and can be told to fail.
- Factories for `Config` objects rooted in a temporary data directory.
"""

import asyncio
from collections import defaultdict
from datetime import date, datetime, timezone
from pathlib import Path
from typing import (
    Any,
    AsyncIterator,
    BinaryIO,
    Callable,
    Dict,
    List,
    Optional,
    Set,
    Tuple,
    Union,
)

import pytest
from botocore.exceptions import ClientError

from partition_sync.config import AppConfig, BucketPair, Config, S3Config
from partition_sync.models import ListPage, ObjectRecord

LAST_MODIFIED: datetime = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def client_error(code: str, operation: str) -> ClientError:
    """
    Build a botocore `ClientError` like the ones raised by a real client.

    Args:
        code (str): The S3 error code, e.g. `AccessDenied`.
        operation (str): The failing operation name.

    Returns:
        ClientError: The error instance.
    """
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeObjectStore:
    """An in-memory object store exposing the `S3ObjectStore` interface."""

    def __init__(self, name: str = "fake", page_size: int = 2, delay: float = 0.0):
        self.name: str = name
        self.page_size: int = page_size
        self.delay: float = delay
        self.objects: Dict[str, Dict[str, bytes]] = defaultdict(dict)
        self.list_calls: List[Tuple[str, Optional[str], Optional[str]]] = []
        self.put_calls: List[Tuple[str, str]] = []
        self.spool_paths: List[Path] = []
        self.failing_buckets: Set[str] = set()
        self.failing_gets: Set[str] = set()
        self.failing_puts: Set[str] = set()
        self.in_flight: int = 0
        self.peak_in_flight: int = 0

    def add(self, bucket: str, key: str, body: bytes = b"x") -> None:
        self.objects[bucket][key] = body

    def keys(self, bucket: str) -> Set[str]:
        return set(self.objects[bucket])

    async def list_page(
        self,
        bucket: str,
        prefix: Optional[str] = None,
        continuation_token: Optional[str] = None,
    ) -> ListPage:
        self.list_calls.append((bucket, prefix, continuation_token))
        if bucket in self.failing_buckets:
            raise client_error("AccessDenied", "ListObjectsV2")
        keys: List[str] = sorted(
            key for key in self.objects[bucket] if key.startswith(prefix or "")
        )
        start: int = int(continuation_token or 0)
        end: int = start + self.page_size
        records: List[ObjectRecord] = [
            ObjectRecord(key, LAST_MODIFIED, len(self.objects[bucket][key]))
            for key in keys[start:end]
        ]
        return ListPage(records, str(end) if end < len(keys) else None)

    async def _read(self, bucket: str, key: str) -> bytes:
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if key in self.failing_gets:
                raise client_error("NoSuchKey", "GetObject")
            return self.objects[bucket][key]
        finally:
            self.in_flight -= 1

    async def get_object(self, bucket: str, key: str) -> bytes:
        return await self._read(bucket, key)

    async def iter_object(
        self, bucket: str, key: str, chunk_size: int
    ) -> AsyncIterator[bytes]:
        body: bytes = await self._read(bucket, key)
        for offset in range(0, len(body), chunk_size):
            yield body[offset : offset + chunk_size]

    async def put_object(
        self,
        bucket: str,
        key: str,
        body: Union[bytes, BinaryIO],
        content_length: int,
    ) -> None:
        if not isinstance(body, bytes):
            self.spool_paths.append(Path(body.name))
        if key in self.failing_puts:
            raise client_error("AccessDenied", "PutObject")
        data: bytes = body if isinstance(body, bytes) else body.read()
        assert len(data) == content_length
        self.put_calls.append((bucket, key))
        self.objects[bucket][key] = data


@pytest.fixture(scope="function")
def source_store() -> FakeObjectStore:
    """Provide an empty fake source store."""
    return FakeObjectStore("source")


@pytest.fixture(scope="function")
def dest_store() -> FakeObjectStore:
    """Provide an empty fake destination store."""
    return FakeObjectStore("destination")


@pytest.fixture(scope="function")
def make_config(tmp_path: Path) -> Callable[..., Config]:
    """
    Provide a factory for `Config` objects isolated in a temporary directory.

    The factory defaults to a single `src -> dst` pair, the single partition
    2024-01-01, no pre-scan and verification enabled. Keyword arguments
    override `AppConfig` fields; `bucket_pairs` overrides the pairs.

    Args:
        tmp_path (Path): The pytest fixture for a temporary directory.

    Returns:
        Callable[..., Config]: The factory.
    """

    def _factory(**overrides: Any) -> Config:
        pairs: Tuple[BucketPair, ...] = overrides.pop(
            "bucket_pairs", (BucketPair("src", "dst"),)
        )
        app_fields: Dict[str, Any] = {
            "data_dir": tmp_path / "data",
            "start_date": date(2024, 1, 1),
            "end_date": date(2024, 1, 1),
            "prescan": False,
            "progress_interval_s": 60.0,
        }
        app_fields.update(overrides)
        return Config(
            source=S3Config(),
            destination=S3Config(),
            bucket_pairs=pairs,
            app=AppConfig(**app_fields),
        )

    return _factory
