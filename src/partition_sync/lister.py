# src/partition_sync/lister.py
"""Paginated, cache-aware object enumeration."""

import asyncio
import logging
from typing import Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from partition_sync.cache import ListingCache
from partition_sync.exceptions import ListingError
from partition_sync.models import ListPage, ObjectRecord
from partition_sync.store import S3ObjectStore

logger: logging.Logger = logging.getLogger(__name__)


class ObjectLister:
    """
    Enumerates every object under a bucket/prefix of one store.

    Listings are read through the `ListingCache`: when an artifact exists it
    is returned as-is, otherwise the store is paginated to exhaustion and the
    result is written back to the cache.
    """

    def __init__(self, store: S3ObjectStore, cache: ListingCache) -> None:
        """
        Args:
            store (S3ObjectStore): The store to enumerate.
            cache (ListingCache): The cache shared by all listers of a run.
        """
        self._store: S3ObjectStore = store
        self._cache: ListingCache = cache

    async def list(
        self, bucket: str, prefix: Optional[str] = None, use_cache: bool = True
    ) -> List[ObjectRecord]:
        """
        Return the complete listing of `bucket` under `prefix`.

        Cache reads and writes run in the default executor. A cache that
        cannot be read or written is logged and bypassed; it never fails the
        listing.

        Args:
            bucket (str): The bucket to list.
            prefix (str, optional): Key prefix; None lists the whole bucket.
            use_cache (bool): Return a cached listing when one exists. The
                fresh listing is persisted either way.

        Returns:
            List[ObjectRecord]: De-duplicated records in first-seen order.

        Raises:
            ListingError: If any page request fails.
        """
        loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()
        location: str = f"s3://{bucket}/{prefix or ''}"
        if use_cache:
            cached: Optional[List[ObjectRecord]] = None
            try:
                cached = await loop.run_in_executor(
                    None, self._cache.get, bucket, prefix
                )
            except OSError as e:
                logger.warning(
                    f"Could not read the {self._store.name} listing cache for "
                    f"'{location}', listing live instead: {e}"
                )
            if cached is not None:
                logger.debug(
                    f"Using cached {self._store.name} listing for '{location}' "
                    f"({len(cached)} objects)."
                )
                return cached

        records: List[ObjectRecord] = await self.list_live(bucket, prefix)
        try:
            await loop.run_in_executor(None, self._cache.put, bucket, prefix, records)
        except OSError as e:
            logger.warning(
                f"Could not write the {self._store.name} listing cache for "
                f"'{location}', the next run will list it again: {e}"
            )
        return records

    async def list_live(
        self, bucket: str, prefix: Optional[str] = None
    ) -> List[ObjectRecord]:
        """
        Paginate the store until exhausted, without touching the cache.

        A key that appears on more than one page keeps its latest record.
        """
        by_key: Dict[str, ObjectRecord] = {}
        token: Optional[str] = None
        pages: int = 0
        try:
            while True:
                page: ListPage = await self._store.list_page(bucket, prefix, token)
                pages += 1
                for record in page.records:
                    by_key[record.key] = record
                token = page.next_token
                if not token:
                    break
        except (ClientError, BotoCoreError, asyncio.TimeoutError) as e:
            raise ListingError(bucket, prefix, str(e) or type(e).__name__) from e

        logger.debug(
            f"Listed {len(by_key)} objects in {pages} page(s) from the "
            f"{self._store.name} store at 's3://{bucket}/{prefix or ''}'."
        )
        return list(by_key.values())
