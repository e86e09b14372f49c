# tests/unit/test_cache.py
"""
Unit tests for the `ListingCache` component.

These tests read and write real listing artifacts in a temporary directory.
"""

import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from partition_sync.cache import ListingCache, parse_line
from partition_sync.models import ObjectRecord

TS: datetime = datetime(2024, 1, 1, 12, 30, tzinfo=timezone.utc)


def test_cache_miss_returns_none(tmp_path: Path) -> None:
    """
    Tests that an absent artifact means "not yet listed".
    """
    cache: ListingCache = ListingCache(tmp_path)
    assert cache.get("bucket", "20240101") is None
    assert cache.exists("bucket", "20240101") is False


def test_cache_put_then_get(tmp_path: Path) -> None:
    """
    Tests that a written listing is read back with identical records.

    Arrange:
        - Create records, one with commas in its key.
    Act:
        - Put them under `(bucket, prefix)` and read them back.
    Assert:
        - The records and their order are unchanged.
        - The artifact uses the `<bucket>_<prefix>_listing.txt` name.
    """
    cache: ListingCache = ListingCache(tmp_path)
    records: List[ObjectRecord] = [
        ObjectRecord("20240101/app1/a.txt", TS, 100),
        ObjectRecord("20240101/app2/b,c,d.txt", TS, 0),
    ]

    path: Path = cache.put("bucket", "20240101", records)

    assert path.name == "bucket_20240101_listing.txt"
    assert cache.get("bucket", "20240101") == records


def test_cache_whole_bucket_key(tmp_path: Path) -> None:
    """
    Tests that the whole-bucket listing (no prefix) is a separate entry.
    """
    cache: ListingCache = ListingCache(tmp_path)
    cache.put("bucket", None, [ObjectRecord("k", TS, 1)])

    assert cache.path_for("bucket", None).name == "bucket__listing.txt"
    assert cache.get("bucket", "") == [ObjectRecord("k", TS, 1)]
    assert cache.get("bucket", "20240101") is None


def test_cache_put_overwrites(tmp_path: Path) -> None:
    """
    Tests that a second put replaces the previous listing entirely.
    """
    cache: ListingCache = ListingCache(tmp_path)
    cache.put("bucket", "p", [ObjectRecord("old", TS, 1), ObjectRecord("x", TS, 2)])
    cache.put("bucket", "p", [ObjectRecord("new", TS, 3)])

    assert cache.get("bucket", "p") == [ObjectRecord("new", TS, 3)]
    assert [p.name for p in tmp_path.iterdir()] == ["bucket_p_listing.txt"]


def test_cache_skips_malformed_lines(tmp_path: Path) -> None:
    """
    Tests that a corrupt artifact degrades to fewer records instead of failing.

    Arrange:
        - Write an artifact mixing valid lines and several kinds of garbage.
    Act:
        - Read it through the cache.
    Assert:
        - Only the valid lines are returned.
    """
    cache: ListingCache = ListingCache(tmp_path)
    cache.path_for("bucket", "p").write_text(
        "good/one.txt,2024-01-01T12:30:00+00:00,10\n"
        "missing-fields\n"
        "bad/size.txt,2024-01-01T12:30:00+00:00,ten\n"
        "bad/time.txt,yesterday,5\n"
        "negative.txt,2024-01-01T12:30:00+00:00,-1\n"
        "\n"
        "good/two.txt,2024-01-01 08:00:00,20\n"
        "truncated/li",
        encoding="utf-8",
    )

    records: Optional[List[ObjectRecord]] = cache.get("bucket", "p")

    assert records is not None
    assert [r.key for r in records] == ["good/one.txt", "good/two.txt"]
    assert records[1].last_modified == datetime(2024, 1, 1, 8, 0, 0)
    assert records[1].size == 20


def test_parse_line_keeps_commas_in_key() -> None:
    record: Optional[ObjectRecord] = parse_line(
        "a,b,c.txt,2024-01-01T00:00:00+00:00,7\n"
    )
    assert record is not None
    assert record.key == "a,b,c.txt"
    assert record.size == 7


def test_cache_expiry(tmp_path: Path) -> None:
    """
    Tests that artifacts older than `max_age_hours` are ignored.

    Arrange:
        - Write an artifact and backdate its modification time by two hours.
    Act/Assert:
        - A cache with a one hour limit treats it as absent.
        - A cache without a limit still returns it.
    """
    ListingCache(tmp_path).put("bucket", "p", [ObjectRecord("k", TS, 1)])
    path: Path = tmp_path / "bucket_p_listing.txt"
    two_hours_ago: float = time.time() - 7200
    os.utime(path, (two_hours_ago, two_hours_ago))

    assert ListingCache(tmp_path, max_age_hours=1).get("bucket", "p") is None
    assert ListingCache(tmp_path, max_age_hours=1).exists("bucket", "p") is False
    assert ListingCache(tmp_path).get("bucket", "p") == [ObjectRecord("k", TS, 1)]


def test_cache_invalidate(tmp_path: Path) -> None:
    """
    Tests that invalidation removes the artifact and forces a miss.
    """
    cache: ListingCache = ListingCache(tmp_path)
    cache.put("bucket", "p", [ObjectRecord("k", TS, 1)])

    assert cache.invalidate("bucket", "p") is True
    assert cache.get("bucket", "p") is None
    assert cache.invalidate("bucket", "p") is False


def test_cache_round_trips_keys_with_separators(tmp_path: Path) -> None:
    """
    Tests that keys holding line breaks, commas or percent signs survive.

    Arrange:
        - Create records whose keys contain `\\n`, `\\r`, `\\r\\n`, `,` and `%`.
    Act:
        - Put them and read them back.
    Assert:
        - The records are unchanged and the artifact holds one line each.
    """
    cache: ListingCache = ListingCache(tmp_path)
    records: List[ObjectRecord] = [
        ObjectRecord("20240101/app/a\nb.txt", TS, 1),
        ObjectRecord("20240101/app/c\rd.txt", TS, 2),
        ObjectRecord("20240101/app/e\r\nf.txt", TS, 3),
        ObjectRecord("20240101/app/g,h,2024-01-01T00:00:00,9", TS, 4),
        ObjectRecord("20240101/app/100%25 done.txt", TS, 5),
    ]

    path: Path = cache.put("bucket", "20240101", records)

    assert cache.get("bucket", "20240101") == records
    assert len(path.read_bytes().splitlines()) == len(records)
