# src/partition_sync/config.py
"""
Configuration for the partition-sync engine.

Connection settings and bucket lists are read from environment variables,
operational parameters come from the command line. Everything ends up in a
single frozen `Config` value that is built once and handed to each component.
"""

import os
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from partition_sync.exceptions import ConfigError
from partition_sync.partitions import DEFAULT_START_DATE, default_end_date

ENV_PREFIX: str = "PSYNC"
ADDRESSING_STYLES: Tuple[str, ...] = ("auto", "path", "virtual")


def _get_env_var(name: str, default: Optional[str] = None) -> Optional[str]:
    """
    Retrieves an optional environment variable, treating blank values as unset.

    Args:
        name (str): The name of the environment variable.
        default (str, optional): The default value if the variable is not set.

    Returns:
        Optional[str]: The stripped value, or `default`.
    """
    value: Optional[str] = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _get_required_env_var(name: str) -> str:
    """
    Retrieves a required environment variable.

    Args:
        name (str): The name of the environment variable.

    Returns:
        str: The value of the environment variable.
    """
    value: Optional[str] = _get_env_var(name)
    if value is None:
        raise ConfigError(f"Environment variable '{name}' must be set.")
    return value


def split_names(raw: Optional[str]) -> List[str]:
    """Split a comma-separated list, dropping blanks."""
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


@dataclass(frozen=True)
class S3Config:
    """
    Represents the connection settings for an S3-compatible endpoint.

    Attributes:
        endpoint_url (str, optional): Endpoint override; None uses the AWS default.
        access_key_id (str, optional): Static access key ID.
        secret_access_key (str, optional): Static secret access key.
        region (str): The region name.
        addressing_style (str): `auto`, `path` or `virtual`.
    """

    endpoint_url: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    region: str = "us-east-1"
    addressing_style: str = "auto"

    def __post_init__(self) -> None:
        if bool(self.access_key_id) != bool(self.secret_access_key):
            raise ConfigError(
                "Access key ID and secret access key must be set together."
            )
        if self.addressing_style not in ADDRESSING_STYLES:
            raise ConfigError(
                f"Invalid addressing style '{self.addressing_style}', "
                f"expected one of {', '.join(ADDRESSING_STYLES)}."
            )

    @property
    def has_static_credentials(self) -> bool:
        """True when an explicit key pair is configured."""
        return bool(self.access_key_id and self.secret_access_key)

    def as_boto_dict(self) -> Dict[str, str]:
        """
        Returns the configuration as keyword arguments for an aiobotocore client.

        Credentials are omitted when no static pair is configured so that
        botocore falls back to its default credential chain.

        Returns:
            Dict[str, str]: A dictionary of client parameters.
        """
        params: Dict[str, str] = {"region_name": self.region}
        if self.endpoint_url:
            params["endpoint_url"] = self.endpoint_url
        if self.has_static_credentials:
            params["aws_access_key_id"] = str(self.access_key_id)
            params["aws_secret_access_key"] = str(self.secret_access_key)
        return params

    @classmethod
    def from_env(cls, side: str) -> "S3Config":
        """
        Build the settings for one side from `PSYNC_<SIDE>_*` variables.

        Args:
            side (str): `SOURCE` or `DESTINATION`.

        Returns:
            S3Config: The connection settings.
        """
        prefix: str = f"{ENV_PREFIX}_{side.upper()}"
        return cls(
            endpoint_url=_get_env_var(f"{prefix}_ENDPOINT_URL"),
            access_key_id=_get_env_var(f"{prefix}_ACCESS_KEY_ID"),
            secret_access_key=_get_env_var(f"{prefix}_SECRET_ACCESS_KEY"),
            region=_get_env_var(f"{prefix}_REGION") or "us-east-1",
            addressing_style=_get_env_var(f"{prefix}_ADDRESSING_STYLE") or "auto",
        )


@dataclass(frozen=True)
class BucketPair:
    """
    A source bucket and the destination bucket it is mirrored into.

    Attributes:
        source_bucket (str): The bucket objects are read from.
        destination_bucket (str): The bucket objects are written to.
    """

    source_bucket: str
    destination_bucket: str

    def __str__(self) -> str:
        return f"{self.source_bucket} -> {self.destination_bucket}"


def build_bucket_pairs(
    sources: Sequence[str],
    destinations: Sequence[str],
    shared_destination: bool = False,
) -> Tuple[BucketPair, ...]:
    """
    Pair source and destination bucket names positionally.

    Args:
        sources (Sequence[str]): Source bucket names.
        destinations (Sequence[str]): Destination bucket names.
        shared_destination (bool): Allow a single destination to receive
            every source bucket.

    Returns:
        Tuple[BucketPair, ...]: The validated pairs, in source order.

    Raises:
        ConfigError: If the lists cannot be paired unambiguously.
    """
    if not sources:
        raise ConfigError("At least one source bucket must be configured.")
    if not destinations:
        raise ConfigError("At least one destination bucket must be configured.")
    if len(sources) == len(destinations):
        return tuple(BucketPair(s, d) for s, d in zip(sources, destinations))
    if len(destinations) == 1 and shared_destination:
        return tuple(BucketPair(s, destinations[0]) for s in sources)
    raise ConfigError(
        f"{len(sources)} source bucket(s) but {len(destinations)} destination "
        "bucket(s) configured. Provide one destination per source, or a single "
        "destination together with --shared-destination."
    )


class CopyStrategy(str, Enum):
    """How an object body is held between download and upload."""

    BUFFERED = "buffered"
    SPOOLED = "spooled"


@dataclass(frozen=True)
class AppConfig:
    """
    Defines the engine's operational parameters.

    Attributes:
        data_dir (Path): Working directory for listing artifacts and run logs.
        start_date (date): First partition date (inclusive).
        end_date (date): Last partition date (inclusive); defaults to yesterday.
        apps (Tuple[str, ...]): Application segments to keep; empty keeps all.
        copy_strategy (CopyStrategy): Buffered or spooled copies.
        spool_dir (Path, optional): Directory for spooled temp files.
        max_concurrency (int): Maximum number of in-flight object copies.
        list_concurrency (int): Maximum number of concurrent pre-scan listings.
        prescan (bool): List every source bucket up front and log a plan.
        verify (bool): Re-list each partition after its copy wave.
        parallel_pairs (bool): Process bucket pairs of a partition concurrently.
        cache_max_age_hours (float, optional): Expire listing artifacts older
            than this; None keeps them forever.
        cache_destination_listings (bool): Also read destination listings
            from the cache.
        progress_interval_s (float): Seconds between progress log lines.
        chunk_size (int): Read size when streaming bodies to disk.
        store_max_attempts (int): botocore retry attempts per request.
        connect_timeout_s (int): Connect timeout per request.
        read_timeout_s (int): Read timeout per request.
        verify_report_limit (int): Max missing keys named in a mismatch log.
        log_prefix (str): Prefix of the run log file name.
    """

    data_dir: Path = field(default_factory=lambda: Path("data"))
    start_date: date = DEFAULT_START_DATE
    end_date: date = field(default_factory=default_end_date)
    apps: Tuple[str, ...] = ()
    copy_strategy: CopyStrategy = CopyStrategy.BUFFERED
    spool_dir: Optional[Path] = None
    max_concurrency: int = 5
    list_concurrency: int = 50
    prescan: bool = True
    verify: bool = True
    parallel_pairs: bool = False
    cache_max_age_hours: Optional[float] = None
    cache_destination_listings: bool = False
    progress_interval_s: float = 10.0
    chunk_size: int = 8 * 1024 * 1024
    store_max_attempts: int = 3
    connect_timeout_s: int = 10
    read_timeout_s: int = 60
    verify_report_limit: int = 20
    log_prefix: str = "partition_sync"

    def __post_init__(self) -> None:
        if self.max_concurrency < 1:
            raise ConfigError("max_concurrency must be at least 1.")
        if self.list_concurrency < 1:
            raise ConfigError("list_concurrency must be at least 1.")
        if self.cache_max_age_hours is not None and self.cache_max_age_hours <= 0:
            raise ConfigError("cache_max_age_hours must be positive when set.")
        if self.progress_interval_s <= 0:
            raise ConfigError("progress_interval_s must be positive.")


@dataclass(frozen=True)
class Config:
    """
    Top-level configuration container for the entire application.

    Attributes:
        source (S3Config): Connection settings of the source store.
        destination (S3Config): Connection settings of the destination store.
        bucket_pairs (Tuple[BucketPair, ...]): Validated bucket pairs.
        app (AppConfig): Operational parameters.
    """

    source: S3Config
    destination: S3Config
    bucket_pairs: Tuple[BucketPair, ...]
    app: AppConfig = field(default_factory=AppConfig)

    @classmethod
    def from_env(cls, app: AppConfig, shared_destination: bool = False) -> "Config":
        """
        Load connection settings and bucket lists from the environment.

        Args:
            app (AppConfig): Operational parameters, usually from the CLI.
            shared_destination (bool): Allow one destination for all sources.

        Returns:
            Config: The assembled configuration.
        """
        pairs: Tuple[BucketPair, ...] = build_bucket_pairs(
            split_names(_get_required_env_var(f"{ENV_PREFIX}_SOURCE_BUCKETS")),
            split_names(_get_required_env_var(f"{ENV_PREFIX}_DESTINATION_BUCKETS")),
            shared_destination=shared_destination,
        )
        return cls(
            source=S3Config.from_env("SOURCE"),
            destination=S3Config.from_env("DESTINATION"),
            bucket_pairs=pairs,
            app=app,
        )
