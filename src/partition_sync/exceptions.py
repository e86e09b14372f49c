# src/partition_sync/exceptions.py
"""Custom exceptions for the partition-sync application."""

from typing import Optional


class PartitionSyncError(Exception):
    """Base exception for all application-specific errors."""

    pass


class ConfigError(PartitionSyncError):
    """Raised for configuration-related issues."""

    pass


class ClientInitError(PartitionSyncError):
    """Raised when an object store client cannot be constructed."""

    pass


class ListingError(PartitionSyncError):
    """Raised when enumerating a bucket/prefix fails."""

    def __init__(self, bucket: str, prefix: Optional[str], reason: str) -> None:
        """
        Args:
            bucket (str): The bucket being listed.
            prefix (str, optional): The prefix being listed, if any.
            reason (str): A description of the underlying failure.
        """
        self.bucket: str = bucket
        self.prefix: Optional[str] = prefix
        location: str = f"s3://{bucket}/{prefix or ''}"
        super().__init__(f"Failed to list '{location}': {reason}")


class TransferError(PartitionSyncError):
    """Raised when a single object copy fails."""

    pass
