# src/partition_sync/limiter.py
"""Counting admission gate for copy and listing work."""

import asyncio


class ConcurrencyLimiter(asyncio.Semaphore):
    """
    An `asyncio.Semaphore` that also tracks how many holders are in flight.

    `in_flight` is the current number of holders and `peak` the highest value
    it reached, which makes the concurrency bound observable in logs and tests.
    """

    def __init__(self, limit: int) -> None:
        """
        Initialize the limiter.

        Args:
            limit (int): Maximum number of simultaneous holders.
        """
        if limit < 1:
            raise ValueError("Concurrency limit must be at least 1.")
        super().__init__(limit)
        self._limit: int = limit
        self._in_flight: int = 0
        self._peak: int = 0

    @property
    def limit(self) -> int:
        """
        Get the concurrency limit.

        Returns:
            int: The maximum number of simultaneous holders.
        """
        return self._limit

    @property
    def in_flight(self) -> int:
        """Number of slots currently held."""
        return self._in_flight

    @property
    def peak(self) -> int:
        """Highest number of slots held at once."""
        return self._peak

    async def acquire(self) -> bool:
        """Wait for a free slot and take it."""
        await super().acquire()
        self._in_flight += 1
        self._peak = max(self._peak, self._in_flight)
        return True

    def release(self) -> None:
        """Give a slot back."""
        self._in_flight -= 1
        super().release()
