# src/partition_sync/signals.py
"""
Translate SIGINT/SIGTERM into an `asyncio.Event` for the sync engine.

The scheduler checks the event between (partition, bucket pair) units and the
transfer executor stops submitting copies and cancels the ones in flight, which
lets spooled temp files be cleaned up before the process exits.
"""

import asyncio
import logging
import os
import signal
from types import FrameType
from typing import Any, Callable, Dict, Optional, Tuple

logger: logging.Logger = logging.getLogger(__name__)

_SignalHandler = Callable[[int, Optional[FrameType]], None]
HANDLED_SIGNALS: Tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)


class GracefulShutdown:
    """
    Async context manager that owns the process shutdown event.

    The first handled signal sets the event. A second one exits immediately
    without waiting for in-flight copies. Previous handlers are restored on
    exit.
    """

    def __init__(self) -> None:
        self._event: asyncio.Event = asyncio.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._previous: Dict[signal.Signals, Any] = {}

    def _on_signal(self, signum: int, _: Optional[FrameType]) -> None:
        if self._event.is_set():
            logger.critical("Second shutdown signal received, exiting immediately.")
            os._exit(130)
        logger.warning(
            f"Received {signal.strsignal(signum)}. Finishing up: no new copies "
            "will start and in-flight copies are being cancelled. "
            "Send the signal again to exit immediately."
        )
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._event.set)
        else:
            self._event.set()

    async def __aenter__(self) -> asyncio.Event:
        """
        Install the signal handlers.

        Returns:
            asyncio.Event: Set once a handled signal arrives.
        """
        self._loop = asyncio.get_running_loop()
        handler: _SignalHandler = self._on_signal
        for sig in HANDLED_SIGNALS:
            try:
                self._previous[sig] = signal.signal(sig, handler)
            except (ValueError, OSError) as e:
                # Only the main thread may install handlers.
                logger.warning(f"Could not set handler for {sig.name}: {e}")
        return self._event

    async def __aexit__(self, *args: Any) -> None:
        """Restore the handlers that were active before entering."""
        for sig, previous in self._previous.items():
            try:
                signal.signal(sig, previous)
            except (ValueError, OSError) as e:
                logger.warning(f"Could not restore handler for {sig.name}: {e}")
        self._previous.clear()
        self._loop = None
