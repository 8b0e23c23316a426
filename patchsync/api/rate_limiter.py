"""
Provides a bandwidth limiter that keeps a transfer's average throughput under a cap.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

log = logging.getLogger(__name__)


class BandwidthLimiter:
    """
    Paces a byte stream so its average throughput since the session start stays
    at or below ``max_bytes_per_second``.

    The average is measured from the moment :meth:`reset` starts a session, so a
    short burst above the cap is possible after a slow start. Each file transfer
    must begin with :meth:`reset`; history is never carried between sessions.
    """

    def __init__(
        self,
        max_bytes_per_second: float,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ):
        """
        Initializes the limiter.

        Args:
            max_bytes_per_second: The throughput ceiling.
            clock: Monotonic time source in seconds (defaults to time.monotonic).
            sleep: Coroutine used to wait (defaults to asyncio.sleep).
        """
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._rate = self._validate_rate(max_bytes_per_second)
        self._session_start: float | None = None
        self._bytes_in_session = 0
        self.total_delay = 0.0

    @staticmethod
    def _validate_rate(rate: float) -> float:
        if rate <= 0:
            raise ValueError("Bandwidth cap must be a positive number of bytes/s.")
        return float(rate)

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def bytes_in_session(self) -> int:
        return self._bytes_in_session

    def set_rate(self, max_bytes_per_second: float) -> None:
        """Changes the cap; takes effect on the next call to :meth:`consume`."""
        self._rate = self._validate_rate(max_bytes_per_second)
        log.debug(f"Bandwidth cap set to {self._rate / (1024 * 1024):.2f} MB/s")

    def reset(self, max_bytes_per_second: float | None = None) -> None:
        """Starts a fresh throttling session, optionally with a new cap."""
        if max_bytes_per_second is not None:
            self._rate = self._validate_rate(max_bytes_per_second)
        self._session_start = self._clock()
        self._bytes_in_session = 0
        self.total_delay = 0.0

    def delay_for(self, nbytes: int) -> float:
        """
        Records ``nbytes`` as transferred and returns how long to wait so the
        session average drops back to the cap (0.0 when already under it).
        """
        if self._session_start is None:
            self.reset()
        self._bytes_in_session += nbytes
        elapsed = self._clock() - self._session_start
        target = self._bytes_in_session / self._rate
        return max(0.0, target - elapsed)

    async def consume(self, nbytes: int) -> float:
        """
        Accounts for ``nbytes`` and sleeps if the average is over the cap.

        Returns:
            The delay that was applied, in seconds.
        """
        delay = self.delay_for(nbytes)
        if delay > 0:
            self.total_delay += delay
            await self._sleep(delay)
        return delay
