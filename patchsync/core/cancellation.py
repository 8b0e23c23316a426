"""
Cooperative cancellation for long-running sync stages.
"""

import asyncio

from patchsync.exceptions import SyncCancelledError


class CancelToken:
    """
    A flag checked between chunks and between files.

    Calling :meth:`cancel` never interrupts an await in progress; the running
    stage notices the request at its next checkpoint and stops cleanly.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "Cancelled by user") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raises SyncCancelledError if cancellation was requested."""
        if self._event.is_set():
            raise SyncCancelledError(self.reason or "Cancelled")

    async def wait(self) -> None:
        await self._event.wait()


def check_cancelled(token: CancelToken | None) -> None:
    """Checkpoint helper accepting an optional token."""
    if token is not None:
        token.raise_if_cancelled()
