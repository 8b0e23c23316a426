"""
Progress and status events published by the sync engine.

Observers either subscribe a callback or iterate over :meth:`EventStream.listen`.
Publishing never blocks and an observer that raises cannot affect the engine.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from enum import Enum

log = logging.getLogger(__name__)


class SyncState(str, Enum):
    """Stages of the update workflow."""

    IDLE = "idle"
    FETCHING_MANIFEST = "fetching_manifest"
    VERIFYING_FILES = "verifying_files"
    DOWNLOADING = "downloading"
    UP_TO_DATE = "up_to_date"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SyncState.UP_TO_DATE, SyncState.FAILED, SyncState.CANCELLED)


@dataclass(frozen=True)
class StatusEvent:
    """The workflow entered a new stage."""

    state: SyncState
    message: str

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal


@dataclass(frozen=True)
class ProgressEvent:
    """Progress within the current stage, 0-100."""

    state: SyncState
    percent: int
    label: str | None = None
    index: int | None = None
    total: int | None = None
    speed_mbps: float | None = None

    @property
    def is_terminal(self) -> bool:
        return False


SyncEvent = StatusEvent | ProgressEvent
Subscriber = Callable[[SyncEvent], None]


class EventStream:
    """A minimal publish/subscribe channel for sync events."""

    def __init__(self):
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Registers a callback for every future event.

        Returns:
            A function that removes the subscription.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: SyncEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                log.exception(f"Event subscriber {callback!r} failed; ignoring.")

    async def listen(self) -> AsyncIterator[SyncEvent]:
        """
        Yields events until a terminal status is published.

        The subscription starts when iteration starts.
        """
        queue: asyncio.Queue[SyncEvent] = asyncio.Queue()
        unsubscribe = self.subscribe(queue.put_nowait)
        try:
            while True:
                event = await queue.get()
                yield event
                if event.is_terminal:
                    break
        finally:
            unsubscribe()


def notify_observer(callback: Callable, *args) -> None:
    """Invokes an observer callback, logging instead of propagating its errors."""
    try:
        callback(*args)
    except Exception:
        log.exception("Progress callback failed; ignoring.")
