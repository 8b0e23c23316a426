"""
Renders sync events as a Rich live progress display.
"""

import asyncio

from rich.console import Console
from rich.live import Live
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from patchsync.core.events import (
    EventStream,
    ProgressEvent,
    StatusEvent,
    SyncEvent,
    SyncState,
)
from patchsync.utils.formatting import format_speed

STATE_COLORS = {
    SyncState.FETCHING_MANIFEST: "cyan",
    SyncState.VERIFYING_FILES: "blue",
    SyncState.DOWNLOADING: "magenta",
    SyncState.UP_TO_DATE: "green",
    SyncState.FAILED: "red",
    SyncState.CANCELLED: "yellow",
}


class ProgressManager:
    """
    Subscribes to an EventStream and mirrors it in a single overall progress bar
    with a status line for the current file.
    """

    def __init__(self, console: Console, quiet: bool = False):
        self.console = console
        self.quiet = quiet

        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            BarColumn(bar_width=40),
            "[progress.percentage]{task.percentage:>3.0f}%",
            "•",
            TimeElapsedColumn(),
            console=console,
            transient=False,
        )
        self._task_id: TaskID | None = None
        self._detail = ""
        self._live: Live | None = None
        self._unsubscribe = None
        self.last_status: StatusEvent | None = None

    def attach(self, events: EventStream) -> None:
        """Starts receiving events from ``events``."""
        self._unsubscribe = events.subscribe(self.handle_event)

    def handle_event(self, event: SyncEvent) -> None:
        if isinstance(event, StatusEvent):
            self._on_status(event)
        elif isinstance(event, ProgressEvent):
            self._on_progress(event)

    def _on_status(self, event: StatusEvent) -> None:
        self.last_status = event
        color = STATE_COLORS.get(event.state, "white")
        if self.quiet:
            self.console.print(f"[{color}]{event.message}[/{color}]")
            return
        if self._task_id is not None:
            self.progress.update(
                self._task_id, description=f"[{color}]{event.message}[/{color}]"
            )
            if event.state in (SyncState.VERIFYING_FILES, SyncState.DOWNLOADING):
                self.progress.update(self._task_id, completed=0)
        self._detail = ""
        self._refresh()

    def _on_progress(self, event: ProgressEvent) -> None:
        if self.quiet or self._task_id is None:
            return
        self.progress.update(self._task_id, completed=event.percent)
        if event.label:
            counter = f" ({event.index}/{event.total})" if event.index else ""
            speed = format_speed(event.speed_mbps)
            self._detail = f"[dim]{event.label}{counter}[/dim]"
            if speed:
                self._detail += f" [magenta]{speed}[/magenta]"
        self._refresh()

    def _render(self) -> Table:
        grid = Table.grid()
        grid.add_row(self.progress)
        grid.add_row(self._detail)
        return grid

    def _refresh(self) -> None:
        if self._live:
            self._live.update(self._render())

    async def __aenter__(self):
        if self.quiet:
            return self
        self._task_id = self.progress.add_task("Starting...", total=100)
        self._live = Live(
            self._render(),
            console=self.console,
            refresh_per_second=10,
            transient=False,
        )
        self._live.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._unsubscribe:
            self._unsubscribe()
        if self._live:
            await asyncio.sleep(0.1)
            self._live.stop()
