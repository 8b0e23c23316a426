"""
Dataclasses for tracking transfer speed and sync session statistics.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass, field

BYTES_PER_MB = 1024 * 1024


@dataclass
class SpeedMeter:
    """
    Measures the transfer speed of a single file.

    A new reading is produced at most once per ``interval`` and never before
    ``min_elapsed`` seconds have passed since the transfer started.
    """

    interval: float = 1.0
    min_elapsed: float = 0.5
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    current_speed_bps: float = 0.0
    peak_speed_bps: float = 0.0
    _start_time: float = field(default=0.0, repr=False)
    _last_update_time: float | None = field(default=None, repr=False)
    _last_update_bytes: int = field(default=0, repr=False)

    def start(self) -> None:
        """Resets the meter for a new transfer."""
        self._start_time = self.clock()
        self._last_update_time = None
        self._last_update_bytes = 0
        self.current_speed_bps = 0.0

    def update(self, bytes_so_far: int) -> float | None:
        """
        Records progress and returns the speed in MB/s when a new reading is due.

        Args:
            bytes_so_far: Cumulative bytes received for this file.

        Returns:
            The speed over the last measurement window in MB/s, or None when the
            previous reading is still considered fresh.
        """
        now = self.clock()
        if now - self._start_time < self.min_elapsed:
            return None
        if (
            self._last_update_time is not None
            and now - self._last_update_time < self.interval
        ):
            return None

        window_start = (
            self._start_time if self._last_update_time is None else self._last_update_time
        )
        elapsed = now - window_start
        if elapsed <= 0:
            return None

        self.current_speed_bps = (bytes_so_far - self._last_update_bytes) / elapsed
        self.peak_speed_bps = max(self.peak_speed_bps, self.current_speed_bps)
        self._last_update_time = now
        self._last_update_bytes = bytes_so_far
        return self.current_speed_bps / BYTES_PER_MB


@dataclass
class SyncStats:
    """Tracks statistics for a single sync run."""

    files_checked: int = 0
    files_to_download: int = 0
    files_downloaded: int = 0
    bytes_downloaded: int = 0
    peak_speed_bps: float = 0.0
    started_at: float = field(default_factory=time.monotonic)
    finished_at: float | None = None

    @property
    def duration(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return end - self.started_at

    def finish(self) -> None:
        self.finished_at = time.monotonic()
