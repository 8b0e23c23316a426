"""
Handles the low-level downloading of manifest entries over HTTP, with bandwidth
throttling, streamed hashing and post-write verification.
"""

import asyncio
import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import aiofiles
import aiohttp

from patchsync.api.http import ConnectionPool
from patchsync.api.rate_limiter import BandwidthLimiter
from patchsync.core.cancellation import CancelToken, check_cancelled
from patchsync.core.events import notify_observer
from patchsync.exceptions import DownloadError, IntegrityMismatchError
from patchsync.models.config import DEFAULT_MAX_BANDWIDTH
from patchsync.models.manifest import FileEntry
from patchsync.models.stats import SpeedMeter
from patchsync.utils.path import create_dir, partial_path_for

from .integrity import hash_file, new_hasher

log = logging.getLogger(__name__)

DownloadProgressCallback = Callable[[float, str, float | None], None]


@dataclass(frozen=True)
class DownloadResult:
    """Outcome of a successful, verified download."""

    path: str
    destination: Path
    bytes_written: int
    digest: str
    duration: float
    throttle_delay: float
    peak_speed_bps: float


class ThrottledDownloader:
    """Downloads one manifest entry at a time under a bandwidth cap."""

    CHUNK_SIZE = 65536  # 64 KB

    def __init__(
        self,
        files_base_url: str,
        pool: ConnectionPool | None = None,
        limiter: BandwidthLimiter | None = None,
        algorithm: str = "md5",
        chunk_size: int = CHUNK_SIZE,
        read_timeout: float = 60.0,
        connect_timeout: float = 15.0,
        speed_update_interval: float = 1.0,
        speed_min_elapsed: float = 0.5,
        clock: Callable[[], float] | None = None,
    ):
        """
        Initializes the downloader.

        Args:
            files_base_url: Prefix the entry path is appended to.
            pool: Connection pool to borrow the HTTP session from.
            limiter: Bandwidth limiter; one is created when omitted.
            algorithm: hashlib algorithm the manifest digests use.
            chunk_size: Bytes read from the response per iteration.
            read_timeout: Maximum wait for any single socket read.
            connect_timeout: Maximum wait for the connection to open.
            speed_update_interval: Minimum seconds between speed readings.
            speed_min_elapsed: Seconds before the first speed reading.
            clock: Monotonic time source shared with the limiter.
        """
        self.files_base_url = files_base_url
        self._owns_pool = pool is None
        self._pool = pool or ConnectionPool(connect_timeout=connect_timeout)
        self._clock = clock or time.monotonic
        self.limiter = limiter or BandwidthLimiter(DEFAULT_MAX_BANDWIDTH, clock=self._clock)
        self.algorithm = algorithm
        self.chunk_size = chunk_size
        self.timeout = aiohttp.ClientTimeout(
            total=None, sock_connect=connect_timeout, sock_read=read_timeout
        )
        self.speed_update_interval = speed_update_interval
        self.speed_min_elapsed = speed_min_elapsed

    def url_for(self, entry: FileEntry) -> str:
        return self.files_base_url + entry.path

    def reset_throttle(self, max_bytes_per_second: float | None = None) -> None:
        """Starts a fresh throttling session; called before every file."""
        self.limiter.reset(max_bytes_per_second)

    async def download_entry(
        self,
        entry: FileEntry,
        destination_path: Path | str,
        max_bytes_per_second: float,
        on_progress: DownloadProgressCallback | None = None,
        cancel_token: CancelToken | None = None,
    ) -> DownloadResult:
        """
        Downloads ``entry`` to ``destination_path`` and verifies its hash.

        The body is streamed into a ``.part`` file next to the destination, which
        only replaces the destination once its digest matches the manifest. The
        partial file is removed on any failure or cancellation.

        Args:
            entry: The manifest entry to fetch.
            destination_path: Final location of the file.
            max_bytes_per_second: Bandwidth cap for this file.
            on_progress: Called with (percent_of_file, path, speed_mbps or None).
            cancel_token: Checked between chunks.

        Raises:
            DownloadError: Non-200 response or network failure. Also raised when
                the verified file cannot be moved into place.
            IntegrityMismatchError: Written bytes do not hash to ``entry.hash``.
            SyncCancelledError: If cancellation is requested.
        """
        destination = Path(destination_path)
        partial_path = partial_path_for(destination)
        url = self.url_for(entry)

        # Throttle history never carries over from a previous file
        self.reset_throttle(max_bytes_per_second)
        meter = SpeedMeter(
            interval=self.speed_update_interval,
            min_elapsed=self.speed_min_elapsed,
            clock=self._clock,
        )
        meter.start()
        started = self._clock()

        await asyncio.to_thread(create_dir, destination.parent)
        log.debug(f"Downloading {entry.path} from {url}")

        try:
            streamed_digest, bytes_written = await self._stream_to_file(
                entry, url, partial_path, meter, on_progress, cancel_token
            )

            # Re-read what actually landed on disk
            written_digest = await hash_file(partial_path, self.algorithm)
            if written_digest != streamed_digest:
                log.warning(
                    f"[yellow]{entry.path}: on-disk digest differs from the "
                    f"received stream[/yellow]"
                )
            if not entry.matches(written_digest):
                raise IntegrityMismatchError(entry.path, entry.hash, written_digest)

            try:
                await asyncio.to_thread(os.replace, partial_path, destination)
            except OSError as e:
                raise DownloadError(
                    entry.path, f"Could not move the download into place: {e}"
                ) from e
        finally:
            if partial_path.exists():
                try:
                    os.remove(partial_path)
                except OSError as e:
                    log.debug(f"Could not remove partial file {partial_path}: {e}")

        duration = self._clock() - started
        log.info(f"  [green]✓[/green] {entry.path} downloaded and verified")
        return DownloadResult(
            path=entry.path,
            destination=destination,
            bytes_written=bytes_written,
            digest=written_digest,
            duration=duration,
            throttle_delay=self.limiter.total_delay,
            peak_speed_bps=meter.peak_speed_bps,
        )

    async def _stream_to_file(
        self,
        entry: FileEntry,
        url: str,
        partial_path: Path,
        meter: SpeedMeter,
        on_progress: DownloadProgressCallback | None,
        cancel_token: CancelToken | None,
    ) -> tuple[str, int]:
        """Streams the response body to disk, hashing and pacing as it goes."""
        hasher = new_hasher(self.algorithm)
        bytes_downloaded = 0
        session = await self._pool.get()
        try:
            async with session.get(
                url, timeout=self.timeout, allow_redirects=True
            ) as response:
                if response.status != 200:
                    raise DownloadError(
                        entry.path,
                        f"HTTP {response.status} for {entry.path}",
                        status=response.status,
                    )

                total_size = int(response.headers.get("Content-Length") or 0) or (
                    entry.size or 0
                )

                async with aiofiles.open(partial_path, "wb") as f:
                    async for chunk in response.content.iter_chunked(self.chunk_size):
                        check_cancelled(cancel_token)
                        await f.write(chunk)
                        hasher.update(chunk)
                        bytes_downloaded += len(chunk)

                        await self.limiter.consume(len(chunk))

                        if on_progress:
                            speed_mbps = meter.update(bytes_downloaded)
                            percent = (
                                min(100.0, bytes_downloaded / total_size * 100)
                                if total_size > 0
                                else 0.0
                            )
                            notify_observer(
                                on_progress, percent, entry.path, speed_mbps
                            )
                        else:
                            meter.update(bytes_downloaded)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DownloadError(
                entry.path,
                f"Network error downloading {entry.path}: {str(e) or type(e).__name__}",
            ) from e

        check_cancelled(cancel_token)
        if on_progress:
            notify_observer(on_progress, 100.0, entry.path, None)
        return hasher.hexdigest(), bytes_downloaded

    async def close(self) -> None:
        """Closes the private connection pool, if any."""
        if self._owns_pool:
            await self._pool.close()
