"""
The main orchestrator: refresh the manifest, compute the delta, download it
sequentially and record the applied version.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from patchsync.api.http import ConnectionPool
from patchsync.api.manifest_provider import ManifestProvider
from patchsync.api.rate_limiter import BandwidthLimiter
from patchsync.exceptions import PatchSyncError, SyncCancelledError
from patchsync.models.config import MIB, SyncConfig
from patchsync.models.manifest import DeltaEntry
from patchsync.models.stats import SyncStats
from patchsync.storage.installation import LocalInstallation
from patchsync.transfer.downloader import ThrottledDownloader
from patchsync.transfer.integrity import IntegrityChecker

from .cancellation import CancelToken, check_cancelled
from .events import EventStream, ProgressEvent, StatusEvent, SyncEvent, SyncState

log = logging.getLogger(__name__)

ProgressCallback = Callable[..., None]
StatusCallback = Callable[[str], None]


@dataclass
class SyncResult:
    """Outcome of a completed or cancelled sync run."""

    state: SyncState
    manifest_version: str | None = None
    delta: list[DeltaEntry] = field(default_factory=list)
    downloaded: list[str] = field(default_factory=list)
    stats: SyncStats = field(default_factory=SyncStats)

    @property
    def up_to_date(self) -> bool:
        return self.state is SyncState.UP_TO_DATE

    @property
    def cancelled(self) -> bool:
        return self.state is SyncState.CANCELLED


@dataclass(frozen=True)
class VersionStatus:
    """Comparison between the remote manifest version and the local marker."""

    manifest_version: str
    local_version: str | None

    @property
    def is_current(self) -> bool:
        return self.local_version is not None and self.local_version == self.manifest_version


def aggregate_percent(completed: int, total: int, file_percent: float) -> int:
    """Overall batch progress, clamped to 0-100."""
    if total <= 0:
        return 100
    overall = (completed / total) * 100 + (file_percent / total)
    return round(min(max(overall, 0.0), 100.0))


class UpdateOrchestrator:
    """
    Keeps one local installation in sync with its remote manifest.

    Hold on to a single instance for the lifetime of the application so the
    manifest cache is reused across runs. Runs on the same instance are
    serialized.
    """

    def __init__(
        self,
        config: SyncConfig,
        provider: ManifestProvider | None = None,
        checker: IntegrityChecker | None = None,
        downloader: ThrottledDownloader | None = None,
        installation: LocalInstallation | None = None,
        events: EventStream | None = None,
        pool: ConnectionPool | None = None,
    ):
        self.config = config
        self._pool = pool or ConnectionPool(connect_timeout=config.connect_timeout)
        self.provider = provider or ManifestProvider(
            config.manifest_url,
            pool=self._pool,
            cache_ttl=config.manifest_cache_ttl,
            timeout=config.request_timeout,
        )
        self.checker = checker or IntegrityChecker(
            algorithm=config.hash_algorithm,
            chunk_size=config.hash_chunk_size,
            yield_every=config.verify_yield_every,
        )
        self.downloader = downloader or ThrottledDownloader(
            config.files_base_url,
            pool=self._pool,
            limiter=BandwidthLimiter(config.max_bandwidth_bytes_per_second),
            algorithm=config.hash_algorithm,
            chunk_size=config.download_chunk_size,
            read_timeout=config.read_timeout,
            connect_timeout=config.connect_timeout,
            speed_update_interval=config.speed_update_interval,
            speed_min_elapsed=config.speed_min_elapsed,
        )
        self.installation = installation or LocalInstallation(
            config.install_root,
            version_file=config.version_file,
            seed_files=config.seed_files,
        )
        self.events = events or EventStream()
        self.state = SyncState.IDLE
        self._run_lock = asyncio.Lock()

    async def __aenter__(self) -> "UpdateOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        """Releases the HTTP session and any private pools of the components."""
        await self.provider.close()
        await self.downloader.close()
        await self._pool.close()

    def set_max_bandwidth(self, megabytes_per_second: float) -> None:
        """Changes the bandwidth cap (in MB/s) for subsequent downloads."""
        self.config.max_bandwidth_bytes_per_second = int(megabytes_per_second * MIB)
        log.info(f"Bandwidth limit set to {megabytes_per_second:g} MB/s")

    def _set_state(self, state: SyncState, message: str) -> None:
        self.state = state
        log.debug(f"State -> {state.value}: {message}")
        self.events.publish(StatusEvent(state, message))

    def _progress(self, percent: int, label: str | None = None, **kwargs) -> None:
        self.events.publish(ProgressEvent(self.state, percent, label, **kwargs))

    async def check_version(self, force_refresh: bool = False) -> VersionStatus:
        """
        Compares the manifest version with the locally recorded one.

        A matching marker only means the last run completed; it does not prove
        the files are intact.
        """
        manifest = await self.provider.fetch(force_refresh)
        local_version = self.installation.marker.read()
        log.info(
            f"Manifest version: [cyan]{manifest.version}[/cyan], "
            f"local version: [cyan]{local_version or 'none'}[/cyan]"
        )
        return VersionStatus(manifest.version, local_version)

    async def verify(
        self, force_refresh_manifest: bool = False, cancel_token: CancelToken | None = None
    ) -> list[DeltaEntry]:
        """Fetches the manifest and returns the delta without downloading it."""
        manifest = await self.provider.fetch(force_refresh_manifest)
        return await self.checker.verify(
            manifest, self.installation.root, cancel_token=cancel_token
        )

    async def check_and_update(
        self,
        on_progress: ProgressCallback | None = None,
        on_status: StatusCallback | None = None,
        force_refresh_manifest: bool = False,
        cancel_token: CancelToken | None = None,
    ) -> SyncResult:
        """
        Runs the full update workflow.

        Args:
            on_progress: Called with (percent, label, index, total, speed_mbps).
            on_status: Called with a human-readable description of each stage.
            force_refresh_manifest: Ignore the cached manifest.
            cancel_token: Checked between files and chunks.

        Returns:
            A SyncResult in the UP_TO_DATE or CANCELLED state.

        Raises:
            ManifestFetchError, ManifestParseError: The manifest stage failed.
            DownloadError, IntegrityMismatchError: A file failed; the remaining
                files of the batch were not attempted.
        """
        async with self._run_lock:
            unsubscribe = self.events.subscribe(
                _callback_adapter(on_progress, on_status)
            )
            try:
                return await self._run(force_refresh_manifest, cancel_token)
            finally:
                unsubscribe()

    async def _run(
        self, force_refresh: bool, cancel_token: CancelToken | None
    ) -> SyncResult:
        result = SyncResult(state=SyncState.IDLE)
        self.state = SyncState.IDLE

        try:
            await asyncio.to_thread(self.installation.prepare)

            self._set_state(SyncState.FETCHING_MANIFEST, "Fetching manifest...")
            manifest = await self.provider.fetch(force_refresh)
            result.manifest_version = manifest.version
            check_cancelled(cancel_token)

            self._set_state(SyncState.VERIFYING_FILES, "Verifying files...")
            result.delta = await self.checker.verify(
                manifest,
                self.installation.root,
                on_progress=lambda pct, path, done, total: self._progress(
                    pct, path, index=done, total=total
                ),
                cancel_token=cancel_token,
            )
            result.stats.files_checked = len(manifest.files)
            result.stats.files_to_download = len(result.delta)

            if result.delta:
                await self._download_all(result, cancel_token)

            await asyncio.to_thread(self.installation.marker.write, manifest.version)
            result.stats.finish()
            result.state = SyncState.UP_TO_DATE
            self._progress(100)
            self._set_state(SyncState.UP_TO_DATE, "Up to date")
            return result

        except SyncCancelledError as e:
            log.warning(f"[yellow]Sync cancelled: {e}[/yellow]")
            result.stats.finish()
            result.state = SyncState.CANCELLED
            self._set_state(SyncState.CANCELLED, "Cancelled")
            return result
        except PatchSyncError as e:
            log.error(f"[red]Sync failed: {e}[/red]")
            self._set_state(SyncState.FAILED, f"Error: {e}")
            raise
        except asyncio.CancelledError:
            self._set_state(SyncState.CANCELLED, "Cancelled")
            raise
        except Exception as e:
            log.error(f"[red]Unexpected error during sync: {e}[/red]", exc_info=True)
            self._set_state(SyncState.FAILED, f"Error: {e}")
            raise

    async def _download_all(
        self, result: SyncResult, cancel_token: CancelToken | None
    ) -> None:
        total = len(result.delta)
        self._set_state(SyncState.DOWNLOADING, f"Downloading {total} files...")
        rate = self.config.max_bandwidth_bytes_per_second

        for completed, entry in enumerate(result.delta):
            check_cancelled(cancel_token)

            def forward(file_percent, path, speed_mbps, completed=completed):
                self._progress(
                    aggregate_percent(completed, total, file_percent),
                    path,
                    index=completed + 1,
                    total=total,
                    speed_mbps=speed_mbps,
                )

            self.downloader.reset_throttle(rate)
            download = await self.downloader.download_entry(
                entry,
                self.installation.path_for(entry.path),
                rate,
                on_progress=forward,
                cancel_token=cancel_token,
            )
            result.downloaded.append(entry.path)
            result.stats.files_downloaded += 1
            result.stats.bytes_downloaded += download.bytes_written
            result.stats.peak_speed_bps = max(
                result.stats.peak_speed_bps, download.peak_speed_bps
            )


def _callback_adapter(
    on_progress: ProgressCallback | None, on_status: StatusCallback | None
) -> Callable[[SyncEvent], None]:
    """Maps stream events onto the plain per-call callbacks."""

    def handle(event: SyncEvent) -> None:
        if isinstance(event, StatusEvent):
            if on_status:
                on_status(event.message)
        elif on_progress:
            on_progress(
                event.percent, event.label, event.index, event.total, event.speed_mbps
            )

    return handle
