"""
Provides streamed content hashing and the manifest-vs-disk integrity check.
"""

import asyncio
import hashlib
import logging
from collections.abc import Callable
from pathlib import Path

import aiofiles

from patchsync.core.cancellation import CancelToken, check_cancelled
from patchsync.core.events import notify_observer
from patchsync.exceptions import FileReadError
from patchsync.models.manifest import DeltaEntry, DeltaReason, Manifest
from patchsync.utils.path import resolve_entry_path

log = logging.getLogger(__name__)

DEFAULT_HASH_CHUNK_SIZE = 1024 * 1024  # 1 MB

VerifyProgressCallback = Callable[[int, str, int, int], None]


def new_hasher(algorithm: str = "md5"):
    """Creates a hashlib object for the configured algorithm."""
    return hashlib.new(algorithm)


async def hash_file(
    path: Path,
    algorithm: str = "md5",
    chunk_size: int = DEFAULT_HASH_CHUNK_SIZE,
    cancel_token: CancelToken | None = None,
) -> str | None:
    """
    Computes the hex digest of a file without loading it into memory at once.

    Returns:
        The lowercase hex digest, or None if the file does not exist.

    Raises:
        FileReadError: If the file exists but cannot be read.
    """
    hasher = new_hasher(algorithm)
    try:
        async with aiofiles.open(path, "rb") as f:
            while chunk := await f.read(chunk_size):
                hasher.update(chunk)
                check_cancelled(cancel_token)
    except FileNotFoundError:
        return None
    except OSError as e:
        raise FileReadError(str(path), e.strerror or str(e)) from e
    return hasher.hexdigest()


class IntegrityChecker:
    """Compares installed files against manifest entries by content hash."""

    def __init__(
        self,
        algorithm: str = "md5",
        chunk_size: int = DEFAULT_HASH_CHUNK_SIZE,
        yield_every: int = 10,
    ):
        self.algorithm = algorithm
        self.chunk_size = chunk_size
        self.yield_every = yield_every

    async def local_hash(
        self, path: Path, cancel_token: CancelToken | None = None
    ) -> str | None:
        return await hash_file(path, self.algorithm, self.chunk_size, cancel_token)

    async def verify(
        self,
        manifest: Manifest,
        install_root: Path | str,
        on_progress: VerifyProgressCallback | None = None,
        cancel_token: CancelToken | None = None,
    ) -> list[DeltaEntry]:
        """
        Returns the manifest entries whose local copy is missing or stale.

        Entries keep their manifest order. Unreadable files are logged and
        treated like missing ones.

        Args:
            manifest: The manifest to check against.
            install_root: Directory the manifest paths are relative to.
            on_progress: Called after each entry with
                (percent, path, processed_count, total_count).
            cancel_token: Checked between files and between chunks.

        Raises:
            SyncCancelledError: If cancellation is requested.
        """
        root = Path(install_root)
        total = len(manifest.files)
        delta: list[DeltaEntry] = []
        log.info(f"Verifying {total} files in [dim]{root}[/dim]")

        for processed, entry in enumerate(manifest.files, start=1):
            check_cancelled(cancel_token)
            local_path = resolve_entry_path(root, entry.path)

            try:
                digest = await self.local_hash(local_path, cancel_token)
                reason = DeltaReason.MISSING if digest is None else DeltaReason.MISMATCH
            except FileReadError as e:
                log.warning(f"[yellow]{e}. Scheduling re-download.[/yellow]")
                digest = None
                reason = DeltaReason.UNREADABLE

            if not entry.matches(digest):
                delta.append(DeltaEntry.from_entry(entry, reason, digest))
                log.debug(
                    f"Needs download: {entry.path} ({reason.value}, "
                    f"local={digest}, expected={entry.hash})"
                )

            if on_progress:
                percent = round(processed / total * 100)
                notify_observer(on_progress, percent, entry.path, processed, total)

            if processed % self.yield_every == 0:
                await asyncio.sleep(0)

        log.info(f"{len(delta)} of {total} files need to be downloaded")
        return delta

