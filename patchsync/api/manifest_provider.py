"""
Fetches the remote manifest and keeps it in a time-limited cache.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

import aiohttp
from pydantic import ValidationError

from patchsync.exceptions import ManifestFetchError, ManifestParseError
from patchsync.models.manifest import Manifest
from patchsync.storage.cache import ManifestCache

from .http import ConnectionPool

log = logging.getLogger(__name__)


def _consume_exception(task: asyncio.Task) -> None:
    # The fetch may fail after every waiter was cancelled
    if not task.cancelled():
        task.exception()


class ManifestProvider:
    """
    Retrieves the manifest JSON over HTTP and caches it for ``cache_ttl`` seconds.

    Overlapping calls to :meth:`fetch` share a single in-flight request.
    """

    def __init__(
        self,
        manifest_url: str,
        pool: ConnectionPool | None = None,
        cache_ttl: float = 300.0,
        timeout: float = 30.0,
        clock: Callable[[], float] | None = None,
    ):
        """
        Initializes the provider.

        Args:
            manifest_url: Absolute URL of the manifest JSON document.
            pool: Connection pool to borrow the HTTP session from. A private pool
                is created (and closed by :meth:`close`) when omitted.
            cache_ttl: Seconds a fetched manifest stays valid.
            timeout: Total timeout for the manifest request, in seconds.
            clock: Monotonic time source for the cache.
        """
        self.manifest_url = manifest_url
        self.timeout = timeout
        self._owns_pool = pool is None
        self._pool = pool or ConnectionPool()
        self._cache = ManifestCache(
            ttl_seconds=cache_ttl, clock=clock, stats_callback=self._record_lookup
        )
        self._inflight: asyncio.Task | None = None
        self.network_fetches = 0
        self.cache_hits = 0
        self.cache_misses = 0

    def _record_lookup(self, hit: bool) -> None:
        if hit:
            self.cache_hits += 1
        else:
            self.cache_misses += 1

    @property
    def cache(self) -> ManifestCache:
        return self._cache

    def is_cache_valid(self) -> bool:
        return self._cache.is_valid()

    def cache_info(self) -> dict[str, Any]:
        """Describes the cached manifest and how often the cache was consulted."""
        manifest = self._cache.manifest
        age = self._cache.age()
        return {
            "valid": self._cache.is_valid(),
            "age_seconds": round(age, 1) if age is not None else None,
            "ttl_seconds": self._cache.ttl_seconds,
            "version": manifest.version if manifest else None,
            "file_count": len(manifest.files) if manifest else 0,
            "hits": self.cache_hits,
            "misses": self.cache_misses,
        }

    def invalidate(self) -> None:
        """Forgets the cached manifest so the next fetch goes to the network."""
        self._cache.clear()

    async def fetch(self, force_refresh: bool = False) -> Manifest:
        """
        Returns the manifest, from cache when possible.

        Args:
            force_refresh: Bypass the cache and always ask the server.

        Raises:
            ManifestFetchError: On network failure, timeout or non-200 status.
            ManifestParseError: If the body is not a valid manifest.
        """
        if not force_refresh and (cached := self._cache.get()) is not None:
            log.debug("Using cached manifest.")
            return cached

        # No await between the check and the assignment, so concurrent callers
        # always see the task created by the first one.
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.ensure_future(self._download())
            self._inflight.add_done_callback(_consume_exception)
        else:
            log.debug("Manifest fetch already in flight, waiting for it.")
        return await asyncio.shield(self._inflight)

    async def _download(self) -> Manifest:
        session = await self._pool.get()
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        log.info(f"Downloading manifest from [dim]{self.manifest_url}[/dim]")
        self.network_fetches += 1
        try:
            async with session.get(self.manifest_url, timeout=timeout) as response:
                if response.status != 200:
                    raise ManifestFetchError(
                        f"Manifest request returned HTTP {response.status}",
                        url=self.manifest_url,
                        status=response.status,
                    )
                body = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ManifestFetchError(
                f"Could not download manifest: {str(e) or type(e).__name__}",
                url=self.manifest_url,
            ) from e

        try:
            manifest = Manifest.model_validate_json(body)
        except ValidationError as e:
            raise ManifestParseError(f"Invalid manifest: {e}") from e

        self._cache.set(manifest)
        log.info(
            f"Manifest loaded: version [cyan]{manifest.version}[/cyan], "
            f"{len(manifest.files)} files"
        )
        return manifest

    async def close(self) -> None:
        """Cancels a pending fetch and closes the private pool, if any."""
        if self._inflight and not self._inflight.done():
            self._inflight.cancel()
        if self._owns_pool:
            await self._pool.close()
