"""
Owns the aiohttp ClientSession shared by the manifest provider and the downloader.
"""

import asyncio
import logging

import aiohttp

from patchsync import __version__

log = logging.getLogger(__name__)


class ConnectionPool:
    """
    Lazily creates one aiohttp ClientSession and hands it to every caller.

    Transfers are sequential, so a single keep-alive connection per host is
    enough. Timeouts are applied per request by the callers.
    """

    def __init__(self, connect_timeout: float = 15.0):
        self.connect_timeout = connect_timeout
        self._session: aiohttp.ClientSession | None = None
        self._lock = asyncio.Lock()

    async def get(self) -> aiohttp.ClientSession:
        """Gets or creates the session."""
        async with self._lock:
            if self._session and not self._session.closed:
                return self._session

            connector = aiohttp.TCPConnector(
                limit=4,
                limit_per_host=2,
                ttl_dns_cache=600,  # 10 minutes
                keepalive_timeout=30,
                enable_cleanup_closed=True,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(
                    total=None, sock_connect=self.connect_timeout
                ),
                headers={"User-Agent": f"patchsync/{__version__}"},
            )
            log.debug("Created HTTP connection pool.")
        return self._session

    @property
    def closed(self) -> bool:
        return self._session is None or self._session.closed

    async def close(self) -> None:
        """Closes the session if one was created."""
        async with self._lock:
            if self._session and not self._session.closed:
                await self._session.close()
                log.debug("HTTP connection pool closed.")
            self._session = None
