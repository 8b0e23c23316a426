"""
An in-memory time-to-live cache holding the most recently fetched manifest.
"""

import logging
import time
from collections.abc import Callable

from patchsync.models.manifest import Manifest

log = logging.getLogger(__name__)


class ManifestCache:
    """
    Holds one manifest together with the time it was fetched.

    The entry is valid while ``now - fetched_at < ttl``.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] | None = None,
        stats_callback: Callable[[bool], None] | None = None,
    ):
        """
        Initializes the cache.

        Args:
            ttl_seconds: Maximum age of the cached manifest.
            clock: Monotonic time source (defaults to time.monotonic).
            stats_callback: Called with True on a fresh hit and False on a miss.
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock or time.monotonic
        self._stats_callback = stats_callback
        self._manifest: Manifest | None = None
        self._fetched_at: float | None = None

    @property
    def manifest(self) -> Manifest | None:
        """The cached manifest regardless of its age."""
        return self._manifest

    def age(self) -> float | None:
        """Seconds since the cached manifest was stored, or None if empty."""
        if self._fetched_at is None:
            return None
        return self._clock() - self._fetched_at

    def is_valid(self) -> bool:
        age = self.age()
        return self._manifest is not None and age is not None and age < self.ttl_seconds

    def get(self) -> Manifest | None:
        """Returns the cached manifest if it is still fresh, otherwise None."""
        if self.is_valid():
            log.debug(f"Manifest cache valid ({self.age():.0f}s old)")
            if self._stats_callback:
                self._stats_callback(True)
            return self._manifest

        if self._manifest is not None:
            log.debug(f"Manifest cache expired ({self.age():.0f}s old)")
        if self._stats_callback:
            self._stats_callback(False)
        return None

    def set(self, manifest: Manifest) -> None:
        """Replaces the cached manifest and restarts its TTL."""
        self._manifest = manifest
        self._fetched_at = self._clock()

    def clear(self) -> None:
        """Drops the cached manifest."""
        self._manifest = None
        self._fetched_at = None
