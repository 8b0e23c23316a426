"""
Remote Access Layer.

This package handles all communication with the manifest server: the shared
HTTP session, manifest retrieval and bandwidth limiting.
"""

from .http import ConnectionPool
from .manifest_provider import ManifestProvider
from .rate_limiter import BandwidthLimiter

__all__ = ["BandwidthLimiter", "ConnectionPool", "ManifestProvider"]
