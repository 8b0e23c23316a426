"""
Storage Layer.

This package handles all data persistence: the configuration file, the local
installation with its version marker, and the in-memory manifest cache.
"""

from .cache import ManifestCache
from .config_manager import ConfigManager
from .installation import LocalInstallation, VersionMarker

__all__ = ["ConfigManager", "LocalInstallation", "ManifestCache", "VersionMarker"]
