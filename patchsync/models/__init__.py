"""
Data Models Layer.

This package contains Pydantic models and dataclasses that define the core data
structures used throughout the application, such as the manifest, the
configuration and session statistics.
"""

from .config import SyncConfig
from .manifest import DeltaEntry, DeltaReason, FileEntry, Manifest
from .stats import SpeedMeter, SyncStats

__all__ = [
    "DeltaEntry",
    "DeltaReason",
    "FileEntry",
    "Manifest",
    "SpeedMeter",
    "SyncConfig",
    "SyncStats",
]
