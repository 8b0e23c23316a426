"""
Transfer Layer.

This package is responsible for all file content operations: streamed hashing,
integrity verification against the manifest and throttled downloading.
"""

from .downloader import DownloadResult, ThrottledDownloader
from .integrity import IntegrityChecker, hash_file

__all__ = ["DownloadResult", "IntegrityChecker", "ThrottledDownloader", "hash_file"]
