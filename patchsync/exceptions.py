"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class PatchSyncError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(PatchSyncError):
    """Raised for issues related to configuration loading or validation."""


class ManifestFetchError(PatchSyncError):
    """Raised when the remote manifest cannot be retrieved."""

    def __init__(self, message: str, url: str | None = None, status: int | None = None):
        super().__init__(message)
        self.url = url
        self.status = status


class ManifestParseError(PatchSyncError):
    """Raised when the manifest body is not valid JSON or fails validation."""


class FileReadError(PatchSyncError):
    """
    Raised when an installed file exists but cannot be read during verification.

    The integrity checker absorbs this error and schedules the file for download.
    """

    def __init__(self, path: str, reason: str):
        super().__init__(f"Could not read '{path}': {reason}")
        self.path = path
        self.reason = reason


class DownloadError(PatchSyncError):
    """Raised when a file cannot be fetched (non-200 status or network failure)."""

    def __init__(self, path: str, message: str, status: int | None = None):
        super().__init__(message)
        self.path = path
        self.status = status


class IntegrityMismatchError(PatchSyncError):
    """Raised when a downloaded file's content hash does not match the manifest."""

    def __init__(self, path: str, expected: str, observed: str | None):
        super().__init__(
            f"Hash mismatch for '{path}': expected {expected}, got {observed or 'nothing'}"
        )
        self.path = path
        self.expected = expected
        self.observed = observed


class SyncCancelledError(PatchSyncError):
    """Raised internally when a cancellation request interrupts a stage."""
