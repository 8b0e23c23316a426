"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

import hashlib
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from patchsync.utils.path import validate_relative_path

MIB = 1024 * 1024

DEFAULT_MAX_BANDWIDTH = 20 * MIB
DEFAULT_MANIFEST_CACHE_TTL = 300.0


class SyncConfig(BaseModel):
    """A validated configuration model for the synchronization engine."""

    # Endpoints
    manifest_url: str
    files_base_url: str

    # Local installation
    install_root: str
    version_file: str = "version.txt"
    seed_files: dict[str, str] = Field(default_factory=dict)

    # Transfer settings
    max_bandwidth_bytes_per_second: int = Field(default=DEFAULT_MAX_BANDWIDTH, gt=0)
    manifest_cache_ttl: float = Field(default=DEFAULT_MANIFEST_CACHE_TTL, ge=0)
    request_timeout: float = Field(default=30.0, gt=0)
    connect_timeout: float = Field(default=15.0, gt=0)
    read_timeout: float = Field(default=60.0, gt=0)
    download_chunk_size: int = Field(default=65536, gt=0)
    hash_chunk_size: int = Field(default=MIB, gt=0)
    hash_algorithm: str = "md5"

    # Progress reporting
    speed_update_interval: float = Field(default=1.0, gt=0)
    speed_min_elapsed: float = Field(default=0.5, ge=0)
    verify_yield_every: int = Field(default=10, gt=0)

    # Internal fields not loaded from INI file
    config_path: str = Field(default="", repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("manifest_url", "files_base_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Only plain HTTP(S) endpoints are supported."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"URL must start with http:// or https://, got {v!r}")
        return v

    @field_validator("files_base_url")
    @classmethod
    def ensure_trailing_slash(cls, v: str) -> str:
        """Entry paths are appended directly to the base URL."""
        return v if v.endswith("/") else f"{v}/"

    @field_validator("install_root")
    @classmethod
    def validate_install_root(cls, v: str) -> str:
        if not v:
            raise ValueError("Install root cannot be empty.")
        return str(Path(v).expanduser())

    @field_validator("hash_algorithm")
    @classmethod
    def validate_hash_algorithm(cls, v: str) -> str:
        """Ensures hashlib can construct the requested digest."""
        v = v.lower()
        if v not in hashlib.algorithms_available:
            raise ValueError(f"Unsupported hash algorithm: {v!r}")
        return v

    @field_validator("version_file")
    @classmethod
    def validate_version_file(cls, v: str) -> str:
        return validate_relative_path(v)

    @field_validator("seed_files")
    @classmethod
    def validate_seed_files(cls, v: dict[str, str]) -> dict[str, str]:
        return {validate_relative_path(path): content for path, content in v.items()}

    @property
    def max_bandwidth_mbps(self) -> float:
        """The bandwidth ceiling expressed in MB/s."""
        return self.max_bandwidth_bytes_per_second / MIB

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path", "seed_files"}
        return {key for key in cls.model_fields if key not in internal_fields}

