"""
Pydantic models describing the remote manifest and the computed delta.
"""

import re
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

from patchsync.utils.path import validate_relative_path

DEFAULT_MANIFEST_VERSION = "1.0.0"

_HEX_DIGEST = re.compile(r"[0-9a-fA-F]+")


class FileEntry(BaseModel):
    """A single file expected in the installation."""

    path: str
    hash: str
    size: int | None = Field(default=None, ge=0)

    class Config:
        """Pydantic model configuration."""

        frozen = True
        str_strip_whitespace = True

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Only relative POSIX paths that stay inside the installation root."""
        return validate_relative_path(v)

    @field_validator("hash")
    @classmethod
    def validate_hash(cls, v: str) -> str:
        """Ensures the digest is a non-empty hex string."""
        if not _HEX_DIGEST.fullmatch(v):
            raise ValueError(f"Hash must be a hex digest, got {v!r}")
        return v

    def matches(self, digest: str | None) -> bool:
        """Case-insensitive comparison against a computed hex digest."""
        return digest is not None and digest.lower() == self.hash.lower()


class Manifest(BaseModel):
    """The remote, versioned description of the expected file set."""

    version: str = DEFAULT_MANIFEST_VERSION
    files: list[FileEntry] = Field(default_factory=list)

    class Config:
        """Pydantic model configuration."""

        frozen = True

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, v):
        # Some servers publish numeric versions
        if v is None or v == "":
            return DEFAULT_MANIFEST_VERSION
        return str(v)

    @model_validator(mode="after")
    def validate_unique_paths(self) -> "Manifest":
        """Rejects manifests listing the same path twice."""
        seen: set[str] = set()
        for entry in self.files:
            if entry.path in seen:
                raise ValueError(f"Duplicate path in manifest: {entry.path!r}")
            seen.add(entry.path)
        return self

    @property
    def total_size(self) -> int:
        """Sum of the declared sizes (entries without a size count as 0)."""
        return sum(entry.size or 0 for entry in self.files)


class DeltaReason(str, Enum):
    """Why a manifest entry needs to be transferred."""

    MISSING = "missing"
    UNREADABLE = "unreadable"
    MISMATCH = "mismatch"


class DeltaEntry(FileEntry):
    """A manifest entry whose local counterpart is missing or stale."""

    reason: DeltaReason = DeltaReason.MISMATCH
    local_hash: str | None = None

    @classmethod
    def from_entry(
        cls, entry: FileEntry, reason: DeltaReason, local_hash: str | None = None
    ) -> "DeltaEntry":
        return cls(
            path=entry.path,
            hash=entry.hash,
            size=entry.size,
            reason=reason,
            local_hash=local_hash,
        )
