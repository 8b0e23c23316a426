"""
Utilities for validating manifest paths and mapping them onto the local filesystem.
"""

from pathlib import Path, PurePosixPath

from pathvalidate import ValidationError, validate_filepath


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)


def validate_relative_path(value: str) -> str:
    """
    Checks that a manifest path is a relative POSIX path staying inside the root.

    Raises:
        ValueError: If the path is empty, absolute, contains '..' segments or
            backslashes, or is not a valid file path on this platform.
    """
    if not value:
        raise ValueError("Path cannot be empty.")
    if "\\" in value:
        raise ValueError(f"Path must use '/' separators: {value!r}")
    posix = PurePosixPath(value)
    if posix.is_absolute() or ".." in posix.parts:
        raise ValueError(f"Path cannot be absolute or contain '..' segments: {value!r}")
    try:
        validate_filepath(value, platform="auto")
    except ValidationError as e:
        raise ValueError(f"Invalid path {value!r}: {e}") from e
    return value


def resolve_entry_path(root: Path, relative_path: str) -> Path:
    """Joins a validated manifest path onto the installation root."""
    validate_relative_path(relative_path)
    return Path(root).joinpath(*PurePosixPath(relative_path).parts)


def partial_path_for(destination: Path) -> Path:
    """The sibling temp file a download is streamed into before verification."""
    return destination.with_name(f"{destination.name}.part")
