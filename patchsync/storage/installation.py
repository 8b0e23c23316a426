"""
The local installation directory and the version marker stored inside it.
"""

import logging
from pathlib import Path

from patchsync.utils.path import create_dir, resolve_entry_path

log = logging.getLogger(__name__)


class VersionMarker:
    """
    A small text file recording the last manifest version fully applied.

    An empty or missing file means no version has been applied yet.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def ensure(self) -> None:
        """Creates an empty marker if none exists."""
        if not self.path.exists():
            create_dir(self.path.parent)
            self.path.write_text("", encoding="utf-8")
            log.debug(f"Created empty version marker at {self.path}")

    def read(self) -> str | None:
        """Returns the recorded version, or None if nothing was applied yet."""
        try:
            version = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            log.warning(f"[yellow]Could not read version marker {self.path}: {e}[/yellow]")
            return None
        return version or None

    def write(self, version: str) -> None:
        create_dir(self.path.parent)
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        tmp_path.write_text(version, encoding="utf-8")
        tmp_path.replace(self.path)
        log.info(f"Version marker updated to [cyan]{version}[/cyan]")


class LocalInstallation:
    """A root directory whose contents are reconciled against a manifest."""

    def __init__(
        self,
        root: Path | str,
        version_file: str = "version.txt",
        seed_files: dict[str, str] | None = None,
    ):
        self.root = Path(root).expanduser()
        self.marker = VersionMarker(resolve_entry_path(self.root, version_file))
        self.seed_files = dict(seed_files or {})

    def path_for(self, relative_path: str) -> Path:
        """Resolves a manifest path to its location under the root."""
        return resolve_entry_path(self.root, relative_path)

    def prepare(self) -> None:
        """
        Creates the root directory, the version marker and any seed files.

        Seed files are (re)written with their default content when they are
        missing or empty; existing content is left alone.
        """
        create_dir(self.root)
        self.marker.ensure()
        for relative_path, content in self.seed_files.items():
            target = self.path_for(relative_path)
            try:
                if target.is_file() and target.read_text(encoding="utf-8").strip():
                    continue
                create_dir(target.parent)
                target.write_text(content, encoding="utf-8")
                log.info(f"Created default file [dim]{relative_path}[/dim]")
            except (OSError, UnicodeDecodeError) as e:
                log.warning(
                    f"[yellow]Could not create default file {relative_path}: {e}[/yellow]"
                )
