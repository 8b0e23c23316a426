"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from patchsync.core.orchestrator import SyncResult, VersionStatus
from patchsync.models.config import SyncConfig
from patchsync.models.manifest import DeltaEntry
from patchsync.utils.formatting import format_duration, format_size


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Run `patchsync init` to create a configuration file.",
            "• Check the values with `patchsync --show-config`.",
        ],
        "ManifestFetchError": [
            "• Check your internet connection.",
            "• Verify `manifest_url` in the configuration file.",
            "• The update server might be temporarily unavailable.",
        ],
        "ManifestParseError": [
            "• The server returned a malformed manifest.",
            "• Open `manifest_url` in a browser and check it is valid JSON.",
        ],
        "DownloadError": [
            "• The file may be missing on the server (check `files_base_url`).",
            "• Run `patchsync sync` again; already verified files are skipped.",
        ],
        "IntegrityMismatchError": [
            "• The file was corrupted in transit or the manifest is out of date.",
            "• Run `patchsync sync --force-refresh` to reload the manifest.",
        ],
        "TimeoutError": [
            "• A request timed out, which may indicate network throttling.",
            "• Increase `read_timeout` in the configuration file.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    suggestion_text = Text("\n".join(suggestions))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(suggestion_text)

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the configuration file contents."""
    console = Console()
    content = ""
    for key, value in sorted(config_data.items()):
        if isinstance(value, dict):
            value = ", ".join(value) or "(none)"
        content += f"{key} = {value}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_validation_table(config: SyncConfig):
    """Displays a summary of the current settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Manifest URL:", config.manifest_url)
    table.add_row("Files Base URL:", config.files_base_url)
    table.add_row("Install Root:", f"[dim]{config.install_root}[/dim]")
    table.add_row("Bandwidth Limit:", f"{config.max_bandwidth_mbps:.1f} MB/s")
    table.add_row("Manifest Cache:", format_duration(config.manifest_cache_ttl))
    table.add_row("Hash Algorithm:", config.hash_algorithm)
    if config.seed_files:
        table.add_row("Seed Files:", ", ".join(config.seed_files))

    console.print(
        Panel(
            table,
            title="[bold green]✓ Validated Settings[/bold green]",
            border_style="green",
        )
    )


def print_delta_table(delta: list[DeltaEntry], total_files: int | None = None):
    """Lists the files that need to be downloaded."""
    console = Console()
    if not delta:
        console.print("[bold green]✓ All files are up to date.[/bold green]")
        return

    table = Table(title=f"Files to download ({len(delta)})")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Path", style="cyan")
    table.add_column("Reason", style="yellow")
    table.add_column("Size", justify="right", style="green")
    for i, entry in enumerate(delta, 1):
        size = format_size(entry.size) if entry.size else "?"
        table.add_row(str(i), entry.path, entry.reason.value, size)
    console.print(table)
    if total_files is not None:
        console.print(f"[dim]{len(delta)} of {total_files} files need downloading.[/dim]")


def print_version_status(status: VersionStatus, cache_info: dict[str, Any]):
    """Displays the remote/local version comparison."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column()

    table.add_row("Manifest Version:", f"[cyan]{status.manifest_version}[/cyan]")
    table.add_row("Installed Version:", status.local_version or "[dim]none[/dim]")
    table.add_row("Manifest Files:", str(cache_info.get("file_count", 0)))
    if cache_info.get("age_seconds") is not None:
        table.add_row("Manifest Age:", format_duration(cache_info["age_seconds"]))

    if status.is_current:
        title, style = "[bold green]✓ Up to date[/bold green]", "green"
    else:
        title, style = "[bold yellow]⚠ Update available[/bold yellow]", "yellow"
    console.print(Panel(table, title=title, border_style=style, expand=False))


def print_summary_panel(result: SyncResult):
    """Displays the final summary of a sync run."""
    console = Console()
    stats = result.stats

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=20)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row("Version:", f"[cyan]{result.manifest_version or '?'}[/cyan]")
    stats_table.add_row("✓ Checked:", str(stats.files_checked))
    stats_table.add_row(
        "↓ Downloaded:",
        f"[bold green]{stats.files_downloaded}[/bold green] / {stats.files_to_download}",
    )
    if stats.bytes_downloaded:
        stats_table.add_row("Size:", format_size(stats.bytes_downloaded))
    if stats.peak_speed_bps > 0:
        stats_table.add_row(
            "Peak Speed:", f"{stats.peak_speed_bps / (1024 * 1024):.1f} MB/s"
        )
    stats_table.add_row("Duration:", format_duration(stats.duration))

    if result.cancelled:
        title, style = "[bold yellow]⚠ Sync Cancelled[/bold yellow]", "yellow"
    else:
        title, style = "[bold green]✓ Sync Complete[/bold green]", "green"
    console.print(Panel(stats_table, title=title, border_style=style, expand=False))
