"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import signal
from contextlib import suppress
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from patchsync import __version__
from patchsync.core.cancellation import CancelToken
from patchsync.core.orchestrator import UpdateOrchestrator
from patchsync.exceptions import PatchSyncError
from patchsync.models.config import MIB
from patchsync.storage.config_manager import ConfigManager

from .formatters import (
    print_config,
    print_delta_table,
    print_summary_panel,
    print_validation_table,
    print_version_status,
)
from .progress_manager import ProgressManager

console = Console()

logging.basicConfig(
    level="WARNING",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("patchsync")

app = typer.Typer(
    name="patchsync",
    help=(
        "Keep a local directory in sync with a remote manifest. Use 'patchsync"
        " <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if override := os.getenv("PATCHSYNC_CONFIG_DIR"):
        return Path(override).expanduser()
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "patchsync"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def _load_config(cli_options: dict | None = None):
    try:
        return ConfigManager(CONFIG_FILE).load_config(cli_options)
    except PatchSyncError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1) from e


def _overrides(limit: float | None, root: Path | None) -> dict:
    options = {}
    if limit is not None:
        options["max_bandwidth_bytes_per_second"] = int(limit * MIB)
    if root is not None:
        options["install_root"] = str(root)
    return options


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """patchsync: manifest-driven file synchronization."""
    if version:
        console.print(f"[bold]patchsync[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "WARNING"
    if verbose >= 2:
        log_level = "DEBUG"
    elif verbose == 1:
        log_level = "INFO"
    log.setLevel(log_level)

    if show_config:
        config = _load_config()
        print_config(CONFIG_FILE, config.model_dump(exclude={"config_path"}))
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    manifest_url: str = typer.Argument(..., help="URL of the manifest JSON."),
    files_base_url: str = typer.Argument(
        ..., help="URL prefix the manifest paths are appended to."
    ),
    root: Path = typer.Option(
        ..., "--root", "-r", help="Local directory to keep in sync."
    ),
    limit: float | None = typer.Option(
        None, "--limit", "-l", help="Bandwidth limit in MB/s (default 20)."
    ),
    seed: list[str] | None = typer.Option(
        None,
        "--seed",
        help="Default file created on first run, as PATH=CONTENT. Repeatable.",
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration."
    ),
):
    """Create the configuration file."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {
        "manifest_url": manifest_url,
        "files_base_url": files_base_url,
        **_overrides(limit, root),
    }
    seed_files = {}
    for item in seed or []:
        path, sep, content = item.partition("=")
        if not sep:
            console.print(f"[red]✗ Invalid --seed value {item!r}, expected PATH=CONTENT.[/red]")
            raise typer.Exit(code=1)
        seed_files[path.strip()] = content
    settings["seed_files"] = seed_files

    try:
        ConfigManager(CONFIG_FILE).save_new_config(settings)
    except PatchSyncError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1) from e
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("Ready to sync! Try: [cyan]patchsync sync[/cyan]")


@app.command(name="sync")
def sync_command(
    force_refresh: bool = typer.Option(
        False, "--force-refresh", help="Ignore the cached manifest."
    ),
    quick: bool = typer.Option(
        False,
        "--quick",
        help="Skip verification when the installed version matches the manifest.",
    ),
    limit: float | None = typer.Option(
        None, "--limit", "-l", help="Bandwidth limit in MB/s for this run."
    ),
    root: Path | None = typer.Option(
        None, "--root", "-r", help="Override the install root for this run."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Print status lines instead of a live display."
    ),
):
    """Verify the installation and download missing or stale files."""
    config = _load_config(_overrides(limit, root))

    async def _sync_async():
        cancel_token = CancelToken()
        loop = asyncio.get_running_loop()
        with suppress(NotImplementedError):
            loop.add_signal_handler(signal.SIGINT, cancel_token.cancel)

        try:
            async with UpdateOrchestrator(config) as orchestrator:
                if quick:
                    version_status = await orchestrator.check_version(force_refresh)
                    if version_status.is_current:
                        console.print(
                            f"[green]✓ Version {version_status.manifest_version} already "
                            "installed.[/green]"
                        )
                        return None

                async with ProgressManager(console, quiet=quiet) as progress:
                    progress.attach(orchestrator.events)
                    return await orchestrator.check_and_update(
                        force_refresh_manifest=force_refresh,
                        cancel_token=cancel_token,
                    )
        finally:
            with suppress(NotImplementedError):
                loop.remove_signal_handler(signal.SIGINT)

    result = asyncio.run(_sync_async())
    if result is not None:
        print_summary_panel(result)
        if result.cancelled:
            raise typer.Exit(code=130)


@app.command()
def verify(
    force_refresh: bool = typer.Option(
        False, "--force-refresh", help="Ignore the cached manifest."
    ),
    root: Path | None = typer.Option(
        None, "--root", "-r", help="Override the install root."
    ),
):
    """List the files that would be downloaded, without downloading them."""
    config = _load_config(_overrides(None, root))

    async def _verify_async():
        async with UpdateOrchestrator(config) as orchestrator:
            delta = await orchestrator.verify(force_refresh)
            return delta, orchestrator.provider.cache_info()

    delta, cache_info = asyncio.run(_verify_async())
    print_delta_table(delta, cache_info["file_count"])
    if delta:
        raise typer.Exit(code=2)


@app.command()
def status():
    """Compare the installed version with the remote manifest."""
    config = _load_config()

    async def _status_async():
        async with UpdateOrchestrator(config) as orchestrator:
            version_status = await orchestrator.check_version()
            return version_status, orchestrator.provider.cache_info()

    version_status, cache_info = asyncio.run(_status_async())
    print_version_status(version_status, cache_info)


@app.command()
def validate():
    """Validate the current configuration."""
    config = _load_config()
    print_validation_table(config)
