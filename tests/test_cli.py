import asyncio
import sys
from pathlib import Path

import pytest
from typer.testing import CliRunner

import patchsync.cli.app as cli_app
from conftest import FakeRemote
from patchsync import __main__ as entry_point
from patchsync import __version__
from patchsync.exceptions import ManifestFetchError
from patchsync.models.config import MIB
from patchsync.storage.config_manager import ConfigManager

runner = CliRunner()

UNREACHABLE = "http://127.0.0.1:9"


@pytest.fixture
def config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "config" / "config.ini"
    monkeypatch.setattr(cli_app, "CONFIG_FILE", path)
    return path


def _init(root: Path, *extra: str):
    return runner.invoke(
        cli_app.app,
        [
            "init",
            f"{UNREACHABLE}/manifest.json",
            f"{UNREACHABLE}/files",
            "--root",
            str(root),
            *extra,
        ],
    )


def test_init_writes_config(config_file: Path, tmp_path: Path) -> None:
    result = _init(tmp_path / "game", "--limit", "5", "--seed", "channel.inf=1 99 0")

    assert result.exit_code == 0, result.output
    config = ConfigManager(config_file).load_config()
    assert config.max_bandwidth_bytes_per_second == 5 * MIB
    assert config.seed_files == {"channel.inf": "1 99 0"}
    assert config.install_root == str(tmp_path / "game")


def test_init_refuses_to_overwrite_without_confirmation(
    config_file: Path, tmp_path: Path
) -> None:
    assert _init(tmp_path / "game").exit_code == 0

    result = runner.invoke(
        cli_app.app,
        ["init", "https://other/manifest.json", "https://other/", "--root", "x"],
        input="n\n",
    )

    assert result.exit_code == 1
    assert ConfigManager(config_file).load_config().manifest_url.startswith(UNREACHABLE)


def test_init_rejects_malformed_seed(config_file: Path, tmp_path: Path) -> None:
    result = _init(tmp_path / "game", "--seed", "no-separator")

    assert result.exit_code == 1
    assert "Invalid --seed" in result.output
    assert not config_file.exists()


def test_init_rejects_invalid_url(config_file: Path, tmp_path: Path) -> None:
    result = runner.invoke(
        cli_app.app, ["init", "ftp://x/m.json", "https://x/", "--root", str(tmp_path)]
    )

    assert result.exit_code == 1
    assert not config_file.exists()


def test_validate_shows_settings(config_file: Path, tmp_path: Path) -> None:
    _init(tmp_path / "game")

    result = runner.invoke(cli_app.app, ["validate"])

    assert result.exit_code == 0
    assert "Validated Settings" in result.output
    assert "20.0 MB/s" in result.output


def test_show_config(config_file: Path, tmp_path: Path) -> None:
    _init(tmp_path / "game")

    result = runner.invoke(cli_app.app, ["--show-config"])

    assert result.exit_code == 0
    assert "manifest_url" in result.output


def test_version_flag() -> None:
    result = runner.invoke(cli_app.app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_commands_without_config_fail(config_file: Path) -> None:
    result = runner.invoke(cli_app.app, ["validate"])

    assert result.exit_code == 1
    assert "patchsync init" in result.output


def test_sync_propagates_manifest_errors(config_file: Path, tmp_path: Path) -> None:
    _init(tmp_path / "game")

    result = runner.invoke(cli_app.app, ["sync", "--quiet"])

    assert isinstance(result.exception, ManifestFetchError)
    # The installation was prepared before the manifest was requested
    assert (tmp_path / "game" / "version.txt").exists()


def test_entry_point_renders_errors(
    config_file: Path,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    _init(tmp_path / "game")
    monkeypatch.setattr(sys, "argv", ["patchsync", "status"])

    with pytest.raises(SystemExit) as exc_info:
        entry_point.main()

    assert exc_info.value.code == 1
    output = capsys.readouterr().out
    assert "ManifestFetchError" in output
    assert "Suggestions" in output


def _exit_code_of_main() -> int | str | None:
    with pytest.raises(SystemExit) as exc_info:
        entry_point.main()
    return exc_info.value.code


def test_entry_point_exits_with_command_code(
    config_file: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(sys, "argv", ["patchsync", "validate"])

    assert _exit_code_of_main() == 1


async def test_entry_point_reports_stale_files_on_verify(
    config_file: Path,
    remote: FakeRemote,
    manifest_url: str,
    files_url: str,
    install_root: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    remote.add_file("data/a.bin", b"payload")
    ConfigManager(config_file).save_new_config(
        {
            "manifest_url": manifest_url,
            "files_base_url": files_url,
            "install_root": str(install_root),
        }
    )
    monkeypatch.setattr(sys, "argv", ["patchsync", "verify"])

    # main() runs its own event loop, the fake server keeps serving on this one
    assert await asyncio.to_thread(_exit_code_of_main) == 2
