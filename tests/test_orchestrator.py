import asyncio
from pathlib import Path

import pytest
import pytest_asyncio

from conftest import FakeRemote
from patchsync.core.cancellation import CancelToken
from patchsync.core.events import ProgressEvent, StatusEvent, SyncState
from patchsync.core.orchestrator import UpdateOrchestrator, aggregate_percent
from patchsync.exceptions import DownloadError, ManifestFetchError
from patchsync.models.config import MIB


@pytest.fixture
def populated_remote(remote: FakeRemote) -> FakeRemote:
    remote.version = "2"
    remote.add_file("a.txt", b"alpha")
    remote.add_file("b.dat", b"bravo" * 100)
    remote.add_file("sub/c.txt", b"charlie")
    return remote


@pytest_asyncio.fixture
async def orchestrator(populated_remote: FakeRemote, make_config):
    async with UpdateOrchestrator(make_config()) as orchestrator:
        yield orchestrator


async def test_sync_downloads_everything_then_nothing(
    populated_remote: FakeRemote, orchestrator: UpdateOrchestrator, install_root: Path
) -> None:
    first = await orchestrator.check_and_update()

    assert first.up_to_date
    assert first.downloaded == ["a.txt", "b.dat", "sub/c.txt"]
    assert (install_root / "sub" / "c.txt").read_bytes() == b"charlie"
    assert first.stats.files_checked == 3
    assert first.stats.bytes_downloaded == len(b"alpha" + b"bravo" * 100 + b"charlie")

    second = await orchestrator.check_and_update()

    assert second.up_to_date
    assert second.downloaded == []
    assert second.delta == []
    for path in ("a.txt", "b.dat", "sub/c.txt"):
        assert populated_remote.requests[path] == 1
    # The second run was served from the manifest cache
    assert populated_remote.requests["manifest.json"] == 1


async def test_only_stale_files_are_downloaded(
    populated_remote: FakeRemote, orchestrator: UpdateOrchestrator, install_root: Path
) -> None:
    install_root.mkdir(parents=True)
    (install_root / "a.txt").write_bytes(b"alpha")
    (install_root / "b.dat").write_bytes(b"outdated")

    result = await orchestrator.check_and_update()

    assert [entry.path for entry in result.delta] == ["b.dat", "sub/c.txt"]
    assert populated_remote.requests["a.txt"] == 0


async def test_version_marker_is_written_on_success(
    orchestrator: UpdateOrchestrator, install_root: Path
) -> None:
    await orchestrator.check_and_update()

    assert (install_root / "version.txt").read_text() == "2"
    status = await orchestrator.check_version()
    assert status.is_current


async def test_failed_download_stops_the_batch(
    populated_remote: FakeRemote, orchestrator: UpdateOrchestrator, install_root: Path
) -> None:
    populated_remote.missing.add("b.dat")
    statuses = []

    with pytest.raises(DownloadError) as exc_info:
        await orchestrator.check_and_update(on_status=statuses.append)

    assert exc_info.value.path == "b.dat"
    assert populated_remote.requests["a.txt"] == 1
    assert populated_remote.requests["b.dat"] == 1
    assert populated_remote.requests["sub/c.txt"] == 0
    assert orchestrator.state is SyncState.FAILED
    assert statuses[-1].startswith("Error:")
    # The marker is left empty so the next run retries
    assert (install_root / "version.txt").read_text() == ""


async def test_manifest_failure_is_raised(
    populated_remote: FakeRemote, orchestrator: UpdateOrchestrator
) -> None:
    populated_remote.manifest_status = 503

    with pytest.raises(ManifestFetchError):
        await orchestrator.check_and_update()

    assert orchestrator.state is SyncState.FAILED


async def test_status_and_progress_callbacks(orchestrator: UpdateOrchestrator) -> None:
    statuses: list[str] = []
    progress: list[tuple] = []

    await orchestrator.check_and_update(
        on_progress=lambda *args: progress.append(args), on_status=statuses.append
    )

    assert statuses == [
        "Fetching manifest...",
        "Verifying files...",
        "Downloading 3 files...",
        "Up to date",
    ]
    assert progress[-1][0] == 100
    assert all(0 <= args[0] <= 100 for args in progress)
    assert any(args[1] == "b.dat" and args[2] == 2 and args[3] == 3 for args in progress)


async def test_raising_callback_does_not_abort_the_sync(
    orchestrator: UpdateOrchestrator,
) -> None:
    def broken(*args):
        raise RuntimeError("observer bug")

    result = await orchestrator.check_and_update(on_progress=broken, on_status=broken)

    assert result.up_to_date


async def test_cancel_before_start_returns_cancelled_result(
    populated_remote: FakeRemote, orchestrator: UpdateOrchestrator, install_root: Path
) -> None:
    token = CancelToken()
    token.cancel()
    statuses = []

    result = await orchestrator.check_and_update(
        on_status=statuses.append, cancel_token=token
    )

    assert result.cancelled
    assert statuses[-1] == "Cancelled"
    assert populated_remote.requests["a.txt"] == 0
    assert (install_root / "version.txt").read_text() == ""


async def test_cancel_during_download(
    populated_remote: FakeRemote, orchestrator: UpdateOrchestrator, install_root: Path
) -> None:
    token = CancelToken()

    def cancel_on_second_file(event):
        if (
            isinstance(event, ProgressEvent)
            and event.state is SyncState.DOWNLOADING
            and event.label == "b.dat"
        ):
            token.cancel()

    unsubscribe = orchestrator.events.subscribe(cancel_on_second_file)
    try:
        result = await orchestrator.check_and_update(cancel_token=token)
    finally:
        unsubscribe()

    assert result.cancelled
    assert result.downloaded == ["a.txt"]
    assert populated_remote.requests["sub/c.txt"] == 0
    assert not (install_root / "b.dat").exists()
    assert not (install_root / "b.dat.part").exists()


async def test_events_can_be_consumed_as_a_stream(
    orchestrator: UpdateOrchestrator,
) -> None:
    async def collect():
        return [event async for event in orchestrator.events.listen()]

    listener = asyncio.create_task(collect())
    await asyncio.sleep(0)
    await orchestrator.check_and_update()
    events = await asyncio.wait_for(listener, timeout=5)

    states = [event.state for event in events if isinstance(event, StatusEvent)]
    assert states == [
        SyncState.FETCHING_MANIFEST,
        SyncState.VERIFYING_FILES,
        SyncState.DOWNLOADING,
        SyncState.UP_TO_DATE,
    ]
    assert any(isinstance(event, ProgressEvent) for event in events)


async def test_concurrent_runs_are_serialized(
    populated_remote: FakeRemote, orchestrator: UpdateOrchestrator
) -> None:
    first, second = await asyncio.gather(
        orchestrator.check_and_update(), orchestrator.check_and_update()
    )

    assert first.up_to_date and second.up_to_date
    assert len(first.downloaded) + len(second.downloaded) == 3
    assert populated_remote.requests["b.dat"] == 1


async def test_seed_files_are_created_once(
    populated_remote: FakeRemote, make_config, install_root: Path
) -> None:
    config = make_config(seed_files={"channel.inf": "1 99 0"})

    async with UpdateOrchestrator(config) as orchestrator:
        await orchestrator.check_and_update()
        assert (install_root / "channel.inf").read_text() == "1 99 0"

        (install_root / "channel.inf").write_text("2 10 1")
        await orchestrator.check_and_update()

    assert (install_root / "channel.inf").read_text() == "2 10 1"


async def test_check_version_before_first_sync(
    orchestrator: UpdateOrchestrator,
) -> None:
    status = await orchestrator.check_version()

    assert status.manifest_version == "2"
    assert status.local_version is None
    assert not status.is_current


async def test_verify_does_not_download(
    populated_remote: FakeRemote, orchestrator: UpdateOrchestrator
) -> None:
    delta = await orchestrator.verify()

    assert len(delta) == 3
    assert sum(populated_remote.requests[p] for p in ("a.txt", "b.dat", "sub/c.txt")) == 0


async def test_set_max_bandwidth_converts_megabytes(
    orchestrator: UpdateOrchestrator,
) -> None:
    orchestrator.set_max_bandwidth(2.5)

    assert orchestrator.config.max_bandwidth_bytes_per_second == int(2.5 * MIB)


@pytest.mark.parametrize(
    "completed, total, file_percent, expected",
    [(0, 4, 0, 0), (1, 4, 50, 38), (3, 4, 100, 100), (0, 0, 0, 100), (5, 4, 100, 100)],
)
def test_aggregate_percent(completed, total, file_percent, expected) -> None:
    assert aggregate_percent(completed, total, file_percent) == expected
