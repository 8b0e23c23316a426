import asyncio
import hashlib
from collections import Counter
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from patchsync.models.config import SyncConfig


def md5(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


class VirtualClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay
        await asyncio.sleep(0)


class FakeRemote:
    """In-process manifest and file server with per-path request counters."""

    def __init__(self) -> None:
        self.version: Any = "1.0.0"
        self.files: dict[str, bytes] = {}
        self.hash_overrides: dict[str, str] = {}
        self.missing: set[str] = set()
        self.manifest_status = 200
        self.manifest_body: bytes | None = None
        self.manifest_delay = 0.0
        self.requests: Counter[str] = Counter()

        self.app = web.Application()
        self.app.router.add_get("/manifest.json", self._manifest)
        self.app.router.add_get("/files/{path:.*}", self._file)

    def add_file(self, path: str, data: bytes) -> None:
        self.files[path] = data

    def manifest(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "files": [
                {
                    "path": path,
                    "hash": self.hash_overrides.get(path, md5(data)),
                    "size": len(data),
                }
                for path, data in self.files.items()
            ],
        }

    async def _manifest(self, request: web.Request) -> web.StreamResponse:
        self.requests["manifest.json"] += 1
        if self.manifest_delay:
            await asyncio.sleep(self.manifest_delay)
        if self.manifest_status != 200:
            return web.Response(status=self.manifest_status)
        if self.manifest_body is not None:
            return web.Response(body=self.manifest_body, content_type="application/json")
        return web.json_response(self.manifest())

    async def _file(self, request: web.Request) -> web.StreamResponse:
        path = request.match_info["path"]
        self.requests[path] += 1
        if path in self.missing or path not in self.files:
            raise web.HTTPNotFound()
        return web.Response(body=self.files[path])


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest_asyncio.fixture
async def server(remote: FakeRemote):
    test_server = TestServer(remote.app)
    await test_server.start_server()
    yield test_server
    await test_server.close()


@pytest.fixture
def manifest_url(server: TestServer) -> str:
    return str(server.make_url("/manifest.json"))


@pytest.fixture
def files_url(server: TestServer) -> str:
    return str(server.make_url("/files/"))


@pytest.fixture
def install_root(tmp_path: Path) -> Path:
    return tmp_path / "install"


@pytest.fixture
def make_config(manifest_url: str, files_url: str, install_root: Path):
    def factory(**overrides: Any) -> SyncConfig:
        settings: dict[str, Any] = {
            "manifest_url": manifest_url,
            "files_base_url": files_url,
            "install_root": str(install_root),
        }
        settings.update(overrides)
        return SyncConfig(**settings)

    return factory


@pytest.fixture
def clock() -> VirtualClock:
    return VirtualClock()
