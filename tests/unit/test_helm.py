"""Tests for HelmReleaseManager with a mocked subprocess."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from kubedeploy.cluster import helm as helm_module
from kubedeploy.cluster.helm import HelmReleaseManager, Release
from kubedeploy.errors import ReleaseManagerError


def _process(stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0) -> MagicMock:
    proc = MagicMock()
    proc.communicate = AsyncMock(return_value=(stdout, stderr))
    proc.returncode = returncode
    return proc


@pytest.fixture
def spawn(monkeypatch: pytest.MonkeyPatch) -> AsyncMock:
    mock = AsyncMock()
    monkeypatch.setattr(helm_module.asyncio, "create_subprocess_exec", mock)
    return mock


class TestHelmReleaseManager:
    async def test_list_releases(self, spawn: AsyncMock) -> None:
        payload = [{"name": "redis", "namespace": "cache", "status": "deployed"}, {"name": "grafana"}]
        spawn.return_value = _process(stdout=json.dumps(payload).encode())

        releases = await HelmReleaseManager(binary="helm3").list_releases()

        assert releases == [Release("redis", "cache"), Release("grafana", "")]
        assert spawn.await_args.args[:5] == ("helm3", "list", "--all-namespaces", "--output", "json")

    async def test_empty_output(self, spawn: AsyncMock) -> None:
        spawn.return_value = _process(stdout=b"")
        assert await HelmReleaseManager().list_releases() == []

    async def test_unparseable_output(self, spawn: AsyncMock) -> None:
        spawn.return_value = _process(stdout=b"WARNING: kubeconfig is group-readable")
        with pytest.raises(ReleaseManagerError, match="unparseable"):
            await HelmReleaseManager().list_releases()

    async def test_uninstall(self, spawn: AsyncMock) -> None:
        spawn.return_value = _process()

        await HelmReleaseManager().uninstall(Release("redis", "cache"))

        assert spawn.await_args.args[:5] == ("helm", "uninstall", "redis", "--namespace", "cache")

    async def test_failed_command(self, spawn: AsyncMock) -> None:
        spawn.return_value = _process(stderr=b"Error: release: not found", returncode=1)

        with pytest.raises(ReleaseManagerError) as exc_info:
            await HelmReleaseManager().uninstall(Release("redis", "cache"))

        assert exc_info.value.returncode == 1
        assert "release: not found" in str(exc_info.value)

    def test_available(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(helm_module.shutil, "which", lambda name: None)
        assert not HelmReleaseManager().available()
        monkeypatch.setattr(helm_module.shutil, "which", lambda name: f"/usr/local/bin/{name}")
        assert HelmReleaseManager().available()
