"""Package-manager release handling for teardown.

Releases are listed and uninstalled through the ``helm`` binary. When the
binary is not installed, teardown reports the step as skipped.
"""

from __future__ import annotations

import asyncio
import json
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass

from kubedeploy.errors import ReleaseManagerError
from kubedeploy.observability.logging import get_logger

_log = get_logger("cluster.helm")


@dataclass(frozen=True)
class Release:
    """An installed package-manager release."""

    name: str
    namespace: str


class ReleaseManager(ABC):
    """Lists and uninstalls releases across all namespaces."""

    @abstractmethod
    def available(self) -> bool:
        """Return False when the package manager is not installed."""

    @abstractmethod
    async def list_releases(self) -> list[Release]:
        """Return every installed release."""

    @abstractmethod
    async def uninstall(self, release: Release) -> None:
        """Uninstall *release*; raises ReleaseManagerError on failure."""


class HelmReleaseManager(ReleaseManager):
    """ReleaseManager that shells out to ``helm``.

    Args:
        binary:  helm executable name or path.
        timeout: Per-command timeout in seconds.
    """

    def __init__(self, binary: str = "helm", timeout: float = 120.0) -> None:
        self._binary = binary
        self._timeout = timeout

    def available(self) -> bool:
        return shutil.which(self._binary) is not None

    async def list_releases(self) -> list[Release]:
        stdout = await self._run("list", "--all-namespaces", "--output", "json")
        try:
            entries = json.loads(stdout or "[]")
        except ValueError as exc:
            raise ReleaseManagerError(f"{self._binary} list", 0, f"unparseable output: {exc}") from exc
        return [Release(name=str(e["name"]), namespace=str(e.get("namespace", ""))) for e in entries]

    async def uninstall(self, release: Release) -> None:
        await self._run("uninstall", release.name, "--namespace", release.namespace)
        _log.info("helm release uninstalled", release=release.name, namespace=release.namespace)

    async def _run(self, *args: str) -> str:
        command = " ".join([self._binary, *args])
        proc = await asyncio.create_subprocess_exec(
            self._binary,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except TimeoutError:
            proc.kill()
            await proc.wait()
            raise ReleaseManagerError(command, -1, f"timed out after {self._timeout:g}s") from None
        if proc.returncode != 0:
            raise ReleaseManagerError(command, proc.returncode or -1, stderr.decode(errors="replace"))
        return stdout.decode(errors="replace")
