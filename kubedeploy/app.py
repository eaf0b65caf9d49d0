"""Application bootstrap for kubedeploy.

Wires components in dependency order for one invocation:
config → logging → manifests/graph → cluster client → preflight → engine.

Graph and manifest errors surface before the cluster client is created, so
they never cause a cluster call. The whole run executes as one asyncio task
that SIGINT/SIGTERM cancel; cancellation leaves the cluster in whatever
partial state it reached (no rollback).
"""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import TypeVar

from kubedeploy.cluster.base import ClusterClient
from kubedeploy.cluster.helm import HelmReleaseManager, ReleaseManager
from kubedeploy.engine.apply import ApplyEngine
from kubedeploy.engine.poll import Poller
from kubedeploy.engine.teardown import TeardownEngine
from kubedeploy.engine.verify import PodSummary, ServiceAccess, describe_services, summarize_pods
from kubedeploy.errors import OperationCancelled
from kubedeploy.graph import build_graph
from kubedeploy.manifests import load_manifests, with_timeout_overrides
from kubedeploy.models.config import KubeDeployConfig
from kubedeploy.models.reconcile import ReconcileOutcome, ReconcileResult
from kubedeploy.models.teardown import TeardownReport, TeardownScope
from kubedeploy.observability.events import ProgressSink, fan_out, log_sink
from kubedeploy.observability.logging import bind_run, get_logger

T = TypeVar("T")


class ExitCode(IntEnum):
    """Process exit codes for the command surface."""

    OK = 0
    FAILED = 1
    TIMED_OUT = 3
    INTERRUPTED = 130


def deploy_exit_code(results: Sequence[ReconcileResult]) -> ExitCode:
    """FAILED on any hard failure, TIMED_OUT when only readiness expired, else OK."""
    outcomes = {r.outcome for r in results}
    if ReconcileOutcome.FAILED in outcomes:
        return ExitCode.FAILED
    if ReconcileOutcome.TIMED_OUT in outcomes:
        return ExitCode.TIMED_OUT
    return ExitCode.OK


def reset_exit_code(report: TeardownReport, strict: bool = False) -> ExitCode:
    """Teardown never fails hard; ``strict`` turns leftovers and failures into FAILED."""
    if strict and (report.failures or not report.clean):
        return ExitCode.FAILED
    return ExitCode.OK


@dataclass
class DeploySummary:
    """Everything a deploy produced, for rendering and exit status."""

    results: list[ReconcileResult]
    services: list[ServiceAccess] = field(default_factory=list)
    pods: list[PodSummary] = field(default_factory=list)
    server_version: str = ""

    @property
    def exit_code(self) -> ExitCode:
        return deploy_exit_code(self.results)


async def connect_cluster(config: KubeDeployConfig) -> ClusterClient:
    """Create the kubernetes-asyncio backed client from config."""
    from kubedeploy.cluster.kubernetes import KubernetesClusterClient

    return await KubernetesClusterClient.connect(
        kubeconfig=config.cluster.kubeconfig,
        context=config.cluster.context,
    )


async def run_deploy(
    config: KubeDeployConfig,
    paths: Sequence[str | Path] = (),
    sink: ProgressSink | None = None,
    client: ClusterClient | None = None,
) -> DeploySummary:
    """Load manifests, order them, and deploy them.

    Raises:
        ManifestError, GraphError: before any cluster call.
        ClusterUnreachableError: preflight failed.
        ApplyRejectedError: the cluster declined a document.
    """
    bind_run("deploy")
    log = get_logger("app")
    specs = load_manifests(list(paths) or [config.deploy.manifest_dir], config.deploy.default_namespace)
    if config.deploy.resource_timeouts:
        specs = with_timeout_overrides(specs, config.deploy.resource_timeouts)
    graph = build_graph(specs)
    log.info("resource graph built", resources=len(graph), levels=len(graph.levels()))

    owned = client is None
    if client is None:
        client = await connect_cluster(config)
    try:
        version = await client.server_version()
        log.info("cluster reachable", server_version=version)

        engine = ApplyEngine(
            client,
            poller=Poller(interval=config.deploy.poll_interval),
            timeout=config.deploy.ready_timeout,
            conflict_retries=config.deploy.conflict_retries,
            parallel=config.deploy.parallel_apply,
            sink=fan_out(log_sink, sink),
        )
        ordered = graph.ordered
        results = await engine.deploy(ordered)

        pods = await summarize_pods(client, config.deploy.pod_selectors)
        services = await describe_services(client, ordered)
        return DeploySummary(results=results, services=services, pods=pods, server_version=version)
    finally:
        if owned:
            await client.close()


async def run_reset(
    config: KubeDeployConfig,
    scope: TeardownScope,
    sink: ProgressSink | None = None,
    client: ClusterClient | None = None,
    releases: ReleaseManager | None = None,
    paths: Sequence[str | Path] = (),
) -> TeardownReport:
    """Tear down *scope* and return the report.

    With *paths*, the manifests found there are removed first, in reverse
    dependency order, along with the namespaces they declare.

    Raises:
        ManifestError, GraphError: before any cluster call.
    """
    bind_run("reset")
    log = get_logger("app")
    declared = None
    if paths:
        declared = build_graph(load_manifests(list(paths), config.deploy.default_namespace))
        log.info("declared resources loaded", resources=len(declared))
    owned = client is None
    if client is None:
        client = await connect_cluster(config)
    try:
        version = await client.server_version()
        log.info("cluster reachable", server_version=version)

        engine = TeardownEngine(
            client,
            releases=releases or HelmReleaseManager(binary=config.reset.helm_binary),
            poller=Poller(interval=config.reset.namespace_poll_interval),
            namespace_wait=config.reset.namespace_wait,
            finalize_wait=config.reset.finalize_wait,
            grace_period_seconds=config.reset.delete_grace_seconds,
            sink=fan_out(log_sink, sink),
        )
        return await engine.reset(scope, declared)
    finally:
        if owned:
            await client.close()


async def run_cancellable(work: Awaitable[T]) -> T:
    """Run *work* as a task that SIGINT/SIGTERM cancel.

    Raises:
        OperationCancelled: the task was cancelled by a signal.
    """
    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(work)
    log = get_logger("app")

    def _request_cancel() -> None:
        if not task.done():
            log.warning("interrupt received, cancelling; cluster is left in its current state")
            task.cancel()

    installed: list[signal.Signals] = []
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, _request_cancel)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Not the main thread, or a platform without signal support.
            pass

    try:
        return await task
    except asyncio.CancelledError as exc:
        if task.cancelled():
            raise OperationCancelled("interrupted; no rollback performed") from exc
        raise
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
