"""Teardown Engine.

Resets a cluster scope to a clean state in four phases:

1. Delete namespaced resources that live outside the namespaces being
   removed: default-namespace contents (workloads before the storage,
   config and secrets backing them) and, for cluster-wide scope,
   ingresses and network policies elsewhere.
2. Delete in-scope namespaces one at a time. A namespace that is still
   present after the bounded wait is treated as stuck and has its
   finalizers force-cleared.
3. Delete cluster-scoped resources: persistent volumes, labelled cluster
   roles and bindings, and package-manager releases.
4. Verify and report what remains.

When the resource set a deploy applied is passed in, its resources are
deleted first, in reverse dependency order, and its namespaces join the
namespace phase.

Every delete is best-effort. "Already gone" counts as success and any other
failure is recorded and does not block later deletes. The report, not an
exception, is how failures surface.
"""

from __future__ import annotations

from typing import Any

from kubedeploy.cluster.base import ClusterClient
from kubedeploy.cluster.helm import ReleaseManager
from kubedeploy.engine.poll import Poller
from kubedeploy.errors import (
    ClusterAPIError,
    ConflictError,
    NotFoundError,
    PollTimeoutError,
    ReleaseManagerError,
    StuckFinalizerError,
    UnsupportedKindError,
)
from kubedeploy.graph import ResourceGraph
from kubedeploy.models.reconcile import Phase, ProgressEvent
from kubedeploy.models.resources import ResourceRef, ref_from_object
from kubedeploy.models.teardown import DeleteStatus, TeardownReport, TeardownScope
from kubedeploy.observability.events import ProgressSink, log_sink
from kubedeploy.observability.logging import get_logger

_log = get_logger("engine.teardown")

DEFAULT_NAMESPACE = "default"

# Workloads first so controllers stop recreating pods, then what backs them.
DEFAULT_NAMESPACE_KINDS = (
    "Deployment",
    "StatefulSet",
    "DaemonSet",
    "Pod",
    "Service",
    "ConfigMap",
    "Secret",
    "PersistentVolumeClaim",
)

VERIFY_DEFAULT_KINDS = (
    "Deployment",
    "StatefulSet",
    "DaemonSet",
    "Pod",
    "Service",
    "PersistentVolumeClaim",
)

CROSS_NAMESPACE_KINDS = ("Ingress", "NetworkPolicy")

LABELLED_CLUSTER_KINDS = ("ClusterRoleBinding", "ClusterRole")


def is_protected(kind: str, obj: dict[str, Any]) -> bool:
    """Objects the API server recreates or needs; never deleted or reported."""
    name = (obj.get("metadata") or {}).get("name", "")
    if kind == "Service" and name == "kubernetes":
        return True
    if kind == "ConfigMap" and name == "kube-root-ca.crt":
        return True
    return kind == "Secret" and obj.get("type") == "kubernetes.io/service-account-token"


class TeardownEngine:
    """Best-effort, phase-ordered cluster reset.

    Args:
        client:               Cluster API client shared with the apply engine.
        releases:             Package-manager release handler; None skips releases.
        poller:               Polling primitive for namespace disappearance.
        namespace_wait:       Seconds to wait for a deleted namespace to vanish.
        finalize_wait:        Seconds to wait after force-clearing finalizers.
        grace_period_seconds: Grace period passed to every delete (0 = force).
        sink:                 Receives a ProgressEvent for every step.
    """

    def __init__(
        self,
        client: ClusterClient,
        releases: ReleaseManager | None = None,
        poller: Poller | None = None,
        namespace_wait: float = 60.0,
        finalize_wait: float = 30.0,
        grace_period_seconds: int | None = 0,
        sink: ProgressSink | None = None,
    ) -> None:
        self._client = client
        self._releases = releases
        self._poller = poller or Poller(interval=1.0)
        self._namespace_wait = namespace_wait
        self._finalize_wait = finalize_wait
        self._grace = grace_period_seconds
        self._sink = sink or log_sink

    async def reset(self, scope: TeardownScope, declared: ResourceGraph | None = None) -> TeardownReport:
        """Run all four phases against *scope* and return the report.

        *declared*, when given, is the resource set a deploy applied. Its
        resources are deleted before anything else, dependents first, and
        its namespaces are removed even when no glob in *scope* names them.

        A non-empty final state is reported, not raised: manual
        intervention may be required.
        """
        report = TeardownReport(cluster_scoped=scope.cluster_scoped)
        _log.info(
            "reset started",
            namespaces=sorted(scope.namespaces),
            clean_default=scope.clean_default,
            cluster_scoped=scope.cluster_scoped,
        )

        doomed = await self._namespaces_in_scope(scope, report)
        extra: list[str] = []
        if declared is not None:
            extra = await self._phase_declared(scope, declared, doomed, report)
            doomed = sorted([*doomed, *extra])

        await self._phase_namespaced(scope, doomed, report)
        await self._phase_namespaces(doomed, report)
        if scope.cluster_scoped:
            await self._phase_cluster_scoped(scope, report)
        await self._phase_verify(scope, report, extra)

        _log.info(
            "reset finished",
            steps=len(report.outcomes),
            failures=len(report.failures),
            clean=report.clean,
            remaining_namespaces=report.remaining_namespaces,
        )
        return report

    # ------------------------------------------------------------------
    # Declared resources, in reverse dependency order
    # ------------------------------------------------------------------

    async def _phase_declared(
        self,
        scope: TeardownScope,
        graph: ResourceGraph,
        doomed: list[str],
        report: TeardownReport,
    ) -> list[str]:
        namespaces: list[str] = []
        _log.info("deleting declared resources", count=len(graph))
        for spec in graph.reverse_ordered:
            if spec.ref.kind == "Namespace":
                if spec.ref.name not in doomed and spec.ref.name not in scope.exclude:
                    namespaces.append(spec.ref.name)
                continue
            await self._delete(spec.ref, report)
        return namespaces

    # ------------------------------------------------------------------
    # Phase 1: namespaced resources outside the doomed namespaces
    # ------------------------------------------------------------------

    async def _phase_namespaced(self, scope: TeardownScope, doomed: list[str], report: TeardownReport) -> None:
        if scope.clean_default:
            for kind in DEFAULT_NAMESPACE_KINDS:
                for obj in await self._list(kind, DEFAULT_NAMESPACE, report, Phase.DELETE):
                    if not is_protected(kind, obj):
                        await self._delete(ref_from_object(obj, kind), report)

        if scope.cluster_scoped:
            for kind in CROSS_NAMESPACE_KINDS:
                for obj in await self._list(kind, None, report, Phase.DELETE):
                    ref = ref_from_object(obj, kind)
                    if ref.namespace not in doomed:
                        await self._delete(ref, report)

    # ------------------------------------------------------------------
    # Phase 2: namespaces, with stuck-finalizer remediation
    # ------------------------------------------------------------------

    async def _phase_namespaces(self, doomed: list[str], report: TeardownReport) -> None:
        if not doomed:
            _log.info("no custom namespaces to delete")
        for name in doomed:
            ref = ResourceRef(kind="Namespace", namespace="", name=name)
            status = await self._delete(ref, report)
            if status in (DeleteStatus.FAILED, DeleteStatus.ALREADY_GONE):
                continue
            try:
                await self._wait_gone(ref, self._namespace_wait)
            except StuckFinalizerError as stuck:
                self._emit(ref, Phase.DELETE, "stuck", f"finalizers={stuck.finalizers}")
                _log.warning(
                    "namespace stuck terminating, clearing finalizers",
                    namespace=name,
                    finalizers=stuck.finalizers,
                    waited=self._namespace_wait,
                )
                await self._force_finalize(ref, report)
            except ClusterAPIError as exc:
                self._record(report, ref, Phase.DELETE, DeleteStatus.FAILED, f"polling failed: {exc}")

    async def _wait_gone(self, ref: ResourceRef, timeout: float) -> None:
        async def _read_live() -> dict[str, Any] | None:
            try:
                return await self._client.get(ref)
            except ClusterAPIError as exc:
                if not exc.retryable:
                    raise
                _log.debug("disappearance check failed, will retry", resource=str(ref), error=str(exc))
                return {}

        try:
            await self._poller.until(
                _read_live,
                lambda obj: obj is None,
                timeout,
                what=f"delete: {ref} disappearance",
            )
        except PollTimeoutError as exc:
            live = exc.last if isinstance(exc.last, dict) else {}
            finalizers = list((live.get("spec") or {}).get("finalizers") or [])
            finalizers += list((live.get("metadata") or {}).get("finalizers") or [])
            raise StuckFinalizerError(ref.name, timeout, finalizers) from exc

    async def _force_finalize(self, ref: ResourceRef, report: TeardownReport) -> None:
        try:
            await self._client.finalize_namespace(ref.name, [])
            live = await self._client.get(ref)
            if live and (live.get("metadata") or {}).get("finalizers"):
                live["metadata"]["finalizers"] = []
                await self._client.update(ref, live)
        except NotFoundError:
            self._record(report, ref, Phase.FINALIZE, DeleteStatus.ALREADY_GONE)
            return
        except ClusterAPIError as exc:
            self._record(report, ref, Phase.FINALIZE, DeleteStatus.FAILED, f"finalizer clear failed: {exc}")
            return

        try:
            await self._wait_gone(ref, self._finalize_wait)
        except StuckFinalizerError as exc:
            self._record(
                report,
                ref,
                Phase.FINALIZE,
                DeleteStatus.FAILED,
                f"still present {exc.timeout:g}s after clearing finalizers; manual intervention required",
            )
        except ClusterAPIError as exc:
            self._record(report, ref, Phase.FINALIZE, DeleteStatus.FAILED, f"polling failed: {exc}")
        else:
            self._record(report, ref, Phase.FINALIZE, DeleteStatus.FINALIZER_CLEARED)

    # ------------------------------------------------------------------
    # Phase 3: cluster-scoped resources
    # ------------------------------------------------------------------

    async def _phase_cluster_scoped(self, scope: TeardownScope, report: TeardownReport) -> None:
        for obj in await self._list("PersistentVolume", None, report, Phase.DELETE):
            await self._delete(ref_from_object(obj, "PersistentVolume"), report)

        if scope.cluster_label_selector:
            for kind in LABELLED_CLUSTER_KINDS:
                objs = await self._list(kind, None, report, Phase.DELETE, label_selector=scope.cluster_label_selector)
                for obj in objs:
                    await self._delete(ref_from_object(obj, kind), report)

        await self._uninstall_releases(report)

    async def _uninstall_releases(self, report: TeardownReport) -> None:
        if self._releases is None:
            return
        all_releases = ResourceRef(kind="HelmRelease", namespace="", name="*")
        if not self._releases.available():
            self._record(report, all_releases, Phase.DELETE, DeleteStatus.SKIPPED, "helm not installed")
            return
        try:
            releases = await self._releases.list_releases()
        except ReleaseManagerError as exc:
            self._record(report, all_releases, Phase.DELETE, DeleteStatus.FAILED, str(exc))
            return
        for release in releases:
            ref = ResourceRef(kind="HelmRelease", namespace=release.namespace, name=release.name)
            try:
                await self._releases.uninstall(release)
            except ReleaseManagerError as exc:
                self._record(report, ref, Phase.DELETE, DeleteStatus.FAILED, str(exc))
            else:
                self._record(report, ref, Phase.DELETE, DeleteStatus.DELETED)

    # ------------------------------------------------------------------
    # Phase 4: verification
    # ------------------------------------------------------------------

    async def _phase_verify(self, scope: TeardownScope, report: TeardownReport, extra: list[str]) -> None:
        namespaces = await self._list("Namespace", None, report, Phase.VERIFY)
        report.remaining_namespaces = sorted(
            name
            for name in (ref_from_object(ns, "Namespace").name for ns in namespaces)
            if scope.includes(name) or name in extra
        )

        if scope.clean_default:
            remaining: list[ResourceRef] = []
            for kind in VERIFY_DEFAULT_KINDS:
                for obj in await self._list(kind, DEFAULT_NAMESPACE, report, Phase.VERIFY):
                    if not is_protected(kind, obj):
                        remaining.append(ref_from_object(obj, kind))
            report.remaining_default = remaining

        volumes = await self._list("PersistentVolume", None, report, Phase.VERIFY)
        report.remaining_volumes = sorted(ref_from_object(pv, "PersistentVolume").name for pv in volumes)

        if not report.clean:
            _log.warning(
                "resources remain after reset; manual intervention may be required",
                namespaces=report.remaining_namespaces,
                default=[str(r) for r in report.remaining_default],
                volumes=report.remaining_volumes,
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _namespaces_in_scope(self, scope: TeardownScope, report: TeardownReport) -> list[str]:
        objs = await self._list("Namespace", None, report, Phase.DELETE)
        names = (ref_from_object(obj, "Namespace").name for obj in objs)
        return sorted(name for name in names if scope.includes(name))

    async def _list(
        self,
        kind: str,
        namespace: str | None,
        report: TeardownReport,
        phase: Phase,
        label_selector: str = "",
    ) -> list[dict[str, Any]]:
        try:
            return await self._client.list(kind, namespace=namespace, label_selector=label_selector)
        except (ClusterAPIError, UnsupportedKindError) as exc:
            ref = ResourceRef(kind=kind, namespace=namespace or "", name="*")
            self._record(report, ref, phase, DeleteStatus.FAILED, f"list failed: {exc}")
            return []

    async def _delete(self, ref: ResourceRef, report: TeardownReport) -> DeleteStatus:
        try:
            await self._client.delete(ref, grace_period_seconds=self._grace)
        except NotFoundError:
            status, detail = DeleteStatus.ALREADY_GONE, ""
        except ConflictError as exc:
            status, detail = DeleteStatus.DELETED, f"deletion already in progress: {exc.message}"
        except (ClusterAPIError, UnsupportedKindError) as exc:
            status, detail = DeleteStatus.FAILED, str(exc)
            _log.warning("delete failed", resource=str(ref), error=str(exc))
        else:
            status, detail = DeleteStatus.DELETED, ""
        self._record(report, ref, Phase.DELETE, status, detail)
        return status

    def _record(
        self,
        report: TeardownReport,
        ref: ResourceRef,
        phase: Phase,
        status: DeleteStatus,
        detail: str = "",
    ) -> None:
        report.record(ref, phase, status, detail)
        self._emit(ref, phase, status.value, detail)

    def _emit(self, ref: ResourceRef, phase: Phase, outcome: str, detail: str = "") -> None:
        self._sink(ProgressEvent(ref=ref, phase=phase, outcome=outcome, detail=detail))
