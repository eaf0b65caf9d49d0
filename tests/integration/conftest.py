"""Shared fixtures for kubedeploy integration tests.

Provides an in-memory ClusterClient that behaves like a fault-free API
server by default (objects become ready as soon as they are written) plus
hooks to inject rejections, conflicts, slow readiness and stuck namespaces,
so the engines can run full pipelines without touching a real cluster.
"""

from __future__ import annotations

import asyncio
import copy
from typing import Any

import pytest

from kubedeploy.cluster.base import ClusterClient
from kubedeploy.cluster.helm import Release, ReleaseManager
from kubedeploy.engine.poll import Poller
from kubedeploy.errors import ClusterAPIError, ConflictError, NotFoundError, ReleaseManagerError, TransportError
from kubedeploy.models.resources import CLUSTER_SCOPED_KINDS, ResourceRef, ResourceSpec, ref_from_object
from kubedeploy.observability.events import EventCollector

# ---------------------------------------------------------------------------
# Fake clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Monotonic clock that only moves when someone sleeps."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.now += seconds
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# In-memory cluster
# ---------------------------------------------------------------------------


def _ready_status(kind: str, body: dict[str, Any]) -> dict[str, Any]:
    replicas = (body.get("spec") or {}).get("replicas", 1)
    if kind == "Namespace":
        return {"phase": "Active"}
    if kind == "Deployment":
        return {
            "observedGeneration": body["metadata"].get("generation", 1),
            "replicas": replicas,
            "updatedReplicas": replicas,
            "availableReplicas": replicas,
            "readyReplicas": replicas,
        }
    if kind == "StatefulSet":
        return {
            "observedGeneration": body["metadata"].get("generation", 1),
            "replicas": replicas,
            "readyReplicas": replicas,
            "currentRevision": "rev-1",
            "updateRevision": "rev-1",
        }
    if kind == "DaemonSet":
        return {"desiredNumberScheduled": 1, "numberReady": 1, "updatedNumberScheduled": 1}
    if kind == "PersistentVolumeClaim":
        return {"phase": "Bound"}
    if kind == "Pod":
        return {"phase": "Running", "conditions": [{"type": "Ready", "status": "True"}]}
    if kind == "Job":
        return {"conditions": [{"type": "Complete", "status": "True"}]}
    return {}


def _matches(obj: dict[str, Any], label_selector: str) -> bool:
    labels = (obj.get("metadata") or {}).get("labels") or {}
    for term in filter(None, (t.strip() for t in label_selector.split(","))):
        key, _, value = term.partition("=")
        if labels.get(key) != value:
            return False
    return True


class FakeCluster(ClusterClient):
    """Dict-backed ClusterClient with failure injection.

    Attributes:
        objects:        Live objects keyed by ResourceRef.
        calls:          ``(verb, ref)`` for every mutating call, in order.
        reject:         Errors raised by create/update for a ref.
        conflicts:      Number of ConflictErrors a ref's writes raise first.
        never_ready:    Refs whose status never reaches readiness.
        failing:        Refs whose status reports a hard failure.
        stuck:          Namespaces that stay Terminating until finalized.
        unfinalizable:  Namespaces that stay even after finalize.
        delete_errors:  Errors raised by delete for a ref.
        list_errors:    Kinds whose list call fails.
        dropped_reads:  Number of TransportErrors a ref's reads raise once it exists.
    """

    def __init__(self) -> None:
        self.objects: dict[ResourceRef, dict[str, Any]] = {}
        self.calls: list[tuple[str, ResourceRef]] = []
        self.reject: dict[ResourceRef, ClusterAPIError] = {}
        self.conflicts: dict[ResourceRef, int] = {}
        self.never_ready: set[ResourceRef] = set()
        self.failing: set[ResourceRef] = set()
        self.stuck: set[str] = set()
        self.unfinalizable: set[str] = set()
        self.delete_errors: dict[ResourceRef, ClusterAPIError] = {}
        self.list_errors: set[str] = set()
        self.dropped_reads: dict[ResourceRef, int] = {}
        self.closed = False
        self._version = 0

        for name in ("default", "kube-system", "kube-public", "kube-node-lease"):
            self.seed({"kind": "Namespace", "metadata": {"name": name}, "status": {"phase": "Active"}})
        self.seed(
            {
                "kind": "Service",
                "metadata": {"name": "kubernetes", "namespace": "default"},
                "spec": {"type": "ClusterIP", "ports": [{"port": 443}]},
            }
        )

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def seed(self, obj: dict[str, Any]) -> ResourceRef:
        """Insert *obj* as-is, bypassing call recording."""
        ref = ref_from_object(obj)
        obj = copy.deepcopy(obj)
        obj.setdefault("metadata", {})["resourceVersion"] = self._next_version()
        self.objects[ref] = obj
        return ref

    def verbs(self, verb: str) -> list[ResourceRef]:
        return [ref for v, ref in self.calls if v == verb]

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def _store(self, ref: ResourceRef, body: dict[str, Any], generation: int) -> dict[str, Any]:
        obj = copy.deepcopy(body)
        obj.setdefault("kind", ref.kind)
        metadata = obj.setdefault("metadata", {})
        metadata["resourceVersion"] = self._next_version()
        metadata["generation"] = generation
        if ref in self.failing:
            obj["status"] = {"phase": "Failed", "conditions": [{"type": "Failed", "status": "True"}]}
        elif ref in self.never_ready:
            obj["status"] = {"phase": "Pending"}
        else:
            obj["status"] = _ready_status(ref.kind, obj)
        self.objects[ref] = obj
        return copy.deepcopy(obj)

    def _raise_injected(self, ref: ResourceRef) -> None:
        if ref in self.reject:
            raise self.reject[ref]
        if self.conflicts.get(ref, 0) > 0:
            self.conflicts[ref] -= 1
            raise ConflictError(message=f"operation cannot be fulfilled on {ref}")

    # ------------------------------------------------------------------
    # ClusterClient
    # ------------------------------------------------------------------

    async def get(self, ref: ResourceRef) -> dict[str, Any] | None:
        obj = self.objects.get(ref)
        if obj is not None and self.dropped_reads.get(ref, 0) > 0:
            self.dropped_reads[ref] -= 1
            raise TransportError("Server disconnected")
        return copy.deepcopy(obj) if obj is not None else None

    async def create(self, ref: ResourceRef, body: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("create", ref))
        self._raise_injected(ref)
        if ref in self.objects:
            raise ConflictError("AlreadyExists", f"{ref} already exists")
        return self._store(ref, body, generation=1)

    async def update(self, ref: ResourceRef, body: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("update", ref))
        self._raise_injected(ref)
        live = self.objects.get(ref)
        if live is None:
            raise NotFoundError(message=f"{ref} not found")
        if body.get("metadata", {}).get("resourceVersion") != live["metadata"]["resourceVersion"]:
            raise ConflictError(message="the object has been modified")
        if ref.kind == "Namespace":
            # Finalizer edits on a terminating namespace keep it terminating.
            obj = copy.deepcopy(body)
            obj["metadata"]["resourceVersion"] = self._next_version()
            self.objects[ref] = obj
            return copy.deepcopy(obj)
        return self._store(ref, body, generation=int(live["metadata"].get("generation", 1)) + 1)

    async def delete(self, ref: ResourceRef, grace_period_seconds: int | None = None) -> None:
        self.calls.append(("delete", ref))
        if ref in self.delete_errors:
            raise self.delete_errors[ref]
        if ref not in self.objects:
            raise NotFoundError(message=f"{ref} not found")
        if ref.kind == "Namespace" and (ref.name in self.stuck or ref.name in self.unfinalizable):
            obj = self.objects[ref]
            obj["status"] = {"phase": "Terminating"}
            obj.setdefault("spec", {})["finalizers"] = ["kubernetes"]
            return
        self._remove(ref)

    def _remove(self, ref: ResourceRef) -> None:
        del self.objects[ref]
        if ref.kind == "Namespace":
            for child in [r for r in self.objects if r.namespace == ref.name]:
                del self.objects[child]

    async def list(
        self,
        kind: str,
        namespace: str | None = None,
        label_selector: str = "",
        field_selector: str = "",
    ) -> list[dict[str, Any]]:
        if kind in self.list_errors:
            raise ClusterAPIError(403, "Forbidden", f"cannot list {kind}")
        out = []
        for ref, obj in self.objects.items():
            if ref.kind != kind:
                continue
            if namespace is not None and kind not in CLUSTER_SCOPED_KINDS and ref.namespace != namespace:
                continue
            if label_selector and not _matches(obj, label_selector):
                continue
            out.append(copy.deepcopy(obj))
        return out

    async def finalize_namespace(self, name: str, finalizers: list[str] | None = None) -> dict[str, Any]:
        ref = ResourceRef(kind="Namespace", namespace="", name=name)
        self.calls.append(("finalize", ref))
        if ref not in self.objects:
            raise NotFoundError(message=f"namespace {name} not found")
        if name in self.unfinalizable:
            return copy.deepcopy(self.objects[ref])
        obj = copy.deepcopy(self.objects[ref])
        self._remove(ref)
        self.stuck.discard(name)
        return obj

    async def server_version(self) -> str:
        return "v1.30.0"

    async def close(self) -> None:
        self.closed = True


class FakeReleases(ReleaseManager):
    """ReleaseManager over an in-memory release list."""

    def __init__(self, releases: list[Release] | None = None, installed: bool = True) -> None:
        self.releases = list(releases or [])
        self.installed = installed
        self.uninstalled: list[Release] = []
        self.fail: set[str] = set()

    def available(self) -> bool:
        return self.installed

    async def list_releases(self) -> list[Release]:
        return list(self.releases)

    async def uninstall(self, release: Release) -> None:
        if release.name in self.fail:
            raise ReleaseManagerError(f"helm uninstall {release.name}", 1, "Error: uninstall failed")
        self.releases.remove(release)
        self.uninstalled.append(release)


# ---------------------------------------------------------------------------
# Resource factory helpers
# ---------------------------------------------------------------------------


def make_spec(
    kind: str,
    name: str,
    namespace: str = "default",
    depends_on: list[ResourceRef] | None = None,
    ready_timeout: float | None = None,
    spec: dict[str, Any] | None = None,
    labels: dict[str, str] | None = None,
) -> ResourceSpec:
    """Create a ResourceSpec with a minimal but realistic body."""
    ref = ResourceRef(kind=kind, namespace=namespace, name=name)
    metadata: dict[str, Any] = {"name": name}
    if ref.namespace:
        metadata["namespace"] = ref.namespace
    if labels:
        metadata["labels"] = dict(labels)
    body: dict[str, Any] = {"kind": kind, "metadata": metadata}
    if spec is not None:
        body["spec"] = spec
    return ResourceSpec(ref=ref, body=body, depends_on=tuple(depends_on or ()), ready_timeout=ready_timeout)


def ns_ref(name: str) -> ResourceRef:
    return ResourceRef(kind="Namespace", namespace="", name=name)


def two_tier_app() -> list[ResourceSpec]:
    """A database and a web tier in their own namespaces, in apply order."""
    mysql_ns = make_spec("Namespace", "mysql", namespace="")
    flask_ns = make_spec("Namespace", "flask-app", namespace="")
    secret = make_spec("Secret", "db-creds", "flask-app", depends_on=[flask_ns.ref])
    init = make_spec("ConfigMap", "mysql-init", "mysql", depends_on=[mysql_ns.ref])
    mysql = make_spec("StatefulSet", "mysql", "mysql", depends_on=[init.ref], spec={"replicas": 1})
    mysql_svc = make_spec(
        "Service", "mysql-svc", "mysql", depends_on=[mysql.ref], spec={"type": "ClusterIP", "ports": [{"port": 3306}]}
    )
    flask = make_spec("Deployment", "flask", "flask-app", depends_on=[secret.ref], spec={"replicas": 2})
    flask_svc = make_spec(
        "Service",
        "flask-svc",
        "flask-app",
        depends_on=[flask.ref],
        spec={"type": "NodePort", "ports": [{"port": 80, "nodePort": 30080}]},
    )
    return [mysql_ns, flask_ns, secret, init, mysql, mysql_svc, flask, flask_svc]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def poller(clock: FakeClock) -> Poller:
    return Poller(interval=1.0, clock=clock, sleep=clock.sleep)


@pytest.fixture
def events() -> EventCollector:
    return EventCollector()
