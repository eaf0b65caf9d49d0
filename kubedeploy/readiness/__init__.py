"""Per-kind readiness predicates.

Each predicate is a pure function from a live API object (dict form) to a
Readiness verdict. Predicates are selected by kind through ``READINESS_CHECKS``;
kinds without an entry (ConfigMap, Secret, Service, ...) are ready as soon
as their apply call returns.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol

from kubedeploy.models.reconcile import Readiness


class ReadinessCheckable(Protocol):
    """Capability: evaluate a live object's status."""

    def __call__(self, obj: dict[str, Any]) -> Readiness: ...


READINESS_CHECKS: dict[str, ReadinessCheckable] = {}


def readiness_check(kind: str) -> Callable[[ReadinessCheckable], ReadinessCheckable]:
    """Register a predicate for *kind*."""

    def _register(fn: ReadinessCheckable) -> ReadinessCheckable:
        READINESS_CHECKS[kind] = fn
        return fn

    return _register


def _status(obj: dict[str, Any]) -> dict[str, Any]:
    return obj.get("status") or {}


def _condition(obj: dict[str, Any], cond_type: str) -> dict[str, Any] | None:
    for cond in _status(obj).get("conditions") or []:
        if cond.get("type") == cond_type:
            return cond
    return None


def _generation_observed(obj: dict[str, Any]) -> bool:
    generation = (obj.get("metadata") or {}).get("generation")
    observed = _status(obj).get("observedGeneration")
    if generation is None:
        return True
    return observed is not None and int(observed) >= int(generation)


def _desired_replicas(obj: dict[str, Any]) -> int:
    replicas = (obj.get("spec") or {}).get("replicas")
    return 1 if replicas is None else int(replicas)


@readiness_check("Namespace")
def namespace_ready(obj: dict[str, Any]) -> Readiness:
    phase = _status(obj).get("phase")
    if phase == "Active":
        return Readiness.READY
    if phase == "Terminating":
        return Readiness.FAILED
    return Readiness.NOT_READY


@readiness_check("Deployment")
def deployment_ready(obj: dict[str, Any]) -> Readiness:
    progressing = _condition(obj, "Progressing")
    if progressing and progressing.get("reason") == "ProgressDeadlineExceeded":
        return Readiness.FAILED
    if not _generation_observed(obj):
        return Readiness.NOT_READY
    status = _status(obj)
    desired = _desired_replicas(obj)
    if (
        int(status.get("updatedReplicas") or 0) >= desired
        and int(status.get("availableReplicas") or 0) >= desired
        and int(status.get("replicas") or 0) <= desired
    ):
        return Readiness.READY
    return Readiness.NOT_READY


@readiness_check("StatefulSet")
def statefulset_ready(obj: dict[str, Any]) -> Readiness:
    if not _generation_observed(obj):
        return Readiness.NOT_READY
    status = _status(obj)
    desired = _desired_replicas(obj)
    if int(status.get("readyReplicas") or 0) < desired:
        return Readiness.NOT_READY
    current, update = status.get("currentRevision"), status.get("updateRevision")
    if current and update and current != update:
        return Readiness.NOT_READY
    return Readiness.READY


@readiness_check("DaemonSet")
def daemonset_ready(obj: dict[str, Any]) -> Readiness:
    if not _generation_observed(obj):
        return Readiness.NOT_READY
    status = _status(obj)
    desired = int(status.get("desiredNumberScheduled") or 0)
    if (
        int(status.get("numberReady") or 0) >= desired
        and int(status.get("updatedNumberScheduled") or 0) >= desired
    ):
        return Readiness.READY
    return Readiness.NOT_READY


@readiness_check("Pod")
def pod_ready(obj: dict[str, Any]) -> Readiness:
    phase = _status(obj).get("phase")
    if phase == "Failed":
        return Readiness.FAILED
    if phase == "Succeeded":
        return Readiness.READY
    ready = _condition(obj, "Ready")
    if phase == "Running" and ready and ready.get("status") == "True":
        return Readiness.READY
    return Readiness.NOT_READY


@readiness_check("PersistentVolumeClaim")
def pvc_ready(obj: dict[str, Any]) -> Readiness:
    phase = _status(obj).get("phase")
    if phase == "Bound":
        return Readiness.READY
    if phase == "Lost":
        return Readiness.FAILED
    return Readiness.NOT_READY


@readiness_check("Job")
def job_ready(obj: dict[str, Any]) -> Readiness:
    failed = _condition(obj, "Failed")
    if failed and failed.get("status") == "True":
        return Readiness.FAILED
    complete = _condition(obj, "Complete")
    if complete and complete.get("status") == "True":
        return Readiness.READY
    return Readiness.NOT_READY


__all__ = [
    "READINESS_CHECKS",
    "ReadinessCheckable",
    "daemonset_ready",
    "deployment_ready",
    "job_ready",
    "namespace_ready",
    "pod_ready",
    "pvc_ready",
    "readiness_check",
    "statefulset_ready",
]
