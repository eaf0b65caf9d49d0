"""Error taxonomy for kubedeploy.

Graph and manifest errors are raised before any cluster mutation.
Cluster errors wrap failed API calls. Engine errors name the resource and
the phase (apply, wait, delete, finalize) they occurred in.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kubedeploy.models.reconcile import Phase, ReconcileResult
    from kubedeploy.models.resources import ResourceRef


class KubeDeployError(Exception):
    """Base class for every error raised by kubedeploy."""


# ---------------------------------------------------------------------------
# Graph construction
# ---------------------------------------------------------------------------


class GraphError(KubeDeployError):
    """Raised when a resource set cannot be ordered."""


class CyclicDependencyError(GraphError):
    def __init__(self, cycle: Sequence[ResourceRef]) -> None:
        self.cycle = list(cycle)
        path = " -> ".join(str(r) for r in self.cycle)
        super().__init__(f"Dependency cycle detected: {path}")


class UnknownDependencyError(GraphError):
    def __init__(self, resource: ResourceRef, dependency: ResourceRef) -> None:
        self.resource = resource
        self.dependency = dependency
        super().__init__(f"{resource} depends on {dependency}, which is not part of the resource set")


class DuplicateResourceError(GraphError):
    def __init__(self, resource: ResourceRef) -> None:
        self.resource = resource
        super().__init__(f"{resource} is declared more than once")


class ManifestError(KubeDeployError):
    """Raised when a manifest document cannot be turned into a ResourceSpec."""

    def __init__(self, source: str, message: str) -> None:
        self.source = source
        super().__init__(f"{source}: {message}")


# ---------------------------------------------------------------------------
# Cluster API
# ---------------------------------------------------------------------------


class ClusterAPIError(KubeDeployError):
    """A cluster API call failed."""

    retryable = False

    def __init__(self, status: int, reason: str = "", message: str = "") -> None:
        self.status = status
        self.reason = reason
        self.message = message
        super().__init__(f"cluster API error {status} {reason}: {message}".rstrip(": "))


class NotFoundError(ClusterAPIError):
    """The object does not exist (HTTP 404)."""

    def __init__(self, reason: str = "NotFound", message: str = "") -> None:
        super().__init__(404, reason, message)


class ConflictError(ClusterAPIError):
    """Optimistic-concurrency conflict or already-exists (HTTP 409)."""

    retryable = True

    def __init__(self, reason: str = "Conflict", message: str = "") -> None:
        super().__init__(409, reason, message)


class TransportError(ClusterAPIError):
    """The request never got an HTTP answer (connection dropped, read timeout)."""

    retryable = True

    def __init__(self, message: str = "") -> None:
        super().__init__(0, "TransportError", message)


class UnsupportedKindError(KubeDeployError):
    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__(f"Resource kind {kind!r} is not supported by the cluster client")


class ClusterUnreachableError(KubeDeployError):
    """Preflight check could not reach the cluster API."""


# ---------------------------------------------------------------------------
# Engines
# ---------------------------------------------------------------------------


class ApplyRejectedError(KubeDeployError):
    """The cluster API declined a document. Fatal for the whole deploy.

    ``results`` holds the outcomes recorded before the rejection.
    """

    def __init__(
        self,
        resource: ResourceRef,
        phase: Phase,
        message: str,
        results: list[ReconcileResult] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.resource = resource
        self.phase = phase
        self.results = results or []
        self.cause = cause
        super().__init__(f"{phase} failed for {resource}: {message}")


class PollTimeoutError(KubeDeployError):
    """A poll did not reach its target condition before the deadline."""

    def __init__(self, what: str, timeout: float, last: object = None) -> None:
        self.what = what
        self.timeout = timeout
        self.last = last
        super().__init__(f"{what} not reached within {timeout:g}s")


class ReadinessTimeoutError(PollTimeoutError):
    """A resource did not become ready in time. Recorded, never fatal."""

    def __init__(self, resource: ResourceRef, timeout: float, last: object = None) -> None:
        self.resource = resource
        super().__init__(f"wait: readiness of {resource}", timeout, last)


class StuckFinalizerError(PollTimeoutError):
    """A namespace stayed in Terminating past its deletion wait."""

    def __init__(self, namespace: str, timeout: float, finalizers: Sequence[str] = ()) -> None:
        self.namespace = namespace
        self.finalizers = list(finalizers)
        super().__init__(f"delete: namespace {namespace} disappearance", timeout, self.finalizers)


class OperationCancelled(KubeDeployError):
    """The deploy or reset was interrupted; the cluster is left as-is."""


class ReleaseManagerError(KubeDeployError):
    """A package-manager (Helm) command failed."""

    def __init__(self, command: str, returncode: int, stderr: str = "") -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"{command!r} exited with {returncode}: {stderr.strip()[:300]}")
