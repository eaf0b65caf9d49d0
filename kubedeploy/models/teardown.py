"""Teardown scope and report structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from fnmatch import fnmatchcase

from kubedeploy.models.reconcile import Phase
from kubedeploy.models.resources import ResourceRef

SYSTEM_NAMESPACES = frozenset({"kube-system", "kube-public", "kube-node-lease", "default"})


class DeleteStatus(StrEnum):
    """Outcome of one best-effort teardown step."""

    DELETED = "deleted"
    ALREADY_GONE = "already_gone"
    FINALIZER_CLEARED = "finalizer_cleared"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class TeardownScope:
    """What a reset is allowed to remove.

    ``namespaces`` holds glob patterns; a namespace is in scope when it
    matches at least one pattern and none of ``exclude``.
    """

    namespaces: frozenset[str] = frozenset({"*"})
    exclude: frozenset[str] = SYSTEM_NAMESPACES
    clean_default: bool = True
    cluster_scoped: bool = True
    cluster_label_selector: str = "app.kubernetes.io/managed-by=kubedeploy"

    @classmethod
    def everything(cls) -> TeardownScope:
        """All non-system namespaces, default namespace contents, cluster-scoped volumes."""
        return cls()

    def includes(self, namespace: str) -> bool:
        if namespace in self.exclude:
            return False
        return any(fnmatchcase(namespace, pattern) for pattern in self.namespaces)


@dataclass(frozen=True)
class DeleteOutcome:
    """A (resource, outcome) pair accumulated during teardown."""

    ref: ResourceRef
    phase: Phase
    status: DeleteStatus
    detail: str = ""


@dataclass
class TeardownReport:
    """Aggregate result of a reset: every step plus the verified final state.

    ``remaining_volumes`` is always reported but only counts against
    ``clean`` when the reset covered cluster-scoped resources.
    """

    cluster_scoped: bool = True
    outcomes: list[DeleteOutcome] = field(default_factory=list)
    remaining_namespaces: list[str] = field(default_factory=list)
    remaining_default: list[ResourceRef] = field(default_factory=list)
    remaining_volumes: list[str] = field(default_factory=list)

    def record(self, ref: ResourceRef, phase: Phase, status: DeleteStatus, detail: str = "") -> DeleteOutcome:
        outcome = DeleteOutcome(ref=ref, phase=phase, status=status, detail=detail)
        self.outcomes.append(outcome)
        return outcome

    @property
    def failures(self) -> list[DeleteOutcome]:
        return [o for o in self.outcomes if o.status == DeleteStatus.FAILED]

    @property
    def clean(self) -> bool:
        """True when nothing in scope remains after all phases."""
        volumes = self.remaining_volumes if self.cluster_scoped else []
        return not (self.remaining_namespaces or self.remaining_default or volumes)
