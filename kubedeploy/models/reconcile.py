"""Deploy-side outcomes and progress events."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from kubedeploy.errors import KubeDeployError
from kubedeploy.models.resources import ResourceRef


class Phase(StrEnum):
    """Pipeline phase in which an outcome or failure occurred."""

    APPLY = "apply"
    WAIT = "wait"
    DELETE = "delete"
    FINALIZE = "finalize"
    VERIFY = "verify"


class Readiness(StrEnum):
    """Verdict of a readiness predicate on a live object."""

    NOT_READY = "not_ready"
    READY = "ready"
    FAILED = "failed"


class ReconcileOutcome(StrEnum):
    """Per-resource outcome of a deploy."""

    APPLIED = "applied"
    ALREADY_CURRENT = "already_current"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass
class ReconcileResult:
    """Outcome of deploying a single resource.

    ``readiness`` is None when the kind has no readiness predicate. ``error``
    keeps the exception behind a FAILED or TIMED_OUT outcome.
    """

    ref: ResourceRef
    outcome: ReconcileOutcome
    phase: Phase = Phase.APPLY
    readiness: Readiness | None = None
    reason: str = ""
    elapsed: float = 0.0
    error: KubeDeployError | None = field(default=None, compare=False, repr=False)

    @property
    def ok(self) -> bool:
        return self.outcome in (ReconcileOutcome.APPLIED, ReconcileOutcome.ALREADY_CURRENT)


@dataclass(frozen=True)
class ProgressEvent:
    """Structured progress record emitted at every pipeline step."""

    ref: ResourceRef
    phase: Phase
    outcome: str
    detail: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    def as_dict(self) -> dict[str, str]:
        return {
            "resource": str(self.ref),
            "kind": self.ref.kind,
            "namespace": self.ref.namespace,
            "name": self.ref.name,
            "phase": self.phase.value,
            "outcome": self.outcome,
            "detail": self.detail,
            "ts": self.timestamp.isoformat(),
        }
