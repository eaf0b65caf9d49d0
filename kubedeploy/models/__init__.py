"""Core data structures for kubedeploy."""

from kubedeploy.models.config import KubeDeployConfig
from kubedeploy.models.reconcile import (
    Phase,
    ProgressEvent,
    Readiness,
    ReconcileOutcome,
    ReconcileResult,
)
from kubedeploy.models.resources import CLUSTER_SCOPED_KINDS, ResourceRef, ResourceSpec
from kubedeploy.models.teardown import (
    SYSTEM_NAMESPACES,
    DeleteOutcome,
    DeleteStatus,
    TeardownReport,
    TeardownScope,
)

__all__ = [
    "CLUSTER_SCOPED_KINDS",
    "SYSTEM_NAMESPACES",
    "DeleteOutcome",
    "DeleteStatus",
    "KubeDeployConfig",
    "Phase",
    "ProgressEvent",
    "Readiness",
    "ReconcileOutcome",
    "ReconcileResult",
    "ResourceRef",
    "ResourceSpec",
    "TeardownReport",
    "TeardownScope",
]
