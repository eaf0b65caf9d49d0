"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field

from kubedeploy.models.resources import ResourceRef


@dataclass
class ClusterConfig:
    """Cluster connection configuration."""

    kubeconfig: str = ""
    context: str = ""


@dataclass
class DeployConfig:
    """Apply/reconcile configuration."""

    manifest_dir: str = "."
    default_namespace: str = "default"
    ready_timeout: float = 180.0
    poll_interval: float = 2.0
    conflict_retries: int = 3
    parallel_apply: bool = False
    pod_selectors: dict[str, str] = field(default_factory=dict)
    resource_timeouts: dict[ResourceRef, float] = field(default_factory=dict)


@dataclass
class ResetConfig:
    """Teardown configuration."""

    namespace_wait: float = 60.0
    namespace_poll_interval: float = 1.0
    finalize_wait: float = 30.0
    delete_grace_seconds: int = 0
    system_namespaces: list[str] = field(
        default_factory=lambda: ["kube-system", "kube-public", "kube-node-lease", "default"]
    )
    cluster_label_selector: str = "app.kubernetes.io/managed-by=kubedeploy"
    helm_binary: str = "helm"


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"
    format: str = "json"


@dataclass
class KubeDeployConfig:
    """Top-level kubedeploy configuration."""

    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    deploy: DeployConfig = field(default_factory=DeployConfig)
    reset: ResetConfig = field(default_factory=ResetConfig)
    log: LogConfig = field(default_factory=LogConfig)
