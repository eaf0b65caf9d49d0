"""Cluster API access for kubedeploy.

Submodules
----------
base        -- ClusterClient: the abstraction both engines talk to.
kubernetes  -- KubernetesClusterClient: kubernetes-asyncio implementation.
helm        -- ReleaseManager / HelmReleaseManager: release uninstall for teardown.
"""

from kubedeploy.cluster.base import ClusterClient
from kubedeploy.cluster.helm import HelmReleaseManager, Release, ReleaseManager

__all__ = [
    "ClusterClient",
    "HelmReleaseManager",
    "Release",
    "ReleaseManager",
]
