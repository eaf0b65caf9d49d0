"""Post-deploy verification: pod status per selector and service access.

Purely informational. Nothing here changes the deploy outcome.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from kubedeploy.cluster.base import ClusterClient
from kubedeploy.errors import ClusterAPIError
from kubedeploy.models.reconcile import Readiness
from kubedeploy.models.resources import ResourceRef, ResourceSpec
from kubedeploy.observability.logging import get_logger
from kubedeploy.readiness import pod_ready

_log = get_logger("engine.verify")


@dataclass
class PodSummary:
    """Pods matching one selector in one namespace."""

    namespace: str
    selector: str
    total: int = 0
    ready: int = 0
    phases: dict[str, int] = field(default_factory=dict)
    error: str = ""


@dataclass
class ServiceAccess:
    """How to reach an applied Service from outside the cluster."""

    ref: ResourceRef
    service_type: str
    address: str = ""
    pending: bool = False


async def summarize_pods(client: ClusterClient, selectors: Mapping[str, str]) -> list[PodSummary]:
    """List pods for each ``namespace -> label selector`` pair."""
    summaries: list[PodSummary] = []
    for namespace, selector in selectors.items():
        summary = PodSummary(namespace=namespace, selector=selector)
        try:
            pods = await client.list("Pod", namespace=namespace, label_selector=selector)
        except ClusterAPIError as exc:
            summary.error = str(exc)
            summaries.append(summary)
            continue
        phases: Counter[str] = Counter()
        for pod in pods:
            phases[str((pod.get("status") or {}).get("phase", "Unknown"))] += 1
            if pod_ready(pod) == Readiness.READY:
                summary.ready += 1
        summary.total = len(pods)
        summary.phases = dict(phases)
        summaries.append(summary)
    return summaries


def _node_address(nodes: Sequence[dict[str, Any]]) -> str:
    for node in nodes:
        for addr in (node.get("status") or {}).get("addresses") or []:
            if addr.get("type") == "InternalIP":
                return str(addr.get("address", ""))
    return ""


async def describe_services(client: ClusterClient, resources: Sequence[ResourceSpec]) -> list[ServiceAccess]:
    """Report external access for every Service in *resources*.

    LoadBalancer services use their ingress IP/hostname; when that is still
    pending, or the service is a NodePort, the first node's InternalIP and
    the node port are reported instead.
    """
    services = [spec for spec in resources if spec.kind == "Service"]
    if not services:
        return []

    node_ip = ""
    try:
        node_ip = _node_address(await client.list("Node"))
    except ClusterAPIError as exc:
        _log.debug("node listing failed", error=str(exc))

    access: list[ServiceAccess] = []
    for spec in services:
        try:
            live = await client.get(spec.ref)
        except ClusterAPIError as exc:
            _log.debug("service read failed", resource=str(spec.ref), error=str(exc))
            continue
        if live is None:
            continue
        svc_spec = live.get("spec") or {}
        svc_type = str(svc_spec.get("type", "ClusterIP"))
        entry = ServiceAccess(ref=spec.ref, service_type=svc_type)
        ports = svc_spec.get("ports") or [{}]
        port = ports[0].get("port")
        node_port = ports[0].get("nodePort")

        if svc_type == "LoadBalancer":
            ingress = ((live.get("status") or {}).get("loadBalancer") or {}).get("ingress") or []
            if ingress:
                host = ingress[0].get("ip") or ingress[0].get("hostname") or ""
                entry.address = f"http://{host}:{port}" if port else f"http://{host}"
            else:
                entry.pending = True
        if not entry.address and svc_type in ("LoadBalancer", "NodePort") and node_ip and node_port:
            entry.address = f"http://{node_ip}:{node_port}"
        if svc_type == "ClusterIP":
            entry.address = f"{spec.name}.{spec.namespace}.svc.cluster.local" + (f":{port}" if port else "")
        access.append(entry)
    return access
