"""ClusterClient backed by kubernetes-asyncio.

Well-known kinds are dispatched through a static table to the generated
``read_/create_/replace_/delete_/list_`` methods of the matching API group;
every other kind goes through the discovery-driven dynamic client. API
errors and transport failures both surface as ``ClusterAPIError``.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any

import aiohttp
from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
from kubernetes_asyncio import config as k8s_config  # type: ignore[import-untyped]
from kubernetes_asyncio.client.rest import ApiException  # type: ignore[import-untyped]
from kubernetes_asyncio.dynamic import DynamicClient  # type: ignore[import-untyped]
from kubernetes_asyncio.dynamic.exceptions import (  # type: ignore[import-untyped]
    ResourceNotFoundError,
    ResourceNotUniqueError,
)

from kubedeploy.cluster.base import ClusterClient
from kubedeploy.errors import (
    ClusterAPIError,
    ClusterUnreachableError,
    ConflictError,
    NotFoundError,
    TransportError,
    UnsupportedKindError,
)
from kubedeploy.models.resources import ResourceRef
from kubedeploy.observability.logging import get_logger

_log = get_logger("cluster.kubernetes")


@dataclass(frozen=True)
class _KindAPI:
    api: str  # class name in kubernetes_asyncio.client
    plural: str  # snake_case suffix of the generated methods
    namespaced: bool
    api_version: str


_KINDS: dict[str, _KindAPI] = {
    "Namespace": _KindAPI("CoreV1Api", "namespace", False, "v1"),
    "ConfigMap": _KindAPI("CoreV1Api", "config_map", True, "v1"),
    "Secret": _KindAPI("CoreV1Api", "secret", True, "v1"),
    "Service": _KindAPI("CoreV1Api", "service", True, "v1"),
    "ServiceAccount": _KindAPI("CoreV1Api", "service_account", True, "v1"),
    "Pod": _KindAPI("CoreV1Api", "pod", True, "v1"),
    "PersistentVolumeClaim": _KindAPI("CoreV1Api", "persistent_volume_claim", True, "v1"),
    "PersistentVolume": _KindAPI("CoreV1Api", "persistent_volume", False, "v1"),
    "Node": _KindAPI("CoreV1Api", "node", False, "v1"),
    "Deployment": _KindAPI("AppsV1Api", "deployment", True, "apps/v1"),
    "StatefulSet": _KindAPI("AppsV1Api", "stateful_set", True, "apps/v1"),
    "DaemonSet": _KindAPI("AppsV1Api", "daemon_set", True, "apps/v1"),
    "ReplicaSet": _KindAPI("AppsV1Api", "replica_set", True, "apps/v1"),
    "Job": _KindAPI("BatchV1Api", "job", True, "batch/v1"),
    "CronJob": _KindAPI("BatchV1Api", "cron_job", True, "batch/v1"),
    "Ingress": _KindAPI("NetworkingV1Api", "ingress", True, "networking.k8s.io/v1"),
    "NetworkPolicy": _KindAPI("NetworkingV1Api", "network_policy", True, "networking.k8s.io/v1"),
    "Role": _KindAPI("RbacAuthorizationV1Api", "role", True, "rbac.authorization.k8s.io/v1"),
    "RoleBinding": _KindAPI("RbacAuthorizationV1Api", "role_binding", True, "rbac.authorization.k8s.io/v1"),
    "ClusterRole": _KindAPI("RbacAuthorizationV1Api", "cluster_role", False, "rbac.authorization.k8s.io/v1"),
    "ClusterRoleBinding": _KindAPI(
        "RbacAuthorizationV1Api", "cluster_role_binding", False, "rbac.authorization.k8s.io/v1"
    ),
    "StorageClass": _KindAPI("StorageV1Api", "storage_class", False, "storage.k8s.io/v1"),
}

SUPPORTED_KINDS = frozenset(_KINDS)


def translate_api_exception(exc: ApiException) -> ClusterAPIError:
    """Map a kubernetes-asyncio ApiException onto the kubedeploy taxonomy."""
    message = ""
    reason = str(exc.reason or "")
    if exc.body:
        try:
            payload = json.loads(exc.body)
            message = str(payload.get("message", ""))
            reason = str(payload.get("reason", reason))
        except (ValueError, AttributeError):
            message = str(exc.body)[:300]
    if exc.status == 404:
        return NotFoundError(reason or "NotFound", message)
    if exc.status == 409:
        return ConflictError(reason or "Conflict", message)
    return ClusterAPIError(int(exc.status or 0), reason, message)


def _instance_dict(obj: Any) -> dict[str, Any]:
    """Plain dict of a dynamic-client ResourceInstance."""
    if hasattr(obj, "to_dict"):
        return dict(obj.to_dict())
    return dict(obj)


class KubernetesClusterClient(ClusterClient):
    """ClusterClient over a kubernetes-asyncio ApiClient.

    Kinds in the static table go through the typed APIs. Any other kind
    (autoscalers, disruption budgets, CRDs, custom resources) is resolved
    through API discovery and served by the dynamic client.

    Args:
        api_client: Configured ``kubernetes_asyncio.client.ApiClient``.
                    Owned by this object and closed by ``close()``.
        dynamic:    Optional pre-built ``DynamicClient``; created lazily
                    on first use of a kind outside the table.
    """

    def __init__(self, api_client: Any, dynamic: Any = None) -> None:
        self._api_client = api_client
        self._apis: dict[str, Any] = {}
        self._dynamic = dynamic
        # apiVersion last seen in a document, per dynamically resolved kind
        self._api_versions: dict[str, str] = {}

    @classmethod
    async def connect(cls, kubeconfig: str = "", context: str = "") -> KubernetesClusterClient:
        """Load in-cluster config, falling back to kubeconfig.

        An explicit *kubeconfig* or *context* skips in-cluster detection.
        """
        try:
            if kubeconfig or context:
                await k8s_config.load_kube_config(config_file=kubeconfig or None, context=context or None)
                _log.info("k8s client configured from kubeconfig", kubeconfig=kubeconfig or None, context=context or None)
            else:
                try:
                    k8s_config.load_incluster_config()
                    _log.info("k8s client configured from in-cluster service account")
                except k8s_config.ConfigException:
                    await k8s_config.load_kube_config()
                    _log.info("k8s client configured from kubeconfig")
        except (k8s_config.ConfigException, OSError) as exc:
            raise ClusterUnreachableError(f"Cannot load cluster configuration: {exc}") from exc
        return cls(k8s_client.ApiClient())

    # ------------------------------------------------------------------
    # Dispatch helpers
    # ------------------------------------------------------------------

    async def _call(self, method: Any, **kwargs: Any) -> Any:
        try:
            return await method(**kwargs)
        except ApiException as exc:
            raise translate_api_exception(exc) from exc
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportError(str(exc) or type(exc).__name__) from exc

    def _api(self, name: str) -> Any:
        api = self._apis.get(name)
        if api is None:
            api = getattr(k8s_client, name)(self._api_client)
            self._apis[name] = api
        return api

    def _method(self, meta: _KindAPI, verb: str, *, all_namespaces: bool = False) -> Any:
        api = self._api(meta.api)
        if all_namespaces:
            name = f"list_{meta.plural}_for_all_namespaces"
        elif meta.namespaced:
            name = f"{verb}_namespaced_{meta.plural}"
        else:
            name = f"{verb}_{meta.plural}"
        return getattr(api, name)

    def _to_dict(self, obj: Any, api_version: str, kind: str) -> dict[str, Any]:
        data: dict[str, Any] = self._api_client.sanitize_for_serialization(obj)
        data.setdefault("apiVersion", api_version)
        data.setdefault("kind", kind)
        return data

    def _ns_args(self, ref: ResourceRef, namespaced: bool) -> dict[str, str]:
        return {"namespace": ref.namespace} if namespaced else {}

    async def _resource(self, kind: str, api_version: str = "") -> Any:
        """Resolve a kind outside the table through API discovery."""
        if api_version:
            self._api_versions[kind] = api_version
        api_version = api_version or self._api_versions.get(kind, "")
        if self._dynamic is None:
            self._dynamic = await self._call(DynamicClient, client=self._api_client)
        query: dict[str, str] = {"kind": kind}
        if api_version:
            query["api_version"] = api_version
        try:
            try:
                return await self._call(self._dynamic.resources.get, **query)
            except ResourceNotUniqueError:
                return await self._call(self._dynamic.resources.get, preferred=True, **query)
        except (ResourceNotFoundError, ResourceNotUniqueError) as exc:
            raise UnsupportedKindError(kind) from exc

    # ------------------------------------------------------------------
    # ClusterClient
    # ------------------------------------------------------------------

    async def get(self, ref: ResourceRef) -> dict[str, Any] | None:
        try:
            meta = _KINDS.get(ref.kind)
            if meta is not None:
                obj = await self._call(self._method(meta, "read"), name=ref.name, **self._ns_args(ref, meta.namespaced))
                return self._to_dict(obj, meta.api_version, ref.kind)
            resource = await self._resource(ref.kind)
            obj = await self._call(
                self._dynamic.get, resource=resource, name=ref.name, **self._ns_args(ref, resource.namespaced)
            )
            return self._to_dict(_instance_dict(obj), resource.group_version, ref.kind)
        except NotFoundError:
            return None

    async def create(self, ref: ResourceRef, body: dict[str, Any]) -> dict[str, Any]:
        meta = _KINDS.get(ref.kind)
        if meta is not None:
            obj = await self._call(self._method(meta, "create"), body=body, **self._ns_args(ref, meta.namespaced))
            return self._to_dict(obj, meta.api_version, ref.kind)
        resource = await self._resource(ref.kind, str(body.get("apiVersion") or ""))
        obj = await self._call(
            self._dynamic.create, resource=resource, body=body, **self._ns_args(ref, resource.namespaced)
        )
        return self._to_dict(_instance_dict(obj), resource.group_version, ref.kind)

    async def update(self, ref: ResourceRef, body: dict[str, Any]) -> dict[str, Any]:
        meta = _KINDS.get(ref.kind)
        if meta is not None:
            method = self._method(meta, "replace")
            obj = await self._call(method, name=ref.name, body=body, **self._ns_args(ref, meta.namespaced))
            return self._to_dict(obj, meta.api_version, ref.kind)
        resource = await self._resource(ref.kind, str(body.get("apiVersion") or ""))
        obj = await self._call(
            self._dynamic.replace,
            resource=resource,
            name=ref.name,
            body=body,
            **self._ns_args(ref, resource.namespaced),
        )
        return self._to_dict(_instance_dict(obj), resource.group_version, ref.kind)

    async def delete(self, ref: ResourceRef, grace_period_seconds: int | None = None) -> None:
        options = k8s_client.V1DeleteOptions(
            grace_period_seconds=grace_period_seconds,
            propagation_policy="Background",
        )
        meta = _KINDS.get(ref.kind)
        if meta is not None:
            await self._call(
                self._method(meta, "delete"), name=ref.name, body=options, **self._ns_args(ref, meta.namespaced)
            )
            return
        resource = await self._resource(ref.kind)
        await self._call(
            self._dynamic.delete,
            resource=resource,
            name=ref.name,
            body=self._api_client.sanitize_for_serialization(options),
            **self._ns_args(ref, resource.namespaced),
        )

    async def list(
        self,
        kind: str,
        namespace: str | None = None,
        label_selector: str = "",
        field_selector: str = "",
    ) -> list[dict[str, Any]]:
        kwargs: dict[str, Any] = {}
        if label_selector:
            kwargs["label_selector"] = label_selector
        if field_selector:
            kwargs["field_selector"] = field_selector

        meta = _KINDS.get(kind)
        if meta is None:
            resource = await self._resource(kind)
            if resource.namespaced and namespace is not None:
                kwargs["namespace"] = namespace
            result = await self._call(self._dynamic.get, resource=resource, **kwargs)
            items = _instance_dict(result).get("items") or []
            return [self._to_dict(item, resource.group_version, kind) for item in items]

        if meta.namespaced and namespace is not None:
            method = self._method(meta, "list")
            kwargs["namespace"] = namespace
        elif meta.namespaced:
            method = self._method(meta, "list", all_namespaces=True)
        else:
            method = self._method(meta, "list")
        result = await self._call(method, **kwargs)
        return [self._to_dict(item, meta.api_version, kind) for item in (result.items or [])]

    async def finalize_namespace(self, name: str, finalizers: list[str] | None = None) -> dict[str, Any]:
        core = self._api("CoreV1Api")
        body = {
            "apiVersion": "v1",
            "kind": "Namespace",
            "metadata": {"name": name},
            "spec": {"finalizers": list(finalizers or [])},
        }
        obj = await self._call(core.replace_namespace_finalize, name=name, body=body)
        return self._to_dict(obj, "v1", "Namespace")

    async def server_version(self) -> str:
        try:
            info = await self._call(k8s_client.VersionApi(self._api_client).get_code)
        except (ClusterAPIError, OSError) as exc:
            raise ClusterUnreachableError(f"Cluster API is not reachable: {exc}") from exc
        return str(info.git_version)

    async def close(self) -> None:
        try:
            await self._api_client.close()
        except Exception as exc:
            _log.debug("k8s client close raised (non-fatal)", error=str(exc))
