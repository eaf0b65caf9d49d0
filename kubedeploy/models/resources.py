"""Resource identity and declarative resource specifications."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

# Kinds that never live inside a namespace.
CLUSTER_SCOPED_KINDS = frozenset(
    {
        "Namespace",
        "PersistentVolume",
        "ClusterRole",
        "ClusterRoleBinding",
        "StorageClass",
        "Node",
        "CustomResourceDefinition",
        "PriorityClass",
        "IngressClass",
        "ValidatingWebhookConfiguration",
        "MutatingWebhookConfiguration",
        "APIService",
    }
)


def freeze(value: Any) -> Any:
    """Read-only deep copy: mappings become mappingproxies, lists tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    return value


def thaw(value: Any) -> Any:
    """Mutable deep copy of a frozen document, as plain dicts and lists."""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(item) for item in value]
    return value


@dataclass(frozen=True, order=True)
class ResourceRef:
    """Identity of a cluster object: (kind, namespace, name).

    Cluster-scoped kinds always carry an empty namespace.
    """

    kind: str
    namespace: str
    name: str

    def __post_init__(self) -> None:
        if self.cluster_scoped and self.namespace:
            object.__setattr__(self, "namespace", "")

    @property
    def cluster_scoped(self) -> bool:
        return self.kind in CLUSTER_SCOPED_KINDS

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind}/{self.namespace}/{self.name}"
        return f"{self.kind}/{self.name}"

    @classmethod
    def parse(cls, text: str, default_namespace: str = "") -> ResourceRef:
        """Parse ``Kind/name`` or ``Kind/namespace/name``.

        ``Kind/name`` takes *default_namespace* unless the kind is
        cluster-scoped.
        """
        parts = [p.strip() for p in text.strip().split("/")]
        if len(parts) == 2 and all(parts):
            kind, name = parts
            return cls(kind=kind, namespace=default_namespace, name=name)
        if len(parts) == 3 and parts[0] and parts[2]:
            kind, namespace, name = parts
            return cls(kind=kind, namespace=namespace, name=name)
        raise ValueError(f"Invalid resource reference: {text!r} (expected Kind/name or Kind/namespace/name)")


@dataclass(frozen=True)
class ResourceSpec:
    """A declarative resource: identity, body and dependencies.

    Built once from static configuration and never mutated afterwards.
    ``body`` is the full document sent to the cluster API, stored as a
    read-only deep copy; ``document()`` returns a mutable copy of it.
    """

    ref: ResourceRef
    body: Mapping[str, Any] = field(compare=False)
    depends_on: tuple[ResourceRef, ...] = ()
    ready_timeout: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "body", freeze(self.body))

    def document(self) -> dict[str, Any]:
        return thaw(self.body)

    @property
    def kind(self) -> str:
        return self.ref.kind

    @property
    def namespace(self) -> str:
        return self.ref.namespace

    @property
    def name(self) -> str:
        return self.ref.name


def ref_from_object(obj: dict[str, Any], kind: str | None = None) -> ResourceRef:
    """Build a ResourceRef from a raw API object dict."""
    metadata = obj.get("metadata") or {}
    return ResourceRef(
        kind=kind or str(obj.get("kind", "")),
        namespace=str(metadata.get("namespace") or ""),
        name=str(metadata.get("name", "")),
    )
