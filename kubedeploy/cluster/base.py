"""Cluster API client abstraction shared by both engines.

Every read is a fresh query: implementations must not cache objects. All
objects cross this boundary as plain dicts in API (camelCase) form.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from kubedeploy.models.resources import ResourceRef


class ClusterClient(ABC):
    """Get/Create/Update/Delete/List against arbitrary kinds keyed by ResourceRef.

    Failures are raised as ``kubedeploy.errors.ClusterAPIError`` subclasses:
    ``NotFoundError`` for 404 and ``ConflictError`` for 409.
    """

    @abstractmethod
    async def get(self, ref: ResourceRef) -> dict[str, Any] | None:
        """Return the live object, or None when it does not exist."""

    @abstractmethod
    async def create(self, ref: ResourceRef, body: dict[str, Any]) -> dict[str, Any]:
        """Create *body*; raises ConflictError if it already exists."""

    @abstractmethod
    async def update(self, ref: ResourceRef, body: dict[str, Any]) -> dict[str, Any]:
        """Replace the object with *body*.

        *body* must carry ``metadata.resourceVersion`` for optimistic
        concurrency; a stale version raises ConflictError.
        """

    @abstractmethod
    async def delete(self, ref: ResourceRef, grace_period_seconds: int | None = None) -> None:
        """Delete the object; raises NotFoundError if it is already gone."""

    @abstractmethod
    async def list(
        self,
        kind: str,
        namespace: str | None = None,
        label_selector: str = "",
        field_selector: str = "",
    ) -> list[dict[str, Any]]:
        """List objects of *kind*. ``namespace=None`` lists across all namespaces."""

    @abstractmethod
    async def finalize_namespace(self, name: str, finalizers: list[str] | None = None) -> dict[str, Any]:
        """Overwrite a namespace's ``spec.finalizers`` via the finalize subresource."""

    @abstractmethod
    async def server_version(self) -> str:
        """Return the API server version; used as a reachability preflight."""

    async def close(self) -> None:
        """Release connections. Default: nothing to release."""
