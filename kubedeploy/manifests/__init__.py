"""Manifest loading: YAML documents to ResourceSpecs."""

from kubedeploy.manifests.loader import (
    DEPENDS_ON_ANNOTATION,
    READY_TIMEOUT_ANNOTATION,
    load_manifests,
    spec_from_document,
    with_namespace_dependencies,
    with_timeout_overrides,
)

__all__ = [
    "DEPENDS_ON_ANNOTATION",
    "READY_TIMEOUT_ANNOTATION",
    "load_manifests",
    "spec_from_document",
    "with_namespace_dependencies",
    "with_timeout_overrides",
]
