"""Load declarative YAML documents into ResourceSpecs.

Dependencies come from two sources:

* the ``kubedeploy.io/depends-on`` annotation, a comma-separated list of
  ``Kind/name`` (same namespace) or ``Kind/namespace/name`` references;
* implicitly, a namespaced resource depends on its Namespace when that
  Namespace is declared in the same set.

``kubedeploy.io/ready-timeout`` overrides the readiness timeout (seconds). Explicit
per-resource overrides from configuration take precedence over it.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace
from pathlib import Path
from typing import Any

import yaml

from kubedeploy.errors import ManifestError
from kubedeploy.models.resources import ResourceRef, ResourceSpec

DEPENDS_ON_ANNOTATION = "kubedeploy.io/depends-on"
READY_TIMEOUT_ANNOTATION = "kubedeploy.io/ready-timeout"

_MANIFEST_SUFFIXES = (".yaml", ".yml")


def discover_manifests(paths: Sequence[str | Path]) -> list[Path]:
    """Expand directories to their ``*.yaml``/``*.yml`` files, sorted by name."""
    files: list[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            files.extend(sorted(p for p in path.iterdir() if p.is_file() and p.suffix in _MANIFEST_SUFFIXES))
        elif path.is_file():
            files.append(path)
        else:
            raise ManifestError(str(path), "no such file or directory")
    return files


def _documents(source: str, text: str) -> list[dict[str, Any]]:
    try:
        loaded = list(yaml.safe_load_all(text))
    except yaml.YAMLError as exc:
        raise ManifestError(source, f"invalid YAML: {exc}") from exc
    docs: list[dict[str, Any]] = []
    for doc in loaded:
        if doc is None:
            continue
        if not isinstance(doc, dict):
            raise ManifestError(source, f"expected a mapping, got {type(doc).__name__}")
        if doc.get("kind") == "List":
            docs.extend(item for item in doc.get("items") or [] if item)
        else:
            docs.append(doc)
    return docs


def _parse_dependencies(source: str, value: str, namespace: str) -> tuple[ResourceRef, ...]:
    deps: list[ResourceRef] = []
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        try:
            deps.append(ResourceRef.parse(item, default_namespace=namespace))
        except ValueError as exc:
            raise ManifestError(source, str(exc)) from exc
    return tuple(deps)


def _parse_timeout(source: str, value: str) -> float:
    try:
        timeout = float(value)
    except ValueError:
        raise ManifestError(source, f"{READY_TIMEOUT_ANNOTATION} must be a number, got {value!r}") from None
    if timeout <= 0:
        raise ManifestError(source, f"{READY_TIMEOUT_ANNOTATION} must be positive, got {value!r}")
    return timeout


def spec_from_document(
    doc: dict[str, Any],
    source: str = "<document>",
    default_namespace: str = "default",
) -> ResourceSpec:
    """Build one ResourceSpec from an API document (without implicit deps)."""
    kind = doc.get("kind")
    metadata = doc.get("metadata") or {}
    name = metadata.get("name")
    if not kind or not name:
        raise ManifestError(source, "document must define kind and metadata.name")

    ref = ResourceRef(kind=str(kind), namespace=str(metadata.get("namespace") or default_namespace), name=str(name))
    body = copy.deepcopy(doc)
    if ref.namespace:
        body.setdefault("metadata", {})["namespace"] = ref.namespace

    annotations = metadata.get("annotations") or {}
    depends_on = _parse_dependencies(source, str(annotations.get(DEPENDS_ON_ANNOTATION, "")), ref.namespace)
    timeout_raw = annotations.get(READY_TIMEOUT_ANNOTATION)
    ready_timeout = _parse_timeout(source, str(timeout_raw)) if timeout_raw is not None else None

    return ResourceSpec(ref=ref, body=body, depends_on=depends_on, ready_timeout=ready_timeout)


def with_namespace_dependencies(specs: Iterable[ResourceSpec]) -> list[ResourceSpec]:
    """Add an implicit dependency on the declared Namespace of each resource."""
    specs = list(specs)
    declared = {s.name for s in specs if s.kind == "Namespace"}
    out: list[ResourceSpec] = []
    for spec in specs:
        ns_ref = ResourceRef(kind="Namespace", namespace="", name=spec.namespace)
        if spec.namespace in declared and ns_ref not in spec.depends_on:
            spec = ResourceSpec(
                ref=spec.ref,
                body=spec.body,
                depends_on=(ns_ref, *spec.depends_on),
                ready_timeout=spec.ready_timeout,
            )
        out.append(spec)
    return out


def load_manifests(paths: Sequence[str | Path], default_namespace: str = "default") -> list[ResourceSpec]:
    """Read every manifest under *paths* into ResourceSpecs, in file order."""
    specs: list[ResourceSpec] = []
    for path in discover_manifests(paths):
        source = str(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ManifestError(source, f"cannot read: {exc}") from exc
        for index, doc in enumerate(_documents(source, text)):
            specs.append(spec_from_document(doc, f"{source}[{index}]", default_namespace))
    return with_namespace_dependencies(specs)


def with_timeout_overrides(specs: Iterable[ResourceSpec], overrides: Mapping[ResourceRef, float]) -> list[ResourceSpec]:
    """Replace the readiness timeout of each resource named in *overrides*.

    Overrides win over the ready-timeout annotation.

    Raises:
        ManifestError: an override names a resource that is not declared.
    """
    specs = list(specs)
    unknown = set(overrides) - {s.ref for s in specs}
    if unknown:
        names = ", ".join(sorted(str(ref) for ref in unknown))
        raise ManifestError("resource timeouts", f"no such resource declared: {names}")
    return [replace(s, ready_timeout=overrides[s.ref]) if s.ref in overrides else s for s in specs]
