"""Configuration loading from environment variables."""

from __future__ import annotations

import os
import re

from kubedeploy.models.config import (
    ClusterConfig,
    DeployConfig,
    KubeDeployConfig,
    LogConfig,
    ResetConfig,
)
from kubedeploy.models.resources import ResourceRef

_LABEL_SELECTOR_RE = re.compile(r"^[A-Za-z0-9._/-]+(\s*(=|==|!=)\s*[A-Za-z0-9._-]*)?(,[A-Za-z0-9._/!=\s-]+)*$")


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBEDEPLOY_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float | None = None, max_val: float | None = None) -> float:
    val = float(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_list(key: str, default: list[str]) -> list[str]:
    raw = _env(key, "")
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_log_format(value: str) -> str:
    valid = {"json", "console"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log format: {value}. Must be one of {valid}")
    return value.lower()


def parse_pod_selectors(value: str) -> dict[str, str]:
    """Parse ``ns=selector;ns2=selector2`` into a namespace -> selector map.

    The selector itself may contain ``=`` (``mysql=app=mysql``); only the
    first one separates the namespace.
    """
    selectors: dict[str, str] = {}
    for entry in value.split(";"):
        entry = entry.strip()
        if not entry:
            continue
        namespace, sep, selector = entry.partition("=")
        namespace, selector = namespace.strip(), selector.strip()
        if not sep or not namespace or not selector:
            raise ValueError(f"Invalid pod selector entry: {entry!r} (expected namespace=label-selector)")
        if not _LABEL_SELECTOR_RE.match(selector):
            raise ValueError(f"Invalid label selector for namespace {namespace}: {selector!r}")
        selectors[namespace] = selector
    return selectors


def parse_resource_timeouts(value: str, default_namespace: str = "default") -> dict[ResourceRef, float]:
    """Parse ``Kind/name=seconds;Kind/ns/name=seconds`` into per-resource timeouts.

    ``Kind/name`` resolves against *default_namespace*, like the depends-on
    annotation.
    """
    timeouts: dict[ResourceRef, float] = {}
    for entry in value.split(";"):
        entry = entry.strip()
        if not entry:
            continue
        target, sep, seconds = entry.rpartition("=")
        if not sep or not target.strip():
            raise ValueError(f"Invalid resource timeout entry: {entry!r} (expected Kind/[namespace/]name=seconds)")
        try:
            timeout = float(seconds)
        except ValueError:
            raise ValueError(f"Invalid timeout for {target.strip()}: {seconds!r}") from None
        if timeout <= 0:
            raise ValueError(f"Timeout for {target.strip()} must be positive, got {seconds!r}")
        timeouts[ResourceRef.parse(target, default_namespace)] = timeout
    return timeouts


def load_config() -> KubeDeployConfig:
    """Load configuration from KUBEDEPLOY_* environment variables."""
    defaults = ResetConfig()
    default_namespace = _env("DEFAULT_NAMESPACE", "default")
    return KubeDeployConfig(
        cluster=ClusterConfig(
            kubeconfig=_env("KUBECONFIG", os.environ.get("KUBECONFIG", "")),
            context=_env("CONTEXT", ""),
        ),
        deploy=DeployConfig(
            manifest_dir=_env("MANIFEST_DIR", "."),
            default_namespace=default_namespace,
            ready_timeout=_env_float("READY_TIMEOUT", 180.0, min_val=1.0, max_val=3600.0),
            poll_interval=_env_float("POLL_INTERVAL", 2.0, min_val=0.1, max_val=60.0),
            conflict_retries=_env_int("CONFLICT_RETRIES", 3, min_val=0, max_val=10),
            parallel_apply=_env_bool("PARALLEL_APPLY", False),
            pod_selectors=parse_pod_selectors(_env("POD_SELECTORS", "")),
            resource_timeouts=parse_resource_timeouts(_env("RESOURCE_TIMEOUTS", ""), default_namespace),
        ),
        reset=ResetConfig(
            namespace_wait=_env_float("NAMESPACE_WAIT", 60.0, min_val=1.0, max_val=3600.0),
            namespace_poll_interval=_env_float("NAMESPACE_POLL_INTERVAL", 1.0, min_val=0.1, max_val=30.0),
            finalize_wait=_env_float("FINALIZE_WAIT", 30.0, min_val=1.0, max_val=600.0),
            delete_grace_seconds=_env_int("DELETE_GRACE_SECONDS", 0, min_val=0),
            system_namespaces=_env_list("SYSTEM_NAMESPACES", defaults.system_namespaces),
            cluster_label_selector=_env("CLUSTER_LABEL_SELECTOR", defaults.cluster_label_selector),
            helm_binary=_env("HELM_BINARY", "helm"),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
            format=_validate_log_format(_env("LOG_FORMAT", "json")),
        ),
    )
