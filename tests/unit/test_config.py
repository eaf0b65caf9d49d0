"""Tests for KUBEDEPLOY_* environment configuration loading."""

from __future__ import annotations

import os

import pytest

from kubedeploy.config import load_config, parse_pod_selectors, parse_resource_timeouts
from kubedeploy.models.resources import ResourceRef


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("KUBEDEPLOY_") or key == "KUBECONFIG":
            monkeypatch.delenv(key, raising=False)


class TestDefaults:
    def test_defaults(self) -> None:
        config = load_config()
        assert config.cluster.kubeconfig == ""
        assert config.deploy.ready_timeout == 180.0
        assert config.deploy.poll_interval == 2.0
        assert config.deploy.conflict_retries == 3
        assert config.deploy.parallel_apply is False
        assert config.deploy.pod_selectors == {}
        assert config.deploy.resource_timeouts == {}
        assert config.reset.namespace_wait == 60.0
        assert config.reset.finalize_wait == 30.0
        assert "kube-system" in config.reset.system_namespaces
        assert config.reset.helm_binary == "helm"
        assert config.log.level == "info"
        assert config.log.format == "json"


class TestOverrides:
    def test_values_read_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEDEPLOY_READY_TIMEOUT", "45")
        monkeypatch.setenv("KUBEDEPLOY_PARALLEL_APPLY", "yes")
        monkeypatch.setenv("KUBEDEPLOY_CONTEXT", "kind-dev")
        monkeypatch.setenv("KUBEDEPLOY_SYSTEM_NAMESPACES", "kube-system, ingress-nginx")
        monkeypatch.setenv("KUBEDEPLOY_LOG_LEVEL", "DEBUG")

        config = load_config()

        assert config.deploy.ready_timeout == 45.0
        assert config.deploy.parallel_apply is True
        assert config.cluster.context == "kind-dev"
        assert config.reset.system_namespaces == ["kube-system", "ingress-nginx"]
        assert config.log.level == "debug"

    def test_kubeconfig_falls_back_to_standard_variable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBECONFIG", "/home/dev/.kube/config")
        assert load_config().cluster.kubeconfig == "/home/dev/.kube/config"
        monkeypatch.setenv("KUBEDEPLOY_KUBECONFIG", "/etc/kube.yaml")
        assert load_config().cluster.kubeconfig == "/etc/kube.yaml"

    def test_numeric_values_clamped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEDEPLOY_POLL_INTERVAL", "0.001")
        monkeypatch.setenv("KUBEDEPLOY_CONFLICT_RETRIES", "99")
        monkeypatch.setenv("KUBEDEPLOY_DELETE_GRACE_SECONDS", "-3")
        config = load_config()
        assert config.deploy.poll_interval == 0.1
        assert config.deploy.conflict_retries == 10
        assert config.reset.delete_grace_seconds == 0

    def test_invalid_log_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEDEPLOY_LOG_LEVEL", "verbose")
        with pytest.raises(ValueError, match="Invalid log level"):
            load_config()

    def test_invalid_log_format(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEDEPLOY_LOG_FORMAT", "xml")
        with pytest.raises(ValueError, match="Invalid log format"):
            load_config()

    def test_non_numeric_timeout(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEDEPLOY_READY_TIMEOUT", "soon")
        with pytest.raises(ValueError):
            load_config()


class TestPodSelectors:
    def test_parses_entries(self) -> None:
        assert parse_pod_selectors("mysql=app=mysql; flask-app=app=flask,tier=web") == {
            "mysql": "app=mysql",
            "flask-app": "app=flask,tier=web",
        }

    def test_empty(self) -> None:
        assert parse_pod_selectors("") == {}
        assert parse_pod_selectors(" ; ") == {}

    @pytest.mark.parametrize("value", ["mysql", "=app=mysql", "mysql=", "mysql=app=$(rm)"])
    def test_invalid_entries(self, value: str) -> None:
        with pytest.raises(ValueError):
            parse_pod_selectors(value)

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEDEPLOY_POD_SELECTORS", "mysql=app=mysql")
        assert load_config().deploy.pod_selectors == {"mysql": "app=mysql"}


class TestResourceTimeouts:
    def test_parses_entries(self) -> None:
        assert parse_resource_timeouts("StatefulSet/mysql/mysql=600; Deployment/web=45.5", "shop") == {
            ResourceRef("StatefulSet", "mysql", "mysql"): 600.0,
            ResourceRef("Deployment", "shop", "web"): 45.5,
        }

    def test_cluster_scoped_kind_ignores_default_namespace(self) -> None:
        assert parse_resource_timeouts("Namespace/mysql=20", "shop") == {ResourceRef("Namespace", "", "mysql"): 20.0}

    @pytest.mark.parametrize("value", ["Deployment/web", "=30", "web=30", "Deployment/web=soon", "Deployment/web=0"])
    def test_invalid_entries(self, value: str) -> None:
        with pytest.raises(ValueError):
            parse_resource_timeouts(value)

    def test_from_env_uses_default_namespace(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEDEPLOY_DEFAULT_NAMESPACE", "shop")
        monkeypatch.setenv("KUBEDEPLOY_RESOURCE_TIMEOUTS", "Deployment/web=90")
        assert load_config().deploy.resource_timeouts == {ResourceRef("Deployment", "shop", "web"): 90.0}

    def test_invalid_env_value_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEDEPLOY_RESOURCE_TIMEOUTS", "Deployment/web=never")
        with pytest.raises(ValueError, match="Deployment/web"):
            load_config()
