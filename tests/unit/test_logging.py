"""Tests for structlog setup and run-scoped context."""

from __future__ import annotations

import pytest
import structlog

from kubedeploy.observability.logging import bind_run, get_logger, setup_logging


@pytest.fixture(autouse=True)
def _restore_structlog():
    yield
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


def test_bind_run_tags_context() -> None:
    run_id = bind_run("reset")
    context = structlog.contextvars.get_contextvars()
    assert context == {"command": "reset", "run_id": run_id}
    assert len(run_id) == 12


def test_get_logger_binds_component() -> None:
    with structlog.testing.capture_logs() as logs:
        get_logger("engine.apply").info("deploy started", resources=3)
    assert logs == [{"component": "engine.apply", "resources": 3, "event": "deploy started", "log_level": "info"}]


@pytest.mark.parametrize("fmt", ["json", "console", "unknown"])
def test_setup_logging_accepts_formats(fmt: str) -> None:
    setup_logging("debug", fmt)
    assert structlog.is_configured()
