"""Click command group: ``kubedeploy deploy`` and ``kubedeploy reset``."""

from __future__ import annotations

import asyncio
import json

import click

from kubedeploy import __version__
from kubedeploy.app import (
    ExitCode,
    reset_exit_code,
    run_cancellable,
    run_deploy,
    run_reset,
)
from kubedeploy.cli.render import header, json_sink, render_deploy, render_reset, text_sink
from kubedeploy.config import load_config, parse_pod_selectors, parse_resource_timeouts
from kubedeploy.errors import (
    ApplyRejectedError,
    GraphError,
    KubeDeployError,
    ManifestError,
    OperationCancelled,
)
from kubedeploy.models.config import KubeDeployConfig
from kubedeploy.models.teardown import TeardownScope
from kubedeploy.observability.logging import get_logger, setup_logging

_OUTPUT = click.Choice(["text", "json"])


@click.group()
@click.version_option(__version__, prog_name="kubedeploy")
@click.option("--kubeconfig", default=None, help="Path to kubeconfig (default: in-cluster, then ~/.kube/config).")
@click.option("--context", default=None, help="Kubeconfig context to use.")
@click.option("--log-level", type=click.Choice(["debug", "info", "warning", "error"]), default=None)
@click.option("--log-format", type=click.Choice(["json", "console"]), default=None)
@click.pass_context
def cli(
    ctx: click.Context,
    kubeconfig: str | None,
    context: str | None,
    log_level: str | None,
    log_format: str | None,
) -> None:
    """Deploy resource sets in dependency order, or reset a cluster to a clean state."""
    try:
        config = load_config()
    except ValueError as exc:
        raise click.UsageError(f"Invalid KUBEDEPLOY_* configuration: {exc}") from exc

    if kubeconfig:
        config.cluster.kubeconfig = kubeconfig
    if context:
        config.cluster.context = context
    if log_level:
        config.log.level = log_level
    if log_format:
        config.log.format = log_format

    setup_logging(config.log.level, config.log.format)
    ctx.obj = config


@cli.command()
@click.argument("paths", nargs=-1, type=click.Path(exists=True))
@click.option("--timeout", type=click.FloatRange(min=1), default=None, help="Readiness timeout per resource (s).")
@click.option("--interval", type=click.FloatRange(min=0.1), default=None, help="Readiness poll interval (s).")
@click.option("--parallel/--sequential", default=None, help="Apply siblings in a dependency level concurrently.")
@click.option(
    "--pod-selector",
    "pod_selectors",
    multiple=True,
    help="namespace=label-selector to report pod status for after deploy. Repeatable.",
)
@click.option(
    "--resource-timeout",
    "resource_timeouts",
    multiple=True,
    help="Kind/[namespace/]name=seconds readiness timeout for one resource. Repeatable.",
)
@click.option("--output", type=_OUTPUT, default="text", show_default=True)
@click.pass_obj
def deploy(
    config: KubeDeployConfig,
    paths: tuple[str, ...],
    timeout: float | None,
    interval: float | None,
    parallel: bool | None,
    pod_selectors: tuple[str, ...],
    resource_timeouts: tuple[str, ...],
    output: str,
) -> None:
    """Apply manifests under PATHS (default: KUBEDEPLOY_MANIFEST_DIR) and wait for readiness."""
    if timeout is not None:
        config.deploy.ready_timeout = timeout
    if interval is not None:
        config.deploy.poll_interval = interval
    if parallel is not None:
        config.deploy.parallel_apply = parallel
    if pod_selectors:
        try:
            config.deploy.pod_selectors = parse_pod_selectors(";".join(pod_selectors))
        except ValueError as exc:
            raise click.BadParameter(str(exc), param_hint="--pod-selector") from exc
    if resource_timeouts:
        try:
            config.deploy.resource_timeouts.update(
                parse_resource_timeouts(";".join(resource_timeouts), config.deploy.default_namespace)
            )
        except ValueError as exc:
            raise click.BadParameter(str(exc), param_hint="--resource-timeout") from exc

    sink = json_sink if output == "json" else text_sink
    if output == "text":
        header("Deploying resources")

    log = get_logger("cli")
    try:
        summary = asyncio.run(run_cancellable(run_deploy(config, paths, sink=sink)))
    except OperationCancelled as exc:
        _fail(output, "interrupted", str(exc))
        raise SystemExit(int(ExitCode.INTERRUPTED)) from exc
    except (ManifestError, GraphError) as exc:
        log.error("deploy aborted before any cluster change", error=str(exc))
        _fail(output, "graph", str(exc))
        raise SystemExit(int(ExitCode.FAILED)) from exc
    except ApplyRejectedError as exc:
        log.error("deploy aborted", resource=str(exc.resource), phase=exc.phase.value, error=str(exc))
        _fail(output, exc.phase.value, str(exc))
        raise SystemExit(int(ExitCode.FAILED)) from exc
    except KubeDeployError as exc:
        log.error("deploy failed", error=str(exc))
        _fail(output, "preflight", str(exc))
        raise SystemExit(int(ExitCode.FAILED)) from exc

    render_deploy(summary, output)
    raise SystemExit(int(summary.exit_code))


@cli.command()
@click.option(
    "--namespace",
    "namespaces",
    multiple=True,
    help="Namespace glob to delete (default: every non-system namespace). Repeatable.",
)
@click.option(
    "--manifests",
    "-f",
    "manifest_paths",
    multiple=True,
    type=click.Path(exists=True),
    help="Remove the resources declared here first, dependents before dependencies. Repeatable.",
)
@click.option("--keep-default", is_flag=True, help="Do not clean the default namespace.")
@click.option("--no-cluster-scoped", is_flag=True, help="Keep volumes, cluster roles, ingresses and releases.")
@click.option("--namespace-wait", type=click.FloatRange(min=1), default=None, help="Seconds before a namespace counts as stuck.")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.option("--strict", is_flag=True, help="Exit non-zero when anything remains or any delete failed.")
@click.option("--output", type=_OUTPUT, default="text", show_default=True)
@click.pass_obj
def reset(
    config: KubeDeployConfig,
    namespaces: tuple[str, ...],
    manifest_paths: tuple[str, ...],
    keep_default: bool,
    no_cluster_scoped: bool,
    namespace_wait: float | None,
    yes: bool,
    strict: bool,
    output: str,
) -> None:
    """Delete user-created resources and return the cluster to a clean state."""
    if namespace_wait is not None:
        config.reset.namespace_wait = namespace_wait

    scope = TeardownScope(
        namespaces=frozenset(namespaces) if namespaces else frozenset({"*"}),
        exclude=frozenset(config.reset.system_namespaces),
        clean_default=not keep_default,
        cluster_scoped=not no_cluster_scoped,
        cluster_label_selector=config.reset.cluster_label_selector,
    )

    if not yes:
        click.confirm(
            f"This deletes namespaces matching {', '.join(sorted(scope.namespaces))}"
            + (f", resources declared in {', '.join(manifest_paths)}" if manifest_paths else "")
            + (", default-namespace contents" if scope.clean_default else "")
            + (" and cluster-scoped volumes/releases" if scope.cluster_scoped else "")
            + ". Continue?",
            abort=True,
        )

    sink = json_sink if output == "json" else text_sink
    if output == "text":
        header("Starting cluster reset")

    log = get_logger("cli")
    try:
        report = asyncio.run(run_cancellable(run_reset(config, scope, sink=sink, paths=manifest_paths)))
    except OperationCancelled as exc:
        _fail(output, "interrupted", str(exc))
        raise SystemExit(int(ExitCode.INTERRUPTED)) from exc
    except (ManifestError, GraphError) as exc:
        log.error("reset aborted before any cluster change", error=str(exc))
        _fail(output, "graph", str(exc))
        raise SystemExit(int(ExitCode.FAILED)) from exc
    except KubeDeployError as exc:
        log.error("reset failed", error=str(exc))
        _fail(output, "preflight", str(exc))
        raise SystemExit(int(ExitCode.FAILED)) from exc

    render_reset(report, output)
    raise SystemExit(int(reset_exit_code(report, strict=strict)))


def _fail(output: str, phase: str, message: str) -> None:
    if output == "json":
        click.echo(json.dumps({"type": "error", "phase": phase, "error": message}))
    else:
        click.secho(f"✗ {message}", fg="red", err=True)
