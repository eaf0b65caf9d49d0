"""Human-readable and JSON-lines rendering for the CLI.

Progress events go to stdout as they happen; summaries are printed once the
engine returns. Structured logs stay on stderr.
"""

from __future__ import annotations

import json
from collections.abc import Sequence

import click

from kubedeploy.app import DeploySummary
from kubedeploy.models.reconcile import ProgressEvent, ReconcileOutcome, ReconcileResult
from kubedeploy.models.teardown import DeleteStatus, TeardownReport

_GOOD = {"applied", "already_current", "ready", "deleted", "already_gone", "finalizer_cleared"}
_BAD = {"failed", "timed_out", "stuck"}


def _symbol(outcome: str) -> str:
    if outcome in _GOOD:
        return click.style("✓", fg="green")
    if outcome in _BAD:
        return click.style("✗", fg="red")
    if outcome in ("skipped", "retry"):
        return click.style("⚠", fg="yellow")
    return click.style("ℹ", fg="blue")


def text_sink(event: ProgressEvent) -> None:
    line = f"{_symbol(event.outcome)} [{event.phase.value}] {event.ref} {event.outcome}"
    if event.detail:
        line += f" ({event.detail})"
    click.echo(line)


def json_sink(event: ProgressEvent) -> None:
    click.echo(json.dumps({"type": "progress", **event.as_dict()}))


def header(title: str) -> None:
    bar = "=" * 47
    click.echo(click.style(f"\n{bar}\n{title}\n{bar}", fg="blue"))


def _result_dict(result: ReconcileResult) -> dict[str, object]:
    return {
        "resource": str(result.ref),
        "outcome": result.outcome.value,
        "phase": result.phase.value,
        "readiness": result.readiness.value if result.readiness else None,
        "reason": result.reason,
        "elapsed": round(result.elapsed, 3),
    }


def render_deploy(summary: DeploySummary, output: str) -> None:
    if output == "json":
        click.echo(
            json.dumps(
                {
                    "type": "deploy_summary",
                    "exit_code": int(summary.exit_code),
                    "server_version": summary.server_version,
                    "results": [_result_dict(r) for r in summary.results],
                    "services": [
                        {
                            "resource": str(s.ref),
                            "type": s.service_type,
                            "address": s.address,
                            "pending": s.pending,
                        }
                        for s in summary.services
                    ],
                    "pods": [
                        {
                            "namespace": p.namespace,
                            "selector": p.selector,
                            "total": p.total,
                            "ready": p.ready,
                            "phases": p.phases,
                            "error": p.error,
                        }
                        for p in summary.pods
                    ],
                }
            )
        )
        return

    header("Deployment Summary")
    for result in summary.results:
        line = f"{_symbol(result.outcome.value)} {result.ref}: {result.outcome.value}"
        if result.readiness:
            line += f", {result.readiness.value}"
        if result.reason:
            line += f" ({result.phase.value}: {result.reason})"
        click.echo(line)

    if summary.pods:
        header("Pod Status")
        for pods in summary.pods:
            if pods.error:
                click.echo(f"{_symbol('failed')} {pods.namespace} [{pods.selector}]: {pods.error}")
                continue
            phases = ", ".join(f"{k}={v}" for k, v in sorted(pods.phases.items())) or "no pods"
            state = "ready" if pods.total and pods.ready == pods.total else "waiting"
            click.echo(f"{_symbol(state)} {pods.namespace} [{pods.selector}]: {pods.ready}/{pods.total} ready ({phases})")

    if summary.services:
        header("Application Access Information")
        for svc in summary.services:
            if svc.pending and not svc.address:
                click.echo(f"{_symbol('skipped')} {svc.ref} ({svc.service_type}): external address pending")
            else:
                note = " (LoadBalancer pending, using node port)" if svc.pending else ""
                click.echo(f"{_symbol('ready')} {svc.ref} ({svc.service_type}): {svc.address}{note}")

    _print_deploy_verdict(summary.results)


def _print_deploy_verdict(results: Sequence[ReconcileResult]) -> None:
    outcomes = [r.outcome for r in results]
    if ReconcileOutcome.FAILED in outcomes:
        click.secho("\nDeployment failed.", fg="red")
    elif ReconcileOutcome.TIMED_OUT in outcomes:
        click.secho("\nDeployment applied, but some resources did not become ready in time.", fg="yellow")
    else:
        click.secho("\nDeployment completed successfully!", fg="green")


def render_reset(report: TeardownReport, output: str) -> None:
    if output == "json":
        click.echo(
            json.dumps(
                {
                    "type": "reset_summary",
                    "clean": report.clean,
                    "failures": [
                        {"resource": str(o.ref), "phase": o.phase.value, "detail": o.detail} for o in report.failures
                    ],
                    "remaining_namespaces": report.remaining_namespaces,
                    "remaining_default": [str(r) for r in report.remaining_default],
                    "remaining_volumes": report.remaining_volumes,
                }
            )
        )
        return

    header("Verifying clean state")
    click.echo(f"Remaining namespaces: {', '.join(report.remaining_namespaces) or 'none'}")
    click.echo(f"Resources in default namespace: {', '.join(str(r) for r in report.remaining_default) or 'none'}")
    volumes = ", ".join(report.remaining_volumes) or "none"
    if report.remaining_volumes and not report.cluster_scoped:
        volumes += " (kept, cluster-scoped resources out of scope)"
    click.echo(f"Persistent volumes: {volumes}")

    failures = report.failures
    if failures:
        header("Failures")
        for outcome in failures:
            click.echo(f"{_symbol(DeleteStatus.FAILED.value)} [{outcome.phase.value}] {outcome.ref}: {outcome.detail}")

    if report.clean and not failures:
        click.secho("\nCluster reset complete. The cluster is in a clean state.", fg="green")
    else:
        click.secho("\nCluster reset finished; manual intervention may be required.", fg="yellow")
