"""Apply/Reconcile Engine.

Two phases, matching "create object" then "wait for condition":

1. Apply every resource in dependency order, idempotently. A rejected
   document aborts the deploy immediately; nothing after it is attempted.
2. Poll every resource that has a readiness predicate until it is Ready,
   Failed, or its timeout elapses. Every resource is polled; a timeout is
   recorded and never aborts the pass.

No rollback happens on failure or cancellation: the cluster keeps whatever
partial state existed at that point.
"""

from __future__ import annotations

import asyncio
import copy
import hashlib
import json
from collections.abc import Mapping, Sequence
from typing import Any

from kubedeploy.cluster.base import ClusterClient
from kubedeploy.engine.poll import Poller
from kubedeploy.errors import (
    ApplyRejectedError,
    ClusterAPIError,
    PollTimeoutError,
    ReadinessTimeoutError,
    UnsupportedKindError,
)
from kubedeploy.graph import build_graph
from kubedeploy.models.reconcile import (
    Phase,
    ProgressEvent,
    Readiness,
    ReconcileOutcome,
    ReconcileResult,
)
from kubedeploy.models.resources import ResourceRef, ResourceSpec, thaw
from kubedeploy.observability.events import ProgressSink, log_sink
from kubedeploy.observability.logging import get_logger
from kubedeploy.readiness import READINESS_CHECKS, ReadinessCheckable

_log = get_logger("engine.apply")

APPLIED_HASH_ANNOTATION = "kubedeploy.io/applied-hash"

DEFAULT_READY_TIMEOUT = 180.0

# Fields the API server assigns on create and refuses to change on replace.
_PRESERVED_ON_UPDATE: dict[str, tuple[str, ...]] = {
    "Service": ("clusterIP", "clusterIPs", "healthCheckNodePort"),
    "PersistentVolumeClaim": ("volumeName",),
}


def body_digest(body: Mapping[str, Any]) -> str:
    """Content hash of a declared body, stable across key order."""
    encoded = json.dumps(thaw(body), sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode()).hexdigest()


def _live_digest(live: Mapping[str, Any]) -> str | None:
    annotations = (live.get("metadata") or {}).get("annotations") or {}
    return annotations.get(APPLIED_HASH_ANNOTATION)


def desired_body(spec: ResourceSpec) -> dict[str, Any]:
    """Return the document to send: the declared body plus its digest annotation."""
    body = spec.document()
    metadata = body.setdefault("metadata", {})
    metadata["name"] = spec.name
    if spec.namespace:
        metadata["namespace"] = spec.namespace
    annotations = metadata.get("annotations") or {}
    annotations[APPLIED_HASH_ANNOTATION] = body_digest(spec.body)
    metadata["annotations"] = annotations
    return body


def _update_body(kind: str, desired: dict[str, Any], live: Mapping[str, Any]) -> dict[str, Any]:
    body = copy.deepcopy(desired)
    version = (live.get("metadata") or {}).get("resourceVersion")
    if version:
        body["metadata"]["resourceVersion"] = version
    live_spec = live.get("spec") or {}
    for field_name in _PRESERVED_ON_UPDATE.get(kind, ()):
        if field_name in live_spec and field_name not in (body.get("spec") or {}):
            body.setdefault("spec", {})[field_name] = live_spec[field_name]
    return body


class ApplyEngine:
    """Applies ResourceSpecs in order and waits for readiness.

    Args:
        client:           Cluster API client shared with the teardown engine.
        poller:           Polling primitive (interval, clock, sleep).
        timeout:          Default per-resource readiness timeout in seconds.
        conflict_retries: How many times a 409 conflict is retried before
                          the apply is treated as rejected.
        parallel:         Apply siblings in one dependency level concurrently.
        sink:             Receives a ProgressEvent for every step.
        checks:           Kind -> readiness predicate mapping.
    """

    def __init__(
        self,
        client: ClusterClient,
        poller: Poller | None = None,
        timeout: float = DEFAULT_READY_TIMEOUT,
        conflict_retries: int = 3,
        parallel: bool = False,
        sink: ProgressSink | None = None,
        checks: Mapping[str, ReadinessCheckable] | None = None,
    ) -> None:
        self._client = client
        self._poller = poller or Poller()
        self._timeout = timeout
        self._conflict_retries = conflict_retries
        self._parallel = parallel
        self._sink = sink or log_sink
        self._checks = READINESS_CHECKS if checks is None else checks
        self._locks: dict[ResourceRef, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def deploy(
        self,
        resources: Sequence[ResourceSpec],
        timeout_per_resource: float | None = None,
    ) -> list[ReconcileResult]:
        """Apply *resources* (already in dependency order) and wait for readiness.

        Returns one ReconcileResult per resource, in input order.

        Raises:
            ApplyRejectedError: the cluster API declined a document. The
                error carries every result recorded up to and including
                the rejected resource.
        """
        timeout = self._timeout if timeout_per_resource is None else timeout_per_resource
        results: dict[ResourceRef, ReconcileResult] = {}

        _log.info("deploy started", resources=len(resources), parallel=self._parallel)

        if self._parallel:
            for level in build_graph(resources).levels():
                await self._apply_level(level, results)
        else:
            for spec in resources:
                await self._apply_guarded(spec, results)

        waits = [spec for spec in resources if spec.kind in self._checks]
        await asyncio.gather(*(self._wait_ready(spec, results[spec.ref], timeout) for spec in waits))

        ordered = [results[spec.ref] for spec in resources]
        _log.info(
            "deploy finished",
            applied=sum(r.outcome == ReconcileOutcome.APPLIED for r in ordered),
            already_current=sum(r.outcome == ReconcileOutcome.ALREADY_CURRENT for r in ordered),
            timed_out=sum(r.outcome == ReconcileOutcome.TIMED_OUT for r in ordered),
            failed=sum(r.outcome == ReconcileOutcome.FAILED for r in ordered),
        )
        return ordered

    # ------------------------------------------------------------------
    # Phase 1: apply
    # ------------------------------------------------------------------

    async def _apply_level(
        self,
        level: Sequence[ResourceSpec],
        results: dict[ResourceRef, ReconcileResult],
    ) -> None:
        outcomes = await asyncio.gather(
            *(self._apply_guarded(spec, results) for spec in level),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                if isinstance(outcome, ApplyRejectedError):
                    outcome.results = list(results.values())
                raise outcome

    async def _apply_guarded(
        self,
        spec: ResourceSpec,
        results: dict[ResourceRef, ReconcileResult],
    ) -> None:
        try:
            results[spec.ref] = await self.apply(spec)
        except (ClusterAPIError, UnsupportedKindError) as exc:
            results[spec.ref] = ReconcileResult(
                ref=spec.ref,
                outcome=ReconcileOutcome.FAILED,
                phase=Phase.APPLY,
                reason=str(exc),
                error=exc,
            )
            self._emit(spec.ref, Phase.APPLY, "failed", str(exc))
            _log.error("apply rejected", resource=str(spec.ref), error=str(exc))
            raise ApplyRejectedError(
                spec.ref,
                Phase.APPLY,
                str(exc),
                results=list(results.values()),
                cause=exc,
            ) from exc

    async def apply(self, spec: ResourceSpec) -> ReconcileResult:
        """Create-or-update one resource.

        Unchanged body -> ALREADY_CURRENT; created or replaced -> APPLIED.
        Conflicts and transport failures are retried with a fresh read.
        """
        desired = desired_body(spec)
        digest = desired["metadata"]["annotations"][APPLIED_HASH_ANNOTATION]
        start = self._poller.clock()

        async with self._lock_for(spec.ref):
            attempt = 0
            while True:
                try:
                    outcome = await self._apply_once(spec, desired, digest)
                    break
                except ClusterAPIError as exc:
                    if not exc.retryable or attempt >= self._conflict_retries:
                        raise
                    attempt += 1
                    self._emit(spec.ref, Phase.APPLY, "retry", f"attempt {attempt}: {exc}")
                    _log.info("apply retrying", resource=str(spec.ref), attempt=attempt, reason=exc.reason)

        self._emit(spec.ref, Phase.APPLY, outcome.value)
        return ReconcileResult(
            ref=spec.ref,
            outcome=outcome,
            phase=Phase.APPLY,
            elapsed=self._poller.elapsed_since(start),
        )

    async def _apply_once(self, spec: ResourceSpec, desired: dict[str, Any], digest: str) -> ReconcileOutcome:
        live = await self._client.get(spec.ref)
        if live is None:
            await self._client.create(spec.ref, desired)
            return ReconcileOutcome.APPLIED
        if _live_digest(live) == digest:
            return ReconcileOutcome.ALREADY_CURRENT
        await self._client.update(spec.ref, _update_body(spec.kind, desired, live))
        return ReconcileOutcome.APPLIED

    def _lock_for(self, ref: ResourceRef) -> asyncio.Lock:
        lock = self._locks.get(ref)
        if lock is None:
            lock = self._locks[ref] = asyncio.Lock()
        return lock

    # ------------------------------------------------------------------
    # Phase 2: readiness
    # ------------------------------------------------------------------

    async def _wait_ready(self, spec: ResourceSpec, result: ReconcileResult, default_timeout: float) -> None:
        predicate = self._checks[spec.kind]
        timeout = spec.ready_timeout if spec.ready_timeout is not None else default_timeout
        start = self._poller.clock()

        async def _check() -> Readiness:
            try:
                live = await self._client.get(spec.ref)
            except ClusterAPIError as exc:
                if exc.retryable or exc.status >= 500:
                    _log.debug("readiness read failed, will retry", resource=str(spec.ref), error=str(exc))
                    return Readiness.NOT_READY
                raise
            if live is None:
                return Readiness.NOT_READY
            return predicate(live)

        self._emit(spec.ref, Phase.WAIT, "waiting", f"timeout {timeout:g}s")
        try:
            verdict = await self._poller.until(
                _check,
                lambda v: v != Readiness.NOT_READY,
                timeout,
                what=f"wait: readiness of {spec.ref}",
            )
        except PollTimeoutError as exc:
            result.error = ReadinessTimeoutError(spec.ref, timeout, exc.last)
            result.outcome = ReconcileOutcome.TIMED_OUT
            result.phase = Phase.WAIT
            result.readiness = Readiness.NOT_READY
            result.reason = f"not ready within {timeout:g}s"
            result.elapsed += self._poller.elapsed_since(start)
            self._emit(spec.ref, Phase.WAIT, "timed_out", result.reason)
            _log.warning("readiness timed out", resource=str(spec.ref), error=str(result.error), last=str(exc.last))
            return
        except ClusterAPIError as exc:
            result.outcome = ReconcileOutcome.FAILED
            result.phase = Phase.WAIT
            result.reason = str(exc)
            result.error = exc
            result.elapsed += self._poller.elapsed_since(start)
            self._emit(spec.ref, Phase.WAIT, "failed", str(exc))
            return

        result.readiness = verdict
        result.elapsed += self._poller.elapsed_since(start)
        if verdict == Readiness.FAILED:
            result.outcome = ReconcileOutcome.FAILED
            result.phase = Phase.WAIT
            result.reason = "readiness check reported failure"
            self._emit(spec.ref, Phase.WAIT, "failed", result.reason)
        else:
            self._emit(spec.ref, Phase.WAIT, "ready")

    def _emit(self, ref: ResourceRef, phase: Phase, outcome: str, detail: str = "") -> None:
        self._sink(ProgressEvent(ref=ref, phase=phase, outcome=outcome, detail=detail))
