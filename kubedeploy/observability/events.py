"""Progress-event sinks.

Engines call a sink for every step with a ProgressEvent. The default sink
logs through structlog; callers may fan out to extra sinks (CLI rendering,
test collectors).
"""

from __future__ import annotations

from collections.abc import Callable

from kubedeploy.models.reconcile import ProgressEvent
from kubedeploy.observability.logging import get_logger

ProgressSink = Callable[[ProgressEvent], None]

_log = get_logger("progress")

_WARN_OUTCOMES = frozenset({"failed", "timed_out", "stuck"})


def log_sink(event: ProgressEvent) -> None:
    """Log *event* as a structured ``progress`` record."""
    method = _log.warning if event.outcome in _WARN_OUTCOMES else _log.info
    method(
        "progress",
        resource=str(event.ref),
        phase=event.phase.value,
        outcome=event.outcome,
        detail=event.detail or None,
    )


def fan_out(*sinks: ProgressSink | None) -> ProgressSink:
    """Combine sinks; a failing sink never interrupts the pipeline."""
    active = [s for s in sinks if s is not None]

    def _emit(event: ProgressEvent) -> None:
        for sink in active:
            try:
                sink(event)
            except Exception as exc:
                _log.debug("progress_sink_error", error=str(exc))

    return _emit


class EventCollector:
    """Sink that keeps every event in memory, in emission order."""

    def __init__(self) -> None:
        self.events: list[ProgressEvent] = []

    def __call__(self, event: ProgressEvent) -> None:
        self.events.append(event)

    def for_phase(self, phase: str) -> list[ProgressEvent]:
        return [e for e in self.events if e.phase == phase]
