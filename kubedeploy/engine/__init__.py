"""Deploy and reset engines.

Submodules
----------
poll      -- Poller: fixed-interval, hard-timeout polling shared by both engines.
apply     -- ApplyEngine: ordered idempotent apply, then concurrent readiness pass.
teardown  -- TeardownEngine: four-phase best-effort reset with finalizer remediation.
verify    -- Post-deploy pod and service access summaries.
"""

from kubedeploy.engine.apply import ApplyEngine
from kubedeploy.engine.poll import Poller
from kubedeploy.engine.teardown import TeardownEngine

__all__ = [
    "ApplyEngine",
    "Poller",
    "TeardownEngine",
]
