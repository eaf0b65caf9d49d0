"""Entry point for `python -m kubedeploy`.

Usage:
    python -m kubedeploy deploy ./manifests
    python -m kubedeploy reset --yes
"""

from __future__ import annotations

from kubedeploy.cli import cli

cli()
