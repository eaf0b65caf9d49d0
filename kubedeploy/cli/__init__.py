"""kubedeploy command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``kubedeploy`` script).
"""

from kubedeploy.cli.main import cli

__all__ = ["cli"]
