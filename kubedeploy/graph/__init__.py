"""Resource dependency graph for ordered apply and reverse-ordered teardown."""

from kubedeploy.graph.builder import ResourceGraph, build_graph

__all__ = [
    "ResourceGraph",
    "build_graph",
]
