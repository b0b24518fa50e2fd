"""Resource dependency graph.

Nodes are resource ids; edges come from Ref and Expression placeholders in
manifests, plus implicit CRD-to-custom-resource edges.
"""

from kubegraph.graph.builder import build_dependency_graph, extract_references
from kubegraph.graph.dependency_graph import DependencyGraph
from kubegraph.graph.models import DeploymentPlan, EdgeType, GraphEdge

__all__ = [
    "DependencyGraph",
    "DeploymentPlan",
    "EdgeType",
    "GraphEdge",
    "build_dependency_graph",
    "extract_references",
]
