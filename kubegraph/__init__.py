"""kubegraph: deploy graphs of interdependent Kubernetes resources."""

from kubegraph.deployment import DeploymentEngine, EventMonitor, RollbackManager
from kubegraph.errors import KubeGraphError
from kubegraph.graph import DependencyGraph, build_dependency_graph
from kubegraph.models import (
    ControllerBinding,
    DeploymentMode,
    DeploymentOptions,
    DeploymentResult,
    DeploymentStatus,
    Expression,
    GraphResource,
    Ref,
    ResourceGraph,
    RetryPolicy,
    RollbackConfig,
)

__version__ = "0.1.0"

__all__ = [
    "ControllerBinding",
    "DependencyGraph",
    "DeploymentEngine",
    "DeploymentMode",
    "DeploymentOptions",
    "DeploymentResult",
    "DeploymentStatus",
    "EventMonitor",
    "Expression",
    "GraphResource",
    "KubeGraphError",
    "Ref",
    "ResourceGraph",
    "RetryPolicy",
    "RollbackConfig",
    "RollbackManager",
    "__version__",
    "build_dependency_graph",
]
