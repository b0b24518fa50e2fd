"""Core data structures for kubegraph."""

from kubegraph.models.config import EngineConfig
from kubegraph.models.deployment import (
    DeploymentErrorRecord,
    DeploymentEvent,
    DeploymentMode,
    DeploymentOptions,
    DeploymentResult,
    DeploymentStatus,
    ErrorPhase,
    EventType,
    RetryPolicy,
    RollbackConfig,
    RollbackResult,
)
from kubegraph.models.readiness import ReadinessEvaluator, ReadinessResult
from kubegraph.models.references import Expression, Ref, is_placeholder
from kubegraph.models.resources import (
    ControllerBinding,
    DeployedResource,
    GraphResource,
    ResourceGraph,
    ResourceStatus,
)

__all__ = [
    "ControllerBinding",
    "DeployedResource",
    "DeploymentErrorRecord",
    "DeploymentEvent",
    "DeploymentMode",
    "DeploymentOptions",
    "DeploymentResult",
    "DeploymentStatus",
    "EngineConfig",
    "ErrorPhase",
    "EventType",
    "Expression",
    "GraphResource",
    "ReadinessEvaluator",
    "ReadinessResult",
    "Ref",
    "ResourceGraph",
    "ResourceStatus",
    "RetryPolicy",
    "RollbackConfig",
    "RollbackResult",
    "is_placeholder",
]
