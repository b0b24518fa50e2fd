"""Deployment backends, rollback, status hydration and event monitoring."""

from kubegraph.deployment.controller import ControllerBackend
from kubegraph.deployment.engine import DeploymentEngine
from kubegraph.deployment.hydration import StatusHydrator, hydrate, split_status_fields
from kubegraph.deployment.monitor import EventMonitor
from kubegraph.deployment.rollback import RollbackManager

__all__ = [
    "ControllerBackend",
    "DeploymentEngine",
    "EventMonitor",
    "RollbackManager",
    "StatusHydrator",
    "hydrate",
    "split_status_fields",
]
