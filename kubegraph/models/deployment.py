"""Deployment options, results, events and rollback data structures."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4

from kubegraph.models.readiness import ReadinessEvaluator
from kubegraph.models.resources import DeployedResource


class DeploymentMode(StrEnum):
    """Which backend applies the graph."""

    DIRECT = "direct"
    CONTROLLER = "controller"


class DeploymentStatus(StrEnum):
    """Aggregate outcome of a deployment or rollback."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class ErrorPhase(StrEnum):
    """Where in the per-resource pipeline an error happened."""

    VALIDATION = "validation"
    RESOLUTION = "resolution"
    DEPLOYMENT = "deployment"
    READINESS = "readiness"
    DEPENDENCY = "dependency"
    ROLLBACK = "rollback"


class EventType(StrEnum):
    """Progress event types delivered to ``progress_callback``."""

    STARTED = "started"
    PROGRESS = "progress"
    RESOURCE_STATUS = "resource-status"
    RESOURCE_READY = "resource-ready"
    FAILED = "failed"
    COMPLETED = "completed"
    ROLLBACK = "rollback"
    KUBERNETES_EVENT = "kubernetes-event"


@dataclass(frozen=True)
class DeploymentEvent:
    """A progress notification emitted during deployment, rollback or monitoring."""

    type: EventType
    message: str
    resource_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    error: Exception | None = None
    details: dict[str, Any] = field(default_factory=dict)


ProgressCallback = Callable[[DeploymentEvent], None]


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff for transient cluster API errors."""

    max_retries: int = 3
    backoff_multiplier: float = 2.0
    initial_delay: float = 1.0
    max_delay: float = 10.0

    def delays(self) -> list[float]:
        """The sleep before each retry, in order."""
        out: list[float] = []
        delay = self.initial_delay
        for _ in range(self.max_retries):
            out.append(delay)
            delay = min(delay * self.backoff_multiplier, self.max_delay)
        return out


@dataclass(frozen=True)
class DeploymentOptions:
    """Immutable configuration for one ``deploy()`` call.

    ``timeout`` bounds the whole run in seconds; it is the single
    cancellation signal for every apply and readiness poll in the run.
    """

    mode: DeploymentMode = DeploymentMode.DIRECT
    namespace: str | None = None
    timeout: float = 300.0
    wait_for_ready: bool = True
    retry_policy: RetryPolicy | None = None
    progress_callback: ProgressCallback | None = None
    readiness_poll_interval: float = 2.0
    crd_establishment_timeout: float = 60.0
    max_concurrency: int = 5
    rollback_on_failure: bool = False
    rollback_on_partial: bool = False
    hydrate_status: bool = True
    dry_run: bool = False
    readiness_overrides: Mapping[str, ReadinessEvaluator] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {self.max_concurrency}")
        if self.readiness_poll_interval <= 0:
            raise ValueError("readiness_poll_interval must be positive")


@dataclass(frozen=True)
class DeploymentErrorRecord:
    """One per-resource failure captured into a DeploymentResult."""

    resource_id: str
    phase: ErrorPhase
    error: Exception
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))


@dataclass
class RollbackConfig:
    """How the rollback manager deletes resources.

    ``grace_period`` is passed to the first delete; ``force`` retries a
    failed delete with a grace period of 0.  When ``timeout`` is set each
    resource is polled until it is gone.
    """

    timeout: float | None = None
    grace_period: int | None = None
    force: bool = False
    poll_interval: float = 2.0
    progress_callback: ProgressCallback | None = None


@dataclass
class RollbackResult:
    """Outcome of a rollback pass."""

    rolled_back_resources: list[str]
    duration: float
    status: DeploymentStatus
    errors: list[DeploymentErrorRecord] = field(default_factory=list)
    rollback_id: str = field(default_factory=lambda: f"rollback-{uuid4().hex[:12]}")


@dataclass
class DeploymentResult:
    """What a ``deploy()`` call returns: what succeeded, what failed and why."""

    deployment_id: str
    status: DeploymentStatus
    resources: list[DeployedResource]
    errors: list[DeploymentErrorRecord]
    duration: float
    hydrated_status: dict[str, Any] = field(default_factory=dict)
    rollback: RollbackResult | None = None

    @property
    def failed_resource_ids(self) -> list[str]:
        return [r.id for r in self.resources if not r.succeeded]

    def resource(self, resource_id: str) -> DeployedResource | None:
        for r in self.resources:
            if r.id == resource_id:
                return r
        return None


def aggregate_status(succeeded: int, failed: int) -> DeploymentStatus:
    """success if nothing failed, partial if something succeeded, else failed."""
    if failed == 0:
        return DeploymentStatus.SUCCESS
    if succeeded > 0:
        return DeploymentStatus.PARTIAL
    return DeploymentStatus.FAILED


def new_deployment_id() -> str:
    return f"deployment-{uuid4().hex[:12]}"
