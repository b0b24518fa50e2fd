"""Exception taxonomy for the deployment engine.

Structural errors (cycles, backend misconfiguration) propagate out of
``deploy()``.  Everything else is per-resource and ends up in
``DeploymentResult.errors`` so independent branches can still finish.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from kubegraph.models.readiness import ReadinessResult


class KubeGraphError(Exception):
    """Base class for every error raised by kubegraph."""


class CircularDependencyError(KubeGraphError):
    """The dependency graph contains a cycle.  Raised before any I/O."""

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = list(cycle)
        path = " -> ".join(self.cycle) if self.cycle else "<unknown>"
        super().__init__(f"Circular dependency detected: {path}")


class BackendConfigurationError(KubeGraphError):
    """The selected backend cannot run with the supplied graph or options."""


class ClusterApiError(KubeGraphError):
    """An error returned by the cluster API.

    ``status`` is the HTTP status code, or None for transport-level failures
    (connection refused, TLS errors, client-side timeouts).
    """

    def __init__(self, status: int | None, reason: str = "", body: Any = None) -> None:
        self.status = status
        self.reason = reason
        self.body = body
        super().__init__(f"cluster API error {status if status is not None else 'n/a'}: {reason}")

    @property
    def is_not_found(self) -> bool:
        return self.status == 404

    @property
    def is_conflict(self) -> bool:
        return self.status == 409


class ReferenceResolutionError(KubeGraphError):
    """A structural reference points at a resource that is not deployed."""

    def __init__(self, resource_id: str, field_path: str, cause: Exception | None = None) -> None:
        self.resource_id = resource_id
        self.field_path = field_path
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to resolve reference {resource_id}.{field_path}{detail}")


class ExpressionEvaluationError(KubeGraphError):
    """Raised by an expression engine.  ``identifier`` names what was unresolved."""

    def __init__(self, message: str, identifier: str | None = None) -> None:
        self.identifier = identifier
        super().__init__(message)


class CelExpressionError(KubeGraphError):
    """An opaque expression could not be evaluated against deployed resources."""

    def __init__(self, expression: str, identifier: str | None = None, cause: Exception | None = None) -> None:
        self.expression = expression
        self.identifier = identifier
        self.cause = cause
        where = f" (unresolved identifier '{identifier}')" if identifier else ""
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to evaluate expression '{expression}'{where}{detail}")


class ResourceDeploymentError(KubeGraphError):
    """The backend rejected the apply, or retries were exhausted."""

    def __init__(
        self,
        resource_id: str,
        kind: str,
        name: str,
        cause: Exception | None = None,
        attempts: int = 1,
    ) -> None:
        self.resource_id = resource_id
        self.kind = kind
        self.name = name
        self.cause = cause
        self.attempts = attempts
        self.status = cause.status if isinstance(cause, ClusterApiError) else None
        super().__init__(f"Failed to deploy {kind}/{name} ({resource_id}) after {attempts} attempt(s): {cause}")


class ResourceReadinessTimeoutError(KubeGraphError):
    """Apply succeeded but the resource never became ready before the deadline."""

    def __init__(
        self,
        resource_id: str,
        kind: str,
        name: str,
        timeout: float,
        last_result: ReadinessResult | None = None,
    ) -> None:
        self.resource_id = resource_id
        self.kind = kind
        self.name = name
        self.timeout = timeout
        self.last_result = last_result
        last = ""
        if last_result is not None and last_result.message:
            last = f": {last_result.message}"
        super().__init__(f"Timeout after {timeout:.1f}s waiting for {kind}/{name} to be ready{last}")


class DependencyFailedError(KubeGraphError):
    """A resource was skipped because something it depends on failed."""

    def __init__(self, resource_id: str, failed_dependency: str) -> None:
        self.resource_id = resource_id
        self.failed_dependency = failed_dependency
        super().__init__(f"Skipped '{resource_id}': dependency '{failed_dependency}' failed")


class RollbackError(KubeGraphError):
    """Deleting a resource during rollback failed."""

    def __init__(self, resource_id: str, message: str, cause: Exception | None = None) -> None:
        self.resource_id = resource_id
        self.cause = cause
        super().__init__(f"Rollback of '{resource_id}' failed: {message}")


class InstanceFailedError(KubeGraphError):
    """The controller reported a graph instance as FAILED."""

    def __init__(self, resource_id: str, message: str | None = None) -> None:
        self.resource_id = resource_id
        super().__init__(f"Instance '{resource_id}' failed: {message or 'no message reported'}")
