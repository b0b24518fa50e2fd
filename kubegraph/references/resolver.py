"""Deploy-time resolution of Ref and Expression placeholders."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

import structlog

from kubegraph.errors import CelExpressionError, ExpressionEvaluationError, ReferenceResolutionError
from kubegraph.models.references import Expression, Ref, is_placeholder
from kubegraph.models.resources import CLUSTER_SCOPED_KINDS, DeployedResource, GraphResource, ResourceStatus
from kubegraph.observability.logging import get_logger
from kubegraph.references.expressions import ExpressionEngine, PathExpressionEngine
from kubegraph.references.paths import extract_field


@dataclass
class ResolutionContext:
    """Per-run state: what has been deployed so far, and the value cache.

    The cache is read-through and write-once per key; it is never
    invalidated while the run is in progress and is discarded with it.
    """

    deployed_resources: dict[str, DeployedResource] = field(default_factory=dict)
    namespace: str | None = None
    cache: dict[str, Any] = field(default_factory=dict)

    def record(self, resource: DeployedResource) -> None:
        self.deployed_resources[resource.id] = resource


def _source_object(resource: DeployedResource) -> dict[str, Any]:
    """Live object when one has been read, else the applied manifest."""
    return resource.live if resource.live is not None else resource.manifest


def has_references(tree: Any) -> bool:
    """Return True if *tree* contains at least one placeholder."""
    if is_placeholder(tree):
        return True
    if isinstance(tree, dict):
        return any(has_references(v) for v in tree.values())
    if isinstance(tree, (list, tuple)):
        return any(has_references(v) for v in tree)
    return False


class ReferenceResolver:
    """Replaces placeholders in manifests with values from deployed resources."""

    def __init__(
        self,
        expression_engine: ExpressionEngine | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._engine = expression_engine or PathExpressionEngine()
        self._log = logger or get_logger("references.resolver")

    def resolve_references(self, resource: GraphResource, context: ResolutionContext) -> dict[str, Any]:
        """Return a deep copy of the resource manifest with every placeholder resolved."""
        resolved = self.resolve_value(resource.manifest, context)
        if context.namespace and resource.kind not in CLUSTER_SCOPED_KINDS:
            metadata = resolved.setdefault("metadata", {})
            metadata.setdefault("namespace", context.namespace)
        return resolved

    def resolve_value(self, value: Any, context: ResolutionContext) -> Any:
        if isinstance(value, Ref):
            return self._resolve_ref(value, context)
        if isinstance(value, Expression):
            return self._evaluate_expression(value, context)
        if isinstance(value, dict):
            return {k: self.resolve_value(v, context) for k, v in value.items()}
        if isinstance(value, list):
            return [self.resolve_value(v, context) for v in value]
        if isinstance(value, tuple):
            return [self.resolve_value(v, context) for v in value]
        return copy.deepcopy(value)

    def has_references(self, tree: Any) -> bool:
        return has_references(tree)

    # ------------------------------------------------------------------
    # Placeholders
    # ------------------------------------------------------------------

    def _resolve_ref(self, ref: Ref, context: ResolutionContext) -> Any:
        if ref.key in context.cache:
            return copy.deepcopy(context.cache[ref.key])

        deployed = self._find_deployed(ref.resource_id, context)
        if deployed is None:
            raise ReferenceResolutionError(ref.resource_id, ref.field_path)
        try:
            value = extract_field(_source_object(deployed), ref.field_path)
        except ValueError as exc:
            raise ReferenceResolutionError(ref.resource_id, ref.field_path, cause=exc) from exc

        context.cache.setdefault(ref.key, value)
        self._log.debug("reference_resolved", reference=ref.key, found=value is not None)
        return copy.deepcopy(value)

    def _evaluate_expression(self, expression: Expression, context: ResolutionContext) -> Any:
        cache_key = f"cel:{expression.text}"
        if cache_key in context.cache:
            return copy.deepcopy(context.cache[cache_key])

        bindings = {
            rid: _source_object(r)
            for rid, r in context.deployed_resources.items()
            if r.status != ResourceStatus.FAILED
        }
        try:
            value = self._engine.evaluate(expression.text, bindings)
        except ExpressionEvaluationError as exc:
            raise CelExpressionError(expression.text, identifier=exc.identifier, cause=exc) from exc
        except Exception as exc:  # noqa: BLE001
            raise CelExpressionError(expression.text, cause=exc) from exc

        context.cache.setdefault(cache_key, value)
        self._log.debug("expression_evaluated", expression=expression.text)
        return copy.deepcopy(value)

    def _find_deployed(self, resource_id: str, context: ResolutionContext) -> DeployedResource | None:
        deployed = context.deployed_resources.get(resource_id)
        if deployed is None or deployed.status == ResourceStatus.FAILED:
            return None
        return deployed

