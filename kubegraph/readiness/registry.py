"""Kind-to-evaluator lookup with per-resource overrides."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from kubegraph.models.readiness import ReadinessEvaluator, ReadinessResult
from kubegraph.models.resources import GraphResource
from kubegraph.observability.logging import get_logger
from kubegraph.readiness.evaluators import DEFAULT_EVALUATORS, generic_ready


class ReadinessRegistry:
    """Maps a resource kind to its readiness evaluator.

    Each engine builds its own registry; registering a kind here never
    affects another engine.
    """

    def __init__(
        self,
        evaluators: Mapping[str, ReadinessEvaluator] | None = None,
        fallback: ReadinessEvaluator = generic_ready,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._evaluators: dict[str, ReadinessEvaluator] = dict(evaluators or {})
        self._fallback = fallback
        self._log = logger or get_logger("readiness.registry")

    def register(self, kind: str, evaluator: ReadinessEvaluator) -> None:
        self._evaluators[kind] = evaluator

    def kinds(self) -> list[str]:
        return sorted(self._evaluators)

    def get(self, kind: str) -> ReadinessEvaluator:
        return self._evaluators.get(kind, self._fallback)

    def resolve(
        self,
        resource: GraphResource | None = None,
        kind: str = "",
        overrides: Mapping[str, ReadinessEvaluator] | None = None,
    ) -> ReadinessEvaluator:
        """Evaluator for a resource: option override, then resource override, then kind."""
        if resource is not None:
            if overrides and resource.id in overrides:
                return overrides[resource.id]
            if resource.readiness_evaluator is not None:
                return resource.readiness_evaluator
            kind = kind or resource.kind
        return self.get(kind)

    def evaluate(self, evaluator: ReadinessEvaluator, live: dict[str, Any]) -> ReadinessResult:
        """Run *evaluator*, reporting an exception as not ready."""
        try:
            return evaluator(live)
        except Exception as exc:  # noqa: BLE001
            self._log.warning(
                "readiness_evaluator_error",
                kind=live.get("kind"),
                name=(live.get("metadata") or {}).get("name"),
                error=str(exc),
            )
            return ReadinessResult.waiting("EvaluatorError", f"Readiness evaluator raised: {exc}", error=str(exc))


def default_registry(logger: structlog.stdlib.BoundLogger | None = None) -> ReadinessRegistry:
    """A fresh registry populated with the built-in evaluators."""
    return ReadinessRegistry(DEFAULT_EVALUATORS, logger=logger)
