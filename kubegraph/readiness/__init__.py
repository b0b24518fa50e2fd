"""Readiness evaluation: per-kind evaluators, a registry, and a poller."""

from kubegraph.readiness.poller import wait_for_ready
from kubegraph.readiness.registry import ReadinessRegistry, default_registry

__all__ = ["ReadinessRegistry", "default_registry", "wait_for_ready"]
