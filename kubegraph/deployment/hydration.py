"""Graph-level status: static literals merged with values read from the cluster."""

from __future__ import annotations

import copy
from typing import Any

import structlog

from kubegraph.errors import CelExpressionError, ReferenceResolutionError
from kubegraph.models.references import is_placeholder
from kubegraph.observability.logging import get_logger
from kubegraph.references.resolver import ReferenceResolver, ResolutionContext, has_references


def hydrate(dynamic: dict[str, Any], static: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge *dynamic* over *static*.

    Nested dicts merge key by key.  Dynamic values win at the leaves they
    populate; a dynamic ``None`` counts as unpopulated and never overwrites.

    >>> hydrate({"ready": True, "endpoint": None}, {"endpoint": "http://x", "ready": False})
    {'endpoint': 'http://x', 'ready': True}
    """
    merged = copy.deepcopy(static)
    for key, value in dynamic.items():
        if value is None:
            continue
        current = merged.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            merged[key] = hydrate(value, current)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def split_status_fields(mappings: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Separate literal status fields from ones that need cluster data.

    Returns ``(static, dynamic)``.  Dicts are split recursively; a list is
    dynamic as a whole if any element contains a placeholder.
    """
    static: dict[str, Any] = {}
    dynamic: dict[str, Any] = {}
    for key, value in mappings.items():
        if is_placeholder(value):
            dynamic[key] = value
        elif isinstance(value, dict) and value:
            sub_static, sub_dynamic = split_status_fields(value)
            if sub_static:
                static[key] = sub_static
            if sub_dynamic:
                dynamic[key] = sub_dynamic
        elif isinstance(value, (list, tuple)) and has_references(value):
            dynamic[key] = value
        else:
            static[key] = copy.deepcopy(value)
    return static, dynamic


def _pick(dynamic: dict[str, Any], live_status: dict[str, Any]) -> dict[str, Any]:
    picked: dict[str, Any] = {}
    for key, value in dynamic.items():
        live_value = live_status.get(key)
        if isinstance(value, dict) and not is_placeholder(value):
            picked[key] = _pick(value, live_value if isinstance(live_value, dict) else {})
        else:
            picked[key] = copy.deepcopy(live_value)
    return picked


class StatusHydrator:
    """Produces the hydrated graph status for a finished deployment."""

    def __init__(
        self,
        resolver: ReferenceResolver | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._log = logger or get_logger("deployment.hydration")
        self._resolver = resolver or ReferenceResolver(logger=self._log)

    def hydrate_from_resources(self, mappings: dict[str, Any], context: ResolutionContext) -> dict[str, Any]:
        """Direct mode: resolve dynamic fields against the deployed resources."""
        static, dynamic = split_status_fields(mappings)
        return hydrate(self._resolve(dynamic, context, ""), static)

    def hydrate_from_live(self, mappings: dict[str, Any], live_status: dict[str, Any]) -> dict[str, Any]:
        """Controller mode: the controller already computed the dynamic fields."""
        static, dynamic = split_status_fields(mappings)
        return hydrate(_pick(dynamic, live_status or {}), static)

    def _resolve(self, dynamic: dict[str, Any], context: ResolutionContext, prefix: str) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for key, value in dynamic.items():
            path = f"{prefix}.{key}" if prefix else key
            if isinstance(value, dict) and not is_placeholder(value):
                out[key] = self._resolve(value, context, path)
                continue
            try:
                out[key] = self._resolver.resolve_value(value, context)
            except (ReferenceResolutionError, CelExpressionError) as exc:
                # Left unpopulated; a failed resource must not hide the rest of the status.
                self._log.warning("status_field_unresolved", field=path, error=str(exc))
                out[key] = None
        return out
