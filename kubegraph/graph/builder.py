"""Build a DependencyGraph by scanning resource manifests for placeholders."""

from __future__ import annotations

import re
from collections.abc import Iterator
from typing import Any

import structlog

from kubegraph.graph.dependency_graph import DependencyGraph
from kubegraph.graph.models import EdgeType
from kubegraph.models.references import Expression, Ref
from kubegraph.models.resources import GraphResource
from kubegraph.observability.logging import get_logger

# ``deployment.status.readyReplicas`` style identifiers inside expression text.
_EXPRESSION_REF_RE = re.compile(r"\b([A-Za-z_][A-Za-z0-9_-]*)\.(status|spec|metadata)\b")

# References into the graph's own input schema, not to another resource.
SCHEMA_RESOURCE_ID = "__schema__"


def iter_placeholders(tree: Any, path: str = "") -> Iterator[tuple[str, Ref | Expression]]:
    """Yield ``(field_path, placeholder)`` for every placeholder in *tree*."""
    if isinstance(tree, (Ref, Expression)):
        yield path, tree
    elif isinstance(tree, dict):
        for key, value in tree.items():
            yield from iter_placeholders(value, f"{path}.{key}" if path else str(key))
    elif isinstance(tree, (list, tuple)):
        for index, value in enumerate(tree):
            yield from iter_placeholders(value, f"{path}[{index}]")


def expression_references(expression: Expression) -> list[str]:
    """Resource ids an expression depends on, in first-seen order."""
    if expression.references:
        return list(dict.fromkeys(expression.references))
    return list(dict.fromkeys(m.group(1) for m in _EXPRESSION_REF_RE.finditer(expression.text)))


def extract_references(tree: Any) -> list[tuple[str, str, EdgeType]]:
    """Every ``(resource_id, field_path, edge_type)`` the tree refers to."""
    found: list[tuple[str, str, EdgeType]] = []
    for field_path, placeholder in iter_placeholders(tree):
        if isinstance(placeholder, Ref):
            found.append((placeholder.resource_id, field_path, EdgeType.REFERENCE))
        else:
            for resource_id in expression_references(placeholder):
                found.append((resource_id, field_path, EdgeType.EXPRESSION))
    return found


def _api_group(api_version: str) -> str:
    return api_version.split("/", 1)[0] if "/" in api_version else ""


def _crd_defines(crd: GraphResource) -> tuple[str, str] | None:
    spec = crd.manifest.get("spec") or {}
    group = spec.get("group")
    kind = (spec.get("names") or {}).get("kind")
    if not isinstance(group, str) or not isinstance(kind, str):
        return None
    return group, kind


def build_dependency_graph(
    resources: list[GraphResource],
    logger: structlog.stdlib.BoundLogger | None = None,
) -> DependencyGraph:
    """Create a graph with one node per resource and an edge per reference.

    Unknown ids and schema references are skipped with a warning; a CRD in
    the graph gets an implicit edge to every resource of the kind it defines.
    """
    log = logger or get_logger("graph.builder")
    graph = DependencyGraph()
    for resource in resources:
        graph.add_node(resource.id, resource)

    for resource in resources:
        for dep_id, field_path, edge_type in extract_references(resource.manifest):
            if dep_id == SCHEMA_RESOURCE_ID:
                continue
            if dep_id not in graph:
                log.warning(
                    "unknown_reference_skipped",
                    resource_id=resource.id,
                    referenced_id=dep_id,
                    field_path=field_path,
                )
                continue
            graph.add_edge(dep_id, resource.id, edge_type, field_path)

    crds = [r for r in resources if r.is_prerequisite]
    for crd in crds:
        defines = _crd_defines(crd)
        if defines is None:
            continue
        group, kind = defines
        for resource in resources:
            if resource.id == crd.id:
                continue
            if resource.kind == kind and _api_group(resource.api_version) == group:
                graph.add_edge(crd.id, resource.id, EdgeType.CRD_DEFINITION)

    log.debug("dependency_graph_built", nodes=graph.node_count, edges=graph.edge_count)
    return graph
