"""Resolution of cross-resource references at deploy time."""

from kubegraph.references.expressions import ExpressionEngine, PathExpressionEngine
from kubegraph.references.paths import extract_field, parse_field_path
from kubegraph.references.resolver import ReferenceResolver, ResolutionContext, has_references

__all__ = [
    "ExpressionEngine",
    "PathExpressionEngine",
    "ReferenceResolver",
    "ResolutionContext",
    "extract_field",
    "has_references",
    "parse_field_path",
]
