"""Pluggable evaluation of opaque expressions.

Expressions arrive already compiled by an external compiler; the engine only
needs something that can evaluate them against the deployed resources.
``PathExpressionEngine`` covers field lookups and string templates.  Plug a
CEL implementation in through ``ExpressionEngine`` for anything richer.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, Protocol

from kubegraph.errors import ExpressionEvaluationError
from kubegraph.references.paths import extract_field, has_field

_BARE_PATH_RE = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_-]*)((?:\.[A-Za-z_$][\w$-]*|\[\d+\])+)\s*$")
_TEMPLATE_RE = re.compile(r"\$\{([^}]+)\}")


class ExpressionEngine(Protocol):
    """Evaluates an expression with each resource id bound to its object."""

    def evaluate(self, expression: str, bindings: Mapping[str, Any]) -> Any: ...


class PathExpressionEngine:
    """Evaluates ``id.path`` lookups and ``${id.path}`` templates.

    A template whose only content is one ``${...}`` yields the raw value;
    otherwise each substitution is stringified into the surrounding text.
    """

    def evaluate(self, expression: str, bindings: Mapping[str, Any]) -> Any:
        templates = list(_TEMPLATE_RE.finditer(expression))
        if templates:
            if len(templates) == 1 and templates[0].group(0) == expression.strip():
                return self._lookup(templates[0].group(1), bindings)
            return _TEMPLATE_RE.sub(lambda m: _stringify(self._lookup(m.group(1), bindings)), expression)
        return self._lookup(expression, bindings)

    def _lookup(self, text: str, bindings: Mapping[str, Any]) -> Any:
        match = _BARE_PATH_RE.match(text)
        if match is None:
            raise ExpressionEvaluationError(f"Unsupported expression '{text}'")
        identifier, rest = match.group(1), match.group(2)
        if identifier not in bindings:
            raise ExpressionEvaluationError(f"No binding for '{identifier}'", identifier=identifier)
        field_path = rest.lstrip(".")
        if not has_field(bindings[identifier], field_path):
            raise ExpressionEvaluationError(
                f"Field '{field_path}' not present on '{identifier}'", identifier=identifier
            )
        return extract_field(bindings[identifier], field_path)


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)
