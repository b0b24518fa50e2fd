"""Field path parsing: ``status.loadBalancer.ingress[0].ip``."""

from __future__ import annotations

import re
from typing import Any

_TOKEN_RE = re.compile(r"([^.\[\]]+)|\[(\d+)\]|\[['\"]([^'\"]+)['\"]\]")

_MISSING = object()


def parse_field_path(path: str) -> list[str | int]:
    """Split a dot/bracket path into keys and list indices.

    >>> parse_field_path("spec.ports[0].port")
    ['spec', 'ports', 0, 'port']
    >>> parse_field_path("metadata.labels['app.kubernetes.io/name']")
    ['metadata', 'labels', 'app.kubernetes.io/name']
    """
    if not path:
        raise ValueError("Field path must not be empty")
    parts: list[str | int] = []
    pos = 0
    while pos < len(path):
        if path[pos] == ".":
            pos += 1
            continue
        match = _TOKEN_RE.match(path, pos)
        if match is None:
            raise ValueError(f"Invalid field path '{path}' at offset {pos}")
        name, index, quoted = match.groups()
        if index is not None:
            parts.append(int(index))
        elif quoted is not None:
            parts.append(quoted)
        else:
            parts.append(name)
        pos = match.end()
    return parts


def extract_field(obj: Any, path: str, default: Any = None) -> Any:
    """Read *path* from a nested dict/list, returning *default* when absent."""
    value = _lookup(obj, path)
    return default if value is _MISSING else value


def has_field(obj: Any, path: str) -> bool:
    return _lookup(obj, path) is not _MISSING


def _lookup(obj: Any, path: str) -> Any:
    current = obj
    for part in parse_field_path(path):
        if isinstance(part, int):
            if not isinstance(current, (list, tuple)) or part >= len(current):
                return _MISSING
            current = current[part]
        else:
            if not isinstance(current, dict) or part not in current:
                return _MISSING
            current = current[part]
    return current
