"""Placeholder values embedded in resource manifests.

A manifest is a plain JSON-like tree.  Anywhere in it a ``Ref`` or an
``Expression`` may stand in for a value that only exists once another
resource has been deployed.  Every other value is a literal.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Ref:
    """Structural reference to a field of another resource in the graph.

    ``field_path`` uses dot/bracket syntax, e.g. ``status.loadBalancer.ingress[0].ip``.
    """

    resource_id: str
    field_path: str

    @property
    def key(self) -> str:
        """Cache key used by the reference resolver."""
        return f"{self.resource_id}.{self.field_path}"

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class Expression:
    """Opaque expression produced by the external expression compiler.

    ``references`` optionally lists the resource ids the compiler saw in the
    expression; when empty the dependency builder scans ``text`` instead.
    """

    text: str
    references: tuple[str, ...] = ()

    def __str__(self) -> str:
        return self.text


def is_placeholder(value: Any) -> bool:
    """Return True if *value* must be resolved before it can be sent to the cluster."""
    return isinstance(value, (Ref, Expression))
