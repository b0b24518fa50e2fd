"""The cluster API surface the engine depends on."""

from __future__ import annotations

from typing import Any, Protocol

from kubegraph.errors import ClusterApiError


class ClusterClient(Protocol):
    """Async CRUD on arbitrary Kubernetes objects.

    Objects and addresses are plain dicts; an address only needs
    ``apiVersion``, ``kind`` and ``metadata.name``/``metadata.namespace``.
    Every method raises ClusterApiError on failure.
    """

    async def read(self, address: dict[str, Any]) -> dict[str, Any]: ...

    async def create(self, manifest: dict[str, Any]) -> dict[str, Any]: ...

    async def replace(self, manifest: dict[str, Any]) -> dict[str, Any]: ...

    async def patch(self, manifest: dict[str, Any]) -> dict[str, Any]: ...

    async def delete(self, address: dict[str, Any], grace_period: int | None = None) -> None: ...


def is_transient(exc: BaseException) -> bool:
    """Whether an apply that failed with *exc* is worth retrying.

    404 covers a kind or namespace that does not exist yet; 429 and 5xx are
    server-side pressure; ``status is None`` is a transport failure.
    """
    if not isinstance(exc, ClusterApiError):
        return False
    if exc.status is None:
        return True
    return exc.status in (404, 429) or exc.status >= 500


def is_unrecoverable(exc: BaseException) -> bool:
    """A read error that should stop readiness polling."""
    return isinstance(exc, ClusterApiError) and not is_transient(exc)


def address_of(obj: dict[str, Any]) -> dict[str, Any]:
    """Strip *obj* down to what is needed to read or delete it."""
    metadata = obj.get("metadata") or {}
    out_meta: dict[str, Any] = {"name": metadata.get("name")}
    if metadata.get("namespace"):
        out_meta["namespace"] = metadata["namespace"]
    return {"apiVersion": obj.get("apiVersion"), "kind": obj.get("kind"), "metadata": out_meta}
