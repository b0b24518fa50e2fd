"""Shared fixtures for kubegraph tests.

Provides an in-memory ClusterClient that stores objects, scripts status
progressions and errors, and records every call with its loop time so
tests can assert ordering and at-most-once behaviour without a cluster.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Any

import pytest

from kubegraph.errors import ClusterApiError
from kubegraph.models import DeploymentOptions, RetryPolicy

# ---------------------------------------------------------------------------
# Fake cluster
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Call:
    verb: str
    kind: str
    name: str
    at: float
    grace_period: int | None = None


def _key(obj: dict[str, Any]) -> tuple[str, str, str]:
    metadata = obj.get("metadata") or {}
    return (str(obj.get("kind", "")), str(metadata.get("namespace") or ""), str(metadata.get("name", "")))


class FakeClusterClient:
    """In-memory stand-in for the cluster API.

    * ``set_status(kind, name, *statuses)`` -- successive reads return each
      status in turn, then keep returning the last one.
    * ``fail(verb, kind, name, *errors)`` -- the next calls of *verb* on that
      object raise the given errors, in order.
    * ``sticky(kind, name)`` -- deletes succeed but the object stays visible.
    """

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str, str], dict[str, Any]] = {}
        self.calls: list[Call] = []
        self._statuses: dict[tuple[str, str], deque[dict[str, Any]]] = {}
        self._errors: dict[tuple[str, str, str], deque[Exception]] = defaultdict(deque)
        self._sticky: set[tuple[str, str]] = set()
        self._versions = itertools.count(1)

    # -- scripting ---------------------------------------------------------

    def set_status(self, kind: str, name: str, *statuses: dict[str, Any]) -> None:
        self._statuses[(kind, name)] = deque(statuses)

    def fail(self, verb: str, kind: str, name: str, *errors: Exception) -> None:
        self._errors[(verb, kind, name)].extend(errors)

    def sticky(self, kind: str, name: str) -> None:
        self._sticky.add((kind, name))

    def preload(self, obj: dict[str, Any]) -> None:
        stored = copy.deepcopy(obj)
        stored.setdefault("metadata", {})["resourceVersion"] = str(next(self._versions))
        self.objects[_key(stored)] = stored

    # -- inspection --------------------------------------------------------

    def calls_for(self, verb: str, kind: str | None = None, name: str | None = None) -> list[Call]:
        return [
            c
            for c in self.calls
            if c.verb == verb and (kind is None or c.kind == kind) and (name is None or c.name == name)
        ]

    def applied(self, kind: str, name: str) -> int:
        """Successful create/replace calls for one object."""
        return len(self.calls_for("create.ok", kind, name)) + len(self.calls_for("replace.ok", kind, name))

    def apply_order(self) -> list[str]:
        return [c.name for c in self.calls if c.verb in ("create.ok", "replace.ok")]

    def exists(self, kind: str, name: str, namespace: str = "") -> bool:
        return (kind, namespace, name) in self.objects

    # -- ClusterClient -----------------------------------------------------

    def _record(self, verb: str, obj: dict[str, Any], grace_period: int | None = None) -> tuple[str, str]:
        kind, _, name = _key(obj)
        self.calls.append(Call(verb, kind, name, asyncio.get_running_loop().time(), grace_period))
        queued = self._errors.get((verb, kind, name))
        if queued:
            raise queued.popleft()
        return kind, name

    async def read(self, address: dict[str, Any]) -> dict[str, Any]:
        await asyncio.sleep(0)
        kind, name = self._record("read", address)
        stored = self.objects.get(_key(address))
        if stored is None:
            raise ClusterApiError(404, "NotFound")
        result = copy.deepcopy(stored)
        script = self._statuses.get((kind, name))
        if script:
            result["status"] = copy.deepcopy(script[0])
            if len(script) > 1:
                script.popleft()
        return result

    async def create(self, manifest: dict[str, Any]) -> dict[str, Any]:
        await asyncio.sleep(0)
        kind, name = self._record("create", manifest)
        if _key(manifest) in self.objects:
            raise ClusterApiError(409, "AlreadyExists")
        stored = copy.deepcopy(manifest)
        metadata = stored.setdefault("metadata", {})
        metadata["resourceVersion"] = str(next(self._versions))
        metadata["uid"] = f"uid-{kind.lower()}-{name}"
        self.objects[_key(stored)] = stored
        self.calls.append(Call("create.ok", kind, name, asyncio.get_running_loop().time()))
        return copy.deepcopy(stored)

    async def replace(self, manifest: dict[str, Any]) -> dict[str, Any]:
        await asyncio.sleep(0)
        kind, name = self._record("replace", manifest)
        current = self.objects.get(_key(manifest))
        if current is None:
            raise ClusterApiError(404, "NotFound")
        sent_version = (manifest.get("metadata") or {}).get("resourceVersion")
        if sent_version != current["metadata"]["resourceVersion"]:
            raise ClusterApiError(409, "Conflict")
        stored = copy.deepcopy(manifest)
        stored["metadata"]["resourceVersion"] = str(next(self._versions))
        self.objects[_key(stored)] = stored
        self.calls.append(Call("replace.ok", kind, name, asyncio.get_running_loop().time()))
        return copy.deepcopy(stored)

    async def patch(self, manifest: dict[str, Any]) -> dict[str, Any]:
        await asyncio.sleep(0)
        self._record("patch", manifest)
        current = self.objects.get(_key(manifest))
        if current is None:
            raise ClusterApiError(404, "NotFound")
        current.update(copy.deepcopy({k: v for k, v in manifest.items() if k != "metadata"}))
        return copy.deepcopy(current)

    async def delete(self, address: dict[str, Any], grace_period: int | None = None) -> None:
        await asyncio.sleep(0)
        kind, name = self._record("delete", address, grace_period)
        key = _key(address)
        if key not in self.objects:
            raise ClusterApiError(404, "NotFound")
        if (kind, name) not in self._sticky:
            del self.objects[key]


# ---------------------------------------------------------------------------
# Manifest helpers
# ---------------------------------------------------------------------------


def config_map(name: str, data: dict[str, Any] | None = None, namespace: str = "default") -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": name, "namespace": namespace},
        "data": data or {},
    }


def deployment(name: str, replicas: int = 1, env: list[Any] | None = None, namespace: str = "default") -> dict[str, Any]:
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {
            "replicas": replicas,
            "template": {"spec": {"containers": [{"name": name, "image": "nginx", "env": env or []}]}},
        },
    }


def service(name: str, namespace: str = "default") -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {"ports": [{"port": 80}]},
    }


READY_DEPLOYMENT_STATUS = {"readyReplicas": 1, "availableReplicas": 1, "replicas": 1}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cluster() -> FakeClusterClient:
    return FakeClusterClient()


@pytest.fixture
def fast_options() -> DeploymentOptions:
    """Short timeouts and no retry delays, suitable for the fake cluster."""
    return DeploymentOptions(
        timeout=5.0,
        readiness_poll_interval=0.01,
        crd_establishment_timeout=2.0,
        retry_policy=RetryPolicy(max_retries=3, initial_delay=0.001, max_delay=0.01),
    )
