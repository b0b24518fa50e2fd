"""Resource graph and deployed-resource data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from kubegraph.models.references import is_placeholder

if TYPE_CHECKING:
    from kubegraph.graph.dependency_graph import DependencyGraph
    from kubegraph.models.readiness import ReadinessEvaluator

# Kinds that never carry metadata.namespace.
CLUSTER_SCOPED_KINDS = frozenset(
    {
        "Namespace",
        "Node",
        "PersistentVolume",
        "StorageClass",
        "ClusterRole",
        "ClusterRoleBinding",
        "CustomResourceDefinition",
        "ResourceGraphDefinition",
        "PriorityClass",
        "IngressClass",
        "MutatingWebhookConfiguration",
        "ValidatingWebhookConfiguration",
    }
)

# Kinds that other resources need to be "established" before they can be created.
PREREQUISITE_KINDS = frozenset({"CustomResourceDefinition"})


class ResourceStatus(StrEnum):
    """Lifecycle of a single resource within one deployment run."""

    PENDING = "pending"
    DEPLOYING = "deploying"
    DEPLOYED = "deployed"
    READY = "ready"
    FAILED = "failed"


_STATUS_RANK = {
    ResourceStatus.PENDING: 0,
    ResourceStatus.DEPLOYING: 1,
    ResourceStatus.DEPLOYED: 2,
    ResourceStatus.READY: 3,
}


def _metadata_str(manifest: dict[str, Any], key: str) -> str | None:
    value = (manifest.get("metadata") or {}).get(key)
    if value is None or is_placeholder(value):
        return None
    return str(value)


@dataclass(frozen=True)
class GraphResource:
    """One node of a resource graph: an id plus its (unresolved) manifest."""

    id: str
    manifest: dict[str, Any]
    readiness_evaluator: ReadinessEvaluator | None = None

    @property
    def kind(self) -> str:
        return str(self.manifest.get("kind", ""))

    @property
    def api_version(self) -> str:
        return str(self.manifest.get("apiVersion", ""))

    @property
    def name(self) -> str:
        """metadata.name when it is a literal, else the resource id."""
        return _metadata_str(self.manifest, "name") or self.id

    @property
    def namespace(self) -> str | None:
        return _metadata_str(self.manifest, "namespace")

    @property
    def is_prerequisite(self) -> bool:
        return self.kind in PREREQUISITE_KINDS


@dataclass(frozen=True)
class ControllerBinding:
    """What the controller backend needs to delegate a whole graph.

    ``definition`` is the ResourceGraphDefinition manifest and ``instance``
    the higher-level custom resource, both produced by the external
    serializer.  ``crd_name`` defaults to ``<plural>.<group>`` derived from
    the instance.
    """

    definition: dict[str, Any]
    instance: dict[str, Any]
    crd_name: str | None = None

    @property
    def instance_kind(self) -> str:
        return str(self.instance.get("kind", ""))

    @property
    def instance_api_version(self) -> str:
        api_version = str(self.instance.get("apiVersion", ""))
        return api_version if "/" in api_version else f"kro.run/{api_version or 'v1alpha1'}"

    def resolved_crd_name(self) -> str:
        if self.crd_name:
            return self.crd_name
        group = self.instance_api_version.split("/", 1)[0]
        return f"{_pluralize(self.instance_kind.lower())}.{group}"


def _pluralize(word: str) -> str:
    if word.endswith(("s", "x", "z", "ch", "sh")):
        return word + "es"
    if word.endswith("y") and len(word) > 1 and word[-2] not in "aeiou":
        return word[:-1] + "ies"
    return word + "s"


@dataclass(frozen=True)
class ResourceGraph:
    """A named set of resources plus the edges between them.

    Immutable for the duration of a deployment.  When ``dependency_graph``
    is None the engine builds it by scanning manifests for placeholders.
    """

    name: str
    resources: list[GraphResource]
    dependency_graph: DependencyGraph | None = None
    status_mappings: dict[str, Any] = field(default_factory=dict)
    controller: ControllerBinding | None = None

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for resource in self.resources:
            if resource.id in seen:
                raise ValueError(f"Duplicate resource id '{resource.id}' in graph '{self.name}'")
            seen.add(resource.id)

    def get(self, resource_id: str) -> GraphResource | None:
        for resource in self.resources:
            if resource.id == resource_id:
                return resource
        return None

    @property
    def ids(self) -> list[str]:
        return [r.id for r in self.resources]


@dataclass
class DeployedResource:
    """Record of a resource the engine has handled during one run.

    Status only moves forward (pending → deploying → deployed → ready);
    ``failed`` can be entered from any state and is terminal.
    """

    id: str
    kind: str
    name: str
    namespace: str | None
    api_version: str
    manifest: dict[str, Any]
    status: ResourceStatus = ResourceStatus.PENDING
    deployed_at: datetime | None = None
    live: dict[str, Any] | None = None
    error: Exception | None = None

    def advance(self, new_status: ResourceStatus) -> None:
        """Move to *new_status*, rejecting backwards or post-failure transitions."""
        if self.status == ResourceStatus.FAILED:
            raise ValueError(f"Resource '{self.id}' already failed; cannot move to {new_status}")
        if new_status == ResourceStatus.FAILED:
            self.status = new_status
            return
        if _STATUS_RANK[new_status] < _STATUS_RANK[self.status]:
            raise ValueError(f"Resource '{self.id}' cannot move from {self.status} back to {new_status}")
        if new_status == ResourceStatus.DEPLOYED and self.deployed_at is None:
            self.deployed_at = datetime.now(tz=UTC)
        self.status = new_status

    def fail(self, error: Exception) -> None:
        self.error = error
        self.advance(ResourceStatus.FAILED)

    @property
    def succeeded(self) -> bool:
        return self.status in (ResourceStatus.DEPLOYED, ResourceStatus.READY)

    @property
    def address(self) -> dict[str, Any]:
        """The ``{apiVersion, kind, metadata: {name, namespace}}`` stub used for reads and deletes."""
        metadata: dict[str, Any] = {"name": self.name}
        if self.namespace:
            metadata["namespace"] = self.namespace
        return {"apiVersion": self.api_version, "kind": self.kind, "metadata": metadata}

    @classmethod
    def from_manifest(cls, resource_id: str, manifest: dict[str, Any]) -> DeployedResource:
        metadata = manifest.get("metadata") or {}
        return cls(
            id=resource_id,
            kind=str(manifest.get("kind", "")),
            name=str(metadata.get("name") or resource_id),
            namespace=metadata.get("namespace"),
            api_version=str(manifest.get("apiVersion", "")),
            manifest=manifest,
        )
