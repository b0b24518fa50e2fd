"""Data structures for the resource dependency graph."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class EdgeType(StrEnum):
    """Why one resource must be deployed before another."""

    REFERENCE = "reference"  # structural Ref in the dependent's manifest
    EXPRESSION = "expression"  # identifier inside an opaque Expression
    CRD_DEFINITION = "crd_definition"  # CRD defines the dependent's kind
    EXPLICIT = "explicit"  # added by the caller


@dataclass(frozen=True)
class GraphEdge:
    """A typed edge: ``source`` is deployed no later than ``target``."""

    source: str
    target: str
    edge_type: EdgeType = EdgeType.EXPLICIT
    field_path: str = ""  # where in the target manifest the reference was found


@dataclass
class DeploymentPlan:
    """Resources grouped into levels that can be dispatched concurrently."""

    levels: list[list[str]] = field(default_factory=list)

    @property
    def total_resources(self) -> int:
        return sum(len(level) for level in self.levels)

    @property
    def max_parallelism(self) -> int:
        return max((len(level) for level in self.levels), default=0)
