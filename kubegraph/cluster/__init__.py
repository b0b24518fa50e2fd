"""Cluster API access."""

from kubegraph.cluster.client import ClusterClient, address_of, is_transient
from kubegraph.cluster.kubernetes import KubernetesClusterClient

__all__ = ["ClusterClient", "KubernetesClusterClient", "address_of", "is_transient"]
