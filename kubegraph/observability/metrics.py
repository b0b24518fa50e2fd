"""Prometheus metrics for the deployment engine.

All collectors are registered on the default registry at import time.
Label values are kept low-cardinality: resource kinds and outcomes only,
never resource names or ids.
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

deployments_total = Counter(
    "kubegraph_deployments_total",
    "Resource graph deployments by backend mode and final status.",
    ["mode", "status"],
)

resource_apply_total = Counter(
    "kubegraph_resource_apply_total",
    "Apply attempts against the cluster API by kind and outcome.",
    ["kind", "outcome"],  # outcome: created | replaced | retried | failed
)

readiness_polls_total = Counter(
    "kubegraph_readiness_polls_total",
    "Readiness evaluations by kind and result.",
    ["kind", "ready"],
)

rollbacks_total = Counter(
    "kubegraph_rollbacks_total",
    "Rollback passes by final status.",
    ["status"],
)

deployment_duration_seconds = Histogram(
    "kubegraph_deployment_duration_seconds",
    "Wall-clock duration of deploy() calls.",
    ["mode"],
    buckets=(0.5, 1, 2.5, 5, 10, 30, 60, 120, 300, 600),
)
