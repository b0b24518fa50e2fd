"""Default per-kind readiness evaluators.

Each evaluator takes the live object as read from the cluster and returns a
ReadinessResult.  Expected not-ready states are reported, never raised.
"""

from __future__ import annotations

from typing import Any

from kubegraph.models.readiness import ReadinessResult


def _status(live: dict[str, Any]) -> dict[str, Any] | None:
    status = live.get("status")
    return status if isinstance(status, dict) and status else None


def _spec(live: dict[str, Any]) -> dict[str, Any]:
    spec = live.get("spec")
    return spec if isinstance(spec, dict) else {}


def _conditions(status: dict[str, Any]) -> list[dict[str, Any]]:
    conditions = status.get("conditions")
    if not isinstance(conditions, list):
        return []
    return [c for c in conditions if isinstance(c, dict)]


def _condition(status: dict[str, Any], condition_type: str) -> dict[str, Any] | None:
    for cond in _conditions(status):
        if cond.get("type") == condition_type:
            return cond
    return None


def _condition_true(status: dict[str, Any], condition_type: str) -> bool:
    cond = _condition(status, condition_type)
    return cond is not None and cond.get("status") == "True"


def _missing(kind: str) -> ReadinessResult:
    return ReadinessResult.waiting("StatusMissing", f"{kind} status not available yet")


# ---------------------------------------------------------------------------
# Workloads
# ---------------------------------------------------------------------------


def deployment_ready(live: dict[str, Any]) -> ReadinessResult:
    status = _status(live)
    expected = _spec(live).get("replicas", 1)
    if status is None:
        return ReadinessResult.waiting("StatusMissing", "Deployment status not available yet", expected=expected)

    ready = status.get("readyReplicas") or 0
    available = status.get("availableReplicas") or 0
    unavailable = status.get("unavailableReplicas") or 0
    if ready >= expected and available >= expected and unavailable == 0:
        return ReadinessResult.ok(f"Deployment has {ready}/{expected} ready and {available}/{expected} available replicas")
    return ReadinessResult.waiting(
        "ReplicasNotReady",
        f"Waiting for replicas: {ready}/{expected} ready, {available}/{expected} available",
        expected=expected,
        ready=ready,
        available=available,
        unavailable=unavailable,
    )


def _replica_set_like(kind: str):
    def evaluate(live: dict[str, Any]) -> ReadinessResult:
        status = _status(live)
        expected = _spec(live).get("replicas", 1)
        if status is None:
            return _missing(kind)
        ready = status.get("readyReplicas") or 0
        if ready >= expected:
            return ReadinessResult.ok(f"{kind} has {ready}/{expected} ready replicas")
        return ReadinessResult.waiting(
            "ReplicasNotReady",
            f"Waiting for {kind} replicas: {ready}/{expected} ready",
            expected=expected,
            ready=ready,
        )

    evaluate.__name__ = f"{kind.lower()}_ready"
    return evaluate


statefulset_ready = _replica_set_like("StatefulSet")
replicaset_ready = _replica_set_like("ReplicaSet")


def daemonset_ready(live: dict[str, Any]) -> ReadinessResult:
    status = _status(live)
    if status is None:
        return _missing("DaemonSet")
    desired = status.get("desiredNumberScheduled") or 0
    ready = status.get("numberReady") or 0
    if desired > 0 and ready == desired:
        return ReadinessResult.ok(f"DaemonSet has {ready}/{desired} pods ready")
    return ReadinessResult.waiting(
        "PodsNotReady",
        f"Waiting for DaemonSet pods: {ready}/{desired} ready",
        desired=desired,
        ready=ready,
    )


def pod_ready(live: dict[str, Any]) -> ReadinessResult:
    status = _status(live)
    if status is None:
        return _missing("Pod")
    phase = status.get("phase")
    if phase != "Running":
        return ReadinessResult.waiting("PodNotRunning", f"Pod phase is {phase or 'Unknown'}", phase=phase)
    containers = status.get("containerStatuses") or []
    not_ready = [c.get("name") for c in containers if not c.get("ready")]
    if not containers or not_ready:
        return ReadinessResult.waiting(
            "ContainersNotReady",
            f"Containers not ready: {', '.join(str(n) for n in not_ready) or 'none reported'}",
            containers=not_ready,
        )
    return ReadinessResult.ok("Pod is running and all containers are ready")


def job_ready(live: dict[str, Any]) -> ReadinessResult:
    status = _status(live)
    completions = _spec(live).get("completions", 1)
    if status is None:
        return _missing("Job")
    succeeded = status.get("succeeded") or 0
    if succeeded >= completions:
        return ReadinessResult.ok(f"Job completed {succeeded}/{completions}")
    failed = status.get("failed") or 0
    return ReadinessResult.waiting(
        "JobNotComplete",
        f"Job has {succeeded}/{completions} completions",
        succeeded=succeeded,
        failed=failed,
    )


# ---------------------------------------------------------------------------
# Networking and storage
# ---------------------------------------------------------------------------


def _has_lb_ingress(status: dict[str, Any] | None) -> bool:
    if status is None:
        return False
    ingress = (status.get("loadBalancer") or {}).get("ingress") or []
    return any(isinstance(i, dict) and (i.get("ip") or i.get("hostname")) for i in ingress)


def service_ready(live: dict[str, Any]) -> ReadinessResult:
    if _spec(live).get("type") != "LoadBalancer":
        return ReadinessResult.ok("Service is ready")
    if _has_lb_ingress(_status(live)):
        return ReadinessResult.ok("LoadBalancer has an ingress address")
    return ReadinessResult.waiting("LoadBalancerPending", "Waiting for LoadBalancer ingress address")


def ingress_ready(live: dict[str, Any]) -> ReadinessResult:
    if _has_lb_ingress(_status(live)):
        return ReadinessResult.ok("Ingress has a load balancer address")
    return ReadinessResult.waiting("LoadBalancerPending", "Waiting for Ingress load balancer address")


def pvc_ready(live: dict[str, Any]) -> ReadinessResult:
    status = _status(live)
    phase = status.get("phase") if status else None
    if phase == "Bound":
        return ReadinessResult.ok("PersistentVolumeClaim is bound")
    return ReadinessResult.waiting("NotBound", f"PersistentVolumeClaim phase is {phase or 'Unknown'}", phase=phase)


def hpa_ready(live: dict[str, Any]) -> ReadinessResult:
    status = _status(live)
    if status is not None and status.get("currentReplicas") is not None:
        return ReadinessResult.ok(f"HorizontalPodAutoscaler tracking {status['currentReplicas']} replicas")
    return ReadinessResult.waiting("MetricsPending", "HorizontalPodAutoscaler has not reported currentReplicas")


def immediately_ready(live: dict[str, Any]) -> ReadinessResult:
    return ReadinessResult.ok(f"{live.get('kind', 'Resource')} is ready once created")


# ---------------------------------------------------------------------------
# Extension APIs
# ---------------------------------------------------------------------------


def crd_ready(live: dict[str, Any]) -> ReadinessResult:
    status = _status(live)
    if status is None:
        return _missing("CustomResourceDefinition")
    established = _condition_true(status, "Established")
    names_accepted = _condition_true(status, "NamesAccepted")
    if established and names_accepted:
        return ReadinessResult.ok("CustomResourceDefinition is established and names are accepted")
    pending = [name for name, ok in (("Established", established), ("NamesAccepted", names_accepted)) if not ok]
    return ReadinessResult.waiting(
        "CRDNotEstablished",
        f"CustomResourceDefinition is not ready: {', '.join(pending)}",
        pending=pending,
    )


def resource_graph_definition_ready(live: dict[str, Any]) -> ReadinessResult:
    status = _status(live)
    if status is None:
        if (live.get("metadata") or {}).get("uid"):
            return ReadinessResult.waiting("StatusPending", "ResourceGraphDefinition exists; controller has not set status")
        return _missing("ResourceGraphDefinition")

    state = status.get("state")
    failed = next((c for c in _conditions(status) if c.get("status") == "False"), None)
    if failed is not None or str(state).lower() == "failed":
        message = failed.get("message") if failed else None
        return ReadinessResult.waiting(
            "RGDProcessingFailed",
            f"ResourceGraphDefinition processing failed: {message or 'unknown error'}",
            state=state,
        )
    if state == "Active":
        return ReadinessResult.ok("ResourceGraphDefinition is active")
    return ReadinessResult.waiting(
        "ReconciliationPending",
        f"Waiting for ResourceGraphDefinition to become active (state: {state or 'unknown'})",
        state=state,
    )


def kro_instance_ready(live: dict[str, Any]) -> ReadinessResult:
    """Instances of a kro-generated kind: ACTIVE, InstanceSynced, and real status."""
    status = _status(live)
    if status is None:
        return _missing(str(live.get("kind", "Instance")))
    state = status.get("state")
    if state == "FAILED":
        return ReadinessResult.waiting("InstanceFailed", "kro instance reconciliation failed", state=state)
    synced = _condition_true(status, "InstanceSynced")
    custom_fields = [k for k, v in status.items() if k not in ("state", "conditions") and v is not None]
    if state == "ACTIVE" and synced and custom_fields:
        return ReadinessResult.ok("kro instance is active and synced")
    return ReadinessResult.waiting(
        "InstanceProgressing",
        f"Instance progressing (state: {state or 'unknown'}, synced: {synced}, status fields: {len(custom_fields)})",
        state=state,
        synced=synced,
    )


def generic_ready(live: dict[str, Any]) -> ReadinessResult:
    """Fallback for kinds with no dedicated evaluator."""
    status = _status(live)
    if status is None:
        return ReadinessResult.waiting("StatusMissing", "Resource has no status yet")
    for condition_type in ("Ready", "Available"):
        cond = _condition(status, condition_type)
        if cond is None:
            continue
        if cond.get("status") == "True":
            return ReadinessResult.ok(f"{condition_type} condition is True")
        return ReadinessResult.waiting(
            f"{condition_type}False",
            cond.get("message") or f"{condition_type} condition is {cond.get('status')}",
            condition=condition_type,
        )
    return ReadinessResult.ok("Resource has a status")


DEFAULT_EVALUATORS = {
    "Deployment": deployment_ready,
    "StatefulSet": statefulset_ready,
    "ReplicaSet": replicaset_ready,
    "DaemonSet": daemonset_ready,
    "Pod": pod_ready,
    "Job": job_ready,
    "Service": service_ready,
    "Ingress": ingress_ready,
    "PersistentVolumeClaim": pvc_ready,
    "HorizontalPodAutoscaler": hpa_ready,
    "ConfigMap": immediately_ready,
    "Secret": immediately_ready,
    "CronJob": immediately_ready,
    "Namespace": immediately_ready,
    "ServiceAccount": immediately_ready,
    "Role": immediately_ready,
    "RoleBinding": immediately_ready,
    "ClusterRole": immediately_ready,
    "ClusterRoleBinding": immediately_ready,
    "CustomResourceDefinition": crd_ready,
    "ResourceGraphDefinition": resource_graph_definition_ready,
}
