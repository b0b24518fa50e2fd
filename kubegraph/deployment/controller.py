"""Controller backend: delegate a whole graph to kro.

The graph arrives already serialized as a ResourceGraphDefinition plus one
instance of the kind it defines.  This backend applies the definition,
waits for kro to generate and establish the CRD, applies the instance and
waits for kro to report it ACTIVE and synced.
"""

from __future__ import annotations

import asyncio
import copy
import time
from collections.abc import Callable
from typing import Any

import structlog

from kubegraph.cluster.client import ClusterClient
from kubegraph.deployment.apply import Applier
from kubegraph.deployment.events import ProgressEmitter
from kubegraph.deployment.hydration import StatusHydrator
from kubegraph.deployment.rollback import RollbackManager
from kubegraph.errors import (
    BackendConfigurationError,
    ClusterApiError,
    DependencyFailedError,
    InstanceFailedError,
    ResourceDeploymentError,
    ResourceReadinessTimeoutError,
)
from kubegraph.models.deployment import (
    DeploymentErrorRecord,
    DeploymentOptions,
    DeploymentResult,
    DeploymentStatus,
    ErrorPhase,
    EventType,
    RetryPolicy,
    RollbackConfig,
    aggregate_status,
    new_deployment_id,
)
from kubegraph.models.readiness import ReadinessEvaluator, ReadinessResult
from kubegraph.models.resources import DeployedResource, ResourceGraph, ResourceStatus
from kubegraph.observability.logging import get_logger
from kubegraph.observability.metrics import deployment_duration_seconds, deployments_total
from kubegraph.readiness.evaluators import crd_ready, kro_instance_ready, resource_graph_definition_ready
from kubegraph.readiness.poller import wait_for_ready
from kubegraph.readiness.registry import ReadinessRegistry, default_registry

_CRD_API_VERSION = "apiextensions.k8s.io/v1"

_FailFn = Callable[[DeployedResource, ErrorPhase, Exception], None]


def _instance_failed(result: ReadinessResult) -> bool:
    return result.reason == "InstanceFailed"


class ControllerBackend:
    """Deploys via a ResourceGraphDefinition and one instance.

    The result lists two resources, the definition then the instance, and
    uses the same error phases as the direct backend.
    """

    def __init__(
        self,
        client: ClusterClient,
        *,
        registry: ReadinessRegistry | None = None,
        applier: Applier | None = None,
        hydrator: StatusHydrator | None = None,
        rollback: RollbackManager | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._client = client
        self._log = logger or get_logger("deployment.controller")
        self._registry = registry or default_registry(logger=self._log)
        self._applier = applier or Applier(client, self._log)
        self._hydrator = hydrator or StatusHydrator(logger=self._log)
        self._rollback = rollback or RollbackManager(client, logger=self._log)

    async def deploy(self, graph: ResourceGraph, options: DeploymentOptions) -> DeploymentResult:
        binding = graph.controller
        if binding is None:
            raise BackendConfigurationError(f"Graph '{graph.name}' has no controller binding; cannot use controller mode")
        if not binding.instance_kind:
            raise BackendConfigurationError(f"Controller binding for '{graph.name}' has an instance without a kind")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + options.timeout
        deployment_id = new_deployment_id()
        policy = options.retry_policy or RetryPolicy()
        emitter = ProgressEmitter(options.progress_callback, self._log)
        log = self._log.bind(deployment_id=deployment_id, graph=graph.name)
        started = time.monotonic()

        definition = DeployedResource.from_manifest(
            f"{graph.name}-definition", copy.deepcopy(binding.definition)
        )
        instance_manifest = copy.deepcopy(binding.instance)
        instance_manifest["apiVersion"] = binding.instance_api_version
        if options.namespace:
            instance_manifest.setdefault("metadata", {}).setdefault("namespace", options.namespace)
        instance = DeployedResource.from_manifest(f"{graph.name}-instance", instance_manifest)
        errors: list[DeploymentErrorRecord] = []
        applied: list[DeployedResource] = []

        def fail(record: DeployedResource, phase: ErrorPhase, error: Exception) -> None:
            record.fail(error)
            errors.append(DeploymentErrorRecord(record.id, phase, error))
            log.error("resource_failed", resource_id=record.id, kind=record.kind, phase=str(phase), error=str(error))
            emitter.emit(EventType.FAILED, str(error), record.id, error=error, phase=str(phase))

        log.info("deployment_started", mode=str(options.mode), instance_kind=binding.instance_kind)
        emitter.emit(EventType.STARTED, f"Deploying graph '{graph.name}' through the controller")

        # 1. ResourceGraphDefinition
        if await self._apply(definition, deadline, policy, fail, emitter):
            applied.append(definition)
            await self._wait(
                definition,
                resource_graph_definition_ready,
                deadline,
                options,
                fail,
                emitter,
            )

        # 2. Generated CRD
        crd_name = binding.resolved_crd_name()
        if definition.status == ResourceStatus.FAILED:
            fail(instance, ErrorPhase.DEPENDENCY, DependencyFailedError(instance.id, definition.id))
        else:
            crd = DeployedResource.from_manifest(
                crd_name,
                {"apiVersion": _CRD_API_VERSION, "kind": "CustomResourceDefinition", "metadata": {"name": crd_name}},
            )
            crd_deadline = min(deadline, loop.time() + options.crd_establishment_timeout)
            try:
                await wait_for_ready(
                    self._client,
                    crd.address,
                    crd_ready,
                    registry=self._registry,
                    deadline=crd_deadline,
                    resource_id=crd_name,
                    poll_interval=options.readiness_poll_interval,
                    logger=self._log,
                )
            except (ResourceReadinessTimeoutError, ClusterApiError) as exc:
                fail(instance, ErrorPhase.READINESS, exc)
            else:
                emitter.emit(EventType.PROGRESS, f"CRD {crd_name} is established", crd_name)

        # 3-4. Instance
        if instance.status != ResourceStatus.FAILED and await self._apply(instance, deadline, policy, fail, emitter):
            applied.append(instance)
            if options.wait_for_ready:
                await self._wait(instance, kro_instance_ready, deadline, options, fail, emitter, fail_fast=True)

        # 5. Status
        hydrated: dict[str, Any] = {}
        if options.hydrate_status and graph.status_mappings and instance.live is not None:
            hydrated = self._hydrator.hydrate_from_live(graph.status_mappings, instance.live.get("status") or {})

        records = [definition, instance]
        succeeded = sum(1 for r in records if r.succeeded)
        status = aggregate_status(succeeded=succeeded, failed=len(records) - succeeded)

        rollback = None
        if (status == DeploymentStatus.FAILED and options.rollback_on_failure) or (
            status == DeploymentStatus.PARTIAL and options.rollback_on_partial
        ):
            rollback = await self._rollback.rollback(
                applied,
                RollbackConfig(poll_interval=options.readiness_poll_interval, progress_callback=options.progress_callback),
            )

        duration = time.monotonic() - started
        deployments_total.labels(mode=str(options.mode), status=str(status)).inc()
        deployment_duration_seconds.labels(mode=str(options.mode)).observe(duration)
        log.info("deployment_completed", status=str(status), errors=len(errors), duration_s=round(duration, 3))
        if status == DeploymentStatus.SUCCESS:
            emitter.emit(EventType.COMPLETED, f"Graph '{graph.name}' deployed through the controller")
        else:
            emitter.emit(EventType.FAILED, f"Deployment {status}: {len(errors)} error(s)", status=str(status))
        return DeploymentResult(
            deployment_id=deployment_id,
            status=status,
            resources=records,
            errors=errors,
            duration=duration,
            hydrated_status=hydrated,
            rollback=rollback,
        )

    async def _apply(
        self,
        record: DeployedResource,
        deadline: float,
        policy: RetryPolicy,
        fail: _FailFn,
        emitter: ProgressEmitter,
    ) -> bool:
        record.advance(ResourceStatus.DEPLOYING)
        try:
            async with asyncio.timeout_at(deadline):
                record.live = await self._applier.apply(record.id, record.manifest, policy)
        except TimeoutError as exc:
            error = ResourceDeploymentError(record.id, record.kind, record.name, cause=exc)
            fail(record, ErrorPhase.DEPLOYMENT, error)
            return False
        except ResourceDeploymentError as exc:
            fail(record, ErrorPhase.DEPLOYMENT, exc)
            return False
        record.advance(ResourceStatus.DEPLOYED)
        emitter.emit(EventType.RESOURCE_STATUS, f"Applied {record.kind}/{record.name}", record.id, status="deployed")
        return True

    async def _wait(
        self,
        record: DeployedResource,
        evaluator: ReadinessEvaluator,
        deadline: float,
        options: DeploymentOptions,
        fail: _FailFn,
        emitter: ProgressEmitter,
        fail_fast: bool = False,
    ) -> None:
        def on_poll(result: ReadinessResult, attempt: int) -> None:
            emitter.emit(EventType.PROGRESS, result.message or "", record.id, attempt=attempt, ready=result.ready)

        try:
            result, live = await wait_for_ready(
                self._client,
                record.address,
                evaluator,
                registry=self._registry,
                deadline=deadline,
                resource_id=record.id,
                poll_interval=options.readiness_poll_interval,
                on_poll=on_poll,
                stop_when=_instance_failed if fail_fast else None,
                logger=self._log,
            )
        except (ResourceReadinessTimeoutError, ClusterApiError) as exc:
            fail(record, ErrorPhase.READINESS, exc)
            return
        record.live = live
        if not result.ready:
            fail(record, ErrorPhase.READINESS, InstanceFailedError(record.id, result.message))
            return
        record.advance(ResourceStatus.READY)
        emitter.emit(EventType.RESOURCE_READY, result.message or f"{record.kind}/{record.name} is ready", record.id)
