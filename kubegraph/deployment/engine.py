"""Resource graph deployment engine (direct backend).

Every resource gets exactly one asyncio task.  A task waits for the tasks of
the resources it depends on, then resolves, applies and (optionally) waits
for readiness while holding a slot of the concurrency semaphore.  Failures
are recorded per resource; only structural problems escape ``deploy()``.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

import structlog

from kubegraph.cluster.client import ClusterClient
from kubegraph.deployment.apply import Applier
from kubegraph.deployment.controller import ControllerBackend
from kubegraph.deployment.events import ProgressEmitter
from kubegraph.deployment.hydration import StatusHydrator
from kubegraph.deployment.rollback import RollbackManager
from kubegraph.errors import (
    BackendConfigurationError,
    CelExpressionError,
    ClusterApiError,
    DependencyFailedError,
    KubeGraphError,
    ReferenceResolutionError,
    ResourceDeploymentError,
    ResourceReadinessTimeoutError,
)
from kubegraph.graph.builder import build_dependency_graph
from kubegraph.graph.dependency_graph import DependencyGraph
from kubegraph.models.deployment import (
    DeploymentErrorRecord,
    DeploymentMode,
    DeploymentOptions,
    DeploymentResult,
    DeploymentStatus,
    ErrorPhase,
    EventType,
    RetryPolicy,
    RollbackConfig,
    RollbackResult,
    aggregate_status,
    new_deployment_id,
)
from kubegraph.models.resources import DeployedResource, GraphResource, ResourceGraph, ResourceStatus
from kubegraph.observability.logging import get_logger
from kubegraph.observability.metrics import deployment_duration_seconds, deployments_total
from kubegraph.readiness.evaluators import crd_ready
from kubegraph.readiness.poller import wait_for_ready
from kubegraph.readiness.registry import ReadinessRegistry, default_registry
from kubegraph.references.expressions import ExpressionEngine
from kubegraph.references.resolver import ReferenceResolver, ResolutionContext

# Waiting for a deleted object to disappear, when no rollback config is given.
_DEFAULT_DELETE_TIMEOUT = 300.0


@dataclass
class _Run:
    """Mutable state of one deploy() call."""

    deployment_id: str
    options: DeploymentOptions
    deadline: float
    emitter: ProgressEmitter
    policy: RetryPolicy
    context: ResolutionContext
    semaphore: asyncio.Semaphore
    graph: DependencyGraph | None = None
    records: dict[str, DeployedResource] = field(default_factory=dict)
    errors: list[DeploymentErrorRecord] = field(default_factory=list)
    done: dict[str, asyncio.Event] = field(default_factory=dict)
    applied_order: list[str] = field(default_factory=list)


class DeploymentEngine:
    """Deploys ResourceGraphs against a cluster.

    ``mode=direct`` applies each resource through *client*; ``mode=controller``
    hands the whole graph to ControllerBackend.
    """

    def __init__(
        self,
        client: ClusterClient,
        *,
        registry: ReadinessRegistry | None = None,
        expression_engine: ExpressionEngine | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._client = client
        self._log = logger or get_logger("deployment.engine")
        self._registry = registry or default_registry(logger=self._log)
        self._resolver = ReferenceResolver(expression_engine, logger=self._log)
        self._hydrator = StatusHydrator(self._resolver, logger=self._log)
        self._applier = Applier(client, self._log)
        self._rollback = RollbackManager(client, logger=self._log)

    @property
    def registry(self) -> ReadinessRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def deploy(self, graph: ResourceGraph, options: DeploymentOptions | None = None) -> DeploymentResult:
        """Deploy *graph* and report what succeeded, what failed and why.

        Raises CircularDependencyError and BackendConfigurationError (a
        supplied dependency graph whose nodes differ from the graph's
        resources, for one) before any API call; every other failure is
        captured in the returned result.
        """
        options = options or DeploymentOptions()
        if options.mode == DeploymentMode.CONTROLLER:
            backend = ControllerBackend(
                self._client,
                registry=self._registry,
                applier=self._applier,
                hydrator=self._hydrator,
                rollback=self._rollback,
                logger=self._log,
            )
            return await backend.deploy(graph, options)
        if options.mode != DeploymentMode.DIRECT:
            raise BackendConfigurationError(f"Unknown deployment mode '{options.mode}'")

        dependency_graph = graph.dependency_graph or build_dependency_graph(graph.resources, logger=self._log)
        _check_nodes_match(graph, dependency_graph)
        order = dependency_graph.topological_order()

        run = self._new_run(options)
        run.graph = dependency_graph
        log = self._log.bind(deployment_id=run.deployment_id, graph=graph.name)
        started = time.monotonic()
        log.info("deployment_started", mode=str(options.mode), resources=len(order))
        run.emitter.emit(EventType.STARTED, f"Deploying {len(order)} resource(s) from graph '{graph.name}'")

        by_id = {r.id: r for r in graph.resources}
        resources: dict[str, GraphResource] = {}
        for resource_id in order:
            resource = resources[resource_id] = by_id[resource_id]
            run.records[resource_id] = DeployedResource.from_manifest(resource_id, _literal_manifest(resource))
            run.done[resource_id] = asyncio.Event()

        async with asyncio.TaskGroup() as tg:
            for resource_id, resource in resources.items():
                tg.create_task(self._run_resource(run, resource), name=f"deploy:{resource_id}")

        records = [run.records[rid] for rid in order]
        succeeded = sum(1 for r in records if r.succeeded)
        status = aggregate_status(succeeded=succeeded, failed=len(records) - succeeded)

        hydrated: dict[str, Any] = {}
        if options.hydrate_status and graph.status_mappings:
            hydrated = self._hydrator.hydrate_from_resources(graph.status_mappings, run.context)

        rollback: RollbackResult | None = None
        if _should_roll_back(status, options):
            to_remove = [run.records[rid] for rid in run.applied_order]
            log.warning("deployment_rolling_back", status=str(status), resources=len(to_remove))
            rollback = await self._rollback.rollback(
                to_remove,
                RollbackConfig(poll_interval=options.readiness_poll_interval, progress_callback=options.progress_callback),
            )

        duration = time.monotonic() - started
        return self._finish(run, log, status, records, duration, hydrated, rollback)

    async def deploy_resource(
        self,
        resource: GraphResource,
        options: DeploymentOptions | None = None,
        context: ResolutionContext | None = None,
    ) -> DeployedResource:
        """Deploy a single resource, raising the recorded error on failure.

        References are resolved against *context*; a resource that refers to
        anything must be given one that holds its dependencies.
        """
        options = options or DeploymentOptions()
        run = self._new_run(options, context)
        run.records[resource.id] = DeployedResource.from_manifest(resource.id, _literal_manifest(resource))
        run.done[resource.id] = asyncio.Event()
        await self._run_resource(run, resource)
        record = run.records[resource.id]
        if record.error is not None:
            raise record.error
        return record

    async def delete_resource(self, resource: DeployedResource, config: RollbackConfig | None = None) -> None:
        """Delete *resource* and wait until it is gone.  A 404 counts as success."""
        config = config or RollbackConfig(timeout=_DEFAULT_DELETE_TIMEOUT)
        if config.timeout is None:
            config = RollbackConfig(
                timeout=_DEFAULT_DELETE_TIMEOUT,
                grace_period=config.grace_period,
                force=config.force,
                poll_interval=config.poll_interval,
            )
        await self._rollback.delete(resource.address, resource.id, config)

    async def rollback_resources(
        self, resources: list[DeployedResource], config: RollbackConfig | None = None
    ) -> RollbackResult:
        return await self._rollback.rollback(resources, config)

    # ------------------------------------------------------------------
    # Per-resource pipeline
    # ------------------------------------------------------------------

    def _new_run(self, options: DeploymentOptions, context: ResolutionContext | None = None) -> _Run:
        loop = asyncio.get_running_loop()
        return _Run(
            deployment_id=new_deployment_id(),
            options=options,
            deadline=loop.time() + options.timeout,
            emitter=ProgressEmitter(options.progress_callback, self._log),
            policy=options.retry_policy or RetryPolicy(),
            context=context or ResolutionContext(namespace=options.namespace),
            semaphore=asyncio.Semaphore(options.max_concurrency),
        )

    async def _run_resource(self, run: _Run, resource: GraphResource) -> None:
        record = run.records[resource.id]
        try:
            dependencies = run.graph.dependencies(resource.id) if run.graph is not None else []
            for dep_id in dependencies:
                await run.done[dep_id].wait()
            failed_dep = next((d for d in dependencies if not run.records[d].succeeded), None)
            if failed_dep is not None:
                self._fail(run, record, ErrorPhase.DEPENDENCY, DependencyFailedError(resource.id, failed_dep))
                return
            async with run.semaphore:
                await self._deploy_one(run, resource, record)
        finally:
            run.done[resource.id].set()

    async def _deploy_one(self, run: _Run, resource: GraphResource, record: DeployedResource) -> None:
        options = run.options
        record.advance(ResourceStatus.DEPLOYING)
        run.emitter.emit(EventType.RESOURCE_STATUS, f"Deploying {resource.kind}/{resource.name}", resource.id, status="deploying")

        try:
            manifest = self._resolver.resolve_references(resource, run.context)
        except (ReferenceResolutionError, CelExpressionError) as exc:
            self._fail(run, record, ErrorPhase.RESOLUTION, exc)
            return
        _refresh_record(record, manifest)

        if options.dry_run:
            record.advance(ResourceStatus.DEPLOYED)
            run.context.record(record)
            run.emitter.emit(EventType.PROGRESS, f"Dry run: resolved {record.kind}/{record.name}", resource.id, dry_run=True)
            return

        try:
            async with asyncio.timeout_at(run.deadline):
                live = await self._applier.apply(resource.id, manifest, run.policy)
        except TimeoutError as exc:
            timeout_error = TimeoutError(f"deadline of {options.timeout:.1f}s exceeded while applying")
            self._fail(
                run,
                record,
                ErrorPhase.DEPLOYMENT,
                ResourceDeploymentError(resource.id, record.kind, record.name, cause=timeout_error),
                cause=exc,
            )
            return
        except ResourceDeploymentError as exc:
            self._fail(run, record, ErrorPhase.DEPLOYMENT, exc)
            return

        record.live = live
        record.advance(ResourceStatus.DEPLOYED)
        run.context.record(record)
        run.applied_order.append(resource.id)
        run.emitter.emit(EventType.RESOURCE_STATUS, f"Applied {record.kind}/{record.name}", resource.id, status="deployed")

        gate_dependents = resource.is_prerequisite and run.graph is not None and bool(run.graph.dependents(resource.id))
        if not gate_dependents and not options.wait_for_ready:
            return

        loop = asyncio.get_running_loop()
        if gate_dependents:
            evaluator = crd_ready
            deadline = min(run.deadline, loop.time() + options.crd_establishment_timeout)
        else:
            evaluator = self._registry.resolve(resource, overrides=options.readiness_overrides)
            deadline = run.deadline

        def on_poll(result: Any, attempt: int) -> None:
            run.emitter.emit(
                EventType.PROGRESS,
                result.message or f"Waiting for {record.kind}/{record.name}",
                resource.id,
                attempt=attempt,
                ready=result.ready,
                reason=result.reason,
            )

        try:
            result, live = await wait_for_ready(
                self._client,
                record.address,
                evaluator,
                registry=self._registry,
                deadline=deadline,
                resource_id=resource.id,
                poll_interval=options.readiness_poll_interval,
                on_poll=on_poll,
                logger=self._log,
            )
        except (ResourceReadinessTimeoutError, ClusterApiError) as exc:
            self._fail(run, record, ErrorPhase.READINESS, exc)
            return

        record.live = live
        record.advance(ResourceStatus.READY)
        self._log.info("resource_ready", resource_id=resource.id, kind=record.kind, name=record.name)
        run.emitter.emit(EventType.RESOURCE_READY, result.message or f"{record.kind}/{record.name} is ready", resource.id)

    def _fail(
        self,
        run: _Run,
        record: DeployedResource,
        phase: ErrorPhase,
        error: KubeGraphError,
        cause: BaseException | None = None,
    ) -> None:
        if cause is not None:
            error.__cause__ = cause
        record.fail(error)
        run.errors.append(DeploymentErrorRecord(record.id, phase, error))
        log_fn = self._log.warning if phase == ErrorPhase.DEPENDENCY else self._log.error
        log_fn("resource_failed", resource_id=record.id, kind=record.kind, phase=str(phase), error=str(error))
        run.emitter.emit(EventType.FAILED, str(error), record.id, error=error, phase=str(phase))

    def _finish(
        self,
        run: _Run,
        log: structlog.stdlib.BoundLogger,
        status: DeploymentStatus,
        records: list[DeployedResource],
        duration: float,
        hydrated: dict[str, Any],
        rollback: RollbackResult | None,
    ) -> DeploymentResult:
        mode = str(run.options.mode)
        deployments_total.labels(mode=mode, status=str(status)).inc()
        deployment_duration_seconds.labels(mode=mode).observe(duration)
        log.info(
            "deployment_completed",
            status=str(status),
            resources=len(records),
            errors=len(run.errors),
            duration_s=round(duration, 3),
        )
        if status == DeploymentStatus.SUCCESS:
            run.emitter.emit(EventType.COMPLETED, f"Deployment completed: {len(records)} resource(s)")
        else:
            run.emitter.emit(EventType.FAILED, f"Deployment {status}: {len(run.errors)} error(s)", status=str(status))
        return DeploymentResult(
            deployment_id=run.deployment_id,
            status=status,
            resources=records,
            errors=run.errors,
            duration=duration,
            hydrated_status=hydrated,
            rollback=rollback,
        )


def _check_nodes_match(graph: ResourceGraph, dependency_graph: DependencyGraph) -> None:
    nodes, ids = set(dependency_graph.node_ids), set(graph.ids)
    if nodes != ids:
        raise BackendConfigurationError(
            f"Dependency graph for '{graph.name}' does not match its resources: "
            f"missing={sorted(ids - nodes)} extra={sorted(nodes - ids)}"
        )


def _should_roll_back(status: DeploymentStatus, options: DeploymentOptions) -> bool:
    if status == DeploymentStatus.FAILED:
        return options.rollback_on_failure
    if status == DeploymentStatus.PARTIAL:
        return options.rollback_on_partial
    return False


def _literal_manifest(resource: GraphResource) -> dict[str, Any]:
    """Manifest stub with only literal identity fields, for records not yet resolved."""
    metadata: dict[str, Any] = {"name": resource.name}
    if resource.namespace:
        metadata["namespace"] = resource.namespace
    return {"apiVersion": resource.api_version, "kind": resource.kind, "metadata": metadata}


def _refresh_record(record: DeployedResource, manifest: dict[str, Any]) -> None:
    metadata = manifest.get("metadata") or {}
    record.manifest = manifest
    record.name = str(metadata.get("name") or record.name)
    record.namespace = metadata.get("namespace") or record.namespace
