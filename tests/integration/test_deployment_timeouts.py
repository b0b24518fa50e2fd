"""The run timeout is the single cancellation signal for every apply and poll."""

from __future__ import annotations

import asyncio
import dataclasses
from typing import Any

import pytest

from conftest import READY_DEPLOYMENT_STATUS, FakeClusterClient, config_map, deployment
from kubegraph.deployment import DeploymentEngine
from kubegraph.errors import ResourceDeploymentError, ResourceReadinessTimeoutError
from kubegraph.models import DeploymentOptions, DeploymentStatus, ErrorPhase, GraphResource, ResourceGraph

pytestmark = pytest.mark.integration

# Slack for one scheduler tick between the deadline and the last poll.
EPSILON = 0.05


def _single_deployment() -> ResourceGraph:
    return ResourceGraph("stuck", [GraphResource("app", deployment("web"))])


class TestRunTimeout:
    async def test_no_reads_after_deadline(self, cluster: FakeClusterClient, fast_options: DeploymentOptions) -> None:
        cluster.set_status("Deployment", "web", {"readyReplicas": 0, "replicas": 1})
        timeout = 0.2
        options = dataclasses.replace(fast_options, timeout=timeout)
        started = asyncio.get_running_loop().time()

        result = await DeploymentEngine(cluster).deploy(_single_deployment(), options)

        assert result.status == DeploymentStatus.FAILED
        error = result.errors[0]
        assert error.phase == ErrorPhase.READINESS
        assert isinstance(error.error, ResourceReadinessTimeoutError)
        assert error.error.last_result is not None
        assert not error.error.last_result.ready
        reads = cluster.calls_for("read", "Deployment", "web")
        assert len(reads) > 1
        assert reads[-1].at <= started + timeout + EPSILON

    async def test_converges_on_third_poll(self, cluster: FakeClusterClient, fast_options: DeploymentOptions) -> None:
        not_ready = {"readyReplicas": 0, "replicas": 1}
        cluster.set_status("Deployment", "web", not_ready, not_ready, READY_DEPLOYMENT_STATUS)

        result = await DeploymentEngine(cluster).deploy(_single_deployment(), fast_options)

        assert result.status == DeploymentStatus.SUCCESS
        assert len(cluster.calls_for("read", "Deployment", "web")) == 3

    async def test_hung_apply_bounded_by_deadline(self, fast_options: DeploymentOptions) -> None:
        class HangingCluster(FakeClusterClient):
            async def create(self, manifest: dict[str, Any]) -> dict[str, Any]:
                await asyncio.Event().wait()
                raise AssertionError("unreachable")

        graph = ResourceGraph("hang", [GraphResource("cm", config_map("cm"))])
        options = dataclasses.replace(fast_options, timeout=0.1)

        result = await asyncio.wait_for(DeploymentEngine(HangingCluster()).deploy(graph, options), timeout=2)

        assert result.status == DeploymentStatus.FAILED
        assert result.errors[0].phase == ErrorPhase.DEPLOYMENT
        assert isinstance(result.errors[0].error, ResourceDeploymentError)
        assert isinstance(result.errors[0].error.cause, TimeoutError)

    async def test_timeout_does_not_block_independent_branch(
        self, cluster: FakeClusterClient, fast_options: DeploymentOptions
    ) -> None:
        cluster.set_status("Deployment", "web", {"readyReplicas": 0})
        graph = ResourceGraph(
            "mixed", [GraphResource("app", deployment("web")), GraphResource("cm", config_map("settings"))]
        )

        result = await DeploymentEngine(cluster).deploy(graph, dataclasses.replace(fast_options, timeout=0.2))

        assert result.status == DeploymentStatus.PARTIAL
        assert result.failed_resource_ids == ["app"]


class TestCallerCancellation:
    async def test_cancel_propagates_and_stops_polling(
        self, cluster: FakeClusterClient, fast_options: DeploymentOptions
    ) -> None:
        cluster.set_status("Deployment", "web", {"readyReplicas": 0})
        engine = DeploymentEngine(cluster)
        task = asyncio.create_task(engine.deploy(_single_deployment(), fast_options))
        while not cluster.calls_for("read", "Deployment", "web"):
            await asyncio.sleep(0.005)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        calls_at_cancel = len(cluster.calls)
        await asyncio.sleep(0.05)
        assert len(cluster.calls) == calls_at_cancel
