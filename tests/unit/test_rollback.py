"""Tests for RollbackManager."""

from __future__ import annotations

from conftest import FakeClusterClient, config_map, deployment
from kubegraph.deployment.rollback import RollbackManager
from kubegraph.errors import ClusterApiError, RollbackError
from kubegraph.models import DeployedResource, DeploymentStatus, EventType, RollbackConfig


def _records(cluster: FakeClusterClient, manifests: list[dict]) -> list[DeployedResource]:
    out = []
    for manifest in manifests:
        cluster.preload(manifest)
        out.append(DeployedResource.from_manifest(manifest["metadata"]["name"], manifest))
    return out


class TestRollback:
    async def test_deletes_in_reverse_order(self, cluster: FakeClusterClient) -> None:
        records = _records(cluster, [config_map("a"), config_map("b"), deployment("c")])

        result = await RollbackManager(cluster).rollback(records, RollbackConfig())

        assert [c.name for c in cluster.calls_for("delete")] == ["c", "b", "a"]
        assert result.rolled_back_resources == ["c", "b", "a"]
        assert result.status == DeploymentStatus.SUCCESS
        assert result.errors == []
        assert not cluster.objects

    async def test_not_found_counts_as_success(self, cluster: FakeClusterClient) -> None:
        records = _records(cluster, [config_map("a")])
        cluster.objects.clear()
        result = await RollbackManager(cluster).rollback(records)
        assert result.status == DeploymentStatus.SUCCESS
        assert result.rolled_back_resources == ["a"]

    async def test_partial_when_one_delete_fails(self, cluster: FakeClusterClient) -> None:
        records = _records(cluster, [config_map("a"), config_map("b"), config_map("c")])
        cluster.fail("delete", "ConfigMap", "b", ClusterApiError(403, "Forbidden"))

        result = await RollbackManager(cluster).rollback(records)

        assert result.status == DeploymentStatus.PARTIAL
        assert result.rolled_back_resources == ["c", "a"]
        assert [e.resource_id for e in result.errors] == ["b"]
        assert isinstance(result.errors[0].error, RollbackError)
        assert str(result.errors[0].phase) == "rollback"

    async def test_failed_when_nothing_deleted(self, cluster: FakeClusterClient) -> None:
        records = _records(cluster, [config_map("a")])
        cluster.fail("delete", "ConfigMap", "a", ClusterApiError(500, "boom"))
        result = await RollbackManager(cluster).rollback(records)
        assert result.status == DeploymentStatus.FAILED

    async def test_force_retries_with_zero_grace(self, cluster: FakeClusterClient) -> None:
        records = _records(cluster, [config_map("a")])
        cluster.fail("delete", "ConfigMap", "a", ClusterApiError(500, "stuck"))

        result = await RollbackManager(cluster).rollback(records, RollbackConfig(grace_period=30, force=True))

        assert result.status == DeploymentStatus.SUCCESS
        assert [c.grace_period for c in cluster.calls_for("delete")] == [30, 0]

    async def test_timeout_waiting_for_deletion(self, cluster: FakeClusterClient) -> None:
        records = _records(cluster, [config_map("a"), config_map("b")])
        cluster.sticky("ConfigMap", "b")

        result = await RollbackManager(cluster).rollback(records, RollbackConfig(timeout=0.1, poll_interval=0.02))

        assert result.status == DeploymentStatus.PARTIAL
        assert result.rolled_back_resources == ["a"]
        assert "still present" in str(result.errors[0].error)

    async def test_no_timeout_skips_waiting(self, cluster: FakeClusterClient) -> None:
        records = _records(cluster, [config_map("a")])
        cluster.sticky("ConfigMap", "a")

        result = await RollbackManager(cluster).rollback(records, RollbackConfig(timeout=None))

        assert result.status == DeploymentStatus.SUCCESS
        assert cluster.calls_for("read") == []

    async def test_wait_stops_once_gone(self, cluster: FakeClusterClient) -> None:
        records = _records(cluster, [config_map("a")])

        result = await RollbackManager(cluster).rollback(records, RollbackConfig(timeout=1.0, poll_interval=0.01))

        assert result.status == DeploymentStatus.SUCCESS
        assert len(cluster.calls_for("read", "ConfigMap", "a")) == 1

    async def test_progress_events(self, cluster: FakeClusterClient) -> None:
        events = []
        records = _records(cluster, [config_map("a")])
        await RollbackManager(cluster).rollback(records, RollbackConfig(progress_callback=events.append))
        assert events
        assert all(e.type == EventType.ROLLBACK for e in events)

    async def test_empty_rollback_succeeds(self, cluster: FakeClusterClient) -> None:
        result = await RollbackManager(cluster).rollback([])
        assert result.status == DeploymentStatus.SUCCESS
        assert result.rollback_id.startswith("rollback-")
